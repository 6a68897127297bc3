from pathlib import Path
from datetime import datetime, timezone
from typing import Optional


def resolve_sqlite_url(url: str, project_root: Path) -> str:
    """Resolve 'sqlite:///./relative/path' to an absolute sqlite:/// URL.

    Keeps other URL forms unchanged.
    """
    prefix = "sqlite:///./"
    if not url.startswith(prefix):
        return url
    rel = url[len(prefix) :]
    return f"sqlite:///{(project_root / rel).resolve()}"


def dt_iso(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO 8601 string in UTC, or return None.

    Naive datetimes are treated as already being in UTC, which is how the
    settlement tables store them.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def compare_column_type(
    context, inspected_column, metadata_column, inspected_type, metadata_type
) -> Optional[bool]:
    """Alembic ``compare_type`` hook aware of the settlement column types.

    ``Uint256`` and ``UTCDateTime`` are reflected as their impl types, so
    they only count as changed when the reflected type is not an instance
    of that impl. Other columns use Alembic's default comparison.
    """
    from ..models.types import Uint256, UTCDateTime

    if isinstance(metadata_type, (Uint256, UTCDateTime)):
        return not isinstance(inspected_type, type(metadata_type.impl))
    return None

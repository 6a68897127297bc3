"""Compare the settlement models against a live database schema.

Exit codes: 0 no drift, 1 drift detected, 2 the check itself failed.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext

from skillraffle.db.engine import make_engine
from skillraffle.db.utils import compare_column_type
from skillraffle.models import Base


def _print_ops(ops, indent: int = 0) -> None:
    prefix = "  " * indent
    for op in ops:
        print(f"{prefix}- {op}")
        sub_ops = getattr(op, "ops", None)
        if sub_ops:
            _print_ops(sub_ops, indent + 1)


def check(database_url: Optional[str] = None) -> int:
    engine = make_engine(database_url=database_url)
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": compare_column_type,
                    "compare_server_default": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
            if upgrade_ops is None:
                print(f"Schema drift check: ERROR for {url_display}: missing upgrade ops.")
                return 2
            if upgrade_ops.is_empty():
                print(f"Schema drift check: OK (no differences) for {url_display}.")
                return 0
            print(f"Schema drift check: FAILED for {url_display}. Differences detected:")
            _print_ops(upgrade_ops.ops or [])
            return 1
    except Exception as exc:
        print(f"Schema drift check: ERROR for {url_display}: {exc}", file=sys.stderr)
        return 2
    finally:
        engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--url", help="Database URL; defaults to DB_URL")
    args = parser.parse_args()
    return check(args.url)


if __name__ == "__main__":
    raise SystemExit(main())

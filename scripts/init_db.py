from __future__ import annotations

import argparse
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from skillraffle.db.engine import make_engine
from skillraffle.models import Base


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the requested revision."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def print_tables() -> None:
    """Print the settlement tables present in the configured database."""
    engine = make_engine()
    present = set(inspect(engine).get_table_names())
    expected = set(Base.metadata.tables)
    print("Settlement tables:", ", ".join(sorted(present & expected)))
    missing = expected - present
    if missing:
        print("Missing tables:", ", ".join(sorted(missing)))


def main() -> None:
    """Apply migrations (default to head) and report the resulting schema."""
    parser = argparse.ArgumentParser(description="Create or upgrade the settlement database.")
    parser.add_argument("--revision", default="head", help="Alembic target revision")
    args = parser.parse_args()
    upgrade_db(args.revision)
    print_tables()


if __name__ == "__main__":
    main()

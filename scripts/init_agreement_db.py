#!/usr/bin/env python3
"""
Create the agreement schema (agreements, signature_artifacts,
agreement_audit_events) for a database.

The database URL comes from --db-url, or from the storage section of the
configuration file given with --config (packaged defaults otherwise).
Existing tables are left untouched; --drop recreates them from scratch.

Usage:
  python3 scripts/init_agreement_db.py [--config deploy.yaml] [--db-url URL] [--drop]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create the rental agreement database schema")
    p.add_argument("--config", type=Path, default=None, help="Deployment YAML file")
    p.add_argument("--db-url", default=None, help="Database URL (overrides config)")
    p.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing agreement tables first (destroys all agreements)",
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from agreement_config import ConfigError, get_active_config
    from agreement_kernel.db.engine import create_tables, drop_tables, init_engine_from_url
    from agreement_kernel.logging_config import configure_logging
    from agreement_services.bootstrap import ensure_sqlite_directory

    try:
        config = get_active_config(args.config)
    except (ConfigError, FileNotFoundError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 2

    configure_logging(level=config.logging.level)
    db_url = args.db_url or config.storage.database_url
    ensure_sqlite_directory(db_url)
    engine = init_engine_from_url(db_url, echo=config.storage.echo)

    if args.drop:
        drop_tables(engine)
        print("  Dropped agreement tables")
    create_tables(engine)
    print(f"  Agreement schema ready at {engine.url.render_as_string(hide_password=True)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

# FILE: medstore/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from medstore.db.session import engine as default_engine
from medstore.db.base import Base

logger = logging.getLogger(__name__)


def init_db(eng: Engine | None = None, drop: bool = False) -> None:
    eng = eng or default_engine
    if drop:
        Base.metadata.drop_all(bind=eng)
    Base.metadata.create_all(bind=eng)
    logger.info("Tables ready: %s", sorted(inspect(eng).get_table_names()))


def main() -> None:
    parser = argparse.ArgumentParser(description="Create medstore tables")
    parser.add_argument("--drop", action="store_true", help="drop all tables first")
    args = parser.parse_args()

    from medstore.core.logging import configure_logging
    configure_logging()
    init_db(drop=args.drop)


if __name__ == "__main__":
    main()

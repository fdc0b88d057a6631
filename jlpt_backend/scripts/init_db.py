#!/usr/bin/env python3
"""
Database initialization script.

Creates every exam table straight from the model metadata. Production
databases are migrated with alembic instead; this is for local and demo
databases.

Usage:
    python -m jlpt_backend.scripts.init_db [--seed-languages ja,en,vi]
"""

import argparse
import asyncio
import sys

from sqlalchemy import select

from jlpt_backend.assessments.exam import database_models  # noqa: F401  registers tables
from jlpt_backend.assessments.exam.database_models import Language
from jlpt_backend.common.error_handling import DatabaseError
from jlpt_backend.common.logger import app_logger
from jlpt_backend.config import settings
from jlpt_backend.database.base import Base
from jlpt_backend.database.init_db import (
    close_database, get_session_factory, initialize_database, unit_of_work
)

logger = app_logger.getChild("scripts.init_db")


async def seed_languages(codes):
    async with get_session_factory()() as session:
        async with unit_of_work(session):
            existing = set((await session.execute(select(Language.code))).scalars())
            for code in codes:
                if code not in existing:
                    session.add(Language(code=code, name=code))
                    logger.info(f"Added language {code}")


async def async_main(database_url: str, languages) -> None:
    engine = await initialize_database(database_url=database_url, echo=settings.SQL_ECHO)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")
        if languages:
            await seed_languages(languages)
    finally:
        await close_database()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the JLPT backend tables")
    parser.add_argument("--database-url", default=settings.DATABASE_URL)
    parser.add_argument("--seed-languages", default="", help="Comma separated language codes")
    args = parser.parse_args()

    languages = [code.strip() for code in args.seed_languages.split(",") if code.strip()]
    try:
        asyncio.run(async_main(args.database_url, languages))
    except DatabaseError as e:
        logger.error(f"Error initializing database: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

import asyncio
import os

# Keep test runs from writing dated log files
os.environ.setdefault('LOG_TO_FILE', 'false')

import pytest

from ladder.database import Database


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'ladder.db'}"


@pytest.fixture
def run_with_db(database_url):
    """Run an async scenario against a fresh SQLite database"""
    def runner(scenario):
        async def wrapper():
            db = Database(database_url)
            await db.initialize()
            try:
                return await scenario(db)
            finally:
                await db.close()
        return asyncio.run(wrapper())
    return runner

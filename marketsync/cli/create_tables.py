# marketsync/cli/create_tables.py
import asyncio
import click

from marketsync.database import Base, engine
from marketsync import models  # noqa: F401  registers all tables


@click.command("create-tables")
def create_tables():
    """Create all database tables directly using SQLAlchemy (no migrations)"""

    async def _create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        click.echo("All tables created successfully!")

    asyncio.run(_create_tables())

if __name__ == "__main__":
    create_tables()

"""Initialize the configured database (PostgreSQL in production) with all tables."""
import asyncio
import sys
sys.path.insert(0, ".")

from blockserved.core.database import Base, close_db, init_db
from blockserved.core.config import get_settings


async def create_tables():
    """Create every staging and served-notice table."""
    settings = get_settings()
    print(f"Database: {settings.database_url.split('@')[-1]}")

    await init_db()

    print(f"Registered tables: {len(Base.metadata.tables)}")
    for table in Base.metadata.tables:
        print(f"   - {table}")

    await close_db()
    print("\nAll tables created.")


if __name__ == "__main__":
    asyncio.run(create_tables())

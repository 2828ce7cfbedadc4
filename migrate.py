import asyncio
from sqlalchemy import text
from shieldlink import database

async def migrate():
    # 1. Ensure all tables exist first (links, clicks, shield_events)
    print("Ensuring tables are initialized...")
    await database.init_models()

    async def add_column(table, column, type_def):
        async with database.engine.begin() as conn:
            try:
                await conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {type_def}"))
                print(f"Added column: {table}.{column}")
            except Exception as e:
                err_msg = str(e).lower()
                if "already exists" in err_msg or "duplicate column" in err_msg:
                    print(f"Column {table}.{column} already exists")
                else:
                    print(f"Error adding {table}.{column}: {e}")

    print("Checking for missing shield columns...")

    # Link columns added after the first release
    await add_column("links", "views", "INTEGER DEFAULT 0")
    await add_column("links", "shield_enabled", "BOOLEAN DEFAULT FALSE")
    await add_column("links", "is_ultra_link", "BOOLEAN DEFAULT FALSE")
    await add_column("links", "is_direct", "BOOLEAN DEFAULT FALSE")
    await add_column("links", "shield_config", "TEXT")
    await add_column("links", "password", "VARCHAR")
    await add_column("links", "meta_title", "VARCHAR")
    await add_column("links", "meta_description", "VARCHAR")

    # Shield event enrichment
    await add_column("shield_events", "country", "VARCHAR")
    await add_column("shield_events", "device", "VARCHAR")

    await database.engine.dispose()
    print("Migration protocol complete.")

if __name__ == "__main__":
    asyncio.run(migrate())

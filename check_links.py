import asyncio
from sqlalchemy import select
from shieldlink import models, database
from shieldlink.shield import config as shield_config

async def check():
    async for db in database.get_db():
        res = await db.execute(select(models.Link).order_by(models.Link.id))
        links = res.scalars().all()
        print(f"Links: {len(links)}")
        for link in links:
            mode = "ultra" if link.is_ultra_link else ("shield" if link.shield_enabled else "plain")
            effective = shield_config.load(link.shield_config).dumps()
            print(f"  {link.slug:<24} {mode:<6} {effective}")
        break
    await database.engine.dispose()

if __name__ == "__main__":
    asyncio.run(check())

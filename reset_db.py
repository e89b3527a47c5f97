#!/usr/bin/env python3
"""
Recreate every checkout table and seed a default shipping setup.
Usage: python3 reset_db.py
"""
import asyncio
from decimal import Decimal

from dotenv import load_dotenv

from storefront.app.core.database import create_session_factory, init_models
from storefront.app.core.logging import configure_from_settings, get_logger
from storefront.app.core.settings import get_settings
from storefront.app.models import ShippingMethod, ShippingRate, ShippingZone

load_dotenv()


async def reset_and_seed():
    configure_from_settings()
    logger = get_logger("reset_db")
    settings = get_settings()

    engine, session_factory = create_session_factory(
        settings.db_url,
        echo=False,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )
    try:
        await init_models(engine, drop_existing=True)
        logger.info("Tables recreated")

        async with session_factory() as session:
            zone = ShippingZone(name="United States", countries=["us"], is_default=True)
            session.add(zone)
            await session.flush()
            session.add(ShippingMethod(
                name="Standard Shipping",
                default_cost=settings.FALLBACK_SHIPPING_COST,
                estimated_days_min=3,
                estimated_days_max=7,
                rates=[ShippingRate(label="Ground", zone_id=zone.id, base_cost=Decimal("7.50"))],
            ))
            await session.commit()
        logger.info("Default shipping zone and method seeded", zone_id=zone.id)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(reset_and_seed())

from typing import Any, Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from storefront.app.core.base import Base


def create_session_factory(url: str, **engine_kwargs: Any) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Build an async engine and a session factory bound to it."""
    engine = create_async_engine(url=url, **engine_kwargs)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


async def init_models(engine: AsyncEngine, drop_existing: bool = False) -> None:
    """Create (optionally recreate) every table registered on Base.metadata."""
    # Register all models with the metadata before create_all.
    import storefront.app.models  # noqa: F401

    async with engine.begin() as conn:
        if drop_existing:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


from __future__ import annotations

import os
import shutil
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from store.models import Base


def create_engine_from_url(url: str, echo: bool = False) -> AsyncEngine:
    """
    Build an async engine. Plain driver URLs are upgraded to their asyncio
    driver (``sqlite://`` -> ``sqlite+aiosqlite://``, ``postgresql://`` ->
    ``postgresql+asyncpg://``).
    """
    if url.startswith("sqlite://"):
        url = "sqlite+aiosqlite://" + url[len("sqlite://"):]
    elif url.startswith("postgres://"):
        url = "postgresql+asyncpg://" + url[len("postgres://"):]
    elif url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://"):]
    return create_async_engine(url, echo=echo)


def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def reset_schema(engine: AsyncEngine) -> None:
    """Drop and recreate every table. Destroys all data."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


def restore_snapshot(snapshot_path: str, target_path: str, force: bool = False) -> Path:
    """
    Restore a SQLite snapshot file over ``target_path``.

    Raises:
        FileNotFoundError: snapshot does not exist
        FileExistsError: target exists and ``force`` is not set
    """
    src = Path(snapshot_path)
    dst = Path(target_path)
    if not src.exists():
        raise FileNotFoundError(f"Snapshot not found: {src}")
    if dst.exists() and not force:
        raise FileExistsError(f"Refusing to overwrite {dst} (use force=True)")

    os.makedirs(dst.parent, exist_ok=True)
    tmp = dst.with_suffix(dst.suffix + ".tmp")
    shutil.copyfile(src, tmp)
    os.replace(tmp, dst)
    return dst

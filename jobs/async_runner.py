"""
Async bridge for dramatiq actors.

Actors are synchronous; each worker thread keeps one event loop and
every task opens its own NullPool engine on it, so no connection is
shared between loops.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from referral_ledger.config.database import create_session_maker
from referral_ledger.config.settings import settings

T = TypeVar("T")

_worker_state = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """Event loop owned by the current worker thread, created on demand."""
    loop = getattr(_worker_state, "loop", None)
    if loop is not None and not loop.is_closed():
        return loop

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    _worker_state.loop = loop
    logger.debug(
        "Event loop created for worker thread",
        extra={"thread": threading.current_thread().name},
    )
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a coroutine to completion on the worker thread's loop.

    Args:
        coro: Coroutine to run

    Returns:
        Coroutine result
    """
    return get_event_loop().run_until_complete(coro)


@asynccontextmanager
async def create_local_session() -> AsyncIterator[AsyncSession]:
    """
    Session on a task-local engine, disposed when the task is done.

    Yields:
        AsyncSession bound to the running loop
    """
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    try:
        async with create_session_maker(engine)() as session:
            yield session
    finally:
        await engine.dispose()

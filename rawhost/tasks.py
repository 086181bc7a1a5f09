import asyncio
from typing import Awaitable, Callable

from rawhost.logging_config import get_logger
from rawhost.state import AppState

logger = get_logger(__name__)


async def rotate_password(state: AppState) -> None:
    password = state.rotator.rotate()
    await state.notifier.notify_password(password)


async def sweep_sessions(state: AppState) -> None:
    state.sessions.sweep()


async def run_periodic(name: str, interval: float, job: Callable[[], Awaitable[None]]) -> None:
    """Run ``job`` every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            await job()
        except Exception as e:
            logger.error("%s failed: %s", name, e, exc_info=True)


def start_background_tasks(state: AppState) -> list[asyncio.Task]:
    settings = state.settings
    return [
        asyncio.create_task(
            run_periodic("password rotation", settings.password_rotation_interval_seconds, lambda: rotate_password(state))
        ),
        asyncio.create_task(
            run_periodic("session sweep", settings.session_sweep_interval_seconds, lambda: sweep_sessions(state))
        ),
    ]


async def stop_background_tasks(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from afritok.core.metrics import increment_counter
from afritok.core.utils import utc_now_naive
from afritok.otp.store import ChallengeStore

logger = logging.getLogger(__name__)


def sweep_expired_challenges(store: ChallengeStore, clock: Callable[[], datetime] = utc_now_naive) -> int:
    purged = store.purge_expired(clock())
    if purged:
        increment_counter("otp_sweep_purged_total", value=purged)
        logger.info("Purged expired OTP challenges count=%s", purged)
    return purged


async def run_challenge_sweep_loop(store: ChallengeStore, stop_event: asyncio.Event, interval_seconds: int) -> None:
    while not stop_event.is_set():
        try:
            await asyncio.to_thread(sweep_expired_challenges, store)
        except Exception:
            logger.exception("OTP challenge sweep failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass


async def stop_challenge_sweep(task: asyncio.Task, stop_event: asyncio.Event, timeout: float = 3.0) -> None:
    stop_event.set()
    try:
        await asyncio.wait_for(task, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("OTP challenge sweep did not stop within %.1fs, cancelled", timeout)
    except Exception:
        logger.exception("OTP challenge sweep task failed")

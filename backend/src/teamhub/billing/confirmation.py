"""Bounded wait for a paid join to be confirmed."""

import asyncio
from dataclasses import dataclass
from typing import Callable

from teamhub.logging_config import get_logger
from teamhub.settings import settings

logger = get_logger(__name__)


@dataclass
class ConfirmationResult:
    status: str   # "joined" or "pending"
    via: str      # "webhook", "fallback" or "none"
    attempts: int


class MembershipConfirmation:
    """Poll for membership a fixed number of times, then try a fallback once.

    The webhook normally grants membership within seconds of the redirect.
    If it has not after `max_attempts` checks `interval` seconds apart, the
    fallback asks the processor directly and applies the same completion the
    webhook would. This narrows the window where a missed webhook leaves a
    paying user outside the team; it does not close it.

    `wait` runs as a normal coroutine, so cancelling the awaiting task stops
    the polling between attempts.
    """

    def __init__(
        self,
        check: Callable[[str, str], bool],
        fallback: Callable[[str, str], bool] | None = None,
        max_attempts: int | None = None,
        interval: float | None = None,
    ):
        self.check = check
        self.fallback = fallback
        self.max_attempts = settings.confirmation_max_attempts if max_attempts is None else max_attempts
        self.interval = settings.confirmation_interval_seconds if interval is None else interval

    async def wait(self, team_id: str, user_id: str) -> ConfirmationResult:
        attempts = 0
        while attempts < self.max_attempts:
            attempts += 1
            if await asyncio.to_thread(self.check, team_id, user_id):
                logger.info("join_confirmed", team_id=team_id, user_id=user_id, attempts=attempts)
                return ConfirmationResult("joined", "webhook", attempts)
            if attempts < self.max_attempts:
                await asyncio.sleep(self.interval)

        if self.fallback is not None and await asyncio.to_thread(self.fallback, team_id, user_id):
            logger.warning("join_confirmed_by_fallback", team_id=team_id, user_id=user_id, attempts=attempts)
            return ConfirmationResult("joined", "fallback", attempts)

        logger.warning("join_confirmation_pending", team_id=team_id, user_id=user_id, attempts=attempts)
        return ConfirmationResult("pending", "none", attempts)

"""Tests for the bounded membership confirmation wait."""

import asyncio

import pytest

from teamhub.billing.confirmation import MembershipConfirmation


class Recorder:
    """Callable that answers from a list and records its calls."""

    def __init__(self, answers):
        self.answers = list(answers)
        self.calls = []

    def __call__(self, team_id, user_id):
        self.calls.append((team_id, user_id))
        return self.answers.pop(0) if self.answers else False


@pytest.mark.asyncio
class TestMembershipConfirmation:
    """Tests for MembershipConfirmation.wait."""

    async def test_joined_on_first_check(self):
        check = Recorder([True])
        fallback = Recorder([True])

        result = await MembershipConfirmation(check, fallback, max_attempts=5, interval=0).wait("t1", "u1")

        assert (result.status, result.via, result.attempts) == ("joined", "webhook", 1)
        assert check.calls == [("t1", "u1")]
        assert fallback.calls == []

    async def test_joined_on_later_check(self):
        check = Recorder([False, False, True])

        result = await MembershipConfirmation(check, max_attempts=5, interval=0).wait("t1", "u1")

        assert result.via == "webhook"
        assert result.attempts == 3

    async def test_fallback_after_attempts_exhausted(self):
        check = Recorder([])
        fallback = Recorder([True])

        result = await MembershipConfirmation(check, fallback, max_attempts=3, interval=0).wait("t1", "u1")

        assert (result.status, result.via) == ("joined", "fallback")
        assert len(check.calls) == 3
        assert fallback.calls == [("t1", "u1")]

    async def test_pending_when_fallback_fails(self):
        result = await MembershipConfirmation(Recorder([]), Recorder([False]), max_attempts=2, interval=0).wait("t1", "u1")

        assert (result.status, result.via, result.attempts) == ("pending", "none", 2)

    async def test_pending_without_fallback(self):
        result = await MembershipConfirmation(Recorder([]), max_attempts=1, interval=0).wait("t1", "u1")
        assert result.status == "pending"

    async def test_no_sleep_after_last_attempt(self, mocker):
        sleep = mocker.patch("teamhub.billing.confirmation.asyncio.sleep", new=mocker.AsyncMock())

        await MembershipConfirmation(Recorder([]), max_attempts=3, interval=1.5).wait("t1", "u1")

        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.5)

    async def test_cancellation_stops_polling(self):
        check = Recorder([])
        fallback = Recorder([True])
        confirmation = MembershipConfirmation(check, fallback, max_attempts=100, interval=10)

        task = asyncio.create_task(confirmation.wait("t1", "u1"))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(check.calls) == 1
        assert fallback.calls == []

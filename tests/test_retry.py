"""Tests for capped exponential backoff."""

from datetime import datetime, timedelta, timezone

import pytest

from task_mirror.sync.models import PendingMutation, TitlePayload
from task_mirror.sync.retry import RetryPolicy

from conftest import make_task

LAST_ATTEMPT = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _failed(retry_count: int) -> PendingMutation:
    return PendingMutation(
        id="m-1",
        task_id="task-1",
        payload=TitlePayload(new_title="A"),
        created_at=LAST_ATTEMPT.isoformat(),
        retry_count=retry_count,
        last_attempt_at=LAST_ATTEMPT.isoformat() if retry_count else None,
        original_task=make_task(),
    )


class TestDelay:
    @pytest.mark.parametrize(
        "retry_count, expected",
        [(0, 0.0), (1, 2.0), (2, 4.0), (3, 8.0), (4, 16.0)],
    )
    def test_doubles(self, retry_count, expected):
        assert RetryPolicy().delay_for(retry_count) == expected

    def test_capped(self):
        policy = RetryPolicy(base_seconds=10, cap_seconds=30)
        assert policy.delay_for(2) == 20
        assert policy.delay_for(3) == 30
        assert policy.delay_for(10) == 30

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": 0},
            {"base_seconds": -1},
            {"base_seconds": 10, "cap_seconds": 5},
        ],
    )
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestReadiness:
    def test_fresh_mutation_is_ready(self):
        assert RetryPolicy().is_ready(_failed(0))

    def test_inside_window(self):
        now = LAST_ATTEMPT + timedelta(seconds=3)
        assert not RetryPolicy().is_ready(_failed(2), now=now)

    def test_window_elapsed(self):
        now = LAST_ATTEMPT + timedelta(seconds=4)
        assert RetryPolicy().is_ready(_failed(2), now=now)

    def test_exhaustion(self):
        policy = RetryPolicy(max_retries=3)
        assert not policy.is_exhausted(_failed(2))
        assert policy.is_exhausted(_failed(3))

"""Polling worker tests: retry, error capture, cancellation."""

import threading
from datetime import datetime
from unittest.mock import MagicMock

from mineralflow.async_engine.polling_worker import CancellationToken, PollingWorker
from mineralflow.core.result import PROTOCOL, Err, FetchFailure, Ok

STAMP = datetime(2025, 1, 15, 10, 0)


def _worker(fetch_fn, **overrides):
    options = dict(retry_count=2, retry_delay=0, clock=lambda: STAMP)
    options.update(overrides)
    return PollingWorker(fetch_fn, **options)


class TestPollOnce:

    def test_success_updates_state(self):
        worker = _worker(MagicMock(return_value=Ok({"trucks": 3})))
        assert worker.poll_once() is True

        state = worker.state
        assert state.data == {"trucks": 3}
        assert state.error is None
        assert state.loading is False
        assert state.last_updated == STAMP

    def test_plain_value_is_success(self):
        worker = _worker(MagicMock(return_value=[1, 2]))
        worker.poll_once()
        assert worker.state.data == [1, 2]

    def test_retries_then_succeeds(self):
        fetch = MagicMock(side_effect=[RuntimeError("down"), None, Ok("up")])
        worker = _worker(fetch)
        assert worker.poll_once() is True
        assert fetch.call_count == 3
        assert worker.state.data == "up"

    def test_gives_up_and_keeps_previous_data(self):
        failure = Err(FetchFailure(PROTOCOL, "API call failed: 503", status_code=503))
        fetch = MagicMock(side_effect=[Ok("first"), failure, failure, failure])
        worker = _worker(fetch)

        worker.poll_once()
        assert worker.poll_once() is False

        state = worker.state
        assert state.data == "first"
        assert "503" in state.error
        assert state.loading is False
        assert fetch.call_count == 4

    def test_on_update_receives_states(self):
        seen = []
        worker = _worker(MagicMock(return_value=Ok(1)), on_update=seen.append)
        worker.poll_once()
        assert seen[0].loading is True
        assert seen[-1].data == 1 and seen[-1].loading is False


class TestCancellation:

    def test_token(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel()
        assert token.cancelled
        assert token.wait(0) is True

    def test_newer_request_wins(self):
        started = threading.Event()
        release = threading.Event()
        responses = iter(["stale", "fresh"])

        def fetch():
            value = next(responses)
            if value == "stale":
                started.set()
                release.wait(5)
            return value

        worker = _worker(fetch)
        outcome = []
        slow = threading.Thread(target=lambda: outcome.append(worker.poll_once()))
        slow.start()
        assert started.wait(5)

        assert worker.refetch() is True
        release.set()
        slow.join(5)

        assert outcome == [False]
        assert worker.state.data == "fresh"


class TestLifecycle:

    def test_disabled_never_starts(self):
        fetch = MagicMock(return_value=Ok(1))
        worker = _worker(fetch, enabled=False)
        worker.start()
        assert worker.state.is_polling is False
        fetch.assert_not_called()

    def test_start_polls_immediately_and_stop(self):
        polled = threading.Event()

        def fetch():
            polled.set()
            return Ok("tick")

        worker = _worker(fetch, interval=60)
        worker.start()
        assert polled.wait(5)
        assert worker.state.is_polling is True

        worker.stop(timeout=5)
        state = worker.state
        assert state.is_polling is False
        assert state.loading is False

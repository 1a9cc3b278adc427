"""
Tests for the presence strategy in bulkcall.strategies.presence.
"""

import asyncio

import httpx
import pytest

from bulkcall.core import Batcher
from bulkcall.exceptions import (
    InvalidItemError,
    ItemRejected,
    TransportFailure,
    UnmatchedResponse,
)
from bulkcall.strategies.presence import PresenceStatus, PresenceStrategy
from tests.mocks.presence import FakePresenceAPI, make_presence_transport

BASE_URL = "https://presence.example.test/apheleia/api/v1/"


def _strategy(api: FakePresenceAPI, **kwargs) -> PresenceStrategy:
    transport = make_presence_transport(api=api)
    return PresenceStrategy(
        base_url=BASE_URL,
        client_factory=lambda: httpx.AsyncClient(transport=transport),
        **kwargs,
    )


def _batcher(api: FakePresenceAPI, **kwargs) -> Batcher[str]:
    return Batcher(
        strategy=_strategy(api=api, **kwargs),
        name="presence",
        quiet_window_seconds=0.02,
        max_wait_seconds=None,
    )


def test_strategy_requires_base_url():
    """Test that an empty base URL is refused."""
    with pytest.raises(ValueError, match="base URL"):
        PresenceStrategy(base_url="")


def test_strategy_builds_url():
    """Test that the bulk URL joins base URL and resource."""
    strategy = PresenceStrategy(base_url=BASE_URL, resource="/compositions/")

    assert strategy.url == "https://presence.example.test/apheleia/api/v1/compositions"


def test_prepare_dedupes_subjects():
    """Test that prepare keeps the first occurrence of each subject."""
    strategy = PresenceStrategy(base_url=BASE_URL)

    assert strategy.prepare(["u1", "u2", "u1"]) == ["u1", "u2"]


def test_classify_splits_success_and_failure():
    """Test that entries carrying an error code are failures."""
    strategy = PresenceStrategy(base_url=BASE_URL)

    success = strategy.classify({"subject": "u1", "status": "active", "expiresTTL": 60})
    failure = strategy.classify({"subject": "u2", "errorCode": 404})
    http_failure = strategy.classify({"subject": "u3", "statusCode": 500})

    assert isinstance(success.value, PresenceStatus)
    assert success.value.expires_ttl == 60
    assert failure.error.error_code == 404
    assert http_failure.error.failed is True


def test_entries_requires_status_list():
    """Test that a body without statusList is unreadable."""
    strategy = PresenceStrategy(base_url=BASE_URL)
    response = httpx.Response(status_code=200, json={"items": []})

    with pytest.raises(ValueError, match="statusList"):
        strategy.entries(response)


@pytest.mark.asyncio
async def test_presence_lookups_share_one_call():
    """Test that concurrent lookups are sent as one compositions call."""
    api = FakePresenceAPI()
    batcher = _batcher(api=api, headers={"Authorization": "Bearer token"})

    statuses = await asyncio.gather(*(batcher.request(subject) for subject in ["u1", "u2", "u3"]))

    assert [status.subject for status in statuses] == ["u1", "u2", "u3"]
    assert all(status.status == "active" for status in statuses)
    assert len(api.requests) == 1
    assert api.requests[0]["body"] == {"subjects": ["u1", "u2", "u3"]}
    assert api.requests[0]["headers"]["authorization"] == "Bearer token"
    await batcher.close()


@pytest.mark.asyncio
async def test_presence_failed_subject_is_isolated():
    """Test that one failed subject does not affect the others."""
    api = FakePresenceAPI(failing=["ghost"])
    batcher = _batcher(api=api)

    results = await asyncio.gather(
        batcher.request("u1"),
        batcher.request("ghost"),
        return_exceptions=True,
    )

    assert results[0].subject == "u1"
    assert isinstance(results[1], ItemRejected)
    assert isinstance(results[1].reason, PresenceStatus)
    assert results[1].reason.message == "unknown subject"
    await batcher.close()


@pytest.mark.asyncio
async def test_presence_missing_subject_is_unmatched():
    """Test that a subject absent from statusList gets UnmatchedResponse."""
    api = FakePresenceAPI(missing=["u2"])
    batcher = _batcher(api=api)

    results = await asyncio.gather(
        batcher.request("u1"),
        batcher.request("u2"),
        return_exceptions=True,
    )

    assert results[0].subject == "u1"
    assert isinstance(results[1], UnmatchedResponse)
    await batcher.close()


@pytest.mark.asyncio
async def test_presence_http_error_fails_batch():
    """Test that an HTTP error status rejects every subject of the batch."""
    api = FakePresenceAPI(status_code=503)
    batcher = _batcher(api=api)

    results = await asyncio.gather(
        batcher.request("u1"),
        batcher.request("u2"),
        return_exceptions=True,
    )

    assert all(isinstance(result, TransportFailure) for result in results)
    assert isinstance(results[0].__cause__, httpx.HTTPStatusError)
    assert batcher.reports[-1].transport_error is not None
    await batcher.close()


@pytest.mark.asyncio
async def test_presence_invalid_subject_is_refused():
    """Test that an empty subject cannot be enqueued."""
    batcher = _batcher(api=FakePresenceAPI())

    with pytest.raises(InvalidItemError):
        batcher.enqueue("")

    assert batcher.pending_count == 0
    await batcher.close()

"""Tests for the delivery pipeline fallback cascade."""

import pytest

from tradecast.core.exceptions import (
    RateLimitError,
    ReplyTargetInvalidError,
    TransportError,
    TransportUnavailableError,
)
from tradecast.domain.models import DeliveryKind, DeliveryOutcome, ParseMode
from tradecast.notifications.delivery import (
    DeliveryPipeline,
    DeliveryRequest,
    append_image_link,
    is_reply_error,
)
from tradecast.notifications.renderer import RenderedMessage

from conftest import FakeTransport, InMemoryRecordStore

IMAGE = "https://cdn.example.com/chart.png"


def _request(text="Trade update", image_url=None, reply_to=None, parse_mode=ParseMode.HTML):
    return DeliveryRequest(
        channel_id="chan-1",
        chat_id="-1001",
        message=RenderedMessage(text=text, parse_mode=parse_mode, image_url=image_url),
        automation_id="auto-1",
        trade_id="trade-1",
        reply_to=reply_to,
    )


async def _deliver(*responses, request, caption_limit=1024):
    transport = FakeTransport(*responses, caption_limit=caption_limit)
    store = InMemoryRecordStore()
    pipeline = DeliveryPipeline(transport, store, public_base_url="https://cdn.example.com")
    record = await pipeline.deliver(request)
    assert store.records == [record]
    return record, transport


# ---------------------------------------------------------------------------
# Reply error detection
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("message", [
    "Bad Request: message to be replied not found",
    "Bad Request: REPLY_MESSAGE_NOT_FOUND",
    "MESSAGE_ID_INVALID",
    "Replied message is deleted",
])
def test_reply_errors_detected(message):
    assert is_reply_error(TransportError(message))


def test_other_bad_requests_are_not_reply_errors():
    assert not is_reply_error(TransportError("Bad Request: can't parse entities"))


def test_reply_target_invalid_error_always_counts():
    assert is_reply_error(ReplyTargetInvalidError("rejected"))


# ---------------------------------------------------------------------------
# Photo path
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_photo_success():
    record, transport = await _deliver("55", request=_request(image_url=IMAGE, reply_to="9"))

    assert record.outcome == DeliveryOutcome.SENT
    assert record.kind == DeliveryKind.PHOTO
    assert record.message_id == "55"
    assert record.reply_to_message_id == "9"
    assert transport.calls[0][1]["reply_to"] == "9"


@pytest.mark.asyncio
async def test_photo_reply_error_retries_photo_without_reply():
    record, transport = await _deliver(
        ReplyTargetInvalidError("reply message not found"), "56",
        request=_request(image_url=IMAGE, reply_to="9"),
    )

    assert transport.methods == ["photo", "photo"]
    assert transport.calls[1][1]["reply_to"] is None
    assert record.kind == DeliveryKind.PHOTO_NO_REPLY
    assert record.outcome == DeliveryOutcome.SENT
    assert record.reply_to_message_id is None


@pytest.mark.asyncio
async def test_photo_reply_error_then_photo_failure_falls_back_to_text_without_reply():
    record, transport = await _deliver(
        ReplyTargetInvalidError("reply message not found"),
        TransportError("wrong file identifier"),
        "57",
        request=_request(image_url=IMAGE, reply_to="9"),
    )

    assert transport.methods == ["photo", "photo", "text"]
    text_call = transport.calls[2][1]
    assert text_call["reply_to"] is None
    assert IMAGE in text_call["text"]
    assert record.kind == DeliveryKind.TEXT_FALLBACK_NO_REPLY
    assert record.outcome == DeliveryOutcome.SENT


@pytest.mark.asyncio
async def test_photo_other_error_falls_back_to_text_keeping_reply():
    record, transport = await _deliver(
        TransportError("failed to get HTTP URL content"), "58",
        request=_request(image_url=IMAGE, reply_to="9"),
    )

    assert transport.methods == ["photo", "text"]
    assert transport.calls[1][1]["reply_to"] == "9"
    assert record.kind == DeliveryKind.TEXT_FALLBACK
    assert record.reply_to_message_id == "9"


@pytest.mark.asyncio
async def test_text_fallback_reply_error_retries_once_without_reply():
    record, transport = await _deliver(
        TransportError("failed to get HTTP URL content"),
        ReplyTargetInvalidError("message to reply not found"),
        "59",
        request=_request(image_url=IMAGE, reply_to="9"),
    )

    assert transport.methods == ["photo", "text", "text"]
    assert record.kind == DeliveryKind.TEXT_FALLBACK_NO_REPLY
    assert record.outcome == DeliveryOutcome.SENT


@pytest.mark.asyncio
async def test_long_caption_goes_straight_to_text_with_link():
    record, transport = await _deliver(
        "60", request=_request(text="x" * 20, image_url=IMAGE), caption_limit=10,
    )

    assert transport.methods == ["text"]
    assert "View Image" in transport.calls[0][1]["text"]
    assert record.kind == DeliveryKind.TEXT_FALLBACK


@pytest.mark.asyncio
async def test_unresolvable_image_sends_plain_text():
    record, transport = await _deliver("61", request=_request(image_url="/relative.png"))
    # the relative path is joined onto the configured https base
    assert transport.methods == ["photo"]

    transport = FakeTransport()
    pipeline = DeliveryPipeline(transport, InMemoryRecordStore(), public_base_url=None)
    record = await pipeline.deliver(_request(image_url="/relative.png"))
    assert transport.methods == ["text"]
    assert record.kind == DeliveryKind.TEXT


# ---------------------------------------------------------------------------
# Text path
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_text_reply_error_retries_without_reply():
    record, transport = await _deliver(
        TransportError("Bad Request: message to be replied not found"), "62",
        request=_request(reply_to="9"),
    )

    assert transport.methods == ["text", "text"]
    assert record.kind == DeliveryKind.TEXT_NO_REPLY
    assert record.outcome == DeliveryOutcome.SENT


@pytest.mark.asyncio
async def test_text_failure_without_reply_error_is_recorded():
    record, transport = await _deliver(
        TransportError("chat not found"), request=_request(reply_to="9"),
    )

    assert transport.methods == ["text"]
    assert record.outcome == DeliveryOutcome.FAILED
    assert record.kind == DeliveryKind.TEXT
    assert "chat not found" in record.error


@pytest.mark.asyncio
async def test_retry_without_reply_failure_is_recorded():
    record, _ = await _deliver(
        ReplyTargetInvalidError("gone"), TransportError("chat not found"),
        request=_request(reply_to="9"),
    )

    assert record.outcome == DeliveryOutcome.FAILED
    assert record.kind == DeliveryKind.TEXT_NO_REPLY


# ---------------------------------------------------------------------------
# Outermost boundary
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_network_failure_is_recorded_not_raised():
    record, transport = await _deliver(
        TransportUnavailableError("Telegram unreachable"),
        request=_request(image_url=IMAGE, reply_to="9"),
    )

    assert transport.methods == ["photo"]
    assert record.outcome == DeliveryOutcome.FAILED
    assert record.kind == DeliveryKind.PHOTO
    assert "Telegram unreachable" in record.error


@pytest.mark.asyncio
async def test_rate_limit_mid_cascade_is_recorded():
    record, transport = await _deliver(
        TransportError("failed to get HTTP URL content"),
        RateLimitError(retry_after_seconds=3),
        request=_request(image_url=IMAGE),
    )

    assert transport.methods == ["photo", "text"]
    assert record.outcome == DeliveryOutcome.FAILED
    assert record.kind == DeliveryKind.TEXT_FALLBACK


@pytest.mark.asyncio
async def test_unexpected_bug_is_recorded():
    record, _ = await _deliver(RuntimeError("boom"), request=_request())
    assert record.outcome == DeliveryOutcome.FAILED
    assert record.error == "boom"


def test_image_link_formats():
    assert append_image_link("Hi", IMAGE, ParseMode.HTML) == (
        f'Hi\n\n📷 <a href="{IMAGE}">View Image</a>'
    )
    assert append_image_link("Hi", IMAGE, ParseMode.MARKDOWN) == f"Hi\n\n📷 [View Image]({IMAGE})"


@pytest.mark.asyncio
@pytest.mark.parametrize("length, methods, kind", [
    (1024, ["photo"], DeliveryKind.PHOTO),
    (1025, ["text"], DeliveryKind.TEXT_FALLBACK),
])
async def test_caption_limit_boundary_at_telegram_default(length, methods, kind):
    record, transport = await _deliver(request=_request(text="x" * length, image_url=IMAGE))

    assert transport.methods == methods
    assert record.kind == kind
    assert record.outcome == DeliveryOutcome.SENT

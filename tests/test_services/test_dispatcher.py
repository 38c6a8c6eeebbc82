"""
Tests for the inbound message dispatcher.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.config import load_settings
from app.core.exceptions import ServiceUnavailableError
from app.core.logging import get_correlation_id, get_logger, setup_logging
from app.services.dispatcher import InboundMessage, MessageDispatcher
from app.services.transport import ReplyChannel


def make_settings(tmp_path, **overrides):
    return load_settings(
        mongodb_uri="mongodb://localhost/test",
        scratch_dir=tmp_path,
        dispatch_drain_timeout_seconds=2.0,
        **overrides,
    )


class TestMessageDispatcher:
    """Test queueing and worker behaviour."""

    @pytest.mark.asyncio
    async def test_messages_handled_in_order(self, tmp_path):
        handled = []

        async def handle_inbound(sender, text, reply, message_id=None):
            handled.append((sender, text, message_id))

        orchestrator = MagicMock()
        orchestrator.handle_inbound = AsyncMock(side_effect=handle_inbound)
        dispatcher = MessageDispatcher(orchestrator, MagicMock(), make_settings(tmp_path))

        await dispatcher.start()
        dispatcher.submit(InboundMessage(sender="1@c.us", body="a", message_id="m1"))
        dispatcher.submit(InboundMessage(sender="2@c.us", body="b", message_id="m2"))
        await dispatcher.stop()

        assert handled == [("1@c.us", "a", "m1"), ("2@c.us", "b", "m2")]
        assert dispatcher.processed_count == 2
        assert not dispatcher.is_running

    @pytest.mark.asyncio
    async def test_reply_channel_bound_to_sender(self, tmp_path):
        orchestrator = MagicMock()
        orchestrator.handle_inbound = AsyncMock()
        gateway = MagicMock()
        dispatcher = MessageDispatcher(orchestrator, gateway, make_settings(tmp_path))

        await dispatcher.start()
        dispatcher.submit(InboundMessage(sender="919876543210@c.us", body="hi", message_id="m1"))
        await dispatcher.stop()

        reply = orchestrator.handle_inbound.call_args.args[2]
        assert isinstance(reply, ReplyChannel)
        assert reply.gateway is gateway
        assert reply.chat_id == "919876543210@c.us"
        assert reply.message_id == "m1"

    @pytest.mark.asyncio
    async def test_worker_survives_unexpected_error(self, tmp_path):
        """One message's fault never stops the next one."""
        orchestrator = MagicMock()
        orchestrator.handle_inbound = AsyncMock(side_effect=[RuntimeError("boom"), None])
        dispatcher = MessageDispatcher(orchestrator, MagicMock(), make_settings(tmp_path))

        await dispatcher.start()
        dispatcher.submit(InboundMessage(sender="1@c.us", body="a"))
        dispatcher.submit(InboundMessage(sender="2@c.us", body="b"))
        await dispatcher.stop()

        assert orchestrator.handle_inbound.await_count == 2
        assert dispatcher.processed_count == 1

    @pytest.mark.asyncio
    async def test_full_queue_rejects(self, tmp_path):
        dispatcher = MessageDispatcher(
            MagicMock(), MagicMock(), make_settings(tmp_path, dispatch_queue_size=1)
        )

        dispatcher.submit(InboundMessage(sender="1@c.us", body="a"))
        with pytest.raises(ServiceUnavailableError) as exc_info:
            dispatcher.submit(InboundMessage(sender="2@c.us", body="b"))

        assert exc_info.value.status_code == 503
        assert dispatcher.pending == 1

    @pytest.mark.asyncio
    async def test_worker_pool_runs_concurrently(self, tmp_path):
        active = {"now": 0, "peak": 0}

        async def handle_inbound(sender, text, reply, message_id=None):
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
            await asyncio.sleep(0.05)
            active["now"] -= 1

        orchestrator = MagicMock()
        orchestrator.handle_inbound = AsyncMock(side_effect=handle_inbound)
        dispatcher = MessageDispatcher(
            orchestrator, MagicMock(), make_settings(tmp_path, dispatch_workers=3)
        )

        await dispatcher.start()
        for index in range(3):
            dispatcher.submit(InboundMessage(sender=f"{index}@c.us", body="x"))
        await dispatcher.stop()

        assert active["peak"] == 3

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, tmp_path):
        dispatcher = MessageDispatcher(MagicMock(), MagicMock(), make_settings(tmp_path))

        await dispatcher.start()
        workers = list(dispatcher._workers)
        await dispatcher.start()

        assert dispatcher._workers == workers
        await dispatcher.stop()

    @pytest.mark.asyncio
    async def test_messages_without_id_get_distinct_correlation_ids(self, orchestrator, mocker):
        setup_logging("DEBUG")
        log = get_logger("test.dispatch")
        seen = []

        async def handle(sender_id, text, reply):
            log.info("Handling message", phone_number=sender_id)
            seen.append(get_correlation_id())

        mocker.patch.object(orchestrator, "handle", side_effect=handle)
        dispatcher = MessageDispatcher(orchestrator, MagicMock(), orchestrator.settings)

        await dispatcher.start()
        dispatcher.submit(InboundMessage(sender="1@c.us", body="a"))
        dispatcher.submit(InboundMessage(sender="2@c.us", body="b"))
        await dispatcher.stop()

        assert len(seen) == 2
        assert all(seen)
        assert seen[0] != seen[1]

"""Tests for the relay session state machine."""

import asyncio

import pytest

from ntfy2clip.errors import IdleTimeoutError, ProtocolError, TransportError
from ntfy2clip.models import FrameKind, InboundEvent
from ntfy2clip.session import Session
from ntfy2clip.sink import SinkDispatcher
from tests.conftest import FakeTransport, RecordingSink, envelope


def make_session(transport, submitted, idle_timeout=5.0, topic="alerts"):
    return Session(transport, topic, idle_timeout, submitted.append)


async def run_session(session, timeout=2.0):
    return await asyncio.wait_for(session.run(), timeout)


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestRouting:
    """Text frames are decoded and only matching messages reach the sink."""

    @pytest.mark.asyncio
    async def test_matching_message_is_dispatched_once(self, fake_transport, sample_message_frame):
        submitted = []
        fake_transport.feed(InboundEvent.text(sample_message_frame), InboundEvent.close())

        await run_session(make_session(fake_transport, submitted))

        assert submitted == ["build failed"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event", ["message", "open", "keepalive", "poll_request"])
    async def test_foreign_topic_is_ignored(self, fake_transport, event):
        submitted = []
        fake_transport.feed(
            InboundEvent.text(envelope(event=event, topic="other", message="x")),
            InboundEvent.close(),
        )

        session = make_session(fake_transport, submitted)
        await run_session(session)

        assert submitted == []
        assert session.stats['messages_ignored'] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("event", ["open", "keepalive", "poll_request"])
    async def test_non_message_events_are_ignored(self, fake_transport, event):
        submitted = []
        fake_transport.feed(InboundEvent.text(envelope(event=event)), InboundEvent.close())

        await run_session(make_session(fake_transport, submitted))

        assert submitted == []

    @pytest.mark.asyncio
    async def test_message_without_text_is_ignored(self, fake_transport):
        submitted = []
        fake_transport.feed(InboundEvent.text(envelope(message=None)), InboundEvent.close())

        await run_session(make_session(fake_transport, submitted))

        assert submitted == []

    @pytest.mark.asyncio
    async def test_malformed_frames_do_not_end_the_session(self, fake_transport):
        submitted = []
        fake_transport.feed(
            InboundEvent.text("{not json"),
            InboundEvent.text('{"event": "message"}'),
            InboundEvent.text(envelope(message="still alive")),
            InboundEvent.close(),
        )

        session = make_session(fake_transport, submitted)
        await run_session(session)

        assert submitted == ["still alive"]
        assert session.stats['decode_errors'] == 2
        assert session.stats['messages_dispatched'] == 1

    @pytest.mark.asyncio
    async def test_messages_are_dispatched_in_arrival_order(self, fake_transport):
        submitted = []
        fake_transport.feed(
            InboundEvent.text(envelope(message="one")),
            InboundEvent.text(envelope(message="two")),
            InboundEvent.text(envelope(message="three")),
            InboundEvent.close(),
        )

        await run_session(make_session(fake_transport, submitted))

        assert submitted == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_binary_frames_only_count_as_traffic(self, fake_transport):
        submitted = []
        fake_transport.feed(InboundEvent(FrameKind.BINARY, b"\x00\x01"), InboundEvent.close())

        session = make_session(fake_transport, submitted)
        await run_session(session)

        assert submitted == []
        assert session.stats['frames_received'] == 2


class TestControlFrames:

    @pytest.mark.asyncio
    async def test_ping_is_answered_with_same_payload(self, fake_transport):
        fake_transport.feed(InboundEvent.ping(b"are-you-there"), InboundEvent.close())

        session = make_session(fake_transport, [])
        await run_session(session)

        assert fake_transport.pongs == [b"are-you-there"]
        assert session.stats['pings_answered'] == 1

    @pytest.mark.asyncio
    async def test_pong_is_not_answered(self, fake_transport):
        fake_transport.feed(InboundEvent.pong(b"x"), InboundEvent.close())

        await run_session(make_session(fake_transport, []))

        assert fake_transport.pongs == []

    @pytest.mark.asyncio
    async def test_pings_keep_the_session_alive(self, fake_transport):
        session = make_session(fake_transport, [], idle_timeout=0.2)

        async def heartbeat():
            for _ in range(10):
                await asyncio.sleep(0.05)
                fake_transport.feed(InboundEvent.ping(b"hb"))
            fake_transport.feed(InboundEvent.close())

        feeder = asyncio.create_task(heartbeat())
        await run_session(session, timeout=3.0)
        await feeder

        assert len(fake_transport.pongs) == 10

    @pytest.mark.asyncio
    async def test_pong_failure_is_a_transport_error(self, fake_transport):
        fake_transport.pong_error = TransportError("Failed to send pong: reset")
        fake_transport.feed(InboundEvent.ping(b"x"))

        with pytest.raises(TransportError):
            await run_session(make_session(fake_transport, []))

        assert fake_transport.closed

    @pytest.mark.asyncio
    async def test_close_frame_ends_cleanly(self, fake_transport):
        fake_transport.feed(InboundEvent.close())

        result = await run_session(make_session(fake_transport, []))

        assert result is None
        assert fake_transport.close_calls == 1

    @pytest.mark.asyncio
    async def test_protocol_error_ends_session(self, fake_transport):
        fake_transport.feed(InboundEvent.protocol_error(ValueError("reserved opcode")))

        with pytest.raises(ProtocolError, match="reserved opcode"):
            await run_session(make_session(fake_transport, []))

        assert fake_transport.closed

    @pytest.mark.asyncio
    async def test_receive_error_ends_session(self, fake_transport):
        fake_transport.feed(
            InboundEvent.text(envelope(message="before drop")),
            TransportError("Connection lost without a close frame"),
        )
        submitted = []

        with pytest.raises(TransportError):
            await run_session(make_session(fake_transport, submitted))

        assert submitted == ["before drop"]
        assert fake_transport.closed


class TestIdleWatchdog:

    @pytest.mark.asyncio
    async def test_silence_ends_session_with_idle_timeout(self, fake_transport):
        session = make_session(fake_transport, [], idle_timeout=0.1)
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(IdleTimeoutError):
            await run_session(session)

        assert loop.time() - started >= 0.1
        assert fake_transport.closed

    @pytest.mark.asyncio
    async def test_watchdog_does_not_send_pings(self, fake_transport):
        session = make_session(fake_transport, [], idle_timeout=0.05)

        with pytest.raises(IdleTimeoutError):
            await run_session(session)

        assert fake_transport.pongs == []

    @pytest.mark.asyncio
    async def test_data_frames_reset_the_idle_clock(self, fake_transport, sample_keepalive_frame):
        session = make_session(fake_transport, [], idle_timeout=0.15)

        async def keepalives():
            for _ in range(6):
                await asyncio.sleep(0.05)
                fake_transport.feed(InboundEvent.text(sample_keepalive_frame))
            fake_transport.feed(InboundEvent.close())

        feeder = asyncio.create_task(keepalives())
        await run_session(session, timeout=3.0)
        await feeder

        assert session.stats['frames_received'] == 7

    @pytest.mark.asyncio
    async def test_cancellation_closes_the_connection(self, fake_transport):
        session = make_session(fake_transport, [])
        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.05)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert fake_transport.close_calls == 1

    def test_idle_boundary_is_exclusive(self, fake_transport):
        clock = FakeClock()
        session = Session(fake_transport, "alerts", 0.25, lambda text: None, clock=clock)

        clock.now = 100.25
        session._check_idle()

        clock.now = 100.25 + 1e-6
        with pytest.raises(IdleTimeoutError):
            session._check_idle()

    @pytest.mark.asyncio
    async def test_ticks_at_exactly_the_timeout_keep_the_session(self, fake_transport):
        clock = FakeClock()
        session = Session(fake_transport, "alerts", 0.25, lambda text: None, clock=clock)
        clock.now = 100.25

        task = asyncio.create_task(session.run())
        await asyncio.sleep(0.6)

        assert not task.done()
        assert not fake_transport.closed

        clock.now = 100.5
        with pytest.raises(IdleTimeoutError):
            await asyncio.wait_for(task, 1.0)
        assert fake_transport.closed

    def test_idle_timeout_must_be_positive(self, fake_transport):
        with pytest.raises(ValueError):
            Session(fake_transport, "alerts", 0, lambda text: None)


class TestSinkIsolation:

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_affect_session(self, fake_transport):
        dispatcher = SinkDispatcher(RecordingSink(fail=True))
        fake_transport.feed(
            InboundEvent.text(envelope(message="one")),
            InboundEvent.text(envelope(message="two")),
            InboundEvent.close(),
        )

        session = Session(fake_transport, "alerts", 5.0, dispatcher.submit)
        await run_session(session)
        await dispatcher.drain()

        assert session.stats['messages_dispatched'] == 2
        assert dispatcher.stats['failed'] == 2

    @pytest.mark.asyncio
    async def test_slow_sink_does_not_block_receive_loop(self, fake_transport):
        release = asyncio.Event()

        class BlockingSink(RecordingSink):
            async def deliver(self, text):
                await release.wait()
                await super().deliver(text)

        sink = BlockingSink()
        dispatcher = SinkDispatcher(sink)
        fake_transport.feed(
            InboundEvent.text(envelope(message="a")),
            InboundEvent.text(envelope(message="b")),
            InboundEvent.close(),
        )

        await run_session(Session(fake_transport, "alerts", 5.0, dispatcher.submit))

        assert dispatcher.pending == 2
        assert sink.delivered == []

        release.set()
        await dispatcher.drain()

        assert sorted(sink.delivered) == ["a", "b"]


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_builds_url_without_auth(self, test_settings, fake_transport):
        calls = []

        async def factory(url, headers):
            calls.append((url, headers))
            return fake_transport

        session = await Session.connect(test_settings, lambda text: None, transport_factory=factory)

        assert calls == [("wss://relay.test/alerts/ws", {})]
        assert session.transport is fake_transport
        assert session.topic == "alerts"
        assert session.idle_timeout == 120.0

    @pytest.mark.asyncio
    async def test_connect_sends_bearer_token(self, test_settings, fake_transport):
        settings = test_settings.model_copy(update={"token": "tk_secret"})
        calls = []

        async def factory(url, headers):
            calls.append(headers)
            return fake_transport

        await Session.connect(settings, lambda text: None, transport_factory=factory)

        assert calls == [{"Authorization": "Bearer tk_secret"}]

    @pytest.mark.asyncio
    async def test_stats(self, fake_transport):
        fake_transport.feed(InboundEvent.text(envelope()), InboundEvent.close())
        session = make_session(fake_transport, [])
        await run_session(session)

        stats = session.get_stats()

        assert stats['messages_dispatched'] == 1
        assert stats['is_connected'] is False
        assert stats['topic'] == "alerts"

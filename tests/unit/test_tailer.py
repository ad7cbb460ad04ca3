"""
Unit tests for the per-container tailer
"""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from logship.core.exceptions import ContainerNotFoundError, LogStreamError
from logship.inputs.docker import ContainerDescriptor, ContainerTailer, LogLine
from logship.inputs.docker.tailer import EVENT_TYPE

from fakes import LogScript, make_line

WEB = ContainerDescriptor(id="a" * 64, names=["/web-1"])
WEB_STOPPED = ContainerDescriptor(id="a" * 64, names=["/web-1"], running=False)


@pytest.fixture
def queue():
    return asyncio.Queue()


@pytest.fixture
def tailer(context, queue):
    return ContainerTailer(WEB, context, queue, retry_interval=7)


def drain(queue):
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


class TestTailerResume:
    """Test cases for resuming from a recorded position"""

    @pytest.mark.asyncio
    async def test_lines_at_or_before_position_are_dropped(self, tailer, runtime, queue):
        resume = make_line(100, "old", nanos=500)
        runtime.log_scripts[WEB.id] = [LogScript(lines=[
            make_line(100, "older"),
            resume,
            make_line(100, "new", nanos=501),
            make_line(101, "newer"),
        ])]
        runtime.inspected[WEB.id] = WEB_STOPPED

        await tailer.run(resume.position)

        assert runtime.opened == [(WEB.id, resume.position)]
        assert [event.message for event in drain(queue)] == ["new", "newer"]

    @pytest.mark.asyncio
    async def test_fresh_container_from_zero(self, tailer, runtime, queue):
        runtime.log_scripts[WEB.id] = [LogScript(lines=[make_line(1, "first")])]
        runtime.inspected[WEB.id] = WEB_STOPPED

        await tailer.run(0)

        assert [event.message for event in drain(queue)] == ["first"]

    @pytest.mark.asyncio
    async def test_positions_recorded_in_sincedb(self, tailer, runtime, sincedb):
        last = make_line(101, "b", nanos=9)
        runtime.log_scripts[WEB.id] = [LogScript(lines=[make_line(100, "a"), last])]
        runtime.inspected[WEB.id] = WEB_STOPPED

        await tailer.run(0)

        assert sincedb.get(WEB.id) == last.position
        assert tailer.position == last.position
        assert tailer.line_count == 2

    @pytest.mark.asyncio
    async def test_untimestamped_line_keeps_position(self, tailer, runtime, queue, sincedb):
        first = make_line(100, "a")
        bare = LogLine(timestamp=datetime.now(timezone.utc), message="no timestamp")
        runtime.log_scripts[WEB.id] = [LogScript(lines=[first, bare])]
        runtime.inspected[WEB.id] = WEB_STOPPED

        await tailer.run(0)

        assert [event.message for event in drain(queue)] == ["a", "no timestamp"]
        assert sincedb.get(WEB.id) == first.position


class TestTailerRetry:
    """Test cases for stream failures and reconnects"""

    @pytest.mark.asyncio
    async def test_stream_error_retries_after_interval(self, tailer, runtime, queue):
        first = make_line(100, "one")
        second = make_line(101, "two")
        runtime.log_scripts[WEB.id] = [
            LogScript(lines=[first], error=LogStreamError(WEB.id, "connection reset")),
            LogScript(lines=[first, second]),
        ]
        runtime.inspected[WEB.id] = WEB_STOPPED

        with patch("logship.inputs.docker.tailer.asyncio.sleep", new=AsyncMock()) as sleep:
            await tailer.run(0)

        sleep.assert_awaited_once_with(7)
        assert runtime.opened == [(WEB.id, 0), (WEB.id, first.position)]
        # No line is published twice across the reconnect
        assert [event.message for event in drain(queue)] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_failed_open_resumes_after_position(self, tailer, runtime, queue):
        seen = make_line(100, "seen", nanos=5)
        runtime.log_scripts[WEB.id] = [
            LogScript(error=LogStreamError(WEB.id, "connection refused")),
            LogScript(lines=[make_line(100, "older"), seen, make_line(100, "next", nanos=6)]),
        ]
        runtime.inspected[WEB.id] = WEB_STOPPED

        with patch("logship.inputs.docker.tailer.asyncio.sleep", new=AsyncMock()) as sleep:
            await tailer.run(seen.position)

        sleep.assert_awaited_once_with(7)
        assert runtime.opened == [(WEB.id, seen.position), (WEB.id, seen.position)]
        assert [event.message for event in drain(queue)] == ["next"]

    @pytest.mark.asyncio
    async def test_empty_stream_while_running_retries(self, tailer, runtime):
        runtime.log_scripts[WEB.id] = [
            LogScript(),
            LogScript(error=ContainerNotFoundError(WEB.id)),
        ]
        runtime.inspected[WEB.id] = WEB

        with patch("logship.inputs.docker.tailer.asyncio.sleep", new=AsyncMock()) as sleep:
            await tailer.run(0)

        sleep.assert_awaited_once_with(7)
        assert len(runtime.opened) == 2

    @pytest.mark.asyncio
    async def test_restarted_container_reopens_immediately(self, tailer, runtime, queue):
        first = make_line(100, "before restart")
        runtime.log_scripts[WEB.id] = [
            LogScript(lines=[first]),
            LogScript(lines=[make_line(200, "after restart")], error=ContainerNotFoundError(WEB.id)),
        ]
        runtime.inspected[WEB.id] = WEB

        with patch("logship.inputs.docker.tailer.asyncio.sleep", new=AsyncMock()) as sleep:
            await tailer.run(0)

        sleep.assert_not_awaited()
        assert runtime.opened[1] == (WEB.id, first.position)
        assert [event.message for event in drain(queue)] == ["before restart", "after restart"]


class TestTailerExit:
    """Test cases for the tailer ending"""

    @pytest.mark.asyncio
    async def test_stopped_container_ends_tailer(self, tailer, runtime):
        runtime.log_scripts[WEB.id] = [LogScript(lines=[make_line(1, "bye")])]
        runtime.inspected[WEB.id] = WEB_STOPPED

        with patch("logship.inputs.docker.tailer.asyncio.sleep", new=AsyncMock()) as sleep:
            await tailer.run(0)

        sleep.assert_not_awaited()
        assert len(runtime.opened) == 1

    @pytest.mark.asyncio
    async def test_removed_container_ends_tailer(self, tailer, runtime):
        runtime.log_scripts[WEB.id] = [LogScript(lines=[make_line(1, "bye")])]
        # Not inspectable any more

        await tailer.run(0)

        assert runtime.inspect_calls == [WEB.id]

    @pytest.mark.asyncio
    async def test_removed_container_drops_position(self, tailer, runtime, sincedb):
        sincedb.set(WEB.id, 0)
        runtime.log_scripts[WEB.id] = [LogScript(lines=[make_line(100, "bye")])]

        await tailer.run(0)
        sincedb.flush()

        assert WEB.id not in sincedb
        assert WEB.id not in json.loads(sincedb.path.read_text())

    @pytest.mark.asyncio
    async def test_stopped_container_keeps_position(self, tailer, runtime, sincedb):
        line = make_line(100, "bye")
        runtime.log_scripts[WEB.id] = [LogScript(lines=[line])]
        runtime.inspected[WEB.id] = WEB_STOPPED

        await tailer.run(0)

        # A restart resumes from here
        assert sincedb.get(WEB.id) == line.position

    @pytest.mark.asyncio
    async def test_not_found_on_open_ends_tailer(self, tailer, runtime, queue, sincedb):
        sincedb.set(WEB.id, 0)
        runtime.log_scripts[WEB.id] = [LogScript(error=ContainerNotFoundError(WEB.id))]

        await tailer.run(0)

        assert queue.empty()
        assert runtime.inspect_calls == []
        assert WEB.id not in sincedb

    @pytest.mark.asyncio
    async def test_cancellation_stops_following(self, tailer, runtime, wait_until):
        task = asyncio.create_task(tailer.run(0))
        await wait_until(lambda: runtime.opened)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestTailerEvents:
    """Test cases for published events"""

    @pytest.mark.asyncio
    async def test_event_fields(self, tailer, runtime, queue):
        line = make_line(1_700_000_000, "GET /health 200")
        runtime.log_scripts[WEB.id] = [LogScript(lines=[line])]
        runtime.inspected[WEB.id] = WEB_STOPPED

        await tailer.run(0)

        event = queue.get_nowait()
        assert event.type == EVENT_TYPE == "docker"
        assert event.message == "GET /health 200"
        assert event.timestamp == line.timestamp
        assert event.extra == {
            "host": "test-host",
            "containerid": WEB.id,
            "containername": "web-1",
        }

    def test_event_serialization(self, tailer):
        event = tailer.build_event(make_line(0, "hello"))
        data = event.to_dict()

        assert data["@timestamp"] == "1970-01-01T00:00:00+00:00"
        assert data["message"] == "hello"
        assert data["type"] == "docker"
        assert data["containername"] == "web-1"
        assert "tags" not in data

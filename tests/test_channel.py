import asyncio
import json

import pytest

from cofacilitator.clients import TranscriptionChannel
from cofacilitator.session.state import TranscriptState


class _FakeSocket:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed = False

    async def send(self, frame: str) -> None:
        self.sent.append(json.loads(frame))

    async def close(self) -> None:
        self.closed = True


def _result(text, **extra) -> str:
    return json.dumps({"event": "transcriptionResult", "data": {"transcription": text, **extra}})


@pytest.fixture
def channel() -> TranscriptionChannel:
    return TranscriptionChannel(TranscriptState(), relay_url="ws://relay:3000/")


def test_url_targets_the_transcription_subchannel(channel) -> None:
    assert channel.url == "ws://relay:3000/transcription"


def test_result_is_cleaned_and_appended(channel) -> None:
    lines: list[str] = []
    channel.on_result(lines.append)

    for text in ["  one\n two ", "three", "four", "five"]:
        channel.handle_frame(_result(text))

    assert lines == ["one two", "three", "four", "five"]
    assert channel.state.window == ["three", "four", "five"]


def test_non_string_transcription_becomes_empty_line(channel) -> None:
    channel.handle_frame(_result(None))
    assert channel.state.window == [""]


def test_error_does_not_touch_window(channel) -> None:
    errors: list[str] = []
    channel.on_error(errors.append)
    channel.handle_frame(_result("kept"))

    channel.handle_frame(json.dumps({"event": "transcriptionError", "data": {"message": "Error transcribing audio"}}))
    channel.handle_frame(json.dumps({"event": "transcriptionError", "data": "plain string"}))

    assert errors == ["Error transcribing audio", "plain string"]
    assert channel.state.window == ["kept"]


def test_reset_wins_over_late_delivery(channel) -> None:
    lines: list[str] = []
    channel.on_result(lines.append)
    channel.handle_frame(_result("before", epoch=0))

    channel.state.reset()
    channel.handle_frame(_result("late one", epoch=0))
    channel.handle_frame(_result("after", epoch=1))
    channel.handle_frame(_result("late two", epoch=0))

    assert channel.state.window == ["after"]
    assert lines == ["before", "after"]


def test_viewer_follows_a_restarted_presenter(channel) -> None:
    lines: list[str] = []
    channel.on_result(lines.append)
    channel.handle_frame(_result("run A", epoch=5, run="a" * 32))

    for i in range(1, 4):
        channel.handle_frame(_result(f"run B line {i}", epoch=1, run="b" * 32))

    assert channel.state.window == ["run B line 1", "run B line 2", "run B line 3"]
    assert lines == ["run A", "run B line 1", "run B line 2", "run B line 3"]


def test_failing_result_listener_does_not_stop_later_frames(channel) -> None:
    def explode(line: str) -> None:
        raise ZeroDivisionError("bad listener")

    lines: list[str] = []
    channel.on_result(explode)
    channel.on_result(lines.append)

    channel.handle_frame(_result("first"))
    channel.handle_frame(_result("second"))

    assert lines == ["first", "second"]
    assert channel.state.window == ["first", "second"]


def test_failing_error_listener_does_not_block_others(channel) -> None:
    def explode(message: str) -> None:
        raise RuntimeError("bad listener")

    errors: list[str] = []
    channel.on_error(explode)
    channel.on_error(errors.append)

    channel.handle_frame(json.dumps({"event": "transcriptionError", "data": {"message": "one"}}))
    channel.handle_frame(json.dumps({"event": "transcriptionError", "data": {"message": "two"}}))

    assert errors == ["one", "two"]


@pytest.mark.asyncio
async def test_reader_survives_a_failing_listener(channel) -> None:
    class _Inbox:
        def __init__(self, frames: list[str]) -> None:
            self.frames = frames

        def __aiter__(self):
            return self._iter()

        async def _iter(self):
            for frame in self.frames:
                yield frame

    channel.on_result(lambda line: 1 / 0)
    lines: list[str] = []
    channel.on_result(lines.append)
    channel._ws = _Inbox([_result("a"), _result("b"), _result("c")])

    await channel._read_loop()

    assert lines == ["a", "b", "c"]


def test_unknown_frames_are_ignored(channel) -> None:
    channel.handle_frame("garbage")
    channel.handle_frame(json.dumps({"event": "transcribe", "data": {}}))
    assert channel.state.window == []


@pytest.mark.asyncio
async def test_send_chunk_is_fire_and_forget(channel) -> None:
    sock = _FakeSocket()
    channel._ws = sock
    channel.state.reset()

    assert channel.send_chunk(b"\x00\x01\xff") is None
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert sock.sent == [
        {
            "event": "transcribe",
            "data": {"audio": [0, 1, 255], "epoch": 1, "run": channel.state.run_id},
        }
    ]


@pytest.mark.asyncio
async def test_threshold_is_clamped_before_sending(channel) -> None:
    sock = _FakeSocket()
    channel._ws = sock

    assert channel.set_confidence_threshold(0.3) == 0.0
    assert channel.set_confidence_threshold(-1.5) == -1.0
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert [f["data"]["value"] for f in sock.sent] == [0.0, -1.0]
    assert all(f["event"] == "updateConfidenceThreshold" for f in sock.sent)
    assert channel.state.threshold == -1.0


@pytest.mark.asyncio
async def test_send_on_closed_channel_reports_transport_error(channel) -> None:
    errors: list[str] = []
    channel.on_error(errors.append)

    channel.send_chunk(b"\x00")
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert len(errors) == 1
    assert errors[0].startswith("Transport error")
    assert channel.state.window == []


@pytest.mark.asyncio
async def test_close_detaches_listeners(channel) -> None:
    sock = _FakeSocket()
    channel._ws = sock
    lines: list[str] = []
    channel.on_result(lines.append)

    await channel.close()
    channel.handle_frame(_result("after close"))

    assert sock.closed
    assert lines == []
    assert not channel.is_open

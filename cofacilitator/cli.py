"""Terminal front-ends for the presenter and for students.

Both read commands from stdin.  Any line that is not a command is sent to
the AI as a question.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime

from cofacilitator.clients import EngineClient, TranscriptionChannel
from cofacilitator.config import settings
from cofacilitator.errors import DeviceUnavailable
from cofacilitator.logging_setup import configure_logging
from cofacilitator.services.assistant import ChatSession
from cofacilitator.session.state import Bookmark, TranscriptState

logger = logging.getLogger(__name__)

PRESENTER_HELP = "/mic  /bookmark  /bookmarks  /threshold <-1..0>  /quit  (anything else: ask the AI)"
STUDENT_HELP = "/bookmark  /bookmarks  /quit  (anything else: ask the AI)"


def _print_window(state: TranscriptState) -> None:
    print("--- Recent transcription ---")
    for line in state.window:
        print(f"  {line}")


def _print_bookmarks(state: TranscriptState) -> None:
    print("--- Bookmarks ---")
    for bookmark in state.bookmarks:
        _print_bookmark(bookmark)


def _print_bookmark(bookmark: Bookmark) -> None:
    stamp = datetime.fromtimestamp(bookmark.timestamp).strftime("%H:%M:%S")
    print(f"  {stamp}: {bookmark.text}")


async def _read_line() -> str | None:
    line = await asyncio.get_running_loop().run_in_executor(None, sys.stdin.readline)
    return line.rstrip("\n") if line else None


async def _answer(chat: ChatSession, question: str) -> None:
    print("(thinking...)")
    answer = await chat.ask(question)
    if answer is not None:
        print(f"AI: {answer}")


# ------------------------------------------------------------------
# Presenter
# ------------------------------------------------------------------


async def run_presenter(relay_url: str, engine_url: str) -> None:
    # Imported here: sounddevice needs PortAudio, which students do not.
    from cofacilitator.recording.worker import CaptureScheduler

    loop = asyncio.get_running_loop()
    state = TranscriptState()
    channel = TranscriptionChannel(state, relay_url)
    engine = EngineClient(base_url=engine_url)
    chat = ChatSession(engine)
    scheduler = CaptureScheduler()

    def on_capture_state(running: bool) -> None:
        state.reset()
        print("Listening to the lecture." if running else "Not listening.")

    def on_line(_line: str) -> None:
        # The window is only shown while listening.
        if scheduler.is_running:
            _print_window(state)

    scheduler.on_chunk(lambda chunk: loop.call_soon_threadsafe(channel.send_chunk, chunk))
    scheduler.on_state_change(lambda running: loop.call_soon_threadsafe(on_capture_state, running))
    channel.on_result(on_line)
    channel.on_error(lambda message: print(f"Transcription error: {message}"))

    await channel.open()
    channel.set_confidence_threshold(state.threshold)
    print(PRESENTER_HELP)
    try:
        while (line := await _read_line()) is not None:
            command, _, arg = line.strip().partition(" ")
            if command == "/quit":
                break
            elif command == "/mic":
                try:
                    scheduler.toggle()
                except DeviceUnavailable as exc:
                    print(f"Error accessing microphone: {exc}")
            elif command == "/bookmark":
                _print_bookmark(state.bookmark_window())
            elif command == "/bookmarks":
                _print_bookmarks(state)
            elif command == "/threshold":
                try:
                    value = float(arg)
                except ValueError:
                    print("Usage: /threshold <number between -1 and 0>")
                    continue
                print(f"Confidence threshold: {channel.set_confidence_threshold(value)}")
            elif line.strip():
                await _answer(chat, line)
    finally:
        scheduler.stop()
        await channel.close()
        await engine.aclose()


# ------------------------------------------------------------------
# Student
# ------------------------------------------------------------------


async def run_student(relay_url: str, engine_url: str) -> None:
    state = TranscriptState()
    channel = TranscriptionChannel(state, relay_url)
    engine = EngineClient(base_url=engine_url)
    chat = ChatSession(engine)

    channel.on_result(lambda _line: _print_window(state))
    channel.on_error(lambda message: logger.error("Transcription error: %s", message))

    await channel.open()
    print(STUDENT_HELP)
    try:
        while (line := await _read_line()) is not None:
            command = line.strip()
            if command == "/quit":
                break
            elif command == "/bookmark":
                bookmark = state.bookmark_answer(chat.latest_answer())
                if bookmark is None:
                    print("Nothing to bookmark yet.")
                else:
                    _print_bookmark(bookmark)
            elif command == "/bookmarks":
                _print_bookmarks(state)
            elif command:
                await _answer(chat, line)
    finally:
        await channel.close()
        await engine.aclose()


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def _parse_args(argv: list[str] | None, description: str) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("--relay", default=settings.relay_url, help="relay base URL (ws://host:port)")
    parser.add_argument("--engine", default=settings.engine_url, help="AI engine base URL")
    parser.add_argument("--log-level", default=settings.log_level)
    return parser.parse_args(argv)


def presenter_main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv, "Stream the lecture to the relay and ask the AI questions.")
    configure_logging(args.log_level)
    asyncio.run(run_presenter(args.relay, args.engine))


def student_main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv, "Follow the live transcript and ask the AI questions.")
    configure_logging(args.log_level)
    asyncio.run(run_student(args.relay, args.engine))

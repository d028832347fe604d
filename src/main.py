"""Entry point: wires Config → AudioDeviceManager → TranscriptionLink → SessionSupervisor."""
import asyncio
import contextlib
import functools
import logging
import sys
from pathlib import Path
from typing import Iterator, Optional

from rich.live import Live
from rich.logging import RichHandler
from rich.text import Text

from src.answer.claude import ClaudeAnswerClient
from src.answer.client import AnswerClient
from src.answer.openai import OpenAIAnswerClient
from src.audio.devices import AudioDeviceManager, DeviceDescriptor
from src.config import Config
from src.constants import (
    KEY_ASK,
    KEY_DEVICES,
    KEY_PAUSE,
    KEY_QUIT,
    MSG_CONSOLE_ANSWER,
    MSG_CONSOLE_DEVICE,
    MSG_CONSOLE_DEVICES,
    MSG_CONSOLE_HELP,
    MSG_CONSOLE_QUESTION,
    MSG_CONSOLE_STATUS,
    MSG_DEVICES_UNAVAILABLE,
    MSG_THINKING,
    OPENROUTER_ANSWER_MODEL,
    OPENROUTER_BASE_URL,
)
from src.errors import SessionError
from src.supervisor import LinkFactory, SessionState, SessionSupervisor
from src.transcription.speechmatics import SpeechmaticsTranscriptionLink
from src.transcription.tokens import SpeechmaticsTokenClient, StaticTokenClient, TokenClient
from src.transcription.whisper import WhisperTranscriptionLink

logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    list(map(root.removeHandler, root.handlers[:]))
    root.addHandler(RichHandler(rich_tracebacks=True))


# ── wiring ────────────────────────────────────────────────────────────────────


def build_link_factory(config: Config) -> LinkFactory:
    match config.stt_backend:
        case "whisper":
            return WhisperTranscriptionLink
        case _:
            return functools.partial(
                SpeechmaticsTranscriptionLink,
                url=config.speechmatics_rt_url,
                max_delay=config.max_delay,
            )


def build_token_client(config: Config) -> TokenClient:
    match config.stt_backend:
        case "whisper":
            return StaticTokenClient(config.openai_api_key)
        case _:
            return SpeechmaticsTokenClient(
                config.speechmatics_api_key,
                url=config.speechmatics_token_url,
                ttl=config.speechmatics_token_ttl,
            )


def build_answer_client(config: Config) -> Optional[AnswerClient]:
    match (config.anthropic_api_key, config.openrouter_api_key, config.openai_api_key):
        case (str() as k, _, _) if k:
            return ClaudeAnswerClient(k, config.answer_model)
        case (_, str() as k, _) if k:
            return OpenAIAnswerClient(
                k, config.answer_model or OPENROUTER_ANSWER_MODEL, base_url=OPENROUTER_BASE_URL
            )
        case (_, _, str() as k) if k:
            return OpenAIAnswerClient(k, config.answer_model)
        case _:
            return None


def load_context(path: Optional[str]) -> str:
    match path:
        case None:
            return ""
        case p:
            return Path(p).expanduser().read_text(encoding="utf-8")


# ── console view ──────────────────────────────────────────────────────────────


class ConsoleView:
    """Live terminal panel: state, mic level, input devices, transcript, last Q/A."""

    def __init__(self) -> None:
        self.supervisor: Optional[SessionSupervisor] = None
        self.state = SessionState.IDLE.value
        self.status = MSG_CONSOLE_HELP
        self.transcript = ""
        self.question = ""
        self.answer = ""
        self.devices: list[str] = []

    def on_state(self, state: SessionState, reason: str) -> None:
        self.state = state.value

    def on_status(self, message: str) -> None:
        self.status = message

    def on_transcript(self, text: str) -> None:
        self.transcript = text

    def on_answer(self, question: str, answer: str) -> None:
        self.question = question
        self.answer = answer

    def on_devices(self, devices: list[DeviceDescriptor], current: Optional[int] = None) -> None:
        self.devices = [
            MSG_CONSOLE_DEVICE
            % ("*" if d.id == current else " ", d.id, d.label, d.channels, d.default_sample_rate)
            for d in devices
        ]

    def __rich__(self) -> Text:
        match self.supervisor:
            case None:
                level, dbfs = 0, float("-inf")
            case supervisor:
                level, dbfs = supervisor.level, supervisor.dbfs
        text = Text(MSG_CONSOLE_STATUS % (self.state, level, dbfs, self.status), style="bold")
        if self.devices:
            text.append("\n\n" + "\n".join([MSG_CONSOLE_DEVICES, *self.devices]), style="dim")
        text.append("\n\n" + (self.transcript or "…"))
        if self.question:
            text.append("\n\n" + MSG_CONSOLE_QUESTION % self.question, style="cyan")
            text.append("\n" + MSG_CONSOLE_ANSWER % self.answer, style="green")
        return text


def refresh_devices(view: ConsoleView, devices: AudioDeviceManager, current: Optional[int] = None) -> None:
    try:
        listed = devices.list_devices()
    except SessionError as exc:
        logger.warning(MSG_DEVICES_UNAVAILABLE, exc)
        view.on_status(MSG_DEVICES_UNAVAILABLE % exc)
        return
    view.on_devices(listed, current)


@contextlib.contextmanager
def _cbreak() -> Iterator[None]:
    """Single-keypress stdin on POSIX terminals; line input elsewhere."""
    if sys.platform == "win32" or not sys.stdin.isatty():
        yield
        return
    import termios
    import tty

    fd = sys.stdin.fileno()
    saved = termios.tcgetattr(fd)
    tty.setcbreak(fd)
    try:
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


async def _run(config: Config) -> int:
    devices = AudioDeviceManager(sample_rate=config.sample_rate, blocksize=config.frame_size)
    try:
        device_id = devices.find_device(config.mic_device).id if config.mic_device else None
    except SessionError as exc:
        logger.error("Could not start listening: %s", exc)
        return 1
    view = ConsoleView()
    refresh_devices(view, devices, device_id)
    supervisor = SessionSupervisor(
        config,
        devices,
        build_link_factory(config),
        build_token_client(config),
        answer_client=build_answer_client(config),
        context=load_context(config.resume_path),
        on_state=view.on_state,
        on_transcript=view.on_transcript,
        on_status=view.on_status,
        on_answer=view.on_answer,
    )
    view.supervisor = supervisor
    loop = asyncio.get_running_loop()

    with _cbreak(), Live(view, refresh_per_second=8):
        try:
            await supervisor.start(device_id)
        except SessionError as exc:
            logger.error("Could not start listening: %s", exc)
            return 1
        try:
            while True:
                key = await loop.run_in_executor(None, sys.stdin.read, 1)
                match key.lower():
                    case "":
                        break
                    case k if k == KEY_QUIT:
                        break
                    case k if k == KEY_ASK and supervisor.state is SessionState.LISTENING:
                        question = await supervisor.capture_and_ask()
                        view.on_answer(question or "", MSG_THINKING)
                    case k if k == KEY_PAUSE:
                        await supervisor.pause()
                    case k if k == KEY_DEVICES:
                        refresh_devices(view, devices, device_id)
                    case k if k == KEY_ASK and supervisor.state is SessionState.PAUSED:
                        try:
                            await supervisor.resume()
                        except SessionError as exc:
                            logger.error("Could not resume listening: %s", exc)
                    case _:
                        pass
        finally:
            await supervisor.stop()
    return 0


def main() -> None:
    config = Config.from_env()
    _setup_logging(config.log_level)
    sys.exit(asyncio.run(_run(config)))


if __name__ == "__main__":
    main()

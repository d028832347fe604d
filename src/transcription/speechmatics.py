"""SpeechmaticsTranscriptionLink: realtime wire-protocol backend over a websocket."""
import asyncio
import json
import logging
from typing import Any, Optional
from urllib.parse import quote

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from src.audio.encoder import RawAudioFrame
from src.constants import (
    AUDIO_ENCODING,
    AUDIO_FORMAT_TYPE,
    CLOSE_CODE_ABNORMAL,
    DEFAULT_MAX_DELAY,
    LINK_CLOSE_TIMEOUT,
    LINK_CONNECT_TIMEOUT,
    LINK_OUTBOUND_FRAMES,
    LINK_PING_INTERVAL,
    MSG_ADD_FINAL,
    MSG_ADD_PARTIAL,
    MSG_AUDIO_ADDED,
    MSG_END_OF_STREAM,
    MSG_END_OF_TRANSCRIPT,
    MSG_ERROR,
    MSG_FRAME_DROPPED,
    MSG_INFO,
    MSG_LINK_CLOSED,
    MSG_LINK_CONNECTING,
    MSG_LINK_READY,
    MSG_RECOGNITION_STARTED,
    MSG_START_RECOGNITION,
    MSG_WARNING,
    OPERATING_POINT,
    SPEECHMATICS_RT_URL,
)
from src.errors import AbortedError, LinkError
from src.transcription.link import ConnectionState, TranscriptionLink

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = (MSG_RECOGNITION_STARTED, MSG_INFO, MSG_WARNING, MSG_END_OF_TRANSCRIPT)
_TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


# ── wire helpers (module-level so tests can import them directly) ──────────────


def start_recognition_message(sample_rate: int, language: str, max_delay: float) -> dict[str, Any]:
    return {
        "message": MSG_START_RECOGNITION,
        "audio_format": {
            "type": AUDIO_FORMAT_TYPE,
            "encoding": AUDIO_ENCODING,
            "sample_rate": int(sample_rate),
        },
        "transcription_config": {
            "language": language.strip(),
            "operating_point": OPERATING_POINT,
            "enable_partials": True,
            "max_delay": max_delay,
            "enable_entities": True,
        },
    }


def end_of_stream_message(last_seq_no: int) -> dict[str, Any]:
    return {"message": MSG_END_OF_STREAM, "last_seq_no": last_seq_no}


def parse_event(raw: str | bytes) -> dict[str, Any] | None:
    """Decode one inbound frame; anything that is not a JSON object is ignored."""
    match raw:
        case bytes():
            return None
        case _:
            pass
    try:
        message = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Ignoring undecodable frame: %.80s", raw)
        return None
    match message:
        case {"message": str()}:
            return message
        case _:
            return None


def _transcript_of(message: dict[str, Any]) -> str:
    metadata = message.get("metadata") or {}
    return str(metadata.get("transcript") or "")


def _reason(message: dict[str, Any]) -> str:
    return str(message.get("reason") or message.get("type") or "unknown")


# ── link ──────────────────────────────────────────────────────────────────────


class SpeechmaticsTranscriptionLink(TranscriptionLink):

    def __init__(
        self,
        url: str = SPEECHMATICS_RT_URL,
        max_delay: float = DEFAULT_MAX_DELAY,
        connect_timeout: float = LINK_CONNECT_TIMEOUT,
        **callbacks,
    ) -> None:
        super().__init__(**callbacks)
        self._url = url
        self._max_delay = max_delay
        self._connect_timeout = connect_timeout
        self._ws = None
        self._outbound: asyncio.Queue[RawAudioFrame] = asyncio.Queue(maxsize=LINK_OUTBOUND_FRAMES)
        self._receiver: Optional[asyncio.Task] = None
        self._sender: Optional[asyncio.Task] = None
        self._closed_locally = False
        self._seq_no = 0
        self.frames_dropped = 0

    # ── TranscriptionLink interface ───────────────────────────────────────────

    async def connect(self, token: str, sample_rate: int, language: str) -> None:
        match self._state:
            case ConnectionState.DISCONNECTED if not self._closed_locally:
                pass
            case _:
                raise LinkError("Link cannot be reused; create a new one per connection")

        self._state = ConnectionState.CONNECTING
        logger.info(MSG_LINK_CONNECTING, self._url)
        try:
            ws = await websockets.connect(
                f"{self._url}?jwt={quote(token)}",
                open_timeout=self._connect_timeout,
                ping_interval=LINK_PING_INTERVAL,
                close_timeout=LINK_CLOSE_TIMEOUT,
            )
        except _TRANSPORT_ERRORS as exc:
            raise self._connect_failure(exc) from exc

        if self._closed_locally:
            await ws.close()
            raise AbortedError("Link closed while connecting")
        self._ws = ws

        try:
            await ws.send(json.dumps(start_recognition_message(sample_rate, language, self._max_delay)))
            await asyncio.wait_for(self._await_started(ws), timeout=self._connect_timeout)
        except _TRANSPORT_ERRORS as exc:
            await self._abandon(ws)
            raise self._connect_failure(exc) from exc
        except LinkError:
            await self._abandon(ws)
            self._state = ConnectionState.DISCONNECTED
            raise

        if self._closed_locally:
            raise AbortedError("Link closed while connecting")
        self._state = ConnectionState.OPEN
        logger.info(MSG_LINK_READY, sample_rate)
        self._receiver = asyncio.create_task(self._receive_loop(ws))
        self._sender = asyncio.create_task(self._send_loop(ws))

    def send_audio(self, frame: RawAudioFrame) -> None:
        match self._state:
            case ConnectionState.OPEN:
                pass
            case _:
                return
        try:
            self._outbound.put_nowait(frame)
        except asyncio.QueueFull:
            self.frames_dropped += 1
            logger.debug(MSG_FRAME_DROPPED)

    async def close(self) -> None:
        match self._state:
            case ConnectionState.CLOSING:
                return
            case ConnectionState.DISCONNECTED if self._ws is None:
                self._closed_locally = True
                self._release_source()
                return
            case _:
                pass

        was_open = self._state is ConnectionState.OPEN
        self._closed_locally = True
        self._state = ConnectionState.CLOSING
        # nothing queued may reach the socket once close() has been called
        self._release_source()
        self._drain_outbound()
        self._cancel(self._sender)

        match self._ws:
            case None:
                pass
            case ws:
                if was_open:
                    try:
                        await ws.send(json.dumps(end_of_stream_message(self._seq_no)))
                    except _TRANSPORT_ERRORS as exc:
                        logger.debug("EndOfStream not sent: %s", exc)
                await ws.close()
        self._cancel(self._receiver)
        self._ws = None
        self._state = ConnectionState.DISCONNECTED

    # ── internals ─────────────────────────────────────────────────────────────

    def _connect_failure(self, exc: BaseException) -> Exception:
        match self._closed_locally:
            case True:
                return AbortedError("Link closed while connecting")
            case False:
                self._state = ConnectionState.DISCONNECTED
                return LinkError(f"Could not open realtime session: {exc}")

    async def _abandon(self, ws) -> None:
        try:
            await ws.close()
        except _TRANSPORT_ERRORS as exc:
            logger.debug("Close after failed handshake: %s", exc)
        self._ws = None

    async def _await_started(self, ws) -> None:
        while True:
            message = parse_event(await ws.recv())
            match message:
                case None:
                    continue
                case {"message": kind} if kind == MSG_RECOGNITION_STARTED:
                    self._on_status(kind)
                    return
                case {"message": kind} if kind == MSG_ERROR:
                    raise LinkError(_reason(message))
                case _:
                    logger.debug("Ignoring %s before recognition started", message["message"])

    def _dispatch(self, message: dict[str, Any]) -> None:
        kind = message["message"]
        match kind:
            case k if k == MSG_ADD_PARTIAL:
                self._on_partial(_transcript_of(message))
            case k if k == MSG_ADD_FINAL:
                self._on_final(_transcript_of(message))
            case k if k == MSG_AUDIO_ADDED:
                pass
            case k if k == MSG_ERROR:
                self._on_error(LinkError(_reason(message)))
            case k if k in _STATUS_MESSAGES:
                self._on_status(str(message.get("reason") or k))
            case _:
                logger.debug("Ignoring unknown message %s", kind)

    async def _receive_loop(self, ws) -> None:
        try:
            async for raw in ws:
                match parse_event(raw):
                    case None:
                        pass
                    case message:
                        self._dispatch(message)
        except ConnectionClosed:
            pass

        match self._closed_locally:
            case True:
                return
            case False:
                pass
        code = ws.close_code or CLOSE_CODE_ABNORMAL
        self._state = ConnectionState.DISCONNECTED
        self._drain_outbound()
        self._cancel(self._sender)
        logger.info(MSG_LINK_CLOSED, code)
        self._on_closed(code)

    async def _send_loop(self, ws) -> None:
        while True:
            frame = await self._outbound.get()
            try:
                await ws.send(frame.to_bytes())
            except ConnectionClosed:
                return
            self._seq_no += 1

    def _drain_outbound(self) -> None:
        while not self._outbound.empty():
            self._outbound.get_nowait()

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        match task:
            case None:
                pass
            case t if t is asyncio.current_task():
                pass
            case t:
                t.cancel()

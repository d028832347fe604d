"""WhisperTranscriptionLink: managed-recognizer backend built on OpenAI Whisper segments."""
import asyncio
import io
import logging
import wave
from typing import Optional

import numpy as np
from openai import AsyncOpenAI

from src.audio.encoder import RawAudioFrame
from src.constants import (
    MSG_FRAME_DROPPED,
    MSG_LINK_READY,
    SEGMENT_FILENAME,
    WHISPER_MODEL,
    WHISPER_PENDING_SEGMENTS,
    WHISPER_SEGMENT_SECONDS,
    WHISPER_SILENCE_RMS,
)
from src.errors import AbortedError, LinkError
from src.transcription.link import ConnectionState, TranscriptionLink

logger = logging.getLogger(__name__)


def to_wav(samples: np.ndarray, sample_rate: int) -> io.BytesIO:
    """Float32 mono samples → 16-bit PCM WAV in memory."""
    pcm16 = (np.clip(samples, -1.0, 1.0) * 32767.0).astype("<i2")
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm16.tobytes())
    buffer.seek(0)
    buffer.name = SEGMENT_FILENAME
    return buffer


def is_silent(samples: np.ndarray, threshold: float = WHISPER_SILENCE_RMS) -> bool:
    match samples.size:
        case 0:
            return True
        case _:
            return float(np.sqrt(np.mean(np.square(samples)))) < threshold


class WhisperTranscriptionLink(TranscriptionLink):
    """Buffers frames into fixed-length segments and reports each one as a final.

    The token passed to connect() is the OpenAI API key. No partials are
    produced by this backend.
    """

    def __init__(
        self,
        segment_seconds: float = WHISPER_SEGMENT_SECONDS,
        model: str = WHISPER_MODEL,
        **callbacks,
    ) -> None:
        super().__init__(**callbacks)
        self._segment_seconds = segment_seconds
        self._model = model
        self._client: Optional[AsyncOpenAI] = None
        self._language = ""
        self._sample_rate = 0
        self._buffered: list[np.ndarray] = []
        self._buffered_samples = 0
        self._segments: asyncio.Queue[np.ndarray] = asyncio.Queue(maxsize=WHISPER_PENDING_SEGMENTS)
        self._worker: Optional[asyncio.Task] = None
        self._closed_locally = False

    async def connect(self, token: str, sample_rate: int, language: str) -> None:
        match (self._state, self._closed_locally):
            case (ConnectionState.DISCONNECTED, False):
                pass
            case (_, True):
                raise AbortedError("Link closed before connecting")
            case _:
                raise LinkError("Link cannot be reused; create a new one per connection")
        match token:
            case "" | None:
                raise LinkError("OpenAI API key missing")
            case _:
                pass
        self._state = ConnectionState.CONNECTING
        self._client = AsyncOpenAI(api_key=token)
        self._language = language.strip()
        self._sample_rate = int(sample_rate)
        self._state = ConnectionState.OPEN
        logger.info(MSG_LINK_READY, self._sample_rate)
        self._on_status("listening")
        self._worker = asyncio.create_task(self._transcribe_loop())

    def send_audio(self, frame: RawAudioFrame) -> None:
        match self._state:
            case ConnectionState.OPEN:
                pass
            case _:
                return
        self._buffered.append(frame.samples)
        self._buffered_samples += len(frame.samples)
        if self._buffered_samples < self._segment_seconds * self._sample_rate:
            return
        segment = np.concatenate(self._buffered)
        self._buffered = []
        self._buffered_samples = 0
        if is_silent(segment):
            return
        try:
            self._segments.put_nowait(segment)
        except asyncio.QueueFull:
            logger.debug(MSG_FRAME_DROPPED)

    async def close(self) -> None:
        self._closed_locally = True
        self._release_source()
        match self._state:
            case ConnectionState.DISCONNECTED | ConnectionState.CLOSING:
                return
            case _:
                pass
        self._state = ConnectionState.CLOSING
        self._buffered = []
        self._buffered_samples = 0
        while not self._segments.empty():
            self._segments.get_nowait()
        match self._worker:
            case None:
                pass
            case task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                self._worker = None
        self._state = ConnectionState.DISCONNECTED

    async def _transcribe(self, segment: np.ndarray) -> str:
        response = await self._client.audio.transcriptions.create(
            model=self._model,
            file=to_wav(segment, self._sample_rate),
            language=self._language,
        )
        return response.text.strip()

    async def _transcribe_loop(self) -> None:
        while True:
            segment = await self._segments.get()
            try:
                text = await self._transcribe(segment)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Whisper transcription failed: %s", exc)
                self._on_error(LinkError(str(exc)))
                continue
            match text:
                case "":
                    pass
                case t:
                    self._on_final(t)

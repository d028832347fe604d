"""TranscriptionLink: abstract base for realtime speech-to-text backends."""
import enum
from abc import ABC, abstractmethod
from typing import Callable, Optional

from src.audio.devices import AudioStreamHandle
from src.audio.encoder import AudioFrameEncoder, RawAudioFrame

OnText = Callable[[str], None]
OnError = Callable[[Exception], None]
OnClosed = Callable[[int], None]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


def _noop(*_) -> None:
    pass


class TranscriptionLink(ABC):
    """One connection cycle to an ASR service.

    Events are delivered on the event loop through the callbacks given at
    construction. A link owns the capture stream and encoder attached to it
    and releases them on close().
    """

    def __init__(
        self,
        *,
        on_partial: Optional[OnText] = None,
        on_final: Optional[OnText] = None,
        on_status: Optional[OnText] = None,
        on_error: Optional[OnError] = None,
        on_closed: Optional[OnClosed] = None,
    ) -> None:
        self._on_partial = on_partial or _noop
        self._on_final = on_final or _noop
        self._on_status = on_status or _noop
        self._on_error = on_error or _noop
        self._on_closed = on_closed or _noop
        self._state = ConnectionState.DISCONNECTED
        self._handle: Optional[AudioStreamHandle] = None
        self._encoder: Optional[AudioFrameEncoder] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @abstractmethod
    async def connect(self, token: str, sample_rate: int, language: str) -> None:
        """Open the session. Raises LinkError, or AbortedError if closed meanwhile."""
        ...

    @abstractmethod
    def send_audio(self, frame: RawAudioFrame) -> None:
        """Forward one frame. Silently ignored unless the link is open."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Tear down the connection and release the audio source. Idempotent."""
        ...

    def attach_source(self, handle: AudioStreamHandle, encoder: AudioFrameEncoder) -> None:
        self._handle = handle
        self._encoder = encoder

    def _release_source(self) -> None:
        match self._encoder:
            case None:
                pass
            case encoder:
                encoder.detach()
        match self._handle:
            case None:
                pass
            case handle:
                handle.close()
        self._encoder = None
        self._handle = None

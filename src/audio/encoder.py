"""AudioFrameEncoder: re-chunks capture blocks into fixed-size PCM frames on the event loop."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from src.audio.devices import AudioStreamHandle
from src.constants import DEFAULT_FRAME_SIZE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawAudioFrame:
    samples: np.ndarray
    sample_rate: int

    def to_bytes(self) -> bytes:
        """Little-endian float32 PCM, the pcm_f32le wire encoding."""
        return np.asarray(self.samples, dtype="<f4").tobytes()

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate if self.sample_rate else 0.0


OnFrame = Callable[[RawAudioFrame], None]


class AudioFrameEncoder:
    """One-shot push source: attach once, detach once.

    Blocks arrive on the PortAudio thread; only the partial-frame buffer is
    touched there. Completed frames hop to the loop via call_soon_threadsafe
    and are dropped at delivery time once detached.
    """

    def __init__(self) -> None:
        self._handle: Optional[AudioStreamHandle] = None
        self._on_frame: Optional[OnFrame] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._frame_size = DEFAULT_FRAME_SIZE
        self._pending = np.empty(0, dtype=np.float32)
        self._used = False
        self._attached = False
        self.frames_delivered = 0
        self.frames_dropped = 0

    @property
    def attached(self) -> bool:
        return self._attached

    def attach(
        self,
        handle: AudioStreamHandle,
        on_frame: OnFrame,
        frame_size: int = DEFAULT_FRAME_SIZE,
    ) -> None:
        match self._used:
            case True:
                raise RuntimeError("AudioFrameEncoder cannot be re-attached")
            case False:
                pass
        self._used = True
        self._attached = True
        self._handle = handle
        self._on_frame = on_frame
        self._frame_size = frame_size
        self._loop = asyncio.get_running_loop()
        handle.subscribe(self._on_block)

    def detach(self) -> None:
        match self._handle:
            case None:
                pass
            case handle:
                handle.unsubscribe()
                logger.debug(
                    "Encoder detached: %d frames delivered, %d dropped",
                    self.frames_delivered,
                    self.frames_dropped,
                )
        self._attached = False
        self._handle = None
        self._on_frame = None
        self._pending = np.empty(0, dtype=np.float32)

    def _on_block(self, block: np.ndarray) -> None:
        handle, loop = self._handle, self._loop
        if not self._attached or handle is None or loop is None:
            return
        buffered = np.concatenate((self._pending, block)) if self._pending.size else block
        size = self._frame_size
        whole = len(buffered) // size
        for i in range(whole):
            frame = RawAudioFrame(
                samples=buffered[i * size:(i + 1) * size].copy(),
                sample_rate=handle.sample_rate,
            )
            try:
                loop.call_soon_threadsafe(self._deliver, frame)
            except RuntimeError:
                # loop already closed
                self.frames_dropped += 1
        self._pending = buffered[whole * size:].copy()

    def _deliver(self, frame: RawAudioFrame) -> None:
        match (self._attached, self._on_frame):
            case (True, callback) if callback is not None:
                self.frames_delivered += 1
                callback(frame)
            case _:
                self.frames_dropped += 1

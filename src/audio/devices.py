"""AudioDeviceManager: input device enumeration and capture streams via sounddevice."""
import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from src.constants import (
    AUDIO_CHANNELS,
    AUDIO_DTYPE,
    DEFAULT_FRAME_SIZE,
    LEVEL_MAX,
    LEVEL_SCALE,
    MSG_CAPTURE_OPENED,
    MSG_DEVICE_NOT_FOUND,
    PERMISSION_HINTS,
)
from src.errors import DeviceUnavailableError, PermissionDeniedError

logger = logging.getLogger(__name__)

# Called on the PortAudio thread with one mono float32 block.
BlockCallback = Callable[[np.ndarray], None]


def _sounddevice():
    # imported on first use: the module loads PortAudio at import time
    import sounddevice

    return sounddevice


@dataclass(frozen=True)
class DeviceDescriptor:
    id: int
    label: str
    channels: int = 1
    default_sample_rate: float = 0.0


def _classify(exc: Exception) -> Exception:
    """Map a PortAudio failure onto the capture error taxonomy."""
    text = str(exc).lower()
    match any(hint in text for hint in PERMISSION_HINTS):
        case True:
            return PermissionDeniedError(str(exc))
        case False:
            return DeviceUnavailableError(str(exc))


def _dbfs(value: float) -> float:
    if value <= 0:
        return float("-inf")
    return 20.0 * math.log10(value)


class AudioStreamHandle:
    """A started mono input stream. Blocks are pushed to at most one subscriber."""

    def __init__(self, device_id: Optional[int], label: str) -> None:
        self.device_id = device_id
        self.label = label
        self.sample_rate = 0
        self._stream = None
        self._subscriber: Optional[BlockCallback] = None
        self._level = 0
        self._dbfs = float("-inf")

    @property
    def level(self) -> int:
        return self._level

    @property
    def dbfs(self) -> float:
        return self._dbfs

    @property
    def active(self) -> bool:
        return self._stream is not None

    def subscribe(self, callback: BlockCallback) -> None:
        self._subscriber = callback

    def unsubscribe(self) -> None:
        self._subscriber = None

    def _on_block(self, indata, frames, time_info, status) -> None:
        if status:
            logger.debug("Audio status: %s", status)
        block = indata[:, 0] if indata.ndim > 1 else indata.reshape(-1)
        block = np.asarray(block, dtype=np.float32).copy()
        if block.size:
            peak = float(np.max(np.abs(block)))
            self._level = min(LEVEL_MAX, round(peak * LEVEL_SCALE))
            self._dbfs = _dbfs(float(np.sqrt(np.mean(np.square(block)))))
        match self._subscriber:
            case None:
                pass
            case callback:
                callback(block)

    def _open(self, sample_rate: Optional[int], blocksize: int) -> None:
        stream = _sounddevice().InputStream(
            device=self.device_id,
            samplerate=sample_rate,
            channels=AUDIO_CHANNELS,
            dtype=AUDIO_DTYPE,
            blocksize=blocksize,
            callback=self._on_block,
        )
        stream.start()
        self._stream = stream
        self.sample_rate = int(stream.samplerate)

    def close(self) -> None:
        self._subscriber = None
        match self._stream:
            case None:
                return
            case stream:
                self._stream = None
                sd = _sounddevice()
                try:
                    stream.stop()
                    stream.close()
                except sd.PortAudioError as exc:
                    logger.debug("Stream close failed: %s", exc)
        self._level = 0
        self._dbfs = float("-inf")


class AudioDeviceManager:

    def __init__(self, sample_rate: Optional[int] = None, blocksize: int = DEFAULT_FRAME_SIZE) -> None:
        self._sample_rate = sample_rate
        self._blocksize = blocksize

    def list_devices(self) -> list[DeviceDescriptor]:
        sd = _sounddevice()
        try:
            devices = sd.query_devices()
        except sd.PortAudioError as exc:
            raise _classify(exc) from exc
        return [
            DeviceDescriptor(
                id=index,
                label=dev["name"],
                channels=int(dev["max_input_channels"]),
                default_sample_rate=float(dev.get("default_samplerate", 0.0)),
            )
            for index, dev in enumerate(devices)
            if dev["max_input_channels"] > 0
        ]

    def find_device(self, query: str) -> DeviceDescriptor:
        """Resolve a device by numeric id or case-insensitive label substring."""
        devices = self.list_devices()
        match query.strip():
            case digits if digits.isdigit():
                matches = [d for d in devices if d.id == int(digits)]
            case text:
                matches = [d for d in devices if text.lower() in d.label.lower()]
        match matches:
            case []:
                raise DeviceUnavailableError(MSG_DEVICE_NOT_FOUND % query)
            case [first, *_]:
                return first

    def open_capture(self, device_id: Optional[int] = None) -> AudioStreamHandle:
        sd = _sounddevice()
        try:
            info = sd.query_devices(device_id, "input")
        except (sd.PortAudioError, ValueError) as exc:
            raise _classify(exc) from exc
        handle = AudioStreamHandle(device_id, info["name"])
        try:
            handle._open(self._sample_rate, self._blocksize)
        except sd.PortAudioError as exc:
            handle.close()
            raise _classify(exc) from exc
        logger.info(MSG_CAPTURE_OPENED, handle.label, handle.sample_rate)
        return handle

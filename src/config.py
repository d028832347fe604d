from dataclasses import dataclass
from typing import Optional
import os
from dotenv import load_dotenv

from src.constants import (
    DEFAULT_BACKOFF_STEPS_MS,
    DEFAULT_FRAME_SIZE,
    DEFAULT_IDLE_THRESHOLD_MS,
    DEFAULT_LANGUAGE,
    DEFAULT_MAX_DELAY,
    DEFAULT_WATCHDOG_INTERVAL_MS,
    SPEECHMATICS_RT_URL,
    SPEECHMATICS_TOKEN_TTL,
    SPEECHMATICS_TOKEN_URL,
)

BACKENDS = ("speechmatics", "whisper")


@dataclass(frozen=True)
class Config:
    stt_backend: str
    speechmatics_api_key: Optional[str]
    speechmatics_rt_url: str
    speechmatics_token_url: str
    speechmatics_token_ttl: int
    openai_api_key: Optional[str]
    anthropic_api_key: Optional[str]
    openrouter_api_key: Optional[str]
    answer_model: Optional[str]
    language: str
    max_delay: float
    sample_rate: Optional[int]
    frame_size: int
    mic_device: Optional[str]
    idle_threshold_ms: int
    watchdog_interval_ms: int
    backoff_steps_ms: tuple[int, ...]
    max_restart_attempts: int
    resume_path: Optional[str]
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        load_dotenv()

        backend = os.getenv("STT_BACKEND", "speechmatics").strip().lower()
        speechmatics_key = os.getenv("SPEECHMATICS_API_KEY") or None
        rt_url = os.getenv("SPEECHMATICS_RT_URL") or SPEECHMATICS_RT_URL
        token_url = os.getenv("SPEECHMATICS_TOKEN_URL") or SPEECHMATICS_TOKEN_URL
        token_ttl = os.getenv("SPEECHMATICS_TOKEN_TTL", str(SPEECHMATICS_TOKEN_TTL))
        openai_api_key = os.getenv("OPENAI_API_KEY") or None
        anthropic_api_key = os.getenv("ANTHROPIC_API_KEY") or None
        openrouter_api_key = os.getenv("OPENROUTER_API_KEY") or None
        answer_model = os.getenv("ANSWER_MODEL") or None
        language = os.getenv("STT_LANGUAGE", DEFAULT_LANGUAGE).strip() or DEFAULT_LANGUAGE
        max_delay = os.getenv("STT_MAX_DELAY", str(DEFAULT_MAX_DELAY))
        raw_sample_rate = os.getenv("SAMPLE_RATE", "").strip()
        frame_size = os.getenv("FRAME_SIZE", str(DEFAULT_FRAME_SIZE))
        mic_device = os.getenv("MIC_DEVICE") or None
        idle_threshold = os.getenv("IDLE_THRESHOLD_MS", str(DEFAULT_IDLE_THRESHOLD_MS))
        watchdog_interval = os.getenv("WATCHDOG_INTERVAL_MS", str(DEFAULT_WATCHDOG_INTERVAL_MS))
        raw_steps = os.getenv("BACKOFF_STEPS_MS", DEFAULT_BACKOFF_STEPS_MS)
        max_restarts = os.getenv("MAX_RESTART_ATTEMPTS", "0")
        resume_path = os.getenv("RESUME_PATH") or None
        log_level = os.getenv("LOG_LEVEL", "INFO")

        steps = tuple(int(s.strip()) for s in raw_steps.split(",") if s.strip())

        return cls._validate(
            stt_backend=backend,
            speechmatics_api_key=speechmatics_key,
            speechmatics_rt_url=rt_url,
            speechmatics_token_url=token_url,
            speechmatics_token_ttl=int(token_ttl),
            openai_api_key=openai_api_key,
            anthropic_api_key=anthropic_api_key,
            openrouter_api_key=openrouter_api_key,
            answer_model=answer_model,
            language=language,
            max_delay=float(max_delay),
            sample_rate=int(raw_sample_rate) if raw_sample_rate else None,
            frame_size=int(frame_size),
            mic_device=mic_device,
            idle_threshold_ms=int(idle_threshold),
            watchdog_interval_ms=int(watchdog_interval),
            backoff_steps_ms=steps,
            max_restart_attempts=int(max_restarts),
            resume_path=resume_path,
            log_level=log_level,
        )

    @staticmethod
    def _validate(
        stt_backend: str,
        speechmatics_api_key: Optional[str],
        speechmatics_rt_url: str,
        speechmatics_token_url: str,
        speechmatics_token_ttl: int,
        openai_api_key: Optional[str],
        anthropic_api_key: Optional[str],
        openrouter_api_key: Optional[str],
        answer_model: Optional[str],
        language: str,
        max_delay: float,
        sample_rate: Optional[int],
        frame_size: int,
        mic_device: Optional[str],
        idle_threshold_ms: int,
        watchdog_interval_ms: int,
        backoff_steps_ms: tuple[int, ...],
        max_restart_attempts: int,
        resume_path: Optional[str],
        log_level: str,
    ) -> "Config":
        match (stt_backend, speechmatics_api_key, openai_api_key):
            case ("speechmatics", None | "", _):
                raise ValueError("SPEECHMATICS_API_KEY must be set in .env")
            case ("whisper", _, None | ""):
                raise ValueError("OPENAI_API_KEY must be set in .env for STT_BACKEND=whisper")
            case (backend, _, _) if backend not in BACKENDS:
                raise ValueError(f"STT_BACKEND must be one of {', '.join(BACKENDS)}")
            case _:
                pass

        match backoff_steps_ms:
            case ():
                raise ValueError("BACKOFF_STEPS_MS must list at least one delay")
            case steps if any(s <= 0 for s in steps):
                raise ValueError("BACKOFF_STEPS_MS delays must be positive")
            case _:
                pass

        match (idle_threshold_ms, watchdog_interval_ms):
            case (idle, tick) if tick <= 0 or tick >= idle:
                raise ValueError("WATCHDOG_INTERVAL_MS must be positive and below IDLE_THRESHOLD_MS")
            case _:
                pass

        match frame_size:
            case n if n <= 0:
                raise ValueError("FRAME_SIZE must be positive")
            case _:
                pass

        return Config(
            stt_backend=stt_backend,
            speechmatics_api_key=speechmatics_api_key,
            speechmatics_rt_url=speechmatics_rt_url,
            speechmatics_token_url=speechmatics_token_url,
            speechmatics_token_ttl=speechmatics_token_ttl,
            openai_api_key=openai_api_key,
            anthropic_api_key=anthropic_api_key,
            openrouter_api_key=openrouter_api_key,
            answer_model=answer_model,
            language=language,
            max_delay=max_delay,
            sample_rate=sample_rate,
            frame_size=frame_size,
            mic_device=mic_device,
            idle_threshold_ms=idle_threshold_ms,
            watchdog_interval_ms=watchdog_interval_ms,
            backoff_steps_ms=backoff_steps_ms,
            max_restart_attempts=max_restart_attempts,
            resume_path=resume_path,
            log_level=log_level,
        )

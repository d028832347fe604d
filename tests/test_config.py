"""TDD: Config tests written FIRST"""
import pytest
from src.config import Config

_VARS = (
    "STT_BACKEND",
    "SPEECHMATICS_API_KEY",
    "SPEECHMATICS_RT_URL",
    "SPEECHMATICS_TOKEN_URL",
    "SPEECHMATICS_TOKEN_TTL",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "OPENROUTER_API_KEY",
    "ANSWER_MODEL",
    "STT_LANGUAGE",
    "STT_MAX_DELAY",
    "SAMPLE_RATE",
    "FRAME_SIZE",
    "MIC_DEVICE",
    "IDLE_THRESHOLD_MS",
    "WATCHDOG_INTERVAL_MS",
    "BACKOFF_STEPS_MS",
    "MAX_RESTART_ATTEMPTS",
    "RESUME_PATH",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr("src.config.load_dotenv", lambda **_: None)
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_config_from_env_success(monkeypatch):
    """Happy-path: Speechmatics key present, everything else defaulted."""
    monkeypatch.setenv("SPEECHMATICS_API_KEY", "sm-key")

    config = Config.from_env()

    assert config.stt_backend == "speechmatics"
    assert config.speechmatics_api_key == "sm-key"
    assert config.speechmatics_rt_url == "wss://eu2.rt.speechmatics.com/v2"
    assert config.speechmatics_token_ttl == 3600


def test_config_defaults(monkeypatch):
    """Supervision timings default to the 10 s / 1.5 s / 500-3000 ms ladder."""
    monkeypatch.setenv("SPEECHMATICS_API_KEY", "sm-key")

    config = Config.from_env()

    assert config.idle_threshold_ms == 10000
    assert config.watchdog_interval_ms == 1500
    assert config.backoff_steps_ms == (500, 1000, 2000, 3000)
    assert config.max_restart_attempts == 0
    assert config.language == "en"
    assert config.sample_rate is None
    assert config.frame_size == 4096
    assert config.log_level == "INFO"


def test_config_missing_speechmatics_key_fails(monkeypatch):
    """Speechmatics backend without SPEECHMATICS_API_KEY must raise."""
    with pytest.raises(ValueError, match="SPEECHMATICS_API_KEY"):
        Config.from_env()


def test_config_whisper_backend_needs_openai_key(monkeypatch):
    """STT_BACKEND=whisper requires OPENAI_API_KEY, not the Speechmatics key."""
    monkeypatch.setenv("STT_BACKEND", "whisper")

    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        Config.from_env()


def test_config_whisper_backend_success(monkeypatch):
    monkeypatch.setenv("STT_BACKEND", "Whisper")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test123")

    config = Config.from_env()

    assert config.stt_backend == "whisper"
    assert config.speechmatics_api_key is None
    assert config.openai_api_key == "sk-test123"


def test_config_unknown_backend_fails(monkeypatch):
    monkeypatch.setenv("STT_BACKEND", "dragon")

    with pytest.raises(ValueError, match="STT_BACKEND"):
        Config.from_env()


def test_config_parses_backoff_steps(monkeypatch):
    """BACKOFF_STEPS_MS parses into a tuple, blanks ignored."""
    monkeypatch.setenv("SPEECHMATICS_API_KEY", "sm-key")
    monkeypatch.setenv("BACKOFF_STEPS_MS", "250, 750,,1500")

    config = Config.from_env()

    assert config.backoff_steps_ms == (250, 750, 1500)


def test_config_rejects_non_positive_backoff(monkeypatch):
    monkeypatch.setenv("SPEECHMATICS_API_KEY", "sm-key")
    monkeypatch.setenv("BACKOFF_STEPS_MS", "500,0")

    with pytest.raises(ValueError, match="BACKOFF_STEPS_MS"):
        Config.from_env()


def test_config_rejects_empty_backoff(monkeypatch):
    monkeypatch.setenv("SPEECHMATICS_API_KEY", "sm-key")
    monkeypatch.setenv("BACKOFF_STEPS_MS", " , ")

    with pytest.raises(ValueError, match="BACKOFF_STEPS_MS"):
        Config.from_env()


def test_config_watchdog_must_tick_faster_than_idle_threshold(monkeypatch):
    monkeypatch.setenv("SPEECHMATICS_API_KEY", "sm-key")
    monkeypatch.setenv("IDLE_THRESHOLD_MS", "1000")
    monkeypatch.setenv("WATCHDOG_INTERVAL_MS", "1000")

    with pytest.raises(ValueError, match="WATCHDOG_INTERVAL_MS"):
        Config.from_env()


def test_config_rejects_zero_frame_size(monkeypatch):
    monkeypatch.setenv("SPEECHMATICS_API_KEY", "sm-key")
    monkeypatch.setenv("FRAME_SIZE", "0")

    with pytest.raises(ValueError, match="FRAME_SIZE"):
        Config.from_env()


def test_config_optional_fields_from_env(monkeypatch):
    """Answer keys, device and resume path load from env."""
    monkeypatch.setenv("SPEECHMATICS_API_KEY", "sm-key")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or")
    monkeypatch.setenv("ANSWER_MODEL", "claude-haiku")
    monkeypatch.setenv("STT_LANGUAGE", "de")
    monkeypatch.setenv("STT_MAX_DELAY", "2.5")
    monkeypatch.setenv("SAMPLE_RATE", "16000")
    monkeypatch.setenv("MIC_DEVICE", "USB")
    monkeypatch.setenv("MAX_RESTART_ATTEMPTS", "5")
    monkeypatch.setenv("RESUME_PATH", "~/resume.txt")

    config = Config.from_env()

    assert config.anthropic_api_key == "sk-ant"
    assert config.openrouter_api_key == "sk-or"
    assert config.answer_model == "claude-haiku"
    assert config.language == "de"
    assert config.max_delay == 2.5
    assert config.sample_rate == 16000
    assert config.mic_device == "USB"
    assert config.max_restart_attempts == 5
    assert config.resume_path == "~/resume.txt"


def test_config_blank_optional_keys_become_none(monkeypatch):
    """Blank keys → None (answers disabled)."""
    monkeypatch.setenv("SPEECHMATICS_API_KEY", "sm-key")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("SAMPLE_RATE", "  ")

    config = Config.from_env()

    assert config.openai_api_key is None
    assert config.anthropic_api_key is None
    assert config.sample_rate is None


def test_config_immutable(monkeypatch):
    """Frozen dataclass: attribute assignment must fail."""
    monkeypatch.setenv("SPEECHMATICS_API_KEY", "sm-key")
    config = Config.from_env()

    with pytest.raises(Exception):
        config.language = "fr"

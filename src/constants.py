"""All magic values live here. No inline literals anywhere else."""

# Audio capture
DEFAULT_FRAME_SIZE = 4096
AUDIO_CHANNELS = 1
AUDIO_DTYPE = "float32"
# Peak meter scale, matches the browser VU meter (peak * 200, capped at 100).
LEVEL_SCALE = 200
LEVEL_MAX = 100
PERMISSION_HINTS = ("permission", "not allowed", "not-allowed", "denied", "unauthorized")

# Speechmatics realtime protocol
SPEECHMATICS_RT_URL = "wss://eu2.rt.speechmatics.com/v2"
SPEECHMATICS_TOKEN_URL = "https://mp.speechmatics.com/v1/api_keys?type=rt"
SPEECHMATICS_TOKEN_TTL = 3600
AUDIO_FORMAT_TYPE = "raw"
AUDIO_ENCODING = "pcm_f32le"
OPERATING_POINT = "enhanced"
DEFAULT_LANGUAGE = "en"
DEFAULT_MAX_DELAY: float = 1.0

MSG_START_RECOGNITION = "StartRecognition"
MSG_RECOGNITION_STARTED = "RecognitionStarted"
MSG_ADD_PARTIAL = "AddPartialTranscript"
MSG_ADD_FINAL = "AddTranscript"
MSG_AUDIO_ADDED = "AudioAdded"
MSG_END_OF_STREAM = "EndOfStream"
MSG_END_OF_TRANSCRIPT = "EndOfTranscript"
MSG_INFO = "Info"
MSG_WARNING = "Warning"
MSG_ERROR = "Error"

# Websocket tuning
LINK_CONNECT_TIMEOUT: float = 10.0
LINK_PING_INTERVAL: float = 20.0
LINK_CLOSE_TIMEOUT: float = 2.0
LINK_OUTBOUND_FRAMES = 1
CLOSE_CODE_ABNORMAL = 1006

# Token service
TOKEN_HTTP_TIMEOUT: float = 10.0

# Whisper segment recognizer
WHISPER_MODEL = "whisper-1"
WHISPER_SEGMENT_SECONDS: float = 4.0
WHISPER_SILENCE_RMS: float = 0.005
WHISPER_PENDING_SEGMENTS = 2
SEGMENT_FILENAME = "segment.wav"

# Session supervision (milliseconds)
DEFAULT_IDLE_THRESHOLD_MS = 10000
DEFAULT_WATCHDOG_INTERVAL_MS = 1500
DEFAULT_BACKOFF_STEPS_MS = "500,1000,2000,3000"

# Question extraction
FILLER_PATTERN = r"\b(?:um+|uh+|erm+|like|you know)\b"
SENTENCE_BOUNDARY_PATTERN = r"(?<=[.?!])\s+"
MIN_QUESTION_LENGTH = 2

# Answer generation
CLAUDE_ANSWER_MODEL = "claude-3-haiku-20240307"
OPENAI_ANSWER_MODEL = "gpt-4o-mini"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_ANSWER_MODEL = "anthropic/claude-3-haiku"
ANSWER_TEMPERATURE: float = 0.3
ANSWER_MAX_TOKENS = 300
CONTEXT_MAX_WORDS = 400
ANSWER_SYSTEM_PROMPT = (
    'You are "Interview Assistant".\n'
    "The candidate pressed a key right after the interviewer finished speaking; "
    "you receive the LAST SPOKEN QUESTION and must return a concise, confident answer.\n"
    "Write as the candidate (first person). Prefer 4-8 sentences; if bullets fit better, "
    "use 3-5 short bullets. Use resume context only when relevant. "
    "Avoid fluff and apologies."
)
ANSWER_USER_TEMPLATE = (
    "Last spoken interview question:\n%s\n\nCandidate resume (context only):\n%s"
)

# Log / user-facing messages
MSG_SESSION_STARTING = "Starting listening session…"
MSG_STATE_CHANGE = "Session %s → %s (%s)"
MSG_LINK_CONNECTING = "Connecting to %s…"
MSG_LINK_READY = "Recognition started (sample rate %d)"
MSG_LINK_CLOSED = "Link closed (code %s)"
MSG_LINK_ERROR = "Link error: %s"
MSG_RESTART_SCHEDULED = "Restarting in %d ms (%s)"
MSG_RESTART_EXHAUSTED = "Giving up after %d restart attempts"
MSG_IDLE_STALL = "No transcript events for %d ms"
MSG_FRAME_DROPPED = "Outbound frame dropped: link busy"
MSG_CAPTURE_OPENED = "Capturing from %s at %d Hz"
MSG_NO_TOKEN = "Token service returned no usable credential"
MSG_NO_QUESTION = "(no question detected)"
MSG_THINKING = "Thinking…"
MSG_ANSWER_FAILED = "Error: failed to generate answer."
MSG_ANSWER_NOT_CONFIGURED = "Answer generation is not configured in this setup."
MSG_NO_ANSWER = "(no answer)"
MSG_DEVICE_NOT_FOUND = "No input device matches %r"

# Console front-end
KEY_ASK = " "
KEY_PAUSE = "p"
KEY_DEVICES = "d"
KEY_QUIT = "q"
MSG_CONSOLE_HELP = "space: ask / resume · p: pause · d: devices · q: quit"
MSG_CONSOLE_STATUS = "[%s] mic %3d%% %6.1f dBFS │ %s"
MSG_CONSOLE_DEVICES = "Input devices (set MIC_DEVICE to an id or name):"
MSG_CONSOLE_DEVICE = "%s %d: %s (%d ch, %.0f Hz)"
MSG_DEVICES_UNAVAILABLE = "Could not list input devices: %s"
MSG_CONSOLE_QUESTION = "Q: %s"
MSG_CONSOLE_ANSWER = "A: %s"

"""SessionSupervisor: listening-session state machine with stall watchdog and backoff restarts.

Every state change goes through _transition(). Timers (watchdog, pending
restart) are asyncio tasks owned by the supervisor and cancelled whenever the
state they were scheduled for is left. Each link gets a generation number;
events from a link that has since been torn down are dropped.
"""
import asyncio
import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Coroutine, Optional

from src.answer.client import AnswerClient, AnswerRequest
from src.audio.devices import AudioDeviceManager, AudioStreamHandle
from src.audio.encoder import AudioFrameEncoder
from src.config import Config
from src.constants import (
    MSG_ANSWER_FAILED,
    MSG_ANSWER_NOT_CONFIGURED,
    MSG_IDLE_STALL,
    MSG_LINK_CLOSED,
    MSG_LINK_ERROR,
    MSG_NO_QUESTION,
    MSG_RESTART_EXHAUSTED,
    MSG_RESTART_SCHEDULED,
    MSG_SESSION_STARTING,
    MSG_STATE_CHANGE,
)
from src.errors import (
    AbortedError,
    DeviceUnavailableError,
    IdleStallError,
    LinkError,
    PermissionDeniedError,
    TokenError,
)
from src.transcript import TranscriptAssembler
from src.transcription.link import TranscriptionLink
from src.transcription.tokens import TokenClient

logger = logging.getLogger(__name__)

_FATAL_ERRORS = (PermissionDeniedError, DeviceUnavailableError)


class SessionState(enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PAUSED = "paused"
    RESTARTING = "restarting"
    ERROR = "error"


ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.LISTENING, SessionState.ERROR}),
    SessionState.LISTENING: frozenset(
        {SessionState.PAUSED, SessionState.RESTARTING, SessionState.IDLE, SessionState.ERROR}
    ),
    SessionState.PAUSED: frozenset({SessionState.LISTENING, SessionState.IDLE, SessionState.ERROR}),
    SessionState.RESTARTING: frozenset({SessionState.LISTENING, SessionState.IDLE, SessionState.ERROR}),
    SessionState.ERROR: frozenset({SessionState.IDLE, SessionState.LISTENING}),
}

LinkFactory = Callable[..., TranscriptionLink]
OnState = Callable[[SessionState, str], None]
OnText = Callable[[str], None]
OnAnswer = Callable[[str, str], None]
OnError = Callable[[Exception], None]


def _noop(*_) -> None:
    pass


class BackoffPolicy:
    """Walks the delay steps and holds at the last one until reset()."""

    def __init__(self, steps_ms: tuple[int, ...]) -> None:
        match steps_ms:
            case ():
                raise ValueError("BackoffPolicy needs at least one step")
            case _:
                pass
        self._steps = tuple(steps_ms)
        self._index = 0

    def next_delay(self) -> int:
        delay = self._steps[self._index]
        self._index = min(self._index + 1, len(self._steps) - 1)
        return delay

    def reset(self) -> None:
        self._index = 0


@dataclass
class Session:
    device_id: Optional[int]
    backoff: BackoffPolicy
    last_activity: float
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    restart_attempts: int = 0


class SessionSupervisor:

    def __init__(
        self,
        config: Config,
        devices: AudioDeviceManager,
        link_factory: LinkFactory,
        token_client: TokenClient,
        answer_client: Optional[AnswerClient] = None,
        assembler: Optional[TranscriptAssembler] = None,
        context: str = "",
        on_state: Optional[OnState] = None,
        on_transcript: Optional[OnText] = None,
        on_status: Optional[OnText] = None,
        on_answer: Optional[OnAnswer] = None,
        on_error: Optional[OnError] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._devices = devices
        self._link_factory = link_factory
        self._token_client = token_client
        self._answer_client = answer_client
        self._assembler = assembler or TranscriptAssembler()
        self._context = context
        self._on_state = on_state or _noop
        self._on_transcript = on_transcript or _noop
        self._on_status = on_status or _noop
        self._on_answer = on_answer or _noop
        self._on_error = on_error or _noop
        self._clock = clock

        self._state = SessionState.IDLE
        self._session: Optional[Session] = None
        self._link: Optional[TranscriptionLink] = None
        self._handle: Optional[AudioStreamHandle] = None
        self._generation = 0
        self._watchdog: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()

    # ── read-only views ───────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def transcript(self) -> str:
        return self._assembler.current_transcript()

    @property
    def level(self) -> int:
        match self._handle:
            case AudioStreamHandle() as handle if handle.active:
                return handle.level
            case _:
                return 0

    @property
    def dbfs(self) -> float:
        match self._handle:
            case AudioStreamHandle() as handle if handle.active:
                return handle.dbfs
            case _:
                return float("-inf")

    # ── user operations ───────────────────────────────────────────────────────

    async def start(self, device_id: Optional[int] = None) -> None:
        match self._state:
            case SessionState.IDLE | SessionState.ERROR:
                pass
            case state:
                logger.debug("start() ignored while %s", state.value)
                return

        await self._teardown_link()
        logger.info(MSG_SESSION_STARTING)
        self._session = Session(
            device_id=device_id,
            backoff=BackoffPolicy(self._config.backoff_steps_ms),
            last_activity=self._clock(),
        )
        self._assembler.reset()
        self._emit_transcript()
        self._transition(SessionState.LISTENING, "start")
        await self._connect_listening()

    async def stop(self) -> None:
        match (self._state, self._link):
            case (SessionState.IDLE, None):
                return
            case (SessionState.IDLE, _):
                pass
            case _:
                self._transition(SessionState.IDLE, "stop")
        await self._teardown_link()
        self._session = None

    async def pause(self) -> None:
        match self._state:
            case SessionState.LISTENING:
                pass
            case state:
                logger.debug("pause() ignored while %s", state.value)
                return
        self._transition(SessionState.PAUSED, "pause")
        await self._teardown_link()

    async def capture_and_ask(self) -> Optional[str]:
        """Pause listening, pull the last question and request an answer in the background."""
        match self._state:
            case SessionState.LISTENING:
                pass
            case state:
                logger.debug("capture_and_ask() ignored while %s", state.value)
                return None

        self._transition(SessionState.PAUSED, "capture")
        question = self._assembler.extract_last_question()
        self._assembler.reset()
        self._emit_transcript()
        await self._teardown_link()
        self._spawn(self._request_answer(question))
        return question

    async def resume(self) -> None:
        match (self._state, self._session):
            case (SessionState.PAUSED, Session() as session):
                pass
            case (state, _):
                logger.debug("resume() ignored while %s", state.value)
                return

        session.backoff.reset()
        session.last_activity = self._clock()
        self._transition(SessionState.LISTENING, "resume")
        await self._connect_listening()

    # ── state machine ─────────────────────────────────────────────────────────

    def _transition(self, new_state: SessionState, reason: str) -> None:
        old_state = self._state
        match new_state in ALLOWED_TRANSITIONS[old_state]:
            case True:
                pass
            case False:
                raise RuntimeError(f"Illegal session transition {old_state.value} → {new_state.value}")

        self._state = new_state
        if new_state is not SessionState.LISTENING:
            self._cancel(self._watchdog)
            self._watchdog = None
        if new_state is not SessionState.RESTARTING:
            self._cancel(self._restart_task)
            self._restart_task = None

        logger.info(MSG_STATE_CHANGE, old_state.value, new_state.value, reason)
        self._on_state(new_state, reason)

    def _fail(self, exc: Exception) -> None:
        logger.error("Session failed: %s", exc)
        if self._state is not SessionState.ERROR:
            self._transition(SessionState.ERROR, type(exc).__name__)
        self._spawn(self._teardown_link())
        self._on_error(exc)

    def _schedule_restart(self, reason: str) -> None:
        match (self._state, self._restart_task):
            case (SessionState.LISTENING, _):
                self._transition(SessionState.RESTARTING, reason)
            case (SessionState.RESTARTING, task) if task is None or task is asyncio.current_task():
                # retry after a failed reconnect
                pass
            case _:
                return

        session = self._session
        limit = self._config.max_restart_attempts
        if limit and session.restart_attempts >= limit:
            logger.error(MSG_RESTART_EXHAUSTED, session.restart_attempts)
            self._fail(LinkError(MSG_RESTART_EXHAUSTED % session.restart_attempts))
            return

        session.restart_attempts += 1
        delay = session.backoff.next_delay()
        logger.info(MSG_RESTART_SCHEDULED, delay, reason)
        self._on_status(MSG_RESTART_SCHEDULED % (delay, reason))
        self._restart_task = asyncio.create_task(self._restart_after(delay))

    async def _restart_after(self, delay_ms: int) -> None:
        try:
            await self._teardown_link()
            await asyncio.sleep(delay_ms / 1000)
            match self._state:
                case SessionState.RESTARTING:
                    pass
                case _:
                    return
            try:
                await self._open_link()
            except _FATAL_ERRORS as exc:
                self._fail(exc)
                return
            except AbortedError:
                logger.debug("Reconnect aborted")
                return
            except LinkError as exc:
                logger.warning(MSG_LINK_ERROR, exc)
                self._schedule_restart(str(exc))
                return
            self._on_connected()
        finally:
            if self._restart_task is asyncio.current_task():
                self._restart_task = None

    # ── link lifecycle ────────────────────────────────────────────────────────

    async def _connect_listening(self) -> None:
        """Open a link for a session already marked LISTENING (start/resume)."""
        try:
            await self._open_link()
        except (*_FATAL_ERRORS, TokenError) as exc:
            self._fail(exc)
            raise
        except AbortedError:
            logger.debug("Connect aborted by a stop or pause")
            return
        except LinkError as exc:
            logger.warning(MSG_LINK_ERROR, exc)
            self._schedule_restart(str(exc))
            return
        self._on_connected()

    async def _open_link(self) -> None:
        token = await self._token_client.fetch_token()
        match self._state:
            case SessionState.LISTENING | SessionState.RESTARTING:
                pass
            case _:
                raise AbortedError("Session left listening while fetching a token")

        handle = self._devices.open_capture(self._session.device_id)
        self._generation += 1
        generation = self._generation
        link = self._link_factory(
            on_partial=self._bind(generation, self._handle_partial),
            on_final=self._bind(generation, self._handle_final),
            on_status=self._bind(generation, self._handle_status),
            on_error=self._bind(generation, self._handle_error),
            on_closed=self._bind(generation, self._handle_closed),
        )
        encoder = AudioFrameEncoder()
        link.attach_source(handle, encoder)
        self._link = link
        self._handle = handle

        try:
            await link.connect(token, handle.sample_rate, self._config.language)
        except Exception:
            await link.close()
            raise
        match generation == self._generation:
            case True:
                pass
            case False:
                await link.close()
                raise AbortedError("Link superseded while connecting")
        encoder.attach(handle, link.send_audio, self._config.frame_size)

    def _on_connected(self) -> None:
        session = self._session
        session.backoff.reset()
        session.restart_attempts = 0
        session.last_activity = self._clock()
        match self._state:
            case SessionState.RESTARTING:
                self._transition(SessionState.LISTENING, "reconnected")
            case _:
                pass
        self._start_watchdog()

    async def _teardown_link(self) -> None:
        self._generation += 1
        link, self._link = self._link, None
        self._handle = None
        match link:
            case None:
                pass
            case current:
                await current.close()

    def _bind(self, generation: int, handler: Callable[..., None]) -> Callable[..., None]:
        def _handler(*args) -> None:
            match generation == self._generation:
                case True:
                    handler(*args)
                case False:
                    logger.debug("Dropping event from retired link %d", generation)

        return _handler

    # ── link events ───────────────────────────────────────────────────────────

    def _touch(self) -> None:
        match self._session:
            case None:
                pass
            case session:
                session.last_activity = self._clock()

    def _handle_partial(self, text: str) -> None:
        self._touch()
        self._assembler.apply_partial(text)
        self._emit_transcript()

    def _handle_final(self, text: str) -> None:
        self._touch()
        self._assembler.apply_final(text)
        self._emit_transcript()

    def _handle_status(self, message: str) -> None:
        self._on_status(message)

    def _handle_error(self, exc: Exception) -> None:
        match exc:
            case AbortedError():
                logger.debug("Ignoring self-inflicted abort: %s", exc)
            case PermissionDeniedError():
                self._fail(exc)
            case _:
                logger.warning(MSG_LINK_ERROR, exc)
                self._on_status(MSG_LINK_ERROR % exc)
                self._schedule_restart(str(exc))

    def _handle_closed(self, code: int) -> None:
        logger.info(MSG_LINK_CLOSED, code)
        self._schedule_restart(MSG_LINK_CLOSED % code)

    # ── watchdog ──────────────────────────────────────────────────────────────

    def _start_watchdog(self) -> None:
        self._cancel(self._watchdog)
        self._watchdog = asyncio.create_task(self._watchdog_loop())

    async def _watchdog_loop(self) -> None:
        interval = self._config.watchdog_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            if self._check_idle():
                return

    def _check_idle(self) -> bool:
        """Force a restart when no transcript event arrived within the idle threshold."""
        match (self._state, self._session):
            case (SessionState.LISTENING, Session() as session):
                pass
            case _:
                return False
        idle_ms = (self._clock() - session.last_activity) * 1000
        if idle_ms <= self._config.idle_threshold_ms:
            return False
        stall = IdleStallError(MSG_IDLE_STALL % idle_ms)
        logger.warning("%s", stall)
        self._schedule_restart(str(stall))
        return True

    # ── answers ───────────────────────────────────────────────────────────────

    async def _request_answer(self, question: str) -> None:
        match (question, self._answer_client):
            case ("", _):
                answer = MSG_NO_QUESTION
            case (_, None):
                answer = MSG_ANSWER_NOT_CONFIGURED
            case (_, client):
                try:
                    response = await client.answer(AnswerRequest(question=question, context=self._context))
                    answer = response.answer
                except Exception:
                    logger.exception("Answer generation failed")
                    answer = MSG_ANSWER_FAILED
        self._on_answer(question, answer)

    # ── helpers ───────────────────────────────────────────────────────────────

    def _emit_transcript(self) -> None:
        self._on_transcript(self._assembler.current_transcript())

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        match task:
            case None:
                pass
            case t if t is asyncio.current_task():
                pass
            case t:
                t.cancel()

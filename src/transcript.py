"""TranscriptAssembler: folds partial and final fragments into one live transcript."""
import re
from dataclasses import dataclass, field

from src.constants import FILLER_PATTERN, MIN_QUESTION_LENGTH, SENTENCE_BOUNDARY_PATTERN

_FILLER_RE = re.compile(FILLER_PATTERN, re.IGNORECASE)
_BOUNDARY_RE = re.compile(SENTENCE_BOUNDARY_PATTERN)


# ── pure helpers (module-level so tests can import them directly) ──────────────


def tokenize(text: str) -> list[str]:
    return text.split()


def normalize(text: str) -> str:
    return " ".join(tokenize(text or ""))


def split_sentences(text: str) -> list[str]:
    """Split on whitespace that follows terminal punctuation."""
    match normalize(text):
        case "":
            return []
        case flat:
            return [s.strip() for s in _BOUNDARY_RE.split(flat) if s.strip()]


def strip_fillers(text: str) -> str:
    stripped = _FILLER_RE.sub("", text)
    # tidy the commas and gaps a removed filler leaves behind
    stripped = re.sub(r"\s+([,.?!])", r"\1", stripped)
    stripped = re.sub(r",(?:\s*,)+", ",", stripped)
    return normalize(stripped).lstrip(", ")


def extract_last_sentence(text: str) -> str:
    """Most recent question-like sentence, else the most recent sentence."""
    sentences = split_sentences(text)
    match sentences:
        case []:
            return ""
        case _:
            pass
    for sentence in reversed(sentences):
        if sentence.endswith("?") and len(sentence) > MIN_QUESTION_LENGTH:
            return sentence
    return sentences[-1]


def _common_prefix_length(left: list[str], right: list[str]) -> int:
    length = 0
    for a, b in zip(left, right):
        if a != b:
            break
        length += 1
    return length


# ── state ─────────────────────────────────────────────────────────────────────


@dataclass
class TranscriptState:
    committed_text: str = ""
    pending_tokens: list[str] = field(default_factory=list)
    last_stable_sentence: str = ""

    def render(self) -> str:
        return (self.committed_text + " " + " ".join(self.pending_tokens)).strip()


class TranscriptAssembler:
    """Owns one TranscriptState. Callers must deliver events in service order."""

    def __init__(self) -> None:
        self._state = TranscriptState()

    @property
    def state(self) -> TranscriptState:
        return TranscriptState(
            committed_text=self._state.committed_text,
            pending_tokens=list(self._state.pending_tokens),
            last_stable_sentence=self._state.last_stable_sentence,
        )

    def apply_partial(self, text: str) -> None:
        tokens = tokenize(text or "")
        pending = self._state.pending_tokens
        keep = _common_prefix_length(pending, tokens)
        self._state.pending_tokens = pending[:keep] + tokens[keep:]

    def apply_final(self, text: str) -> None:
        final = normalize(text)
        self._state.pending_tokens = []
        match (final, self._state.committed_text):
            case ("", _):
                return
            case (_, ""):
                self._state.committed_text = final
            case (_, committed):
                self._state.committed_text = committed + " " + final
        self._state.last_stable_sentence = extract_last_sentence(self._state.committed_text)

    def current_transcript(self) -> str:
        return self._state.render()

    def extract_last_question(self) -> str:
        live = strip_fillers(self.current_transcript())
        return extract_last_sentence(live) or live

    def reset(self) -> None:
        self._state = TranscriptState()

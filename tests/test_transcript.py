"""TDD: TranscriptAssembler tests written FIRST"""
from src.transcript import (
    TranscriptAssembler,
    extract_last_sentence,
    split_sentences,
    strip_fillers,
)


# ── partials ──────────────────────────────────────────────────────────────────


def test_partial_replaces_previous_partial():
    assembler = TranscriptAssembler()
    assembler.apply_partial("tell me")
    assembler.apply_partial("tell me about")
    assembler.apply_partial("tell me about your")

    assert assembler.state.pending_tokens == ["tell", "me", "about", "your"]
    assert assembler.current_transcript() == "tell me about your"


def test_partial_revision_leaves_no_stale_tokens():
    """A revised partial must not keep tokens the service took back."""
    assembler = TranscriptAssembler()
    assembler.apply_partial("I scream for ice cream")
    assembler.apply_partial("ice")

    assert assembler.state.pending_tokens == ["ice"]


def test_pending_tokens_track_last_partial_for_any_sequence():
    partials = ["a b c", "a x", "", "  spaced   out  ", "a b c d e", "q"]
    assembler = TranscriptAssembler()
    for text in partials:
        assembler.apply_partial(text)
        assert assembler.state.pending_tokens == text.split()


# ── finals ────────────────────────────────────────────────────────────────────


def test_final_clears_pending_and_commits():
    assembler = TranscriptAssembler()
    assembler.apply_partial("what is your")
    assembler.apply_partial("what is your biggest")
    assembler.apply_final("What is your biggest weakness?")

    state = assembler.state
    assert state.pending_tokens == []
    assert state.committed_text.endswith("What is your biggest weakness?")
    assert assembler.current_transcript() == "What is your biggest weakness?"


def test_finals_append_with_single_space():
    assembler = TranscriptAssembler()
    assembler.apply_final("I work at Acme.")
    assembler.apply_partial("what is")
    assembler.apply_final("  What is your biggest weakness?  ")

    assert assembler.state.committed_text == "I work at Acme. What is your biggest weakness?"


def test_blank_final_commits_nothing_but_clears_pending():
    assembler = TranscriptAssembler()
    assembler.apply_final("Hello there.")
    assembler.apply_partial("and")
    assembler.apply_final("   ")

    assert assembler.state.committed_text == "Hello there."
    assert assembler.state.pending_tokens == []


def test_final_updates_last_stable_sentence():
    assembler = TranscriptAssembler()
    assembler.apply_final("I work at Acme. What do you do?")

    assert assembler.state.last_stable_sentence == "What do you do?"


def test_current_transcript_is_idempotent():
    assembler = TranscriptAssembler()
    assembler.apply_final("Hello.")
    assembler.apply_partial("how are")

    first = assembler.current_transcript()
    second = assembler.current_transcript()

    assert first == second == "Hello. how are"


def test_state_snapshot_is_a_copy():
    assembler = TranscriptAssembler()
    assembler.apply_partial("one two")

    snapshot = assembler.state
    snapshot.pending_tokens.append("three")

    assert assembler.state.pending_tokens == ["one", "two"]


def test_reset_clears_everything():
    assembler = TranscriptAssembler()
    assembler.apply_final("Committed.")
    assembler.apply_partial("pending")
    assembler.reset()

    assert assembler.current_transcript() == ""
    assert assembler.state.last_stable_sentence == ""


# ── question extraction ───────────────────────────────────────────────────────


def test_extract_last_question_picks_question_sentence():
    assembler = TranscriptAssembler()
    assembler.apply_final("I work at Acme. What is your biggest weakness?")

    assert assembler.extract_last_question() == "What is your biggest weakness?"


def test_extract_last_question_prefers_latest_question_over_later_statement():
    assembler = TranscriptAssembler()
    assembler.apply_final("Why did you leave? Take your time. Think about it.")

    assert assembler.extract_last_question() == "Why did you leave?"


def test_extract_last_question_falls_back_to_last_sentence():
    assembler = TranscriptAssembler()
    assembler.apply_final("I led the team. Tell me about the project.")

    assert assembler.extract_last_question() == "Tell me about the project."


def test_extract_last_question_without_boundary_returns_live_text():
    assembler = TranscriptAssembler()
    assembler.apply_partial("so tell me about yourself")

    assert assembler.extract_last_question() == "so tell me about yourself"


def test_extract_last_question_includes_pending_partial():
    assembler = TranscriptAssembler()
    assembler.apply_final("I work at Acme.")
    assembler.apply_partial("What motivates you?")

    assert assembler.extract_last_question() == "What motivates you?"


def test_extract_last_question_strips_fillers():
    assembler = TranscriptAssembler()
    assembler.apply_final("um so uh what, like, motivates you?")

    question = assembler.extract_last_question()

    assert question == "so what, motivates you?"
    for filler in ("um", "uh", "like"):
        assert filler not in question.split()


def test_extract_last_question_on_empty_transcript():
    assert TranscriptAssembler().extract_last_question() == ""


# ── helpers ───────────────────────────────────────────────────────────────────


def test_strip_fillers_is_case_insensitive_and_word_bounded():
    assert strip_fillers("Um, I likely, you know, agree") == "I likely, agree"
    assert strip_fillers("Ummm erm uhh ok") == "ok"


def test_split_sentences_on_terminal_punctuation():
    assert split_sentences("One. Two? Three! four") == ["One.", "Two?", "Three!", "four"]
    assert split_sentences("   ") == []


def test_extract_last_sentence_ignores_tiny_questions():
    assert extract_last_sentence("Is it ok? ?") == "Is it ok?"

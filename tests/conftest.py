"""Shared stub collaborators for pipeline and route tests."""

import pytest

from story_quiz.models import CandidatePayload
from story_quiz.retry import RetryPolicy


class StubGenerator:
    """Candidate generator returning a fixed payload (or raising errors in turn)."""

    def __init__(self, payload: CandidatePayload | dict | None = None, errors=()):
        if isinstance(payload, dict):
            payload = CandidatePayload.model_validate(payload)
        self.payload = payload or CandidatePayload()
        self.errors = list(errors)
        self.calls: list[dict] = []

    async def __call__(self, question, history, story_brief, facts):
        self.calls.append({
            "question": question, "history": history,
            "story_brief": story_brief, "facts": facts,
        })
        if self.errors:
            raise self.errors.pop(0)
        return self.payload


class StubRepairer:
    def __init__(self, phrases=()):
        self.phrases = list(phrases)
        self.calls: list[dict] = []

    async def __call__(self, question, story_brief, facts, correct_answer):
        self.calls.append({"question": question, "correct_answer": correct_answer})
        return list(self.phrases)


class StubImages:
    """Image generator returning fixed image bytes; raises for texts in fail_for."""

    def __init__(self, fail_for=(), data=b"\x89PNG\r\n\x1a\n fake"):
        self.fail_for = set(fail_for)
        self.data = data
        self.calls: list[dict] = []

    async def __call__(self, option_text, render_mode, style_references, story_brief, art_style):
        self.calls.append({
            "option_text": option_text, "render_mode": render_mode,
            "style_references": style_references,
            "story_brief": story_brief, "art_style": art_style,
        })
        if option_text in self.fail_for:
            raise RuntimeError("image backend down")
        return self.data


class StubTranscriber:
    def __init__(self, text: str):
        self.text = text
        self.calls: list[tuple] = []

    async def __call__(self, audio, mime_type, context):
        self.calls.append((audio, mime_type, context))
        return self.text


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fast_retry(sleep) -> RetryPolicy:
    return RetryPolicy(sleep=sleep)


# Factories: tests build stubs with scenario-specific responses.

@pytest.fixture
def make_generator():
    return StubGenerator


@pytest.fixture
def make_repairer():
    return StubRepairer


@pytest.fixture
def make_images():
    return StubImages


@pytest.fixture
def make_transcriber():
    return StubTranscriber

"""External collaborators and the LLM-backed text services.

The engine talks to five services, all injected:

    Transcriber         audio -> question text ("" when nothing was heard)
    CandidateGenerator  question + story -> CandidatePayload
    DistractorRepairer  question + correct answer -> more wrong phrases
    ImageGenerator      option text + render mode -> image bytes or None
    SpeechSynthesizer   text -> audio bytes or None

Only the two text services have implementations here (on top of an LLM
callable, see llm.py). Their parsing never raises: malformed or non-JSON
model output degrades to an empty payload. Transport errors (LLMError) do
propagate so the caller can retry them.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Protocol

from story_quiz.distractors import REPAIR_PHRASE_COUNT
from story_quiz.llm import LLM
from story_quiz.models import (
    CandidatePayload,
    CandidateText,
    ChatTurn,
    RenderMode,
    StoryFacts,
    StyleReference,
)
from story_quiz.prompts import (
    MAX_HISTORY_CHARS,
    MAX_HISTORY_TURNS,
    candidates_prompt,
    repair_prompt,
)
from story_quiz.retry import RetryPolicy

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class Transcriber(Protocol):
    async def __call__(self, audio: bytes, mime_type: str, context: str) -> str: ...


class CandidateGenerator(Protocol):
    async def __call__(
        self,
        question: str,
        history: list[ChatTurn],
        story_brief: str,
        facts: StoryFacts,
    ) -> CandidatePayload: ...


class DistractorRepairer(Protocol):
    async def __call__(
        self,
        question: str,
        story_brief: str,
        facts: StoryFacts,
        correct_answer: str,
    ) -> list[str]: ...


class ImageGenerator(Protocol):
    async def __call__(
        self,
        option_text: str,
        render_mode: RenderMode,
        style_references: list[StyleReference],
        story_brief: str,
        art_style: str,
    ) -> bytes | None: ...


class SpeechSynthesizer(Protocol):
    async def __call__(self, text: str) -> bytes | None: ...


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------

_CAMEL_KEYS = {
    "candidateCorrect": "candidate_correct",
    "distractorCandidates": "distractor_candidates",
    "notAnswerable": "not_answerable",
}

_PHRASE_LIST_KEYS = ("distractors", "phrases", "answers", "distractor_candidates")


def _parse_json_output(text: str) -> Any:
    """Parse JSON from model output, stripping markdown fences and prose."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    for open_char, close_char in (("{", "}"), ("[", "]")):
        start, end = cleaned.find(open_char), cleaned.rfind(close_char)
        if start == -1 or end <= start:
            continue
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            continue

    logger.warning("Model output is not valid JSON: %r", cleaned[:200])
    return None


def _candidate_item(item: Any) -> CandidateText | None:
    if isinstance(item, str):
        item = {"text": item}
    if not isinstance(item, dict):
        return None
    text = item.get("text")
    if not isinstance(text, str):
        return None
    evidence = item.get("evidence")
    return CandidateText(text=text, evidence=evidence if isinstance(evidence, str) else "")


def parse_candidate_payload(text: str) -> CandidatePayload:
    """Validate candidate-generation output field by field.

    A bad field falls back to its default without discarding the rest:
    null evidence becomes "", a non-list distractor field becomes [], and
    unusable candidate entries are dropped one at a time.
    """
    data = _parse_json_output(text)
    if not isinstance(data, dict):
        return CandidatePayload()

    data = {_CAMEL_KEYS.get(k, k): v for k, v in data.items()}

    correct = data.get("candidate_correct")
    if not isinstance(correct, list):
        correct = []
    candidates = [c for c in map(_candidate_item, correct) if c is not None]
    if len(candidates) < len(correct):
        logger.warning("Dropped %d unusable candidate(s) from model output",
                       len(correct) - len(candidates))

    distractors = data.get("distractor_candidates")
    if not isinstance(distractors, list):
        distractors = []
    not_answerable = data.get("not_answerable")

    return CandidatePayload(
        candidate_correct=candidates,
        distractor_candidates=[d for d in distractors if isinstance(d, str)],
        not_answerable=not_answerable if isinstance(not_answerable, bool) else False,
    )


def parse_phrase_list(text: str) -> list[str]:
    """Extract a list of short phrases from repair output."""
    data = _parse_json_output(text)
    if isinstance(data, dict):
        data = next(
            (data[k] for k in _PHRASE_LIST_KEYS if isinstance(data.get(k), list)),
            None,
        )
    if not isinstance(data, list):
        return []
    return [item.strip() for item in data if isinstance(item, str) and item.strip()]


_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def image_mime_type(data: bytes) -> str:
    """Detect the image format from its magic bytes; unknown data is taken as PNG."""
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    for signature, mime_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    return "image/png"


def image_data_url(data: bytes, mime_type: str | None = None) -> str:
    mime_type = mime_type or image_mime_type(data)
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


# ---------------------------------------------------------------------------
# LLM-backed text services
# ---------------------------------------------------------------------------

class LLMCandidateGenerator:
    """Proposes correct answers and distractors with one LLM call."""

    def __init__(
        self,
        llm: LLM,
        max_history_turns: int = MAX_HISTORY_TURNS,
        max_history_chars: int = MAX_HISTORY_CHARS,
    ) -> None:
        self._llm = llm
        self._max_turns = max_history_turns
        self._max_chars = max_history_chars

    async def __call__(
        self,
        question: str,
        history: list[ChatTurn],
        story_brief: str,
        facts: StoryFacts,
    ) -> CandidatePayload:
        prompt = candidates_prompt(
            question, history, story_brief, facts, self._max_turns, self._max_chars,
        )
        return parse_candidate_payload(await self._llm("candidates", prompt))


class LLMDistractorRepairer:
    """Asks for extra wrong answers when selection came up short."""

    def __init__(self, llm: LLM, count: int = REPAIR_PHRASE_COUNT) -> None:
        self._llm = llm
        self._count = count

    async def __call__(
        self,
        question: str,
        story_brief: str,
        facts: StoryFacts,
        correct_answer: str,
    ) -> list[str]:
        prompt = repair_prompt(question, story_brief, facts, correct_answer, self._count)
        return parse_phrase_list(await self._llm("distractor_repair", prompt))


class QuizServices:
    """The collaborators one deployment runs with. Unset ones are disabled."""

    def __init__(
        self,
        candidate_generator: CandidateGenerator,
        repairer: DistractorRepairer | None = None,
        transcriber: Transcriber | None = None,
        image_generator: ImageGenerator | None = None,
        speech: SpeechSynthesizer | None = None,
        speech_mime_type: str = "audio/L16;rate=24000",
        retry: RetryPolicy | None = None,
    ) -> None:
        self.candidate_generator = candidate_generator
        self.repairer = repairer
        self.transcriber = transcriber
        self.image_generator = image_generator
        self.speech = speech
        self.speech_mime_type = speech_mime_type
        self.retry = retry or RetryPolicy()

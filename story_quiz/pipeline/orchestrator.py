"""Pipeline orchestrator - turns one spoken or typed question into three options.

Turn flow:
  1. Transcribe the parent's question (run_turn only). Nothing heard → stop
     with QuestionNotHeardError.
  2. Normalise the story facts.
  3. Candidate generation → CandidatePayload (one retried LLM call).
  4. Build the answer set:
       not answerable   → "Not in this book" + fallback distractors
       no candidates    → fallback correct answer + fallback distractors
       otherwise        → best-scored candidate, selected distractors,
                          one repair call if fewer than 2 survive,
                          backfill from the fallback pool
  5. Assemble exactly three shuffled options and classify render modes.
  6. Render the three illustrations concurrently (optional). A failed image
     leaves that option without one.

Only two failures reach the caller: nothing was heard, and a text service
that kept failing after retries (QuizTurnError). Everything else degrades
into a valid answer set.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any

from story_quiz.assembler import assemble_options, fallback_correct, not_answerable_set
from story_quiz.distractors import (
    MAX_DISTRACTORS,
    backfill_distractors,
    repair_distractors,
    select_distractors,
)
from story_quiz.facts import normalize_facts
from story_quiz.models import (
    CandidatePayload,
    ChatTurn,
    Option,
    QuizTurn,
    StoryFacts,
    StyleReference,
    Timings,
)
from story_quiz.render_mode import assign_render_modes, scene_context
from story_quiz.retry import RetryPolicy
from story_quiz.scoring import rank_candidates
from story_quiz.services import (
    CandidateGenerator,
    DistractorRepairer,
    ImageGenerator,
    Transcriber,
    image_data_url,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please try again."
NOT_HEARD_ERROR = "Could not hear the question. Please try again."

MAX_STYLE_REFERENCES = 4


class QuizTurnError(RuntimeError):
    """A turn failed in a way the user has to be told about."""


class QuestionNotHeardError(QuizTurnError):
    """Transcription returned no question."""


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


# ---------------------------------------------------------------------------
# Answer set
# ---------------------------------------------------------------------------

async def build_answer_set(
    *,
    question: str,
    payload: CandidatePayload,
    facts: StoryFacts,
    story_brief: str,
    repairer: DistractorRepairer | None = None,
    rng: random.Random | None = None,
    retry: RetryPolicy | None = None,
    timings: Timings | None = None,
) -> list[Option]:
    """Score, select, repair and assemble. Always returns three options."""
    retry = retry or RetryPolicy()

    if payload.not_answerable:
        logger.info("question %r flagged not answerable, using fixed set", question)
        correct, distractors = not_answerable_set(facts, question, story_brief)
    else:
        ranked = rank_candidates(payload.candidate_correct, facts, question, story_brief)
        if ranked:
            correct = ranked[0]
            raw = list(payload.distractor_candidates)
            distractors = select_distractors(raw, correct, facts, question, story_brief)

            if len(distractors) < MAX_DISTRACTORS and repairer is not None:
                start = time.perf_counter()
                answer = correct.text
                distractors = await repair_distractors(
                    raw, correct, facts, question, story_brief,
                    lambda: retry.call(lambda: repairer(question, story_brief, facts, answer)),
                )
                if timings is not None:
                    timings.repair_ms = _elapsed_ms(start)
        else:
            logger.info("no usable candidate for %r, using fallback set", question)
            correct = fallback_correct(facts, question, story_brief)
            distractors = []

        distractors = backfill_distractors(distractors, correct, facts, question, story_brief)

    options = assemble_options(correct, distractors, facts, question, story_brief, rng)
    return assign_render_modes(options, facts)


# ---------------------------------------------------------------------------
# Illustrations
# ---------------------------------------------------------------------------

async def render_option_images(
    *,
    options: list[Option],
    image_generator: ImageGenerator,
    facts: StoryFacts,
    story_brief: str,
    art_style: str = "",
    style_references: list[StyleReference] | None = None,
    retry: RetryPolicy | None = None,
    timings: Timings | None = None,
) -> list[Option]:
    """Render all option images concurrently; failures leave image_url unset."""
    retry = retry or RetryPolicy()
    refs = list(style_references or [])[:MAX_STYLE_REFERENCES]

    async def _render(option: Option) -> None:
        start = time.perf_counter()
        context = scene_context(option, facts, story_brief)
        try:
            data = await retry.call(lambda: image_generator(
                option.text, option.render_mode, refs, context, art_style,
            ))
        except Exception as e:
            logger.warning("Image generation failed for %s (%r): %s", option.id, option.text, e)
            data = None
        option.image_url = image_data_url(data) if data else None
        if timings is not None:
            timings.image_ms_by_id[option.id] = _elapsed_ms(start)

    start = time.perf_counter()
    await asyncio.gather(*(_render(option) for option in options))
    if timings is not None:
        timings.full_cards_ms = _elapsed_ms(start)
    return options


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

async def answer_question(
    *,
    question: str,
    story_brief: str,
    facts: Any,
    candidate_generator: CandidateGenerator,
    repairer: DistractorRepairer | None = None,
    image_generator: ImageGenerator | None = None,
    history: list[ChatTurn] | None = None,
    art_style: str = "",
    style_references: list[StyleReference] | None = None,
    rng: random.Random | None = None,
    retry: RetryPolicy | None = None,
    timings: Timings | None = None,
) -> QuizTurn:
    """Run steps 2-6 for a question that is already text."""
    total_start = time.perf_counter()
    retry = retry or RetryPolicy()
    timings = timings or Timings()
    history = list(history or [])

    story_facts = normalize_facts(facts, story_brief)

    options_start = time.perf_counter()
    try:
        payload = await retry.call(
            lambda: candidate_generator(question, history, story_brief, story_facts)
        )
        options = await build_answer_set(
            question=question,
            payload=payload,
            facts=story_facts,
            story_brief=story_brief,
            repairer=repairer,
            rng=rng,
            retry=retry,
            timings=timings,
        )
    except Exception as e:
        logger.exception("Answer generation failed for %r", question)
        raise QuizTurnError(GENERIC_ERROR) from e
    timings.options_ms = _elapsed_ms(options_start)

    if image_generator is not None:
        await render_option_images(
            options=options,
            image_generator=image_generator,
            facts=story_facts,
            story_brief=story_brief,
            art_style=art_style,
            style_references=style_references,
            retry=retry,
            timings=timings,
        )

    timings.total_ms += _elapsed_ms(total_start)
    return QuizTurn(question=question, options=options, timings=timings)


async def run_turn(
    *,
    audio: bytes,
    mime_type: str,
    story_brief: str,
    facts: Any,
    transcriber: Transcriber,
    candidate_generator: CandidateGenerator,
    repairer: DistractorRepairer | None = None,
    image_generator: ImageGenerator | None = None,
    history: list[ChatTurn] | None = None,
    art_style: str = "",
    style_references: list[StyleReference] | None = None,
    rng: random.Random | None = None,
    retry: RetryPolicy | None = None,
) -> QuizTurn:
    """Execute one full turn, starting from the parent's recorded question."""
    retry = retry or RetryPolicy()
    timings = Timings()

    start = time.perf_counter()
    try:
        heard = await retry.call(lambda: transcriber(audio, mime_type, story_brief))
    except Exception as e:
        logger.exception("Transcription failed")
        raise QuizTurnError(GENERIC_ERROR) from e
    timings.transcribe_ms = _elapsed_ms(start)
    timings.total_ms = timings.transcribe_ms

    question = (heard or "").strip()
    if not question:
        raise QuestionNotHeardError(NOT_HEARD_ERROR)

    return await answer_question(
        question=question,
        story_brief=story_brief,
        facts=facts,
        candidate_generator=candidate_generator,
        repairer=repairer,
        image_generator=image_generator,
        history=history,
        art_style=art_style,
        style_references=style_references,
        rng=rng,
        retry=retry,
        timings=timings,
    )

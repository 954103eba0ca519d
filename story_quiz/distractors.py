"""Distractor selection, repair and fallback backfill.

A distractor must be plausible but clearly wrong. Its support level has to
stay below rejection_threshold(correct): max(60, correct - 8). Anything
scored closer to the correct answer could be accidentally true.

Selection keeps input order (first come, not best scored) and stops at
MAX_DISTRACTORS. When too few survive, the caller asks the repair service
once for more phrases (repair_distractors), and whatever is still missing is
backfilled from a small built-in pool (backfill_distractors).
"""

import logging
from collections.abc import Awaitable, Callable, Iterable

from story_quiz.lexical import (
    canonicalize,
    is_where_question,
    same_option,
    simplify_option_text,
)
from story_quiz.models import CandidateAnswer, StoryFacts
from story_quiz.scoring import compute_support_level

logger = logging.getLogger(__name__)

MAX_DISTRACTORS = 2
MIN_REJECT_LEVEL = 60
SUPPORT_MARGIN = 8
REPAIR_PHRASE_COUNT = 6

WHERE_FALLBACK_DISTRACTORS = (
    "In space",
    "In the desert",
    "On the moon",
    "In a castle",
    "At the zoo",
    "On a mountain",
)

GENERAL_FALLBACK_DISTRACTORS = (
    "Not in this book",
    "Maybe",
    "No idea",
    "Something else",
    "I'm not sure",
)


def rejection_threshold(correct_support: int) -> int:
    """Distractors scoring at or above this are too close to the answer."""
    return max(MIN_REJECT_LEVEL, correct_support - SUPPORT_MARGIN)


def fallback_pool(question: str) -> tuple[str, ...]:
    if is_where_question(question):
        return WHERE_FALLBACK_DISTRACTORS
    return GENERAL_FALLBACK_DISTRACTORS


def _collides(text: str, taken: Iterable[str]) -> bool:
    return any(same_option(text, other) for other in taken)


def select_distractors(
    raw: list[str],
    correct: CandidateAnswer,
    facts: StoryFacts,
    question: str,
    story_brief: str,
    limit: int = MAX_DISTRACTORS,
) -> list[CandidateAnswer]:
    """Pick up to *limit* wrong-but-plausible options from *raw*, in order."""
    threshold = rejection_threshold(correct.support_level)
    taken = [correct.text]
    selected: list[CandidateAnswer] = []

    for phrase in raw:
        if len(selected) >= limit:
            break
        if not isinstance(phrase, str):
            continue
        text = simplify_option_text(phrase, question)
        if not canonicalize(text) or _collides(text, taken):
            continue
        level = compute_support_level(text, "", facts, question, story_brief)
        if level >= threshold:
            logger.debug("distractor %r rejected: support=%d threshold=%d", text, level, threshold)
            continue
        taken.append(text)
        selected.append(CandidateAnswer(text=text, support_level=level))

    return selected


async def repair_distractors(
    raw: list[str],
    correct: CandidateAnswer,
    facts: StoryFacts,
    question: str,
    story_brief: str,
    regenerate: Callable[[], Awaitable[list[str]]],
) -> list[CandidateAnswer]:
    """Ask for more wrong answers once, then select again over the combined pool."""
    logger.info("too few distractors for %r, requesting repair", question)
    extra = await regenerate()
    logger.debug("repair returned %d phrases", len(extra))
    return select_distractors([*raw, *extra], correct, facts, question, story_brief)


def backfill_distractors(
    selected: list[CandidateAnswer],
    correct: CandidateAnswer,
    facts: StoryFacts,
    question: str,
    story_brief: str,
    limit: int = MAX_DISTRACTORS,
) -> list[CandidateAnswer]:
    """Top *selected* up to *limit* from the built-in pool for this question type."""
    out = list(selected[:limit])
    if len(out) >= limit:
        return out

    threshold = rejection_threshold(correct.support_level)
    taken = [correct.text, *(d.text for d in out)]
    for phrase in fallback_pool(question):
        if len(out) >= limit:
            break
        text = simplify_option_text(phrase, question)
        if _collides(text, taken):
            continue
        level = compute_support_level(text, "", facts, question, story_brief)
        if level >= threshold:
            continue
        taken.append(text)
        out.append(CandidateAnswer(text=text, support_level=level))

    if len(out) < limit:
        logger.warning("fallback pool exhausted for %r: %d distractors", question, len(out))
    return out

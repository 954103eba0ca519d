"""Final assembly of the three-option answer set.

Whatever happened upstream, assemble_options() returns exactly three options
with exactly one correct answer and no two options that read the same
(lexical.same_option). Order is shuffled with an injectable random source so
the correct answer's position carries no signal.
"""

import itertools
import logging
import random
from collections.abc import Iterator

from story_quiz.distractors import backfill_distractors, fallback_pool
from story_quiz.lexical import (
    NOT_IN_BOOK,
    is_where_question,
    same_option,
    simplify_option_text,
)
from story_quiz.models import CandidateAnswer, Option, StoryFacts
from story_quiz.scoring import compute_support_level

logger = logging.getLogger(__name__)

OPTION_COUNT = 3
NOT_IN_BOOK_SUPPORT = 20


def not_answerable_set(
    facts: StoryFacts, question: str, story_brief: str
) -> tuple[CandidateAnswer, list[CandidateAnswer]]:
    """Fixed answer set for questions the story cannot answer."""
    correct = CandidateAnswer(text=NOT_IN_BOOK, support_level=NOT_IN_BOOK_SUPPORT)
    return correct, backfill_distractors([], correct, facts, question, story_brief)


def fallback_correct(facts: StoryFacts, question: str, story_brief: str) -> CandidateAnswer:
    """Correct answer to use when the model proposed nothing usable.

    "Where" questions fall back to the story's setting; anything else to
    "Not in this book".
    """
    if is_where_question(question) and facts.setting:
        text = simplify_option_text(facts.setting, question)
        if text:
            level = compute_support_level(text, "", facts, question, story_brief)
            return CandidateAnswer(text=text, support_level=level)
    return CandidateAnswer(text=NOT_IN_BOOK, support_level=NOT_IN_BOOK_SUPPORT)


def _padding_phrases(question: str) -> Iterator[str]:
    yield from fallback_pool(question)
    for n in range(1, 10):
        yield f"Answer {n}"
    # bare numbers always run out of collisions eventually
    for n in itertools.count(10):
        yield str(n)


def assemble_options(
    correct: CandidateAnswer,
    distractors: list[CandidateAnswer],
    facts: StoryFacts,
    question: str,
    story_brief: str,
    rng: random.Random | None = None,
) -> list[Option]:
    """Build the final shuffled option list with ids opt-0..opt-2."""
    options = [Option(
        text=correct.text,
        is_correct=True,
        support_level=correct.support_level,
        evidence=correct.evidence or None,
    )]
    for d in distractors:
        if len(options) >= OPTION_COUNT:
            break
        if any(same_option(d.text, o.text) for o in options):
            continue
        options.append(Option(text=d.text, is_correct=False, support_level=d.support_level))

    if len(options) < OPTION_COUNT:
        logger.warning("padding answer set for %r with %d fallback options",
                       question, OPTION_COUNT - len(options))
    phrases = _padding_phrases(question)
    while len(options) < OPTION_COUNT:
        text = simplify_option_text(next(phrases), question)
        if any(same_option(text, o.text) for o in options):
            continue
        level = compute_support_level(text, "", facts, question, story_brief)
        options.append(Option(text=text, is_correct=False, support_level=level))

    (rng or random.Random()).shuffle(options)
    for i, option in enumerate(options):
        option.id = f"opt-{i}"
    return options

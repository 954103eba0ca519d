"""Support-level scoring for candidate answers.

A support level (0-100) estimates how well an answer phrase is backed by the
story facts and brief. The score is additive; every component is capped on
its own and the total is clamped:

  fact phrase match    +35  candidate canonically contains / is contained by
                            a character, place, object, event or the setting
  fact tokens          +8   per distinct shared token, at most 4 tokens
  brief tokens         +4   per distinct shared token, at most 4 tokens
  where: known place   +20  "where" question and candidate matches a place
  where: preposition   +6   "where" question and candidate starts in/on/at
  "Not in this book"   floor at 12

All functions here are pure.
"""

import logging

from story_quiz.lexical import (
    canonicalize,
    is_not_in_book,
    is_where_question,
    same_option,
    simplify_option_text,
    token_set,
)
from story_quiz.models import CandidateAnswer, CandidateText, StoryFacts

logger = logging.getLogger(__name__)

FACT_MATCH_POINTS = 35
FACT_TOKEN_POINTS = 8
BRIEF_TOKEN_POINTS = 4
MAX_SHARED_TOKENS = 4
WHERE_PLACE_POINTS = 20
WHERE_PREPOSITION_POINTS = 6
NOT_IN_BOOK_FLOOR = 12


def _fact_tokens(facts: StoryFacts) -> set[str]:
    return token_set(*facts.phrases())


def compute_support_level(
    candidate_text: str,
    evidence_text: str,
    facts: StoryFacts,
    question: str,
    story_brief: str,
) -> int:
    """Score how well *candidate_text* is grounded in the story. Returns 0..100."""
    score = 0
    candidate_text = candidate_text or ""

    if canonicalize(candidate_text) and any(
        same_option(phrase, candidate_text) for phrase in facts.phrases()
    ):
        score += FACT_MATCH_POINTS

    answer_tokens = token_set(candidate_text, evidence_text or "")
    shared_facts = len(answer_tokens & _fact_tokens(facts))
    score += min(shared_facts, MAX_SHARED_TOKENS) * FACT_TOKEN_POINTS

    shared_brief = len(answer_tokens & token_set(story_brief or ""))
    score += min(shared_brief, MAX_SHARED_TOKENS) * BRIEF_TOKEN_POINTS

    if is_where_question(question):
        known_places = [*facts.places, facts.setting]
        if canonicalize(candidate_text) and any(
            place and same_option(place, candidate_text) for place in known_places
        ):
            score += WHERE_PLACE_POINTS
        if candidate_text.strip().lower().startswith(("in ", "on ", "at ")):
            score += WHERE_PREPOSITION_POINTS

    if is_not_in_book(candidate_text):
        score = max(score, NOT_IN_BOOK_FLOOR)

    return max(0, min(100, score))


def rank_candidates(
    candidates: list[CandidateText],
    facts: StoryFacts,
    question: str,
    story_brief: str,
) -> list[CandidateAnswer]:
    """Simplify, deduplicate and score candidates, best first.

    Duplicates are judged by canonical text; the first occurrence wins.
    An empty result means there is no correct candidate.
    """
    seen: set[str] = set()
    scored: list[CandidateAnswer] = []
    for candidate in candidates:
        text = simplify_option_text(candidate.text, question)
        key = canonicalize(text)
        if not key or key in seen:
            continue
        seen.add(key)
        evidence = candidate.evidence.strip()
        level = compute_support_level(text, evidence, facts, question, story_brief)
        logger.debug("candidate %r support=%d", text, level)
        scored.append(CandidateAnswer(text=text, evidence=evidence, support_level=level))

    # sorted() is stable, so ties keep the model's order
    return sorted(scored, key=lambda c: c.support_level, reverse=True)

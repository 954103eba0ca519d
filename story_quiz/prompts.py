"""Handlebars prompt rendering for the text-generation stages."""

from collections.abc import Callable
from typing import Any

import pybars

from story_quiz.lexical import collapse_whitespace
from story_quiz.models import ChatTurn, StoryFacts

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

MAX_HISTORY_TURNS = 6
MAX_HISTORY_CHARS = 120


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


CANDIDATES_TEMPLATE = """\
You are helping a non-verbal child answer a question about a story they just read.
Story brief: {{{story_brief}}}
Setting: {{{setting}}}
{{#if characters}}Characters: {{{characters}}}
{{/if}}{{#if places}}Places: {{{places}}}
{{/if}}{{#if objects}}Objects: {{{objects}}}
{{/if}}{{#if events}}Events: {{{events}}}
{{/if}}{{#if history}}Conversation so far:
{{{history}}}
{{/if}}Parent asked: {{{question}}}

Propose short answers (at most 5 words each) a young child can pick from picture cards.
- candidate_correct: answers the story supports, best first, each with the story detail that supports it.
- distractor_candidates: plausible answers that are clearly wrong for this story.
- not_answerable: true only if the story does not answer the question.

Return JSON only, in this shape:
{
  "candidate_correct": [
    {"text": "<short answer>", "evidence": "<story detail>"}
  ],
  "distractor_candidates": ["<wrong answer>", "<wrong answer>", "<wrong answer>"],
  "not_answerable": false
}
"""

REPAIR_TEMPLATE = """\
A child answers questions about a story by picking one of three picture cards.
Story brief: {{{story_brief}}}
Setting: {{{setting}}}
{{#if characters}}Characters: {{{characters}}}
{{/if}}{{#if places}}Places: {{{places}}}
{{/if}}Question: {{{question}}}
Correct answer: {{{correct_answer}}}

Write {{count}} short wrong answers (at most 5 words each) for this question.
Each must be easy to picture, clearly wrong for this story and different from the correct answer.
Return a JSON array of strings only.
"""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def truncate_text(text: str, max_chars: int) -> str:
    value = collapse_whitespace(text)
    if len(value) <= max_chars:
        return value
    return value[:max(0, max_chars - 3)].rstrip() + "..."


def format_history(
    history: list[ChatTurn],
    max_turns: int = MAX_HISTORY_TURNS,
    max_chars: int = MAX_HISTORY_CHARS,
) -> str:
    """Last *max_turns* turns as "Parent: ..." / "Child: ..." lines."""
    recent = history[-max_turns:] if max_turns > 0 else []
    lines = []
    for turn in recent:
        speaker = "Parent" if turn.role == "parent" else "Child"
        lines.append(f"{speaker}: {truncate_text(turn.text, max_chars)}")
    return "\n".join(lines)


def _facts_context(facts: StoryFacts, story_brief: str) -> dict[str, Any]:
    return {
        "story_brief": collapse_whitespace(story_brief) or "(none)",
        "setting": facts.setting,
        "characters": ", ".join(facts.characters),
        "places": ", ".join(facts.places),
        "objects": ", ".join(facts.objects),
        "events": "; ".join(facts.events),
    }


def candidates_prompt(
    question: str,
    history: list[ChatTurn],
    story_brief: str,
    facts: StoryFacts,
    max_turns: int = MAX_HISTORY_TURNS,
    max_chars: int = MAX_HISTORY_CHARS,
) -> str:
    ctx = _facts_context(facts, story_brief)
    ctx["question"] = collapse_whitespace(question)
    ctx["history"] = format_history(history, max_turns, max_chars)
    return render_prompt(CANDIDATES_TEMPLATE, ctx)


def repair_prompt(
    question: str,
    story_brief: str,
    facts: StoryFacts,
    correct_answer: str,
    count: int,
) -> str:
    ctx = _facts_context(facts, story_brief)
    ctx["question"] = collapse_whitespace(question)
    ctx["correct_answer"] = correct_answer
    ctx["count"] = str(count)
    return render_prompt(REPAIR_TEMPLATE, ctx)

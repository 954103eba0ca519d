"""Render-mode classification for option illustrations.

Correct answers, and wrong answers that still belong to the book, are drawn
inside the story's world. Wrong answers with no footing in the story are
drawn as a plain real-world scene, so their picture does not hint that they
are right.
"""

from story_quiz.lexical import same_option
from story_quiz.models import (
    BLEND_WITH_STORY_WORLD,
    STANDALONE_OPTION_WORLD,
    Option,
    RenderMode,
    StoryFacts,
)

GROUNDED_SUPPORT_LEVEL = 55


def is_grounded(text: str, facts: StoryFacts) -> bool:
    return any(same_option(phrase, text) for phrase in facts.phrases())


def classify_render_mode(option: Option, facts: StoryFacts) -> RenderMode:
    if option.is_correct:
        return BLEND_WITH_STORY_WORLD
    if is_grounded(option.text, facts) or option.support_level >= GROUNDED_SUPPORT_LEVEL:
        return BLEND_WITH_STORY_WORLD
    return STANDALONE_OPTION_WORLD


def assign_render_modes(options: list[Option], facts: StoryFacts) -> list[Option]:
    for option in options:
        option.render_mode = classify_render_mode(option, facts)
    return options


def scene_context(option: Option, facts: StoryFacts, story_brief: str) -> str:
    """Story context handed to the illustrator for one option."""
    if option.render_mode == BLEND_WITH_STORY_WORLD:
        return story_brief
    motifs = [*facts.world_tags, *facts.places]
    if facts.setting:
        motifs.append(facts.setting)
    context = "A simple, generic real-world scene that shows only the answer."
    if motifs:
        context += " Do not include: " + ", ".join(motifs) + "."
    return context

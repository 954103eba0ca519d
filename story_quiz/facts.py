"""Story-fact normalisation.

The facts record arrives from an upstream extraction step in whatever shape
the model produced: fields may be missing, duplicated, camelCased or padded
with whitespace. normalize_facts() turns it into a StoryFacts where

  - every string is trimmed and whitespace-collapsed,
  - every list is free of case-insensitive duplicates, keeps first-seen order
    and is capped (see the *_CAP constants),
  - character catalog entries sharing a name are merged; a name seen as both
    "mentioned" and "illustrated" becomes "both",
  - setting is never empty (inferred from the story brief),
  - places and world_tags are seeded from the setting when absent.

Normalising an already-normalised record returns an equal record.
"""

import re
from typing import Any

from story_quiz.lexical import collapse_whitespace, strip_leading_preposition
from story_quiz.models import CharacterEntry, StoryFacts

CHARACTERS_CAP = 20
CATALOG_CAP = 20
PLACES_CAP = 12
OBJECTS_CAP = 14
EVENTS_CAP = 10
WORLD_TAGS_CAP = 8

DEFAULT_SETTING = "In the story world"

# Checked in order; the first rule with a keyword in the brief wins.
_SETTING_RULES: list[tuple[tuple[str, ...], str]] = [
    (("ocean", "sea", "underwater", "reef", "shark", "whale", "fish"), "In the ocean"),
    (("beach", "shore", "coast"), "On the beach"),
    (("forest", "jungle", "woods", "tree"), "In the forest"),
    (("home", "house", "bedroom", "kitchen"), "At home"),
    (("school", "classroom"), "At school"),
    (("farm", "barn"), "On a farm"),
    (("city", "town", "street"), "In the city"),
    (("cave",), "In a cave"),
]

_WORLD_TAG_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("ocean", ("ocean", "sea", "underwater", "reef", "shark", "whale", "fish", "coral")),
    ("forest", ("forest", "jungle", "woods", "tree")),
    ("school", ("school", "classroom", "teacher")),
    ("home", ("home", "house", "bedroom", "kitchen")),
    ("playground", ("playground", "park", "swing", "slide", "sandbox")),
    ("beach", ("beach", "shore", "coast", "sand")),
    ("city", ("city", "town", "street")),
]

_SOURCES = ("mentioned", "illustrated", "both")


def _keyword_pattern(words: tuple[str, ...]) -> re.Pattern[str]:
    # Whole words only, optional plural: "trees" matches, "street" does not.
    return re.compile(r"\b(?:%s)(?:s|es)?\b" % "|".join(words))


_SETTING_PATTERNS = [(_keyword_pattern(words), phrase) for words, phrase in _SETTING_RULES]
_WORLD_TAG_PATTERNS = [(tag, _keyword_pattern(words)) for tag, words in _WORLD_TAG_RULES]


def infer_setting(story_brief: str) -> str:
    """Best-guess location phrase for a story, e.g. "On the beach"."""
    text = (story_brief or "").lower()
    for pattern, phrase in _SETTING_PATTERNS:
        if pattern.search(text):
            return phrase
    return DEFAULT_SETTING


def derive_world_tags(setting: str, places: list[str], events: list[str]) -> list[str]:
    """Short lower-case tags describing the story world, in rule order."""
    text = " ".join([setting, *places, *events]).lower()
    return [tag for tag, pattern in _WORLD_TAG_PATTERNS if pattern.search(text)][:WORLD_TAGS_CAP]


def _field(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _clean_list(values: Any, cap: int, lower: bool = False) -> list[str]:
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)):
        return []
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        text = collapse_whitespace(value)
        if lower:
            text = text.lower()
        key = text.lower()
        if not text or key in seen:
            continue
        seen.add(key)
        out.append(text)
        if len(out) >= cap:
            break
    return out


def _merge_catalog(values: Any) -> list[CharacterEntry]:
    if not isinstance(values, (list, tuple)):
        return []
    merged: dict[str, CharacterEntry] = {}
    for value in values:
        if isinstance(value, CharacterEntry):
            name, source = value.name, value.source
        elif isinstance(value, dict):
            name, source = value.get("name"), value.get("source")
        elif isinstance(value, str):
            name, source = value, None
        else:
            continue
        if not isinstance(name, str):
            continue
        name = collapse_whitespace(name)
        if not name:
            continue
        source = str(source or "").strip().lower()
        if source not in _SOURCES:
            source = "mentioned"

        key = name.lower()
        existing = merged.get(key)
        if existing is None:
            if len(merged) < CATALOG_CAP:
                merged[key] = CharacterEntry(name=name, source=source)
        elif existing.source != source:
            existing.source = "both"
    return list(merged.values())


def normalize_facts(raw: Any, story_brief: str = "") -> StoryFacts:
    """Build a complete StoryFacts from a loosely-shaped record. Never raises."""
    if isinstance(raw, StoryFacts):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        raw = {}

    catalog = _merge_catalog(_field(raw, "character_catalog", "characterCatalog"))
    characters = _clean_list(_field(raw, "characters"), CHARACTERS_CAP)
    if not characters:
        characters = [entry.name for entry in catalog][:CHARACTERS_CAP]

    setting_value = _field(raw, "setting")
    setting = collapse_whitespace(setting_value) if isinstance(setting_value, str) else ""
    if not setting:
        setting = infer_setting(story_brief)

    places = _clean_list(_field(raw, "places"), PLACES_CAP)
    if not places:
        seed = strip_leading_preposition(setting)
        places = [seed] if seed else []

    objects = _clean_list(_field(raw, "objects"), OBJECTS_CAP)
    events = _clean_list(_field(raw, "events"), EVENTS_CAP)

    world_tags = _clean_list(_field(raw, "world_tags", "worldTags"), WORLD_TAGS_CAP, lower=True)
    if not world_tags:
        world_tags = derive_world_tags(setting, places, events)

    return StoryFacts(
        characters=characters,
        character_catalog=catalog,
        places=places,
        objects=objects,
        events=events,
        setting=setting,
        world_tags=world_tags,
    )

"""Tests for story_quiz.facts."""

import pytest

from story_quiz.facts import (
    DEFAULT_SETTING,
    OBJECTS_CAP,
    derive_world_tags,
    infer_setting,
    normalize_facts,
)
from story_quiz.models import CharacterEntry, StoryFacts

OCEAN_BRIEF = "Finn the little fish swims near the coral reef with his friends."


# ── infer_setting ───────────────────────────────────────────


@pytest.mark.parametrize("brief, expected", [
    (OCEAN_BRIEF, "In the ocean"),
    ("Two friends build sandcastles by the shore.", "On the beach"),
    ("A bear gets lost among the tall trees.", "In the forest"),
    ("Mia cleans her bedroom.", "At home"),
    ("A long season at school.", "At school"),
    ("The cow sleeps in the barn.", "On a farm"),
    ("They walked down the busy street.", "In the city"),
    ("A bat lives in a dark cave.", "In a cave"),
    ("", DEFAULT_SETTING),
    ("A robot learns to dance.", DEFAULT_SETTING),
])
def test_infer_setting(brief, expected):
    assert infer_setting(brief) == expected


def test_infer_setting_first_rule_wins():
    assert infer_setting("A shark visits the beach house") == "In the ocean"


# ── derive_world_tags ───────────────────────────────────────


def test_derive_world_tags_rule_order():
    tags = derive_world_tags("In the park", [], ["Sam climbs a tree"])
    assert tags == ["forest", "playground"]


def test_derive_world_tags_none():
    assert derive_world_tags("In space", ["the moon"], []) == []


# ── normalize_facts ─────────────────────────────────────────


def test_normalize_none_fills_defaults():
    facts = normalize_facts(None)
    assert facts.setting == DEFAULT_SETTING
    assert facts.places == ["the story world"]
    assert facts.characters == []
    assert facts.character_catalog == []
    assert facts.world_tags == []


def test_normalize_infers_setting_places_and_tags_from_brief():
    facts = normalize_facts({}, OCEAN_BRIEF)
    assert facts.setting == "In the ocean"
    assert facts.places == ["the ocean"]
    assert facts.world_tags == ["ocean"]


def test_normalize_keeps_supplied_setting():
    facts = normalize_facts({"setting": "  Under   the bed "}, OCEAN_BRIEF)
    assert facts.setting == "Under the bed"


def test_normalize_merges_character_catalog():
    facts = normalize_facts({
        "character_catalog": [
            {"name": "Finn", "source": "mentioned"},
            {"name": "finn ", "source": "illustrated"},
            {"name": "Mo", "source": "bogus"},
            "Lily",
            {"name": "Lily", "source": "both"},
            {"source": "illustrated"},
        ],
    })
    assert facts.character_catalog == [
        CharacterEntry(name="Finn", source="both"),
        CharacterEntry(name="Mo", source="mentioned"),
        CharacterEntry(name="Lily", source="both"),
    ]
    assert facts.characters == ["Finn", "Mo", "Lily"]


def test_normalize_both_stays_both():
    facts = normalize_facts({"characterCatalog": [
        {"name": "Finn", "source": "both"},
        {"name": "Finn", "source": "mentioned"},
    ]})
    assert facts.character_catalog[0].source == "both"


def test_normalize_characters_not_backfilled_when_present():
    facts = normalize_facts({
        "characters": ["Sam"],
        "character_catalog": [{"name": "Finn", "source": "illustrated"}],
    })
    assert facts.characters == ["Sam"]


def test_normalize_dedupes_case_insensitively_in_first_seen_order():
    facts = normalize_facts({"places": ["Ocean  reef", "ocean reef", " Sandy beach ", "OCEAN REEF"]})
    assert facts.places == ["Ocean reef", "Sandy beach"]


def test_normalize_caps_lists():
    facts = normalize_facts({"objects": [f"thing {i}" for i in range(30)]})
    assert len(facts.objects) == OBJECTS_CAP
    assert facts.objects[0] == "thing 0"


def test_normalize_ignores_non_strings():
    facts = normalize_facts({"characters": ["Finn", 3, None, "", "  "], "events": "Finn wins"})
    assert facts.characters == ["Finn"]
    assert facts.events == ["Finn wins"]


def test_normalize_lowercases_supplied_world_tags():
    facts = normalize_facts({"worldTags": ["Ocean", " FOREST ", "ocean"]})
    assert facts.world_tags == ["ocean", "forest"]


def test_normalize_accepts_story_facts():
    original = StoryFacts(characters=["Finn"], setting="In the ocean")
    facts = normalize_facts(original)
    assert facts.characters == ["Finn"]
    assert facts.places == ["the ocean"]


def test_normalize_garbage_input():
    facts = normalize_facts(["not", "a", "dict"], OCEAN_BRIEF)
    assert facts.setting == "In the ocean"


@pytest.mark.parametrize("raw, brief", [
    (None, ""),
    ({}, OCEAN_BRIEF),
    ({"places": ["ocean reef"], "worldTags": ["ocean"]}, OCEAN_BRIEF),
    ({"character_catalog": [{"name": "Finn", "source": "mentioned"},
                            {"name": "FINN", "source": "illustrated"}],
      "events": ["Finn  finds a shell", "finn finds a shell"]}, "A day in the park"),
    ({"setting": "", "objects": [f"o{i}" for i in range(40)]}, "A robot dances"),
])
def test_normalize_is_idempotent(raw, brief):
    once = normalize_facts(raw, brief)
    assert normalize_facts(once, brief) == once

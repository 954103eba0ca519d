"""Core domain models.

Every pipeline stage operates on these types. They live for one question
only: nothing here is persisted by the engine itself.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

CharacterSource = Literal["mentioned", "illustrated", "both"]

RenderMode = Literal[
    "blend_with_story_world",
    "standalone_option_world",
]

BLEND_WITH_STORY_WORLD: RenderMode = "blend_with_story_world"
STANDALONE_OPTION_WORLD: RenderMode = "standalone_option_world"


class CharacterEntry(BaseModel):
    """A character and where the book shows it (text, pictures, or both)."""

    name: str
    source: CharacterSource = "mentioned"


class StoryFacts(BaseModel):
    """Bounded, deduplicated facts about one story. See facts.normalize_facts."""

    characters: list[str] = Field(default_factory=list)
    character_catalog: list[CharacterEntry] = Field(default_factory=list)
    places: list[str] = Field(default_factory=list)
    objects: list[str] = Field(default_factory=list)
    events: list[str] = Field(default_factory=list)
    setting: str = ""
    world_tags: list[str] = Field(default_factory=list)

    def phrases(self) -> list[str]:
        """All fact phrases a candidate answer can be grounded in."""
        out = [*self.characters, *self.places, *self.objects, *self.events]
        if self.setting:
            out.append(self.setting)
        return out


class CandidateText(BaseModel):
    """A raw correct-answer proposal from the candidate-generation service."""

    text: str
    evidence: str = ""


class CandidatePayload(BaseModel):
    """Schema of the candidate-generation service's output."""

    candidate_correct: list[CandidateText] = Field(default_factory=list)
    distractor_candidates: list[str] = Field(default_factory=list)
    not_answerable: bool = False


class CandidateAnswer(BaseModel):
    """A scored, simplified candidate answer."""

    text: str
    evidence: str = ""
    support_level: int = Field(default=0, ge=0, le=100)


class Option(BaseModel):
    """One of the three answer cards shown to the child."""

    id: str = ""
    text: str
    is_correct: bool
    support_level: int = Field(default=0, ge=0, le=100)
    render_mode: RenderMode = BLEND_WITH_STORY_WORLD
    evidence: str | None = None
    image_url: str | None = None  # data URL, set after rendering


class ChatTurn(BaseModel):
    role: Literal["parent", "child"]
    text: str


class StyleReference(BaseModel):
    """A base64-encoded image that sets the illustration style."""

    mime_type: str
    data: str


class Timings(BaseModel):
    """Wall-clock durations in milliseconds for one turn."""

    transcribe_ms: int = 0
    options_ms: int = 0
    repair_ms: int = 0
    image_ms_by_id: dict[str, int] = Field(default_factory=dict)
    full_cards_ms: int = 0
    total_ms: int = 0


class QuizTurn(BaseModel):
    """What a caller receives: the question and exactly three options."""

    question: str
    options: list[Option]
    timings: Timings = Field(default_factory=Timings)

"""Pydantic request models for API endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from story_quiz.models import ChatTurn, StyleReference


class StoryContextBody(BaseModel):
    story_brief: str
    facts: dict[str, Any] | None = None
    history: list[ChatTurn] = Field(default_factory=list)
    art_style: str = ""
    style_references: list[StyleReference] = Field(default_factory=list)


class QuizBody(StoryContextBody):
    question: str


class TurnBody(StoryContextBody):
    audio_base64: str
    mime_type: str


class SpeechBody(BaseModel):
    text: str

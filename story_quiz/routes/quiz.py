"""Quiz, turn, speech and health endpoints."""

import base64
import binascii

from fastapi import APIRouter, HTTPException, Request

from story_quiz.models import QuizTurn
from story_quiz.pipeline import (
    QuestionNotHeardError,
    QuizTurnError,
    answer_question,
    run_turn,
)
from story_quiz.services import QuizServices
from story_quiz.speech import SpeechCache

from .models import QuizBody, SpeechBody, TurnBody

router = APIRouter()


def _services(request: Request) -> QuizServices:
    return request.app.state.services


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.post("/quiz", response_model=QuizTurn)
async def quiz(body: QuizBody, request: Request):
    """Build three answer options for a typed question."""
    if not body.question.strip():
        raise HTTPException(400, "question is required")
    services = _services(request)
    try:
        return await answer_question(
            question=body.question.strip(),
            story_brief=body.story_brief,
            facts=body.facts,
            candidate_generator=services.candidate_generator,
            repairer=services.repairer,
            image_generator=services.image_generator,
            history=body.history,
            art_style=body.art_style,
            style_references=body.style_references,
            retry=services.retry,
        )
    except QuizTurnError as e:
        raise HTTPException(502, str(e))


@router.post("/turn", response_model=QuizTurn)
async def turn(body: TurnBody, request: Request):
    """Transcribe a recorded question, then build three answer options."""
    services = _services(request)
    if services.transcriber is None:
        raise HTTPException(503, "Transcription is not configured")
    try:
        audio = base64.b64decode(body.audio_base64, validate=True)
    except binascii.Error:
        raise HTTPException(400, "audio_base64 is not valid base64")
    try:
        return await run_turn(
            audio=audio,
            mime_type=body.mime_type,
            story_brief=body.story_brief,
            facts=body.facts,
            transcriber=services.transcriber,
            candidate_generator=services.candidate_generator,
            repairer=services.repairer,
            image_generator=services.image_generator,
            history=body.history,
            art_style=body.art_style,
            style_references=body.style_references,
            retry=services.retry,
        )
    except QuestionNotHeardError as e:
        raise HTTPException(422, str(e))
    except QuizTurnError as e:
        raise HTTPException(502, str(e))


@router.post("/tts")
async def tts(body: SpeechBody, request: Request):
    """Speak an option's text. Repeated texts are served from the cache."""
    cache: SpeechCache | None = request.app.state.speech_cache
    if cache is None:
        raise HTTPException(503, "Speech synthesis is not configured")
    if not body.text.strip():
        raise HTTPException(400, "text is required")
    audio = await cache.get(body.text)
    if not audio:
        raise HTTPException(502, "Speech synthesis failed")
    return {
        "audio_base64": base64.b64encode(audio).decode("ascii"),
        "mime_type": _services(request).speech_mime_type,
    }

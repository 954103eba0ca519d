"""Tests for story_quiz.services - output parsing and the LLM-backed text services."""

import base64
from unittest.mock import AsyncMock

import pytest

from story_quiz.llm import LLMError
from story_quiz.models import ChatTurn, StoryFacts
from story_quiz.retry import RetryPolicy
from story_quiz.services import (
    LLMCandidateGenerator,
    LLMDistractorRepairer,
    QuizServices,
    image_data_url,
    image_mime_type,
    parse_candidate_payload,
    parse_phrase_list,
)


# ── parse_candidate_payload ──────────────────────────────────


def test_parse_plain_json():
    payload = parse_candidate_payload(
        '{"candidate_correct": [{"text": "the reef", "evidence": "Finn swims at the reef"}],'
        ' "distractor_candidates": ["space", "desert"], "not_answerable": false}'
    )
    assert payload.candidate_correct[0].text == "the reef"
    assert payload.candidate_correct[0].evidence == "Finn swims at the reef"
    assert payload.distractor_candidates == ["space", "desert"]
    assert payload.not_answerable is False


def test_parse_markdown_fenced_json():
    text = '```json\n{"candidate_correct": [{"text": "Finn"}], "distractor_candidates": []}\n```'
    payload = parse_candidate_payload(text)
    assert [c.text for c in payload.candidate_correct] == ["Finn"]


def test_parse_json_embedded_in_prose():
    text = 'Sure! Here you go: {"not_answerable": true} Hope that helps.'
    assert parse_candidate_payload(text).not_answerable is True


def test_parse_camel_case_keys_and_string_candidates():
    text = '{"candidateCorrect": ["the reef"], "distractorCandidates": ["space", 3, null]}'
    payload = parse_candidate_payload(text)
    assert payload.candidate_correct[0].text == "the reef"
    assert payload.candidate_correct[0].evidence == ""
    assert payload.distractor_candidates == ["space"]


@pytest.mark.parametrize("text", [
    "",
    "I don't know",
    "[1, 2, 3]",
    '{"candidate_correct": "the reef"}',
    '{"candidate_correct": [{"evidence": "no text"}]}',
])
def test_parse_malformed_output_gives_empty_payload(text):
    payload = parse_candidate_payload(text)
    assert payload.candidate_correct == []
    assert payload.distractor_candidates == []
    assert payload.not_answerable is False


def test_parse_null_evidence_keeps_candidate():
    payload = parse_candidate_payload(
        '{"candidate_correct": [{"text": "In the ocean reef", "evidence": null}],'
        ' "distractor_candidates": ["In space", "In the desert"]}'
    )
    assert [c.text for c in payload.candidate_correct] == ["In the ocean reef"]
    assert payload.candidate_correct[0].evidence == ""
    assert payload.distractor_candidates == ["In space", "In the desert"]


def test_parse_null_distractors_keeps_candidates():
    payload = parse_candidate_payload(
        '{"candidate_correct": [{"text": "In the ocean reef", "evidence": "Finn swims at the reef"}],'
        ' "distractor_candidates": null, "not_answerable": null}'
    )
    assert [c.text for c in payload.candidate_correct] == ["In the ocean reef"]
    assert payload.distractor_candidates == []
    assert payload.not_answerable is False


def test_parse_drops_only_unusable_candidates(caplog):
    payload = parse_candidate_payload(
        '{"candidate_correct": [{"text": null}, 7, {"evidence": "x"}, {"text": "Finn", "evidence": 3}]}'
    )
    assert [c.text for c in payload.candidate_correct] == ["Finn"]
    assert payload.candidate_correct[0].evidence == ""
    assert "Dropped 3 unusable candidate(s)" in caplog.text


# ── parse_phrase_list ────────────────────────────────────────


def test_parse_phrase_list_array():
    assert parse_phrase_list('["In space", " On the moon ", "", 4]') == ["In space", "On the moon"]


def test_parse_phrase_list_wrapped_in_object():
    assert parse_phrase_list('{"distractors": ["In space"]}') == ["In space"]


def test_parse_phrase_list_in_prose():
    assert parse_phrase_list('Here: ["In space", "At the zoo"]') == ["In space", "At the zoo"]


def test_parse_phrase_list_garbage():
    assert parse_phrase_list("no json here") == []
    assert parse_phrase_list('{"other": 1}') == []


# ── image_data_url ───────────────────────────────────────────


def test_image_data_url():
    url = image_data_url(b"\x89PNG")
    assert url.startswith("data:image/png;base64,")
    assert base64.b64decode(url.split(",", 1)[1]) == b"\x89PNG"
    assert image_data_url(b"x", "image/jpeg").startswith("data:image/jpeg;base64,")


@pytest.mark.parametrize("data, expected", [
    (b"\x89PNG\r\n\x1a\n....", "image/png"),
    (b"\xff\xd8\xff\xe0....", "image/jpeg"),
    (b"GIF89a....", "image/gif"),
    (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
    (b"unknown", "image/png"),
])
def test_image_mime_type_sniffed(data, expected):
    assert image_mime_type(data) == expected
    assert image_data_url(data).startswith(f"data:{expected};base64,")


# ── LLMCandidateGenerator ────────────────────────────────────


async def test_candidate_generator_calls_candidates_stage():
    llm = AsyncMock(return_value='{"candidate_correct": [{"text": "the reef"}]}')
    generator = LLMCandidateGenerator(llm)
    history = [ChatTurn(role="parent", text="Who is Finn?")]
    payload = await generator("Where does Finn swim?", history, "Finn swims.", StoryFacts(setting="In the ocean"))

    assert payload.candidate_correct[0].text == "the reef"
    stage, prompt = llm.call_args[0]
    assert stage == "candidates"
    assert "Parent asked: Where does Finn swim?" in prompt
    assert "Parent: Who is Finn?" in prompt


async def test_candidate_generator_respects_history_limit():
    llm = AsyncMock(return_value="{}")
    generator = LLMCandidateGenerator(llm, max_history_turns=1)
    history = [ChatTurn(role="parent", text="first"), ChatTurn(role="child", text="second")]
    await generator("Who?", history, "", StoryFacts())
    prompt = llm.call_args[0][1]
    assert "Child: second" in prompt
    assert "Parent: first" not in prompt


async def test_candidate_generator_propagates_llm_errors():
    llm = AsyncMock(side_effect=LLMError("LLM backend returned HTTP 429"))
    generator = LLMCandidateGenerator(llm)
    with pytest.raises(LLMError):
        await generator("Who?", [], "", StoryFacts())


# ── LLMDistractorRepairer ────────────────────────────────────


async def test_repairer_calls_repair_stage():
    llm = AsyncMock(return_value='["In space", "On the moon"]')
    repairer = LLMDistractorRepairer(llm, count=4)
    phrases = await repairer("Where does Finn swim?", "Finn swims.", StoryFacts(), "In the ocean reef")

    assert phrases == ["In space", "On the moon"]
    stage, prompt = llm.call_args[0]
    assert stage == "distractor_repair"
    assert "Write 4 short wrong answers" in prompt
    assert "Correct answer: In the ocean reef" in prompt


# ── QuizServices ─────────────────────────────────────────────


def test_quiz_services_defaults():
    services = QuizServices(candidate_generator=AsyncMock())
    assert services.repairer is None
    assert services.transcriber is None
    assert services.image_generator is None
    assert services.speech is None
    assert isinstance(services.retry, RetryPolicy)

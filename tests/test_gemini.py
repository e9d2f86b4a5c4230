import asyncio
import json
import logging

import httpx
import pytest

from plant_identifier.errors import AllModelsExhausted, ModelNotFound, RetryableUpstreamFailure
from plant_identifier.services.gemini import GeminiClient, extract_candidate_text

from conftest import ScriptedGemini

ALOE = '{"commonName": "Aloe"}'


def _client(settings, clock, upstream):
    return GeminiClient(settings, transport=upstream.transport(), sleep=clock.sleep, clock=clock)


def _generate(client):
    return asyncio.run(client.generate("identify", "aGVsbG8=", "image/png"))


def test_first_model_success_makes_one_call(settings, clock):
    upstream = ScriptedGemini({"model-a": [ALOE]})
    result = _generate(_client(settings, clock, upstream))

    assert result.text == ALOE
    assert result.model_used == "model-a"
    assert result.attempts == 1
    assert upstream.calls == ["model-a"]
    assert clock.delays == []


def test_not_found_advances_without_backoff(settings, clock):
    upstream = ScriptedGemini({"model-a": [404], "model-b": [404], "model-c": [ALOE]})
    result = _generate(_client(settings, clock, upstream))

    assert upstream.calls == ["model-a", "model-b", "model-c"]
    assert result.model_used == "model-c"
    assert clock.delays == []


def test_overload_retries_same_model_with_doubling_delays(settings, clock):
    upstream = ScriptedGemini({"model-a": [503, 503, 503, 503], "model-b": [ALOE]})
    result = _generate(_client(settings, clock, upstream))

    assert upstream.calls == ["model-a"] * 4 + ["model-b"]
    assert clock.delays == [1.0, 2.0, 4.0, 0.5]
    assert result.model_used == "model-b"
    assert result.attempts == 5


def test_rate_limit_recovers_on_same_model(settings, clock):
    upstream = ScriptedGemini({"model-a": [429, ALOE]})
    result = _generate(_client(settings, clock, upstream))

    assert upstream.calls == ["model-a", "model-a"]
    assert clock.delays == [1.0]
    assert result.model_used == "model-a"


def test_generic_error_waits_then_advances(settings, clock):
    upstream = ScriptedGemini({"model-a": [500], "model-b": [400], "model-c": [ALOE]})
    result = _generate(_client(settings, clock, upstream))

    assert upstream.calls == ["model-a", "model-b", "model-c"]
    assert clock.delays == [0.5, 0.5]
    assert result.model_used == "model-c"


def test_transport_error_is_treated_as_generic_failure(settings, clock):
    upstream = ScriptedGemini({"model-a": [httpx.ConnectError("refused")], "model-b": [ALOE]})
    result = _generate(_client(settings, clock, upstream))

    assert result.model_used == "model-b"
    assert clock.delays == [0.5]


def test_all_models_overloaded_exhausts(settings, clock):
    models = ["model-a", "model-b", "model-c", "model-d"]
    upstream = ScriptedGemini({m: [503] * 4 for m in models})

    with pytest.raises(AllModelsExhausted) as excinfo:
        _generate(_client(settings, clock, upstream))

    assert excinfo.value.attempts == 16
    assert isinstance(excinfo.value.last_error, RetryableUpstreamFailure)
    assert upstream.calls == [m for m in models for _ in range(4)]
    # no fallback delay after the last model
    assert clock.delays == [1.0, 2.0, 4.0, 0.5] * 3 + [1.0, 2.0, 4.0]


def test_last_error_is_kept_when_every_model_is_missing(settings, clock):
    upstream = ScriptedGemini({m: [404] for m in ["model-a", "model-b", "model-c", "model-d"]})

    with pytest.raises(AllModelsExhausted) as excinfo:
        _generate(_client(settings, clock, upstream))

    assert isinstance(excinfo.value.last_error, ModelNotFound)
    assert "model-d" in str(excinfo.value)


def test_backoff_past_the_budget_moves_to_next_model(settings, clock):
    settings = settings.model_copy(update={"time_budget_seconds": 5.0})
    upstream = ScriptedGemini({"model-a": [503] * 3, "model-b": [ALOE]})

    result = _generate(_client(settings, clock, upstream))

    # 1s + 2s slept, the 4s backoff would overrun the 5s budget
    assert clock.delays == [1.0, 2.0]
    assert upstream.calls == ["model-a"] * 3 + ["model-b"]
    assert result.model_used == "model-b"


def test_spent_budget_stops_all_attempts(settings, clock):
    settings = settings.model_copy(update={"time_budget_seconds": 3.0})
    upstream = ScriptedGemini({"model-a": [503] * 2})

    with pytest.raises(AllModelsExhausted) as excinfo:
        _generate(_client(settings, clock, upstream))

    assert clock.delays == [1.0, 2.0]
    assert upstream.calls == ["model-a"] * 2
    assert "budget" in str(excinfo.value)


def test_budget_cut_on_every_model_is_reported(settings, clock):
    settings = settings.model_copy(update={"time_budget_seconds": 1.5, "fallback_models": ["model-b"]})
    upstream = ScriptedGemini({"model-a": [503, 503], "model-b": [503]})

    with pytest.raises(AllModelsExhausted) as excinfo:
        _generate(_client(settings, clock, upstream))

    assert clock.delays == [1.0]
    assert upstream.calls == ["model-a", "model-a", "model-b"]
    assert "budget" in str(excinfo.value)


def test_request_carries_prompt_image_and_generation_config(settings, clock):
    upstream = ScriptedGemini({"model-a": [ALOE]})
    _generate(_client(settings, clock, upstream))

    request = upstream.requests[0]
    assert request.headers["x-goog-api-key"] == "test-key"
    assert "key" not in request.url.params
    assert request.url.path.endswith("/model-a:generateContent")
    body = json.loads(request.content)
    parts = body["contents"][0]["parts"]
    assert parts[0] == {"text": "identify"}
    assert parts[1] == {"inlineData": {"mimeType": "image/png", "data": "aGVsbG8="}}
    assert body["generationConfig"]["temperature"] == settings.temperature
    assert body["generationConfig"]["maxOutputTokens"] == 1500
    assert len(body["safetySettings"]) == 4


def test_response_without_candidates_yields_empty_object(settings, clock):
    upstream = ScriptedGemini({"model-a": [{"promptFeedback": {"blockReason": "SAFETY"}}]})
    result = _generate(_client(settings, clock, upstream))
    assert result.text == "{}"


def test_extract_candidate_text_joins_parts():
    body = {"candidates": [{"content": {"parts": [{"text": '{"commonName": '}, {"text": '"Fern"}'}]}}]}
    assert extract_candidate_text(body) == '{"commonName": "Fern"}'
    assert extract_candidate_text({"candidates": [{"content": {}}]}) == "{}"


def test_duplicate_models_are_tried_once(settings, clock):
    settings = settings.model_copy(update={"fallback_models": ["model-a", "model-b"]})
    upstream = ScriptedGemini({"model-a": [404], "model-b": [ALOE]})
    result = _generate(_client(settings, clock, upstream))

    assert upstream.calls == ["model-a", "model-b"]
    assert result.model_used == "model-b"


def test_api_key_never_reaches_the_logs(settings, clock, caplog):
    caplog.set_level(logging.DEBUG)
    caplog.set_level(logging.DEBUG, logger="httpx")
    settings = settings.model_copy(update={"gemini_api_key": "secret-gemini-key"})
    upstream = ScriptedGemini({"model-a": [503, 500], "model-b": [ALOE]})

    _generate(_client(settings, clock, upstream))

    assert upstream.requests[0].headers["x-goog-api-key"] == "secret-gemini-key"
    assert caplog.records
    assert not [r for r in caplog.records if "secret-gemini-key" in r.getMessage()]

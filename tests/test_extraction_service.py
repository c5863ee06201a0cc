"""
Tests for the Gemini extraction service.
Uses a scripted fake client: no network, no real sleeping.
"""

from typing import List

import httpx
import pytest
from google.genai import types

from estimator.core.config import settings
from estimator.services.extraction_service import (
    DEFAULT_SOURCE_TITLE,
    OFFLINE_SOURCE,
    ExtractionError,
    ExtractionErrorKind,
    ExtractionService,
    classify_error,
    grounding_sources,
    parse_json_payload,
)
from fakes import (
    PRICED,
    FakeGenaiClient,
    api_error,
    grounded_response,
    model_not_found,
    model_response,
    offline_response,
    rate_limited,
    recognized_response,
)


def test_extract_from_text_grounded(extraction_service: ExtractionService, fake_genai: FakeGenaiClient) -> None:
    fake_genai.script(recognized_response(), grounded_response())

    result = extraction_service.extract_from_text("2 pcs 3/4 PVC pipe\n3 rolls 2.0mm wire")

    assert result.mode == "grounded"
    assert [item.name for item in result.items] == ["PVC pipe", "Wire"]
    assert result.items[1].market_price == 1450
    assert result.items[1].source_url == "https://example.com/wire"
    assert [source.title for source in result.sources] == ["Hardware Mart", "Cable Co"]

    recognition, pricing = fake_genai.calls
    assert recognition["config"].response_mime_type == "application/json"
    assert pricing["config"].tools
    assert "PVC pipe" in pricing["contents"]


def test_extract_from_image_sends_image_part(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient
) -> None:
    fake_genai.script(recognized_response(), grounded_response())

    result = extraction_service.extract_from_image(b"\xff\xd8\xff\xe0fake-jpeg", "image/jpeg")

    assert len(result.items) == 2
    part = fake_genai.calls[0]["contents"][0]
    assert isinstance(part, types.Part)
    assert part.inline_data.mime_type == "image/jpeg"


def test_empty_input_is_rejected_before_any_call(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient
) -> None:
    with pytest.raises(ValueError):
        extraction_service.extract_from_text("   ")
    with pytest.raises(ValueError):
        extraction_service.extract_from_image(b"")

    assert fake_genai.calls == []


def test_rate_limit_twice_then_success(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient, sleeps: List[float]
) -> None:
    """Two 429s are absorbed by the retry policy: 2s then 4s."""
    fake_genai.script(rate_limited(), rate_limited(), recognized_response(), grounded_response())

    result = extraction_service.extract_from_text("5 outlets")

    assert len(result.items) == 2
    assert result.mode == "grounded"
    assert sleeps == [2.0, 4.0]


def test_rate_limit_exhausts_attempts(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient, sleeps: List[float]
) -> None:
    fake_genai.script(rate_limited(), rate_limited(), rate_limited())

    with pytest.raises(ExtractionError) as exc_info:
        extraction_service.extract_from_text("5 outlets")

    assert exc_info.value.kind == ExtractionErrorKind.RATE_LIMITED
    assert "rate limit" in exc_info.value.user_message
    assert len(fake_genai.calls) == 3
    assert sleeps == [2.0, 4.0]


def test_model_not_found_is_not_retried(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient, sleeps: List[float]
) -> None:
    fake_genai.script(model_not_found())

    with pytest.raises(ExtractionError) as exc_info:
        extraction_service.extract_from_text("5 outlets")

    assert exc_info.value.kind == ExtractionErrorKind.MODEL_NOT_FOUND
    assert "model was not found" in exc_info.value.user_message
    assert len(fake_genai.calls) == 1
    assert sleeps == []


def test_unavailable_is_retried(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient, sleeps: List[float]
) -> None:
    fake_genai.script(api_error(503, "UNAVAILABLE"), recognized_response(), grounded_response())

    extraction_service.extract_from_text("5 outlets")

    assert sleeps == [2.0]


def test_unreadable_grounded_answer_falls_back_to_offline(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient, sleeps: List[float]
) -> None:
    fake_genai.script(
        recognized_response(),
        model_response("Sorry, I could not find prices for these items."),
        offline_response(),
    )

    result = extraction_service.extract_from_text("5 outlets")

    assert result.mode == "offline"
    assert result.sources == [OFFLINE_SOURCE]
    assert len(result.items) == len(PRICED)
    assert sleeps == []
    assert fake_genai.calls[2]["config"].response_schema is not None
    assert not fake_genai.calls[2]["config"].tools


def test_rate_limited_grounding_falls_back_to_offline(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient, sleeps: List[float]
) -> None:
    fake_genai.script(
        recognized_response(),
        rate_limited(), rate_limited(), rate_limited(),
        offline_response(),
    )

    result = extraction_service.extract_from_text("5 outlets")

    assert result.mode == "offline"
    assert sleeps == [2.0, 4.0]


def test_permanent_grounding_error_does_not_fall_back(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient
) -> None:
    fake_genai.script(recognized_response(), api_error(400, "INVALID_ARGUMENT"))

    with pytest.raises(ExtractionError) as exc_info:
        extraction_service.extract_from_text("5 outlets")

    assert exc_info.value.kind == ExtractionErrorKind.PERMANENT
    assert len(fake_genai.calls) == 2


def test_missing_required_field_is_contract_violation(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient
) -> None:
    incomplete = [{key: value for key, value in row.items() if key != "supplier"} for row in PRICED]
    fake_genai.script(recognized_response(), model_response(incomplete), model_response(incomplete))

    with pytest.raises(ExtractionError) as exc_info:
        extraction_service.extract_from_text("5 outlets")

    assert exc_info.value.kind == ExtractionErrorKind.CONTRACT_VIOLATION


def test_recognition_wrong_shape_is_contract_violation(
    extraction_service: ExtractionService, fake_genai: FakeGenaiClient
) -> None:
    fake_genai.script(model_response({"items": "none"}))

    with pytest.raises(ExtractionError) as exc_info:
        extraction_service.extract_from_text("5 outlets")

    assert exc_info.value.kind == ExtractionErrorKind.CONTRACT_VIOLATION


def test_not_configured_without_api_key() -> None:
    service = ExtractionService(config=settings.model_copy(update={"GEMINI_API_KEY": None}))

    with pytest.raises(ExtractionError) as exc_info:
        service.extract_from_text("5 outlets")

    assert exc_info.value.kind == ExtractionErrorKind.NOT_CONFIGURED


def test_check_models(extraction_service: ExtractionService, fake_genai: FakeGenaiClient) -> None:
    fake_genai.script(model_response("Hi"), model_not_found())

    probes = extraction_service.check_models(["gemini-2.0-flash", "gemini-0-none"])

    assert [(probe.model, probe.ok) for probe in probes] == [("gemini-2.0-flash", True), ("gemini-0-none", False)]
    assert "404" in probes[1].error


@pytest.mark.parametrize(
    "exc, kind",
    [
        (api_error(429, "RESOURCE_EXHAUSTED"), ExtractionErrorKind.RATE_LIMITED),
        (api_error(404, "NOT_FOUND"), ExtractionErrorKind.MODEL_NOT_FOUND),
        (api_error(500, "INTERNAL"), ExtractionErrorKind.UNAVAILABLE),
        (api_error(503, "UNAVAILABLE"), ExtractionErrorKind.UNAVAILABLE),
        (api_error(403, "PERMISSION_DENIED"), ExtractionErrorKind.PERMANENT),
        (httpx.ConnectError("connection refused"), ExtractionErrorKind.UNAVAILABLE),
        (TimeoutError("timed out"), ExtractionErrorKind.UNAVAILABLE),
    ],
)
def test_classify_error(exc: Exception, kind: ExtractionErrorKind) -> None:
    assert classify_error(exc).kind == kind


def test_classify_error_refuses_unknown_exceptions() -> None:
    with pytest.raises(TypeError):
        classify_error(KeyError("x"))


def test_parse_json_payload_tolerates_fences_and_prose() -> None:
    assert parse_json_payload('```json\n[{"a": 1}]\n```') == [{"a": 1}]
    assert parse_json_payload('Here are the prices:\n[{"a": 1}]\nHope this helps.') == [{"a": 1}]


@pytest.mark.parametrize("raw", [None, "", "no json here", "[not, json"])
def test_parse_json_payload_rejects_garbage(raw: str) -> None:
    with pytest.raises(ExtractionError) as exc_info:
        parse_json_payload(raw)

    assert exc_info.value.kind == ExtractionErrorKind.CONTRACT_VIOLATION


def test_grounding_sources_defaults() -> None:
    response = model_response("[]", [(None, None), ("Shop", "https://example.com")])

    sources = grounding_sources(response)

    assert sources[0].title == DEFAULT_SOURCE_TITLE
    assert sources[0].uri == "#"
    assert sources[1].uri == "https://example.com"

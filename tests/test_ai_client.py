"""Tests for the completion service client and extraction schemas."""

import json
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from gallery_ingest.core.enums import EventStatus, PageKind
from gallery_ingest.core.exceptions import AIResponseError, AIServiceError
from gallery_ingest.core.extraction import (
    EventDetailPage,
    MinuteRange,
    OpeningHoursExtraction,
    OtherPage,
    parse_page_extraction,
)
from gallery_ingest.services.ai.client import (
    AIClient,
    AIProvider,
    get_ai_client,
    get_default_ai_client,
    parse_json_object,
    strip_code_fences,
)
from gallery_ingest.services.ai.prompts import build_classify_prompt


class ScriptedAIClient(AIClient):
    """Client answering completions from a queue of raw responses."""

    provider = AIProvider.OPENAI
    model = "scripted"
    embedding_model = "scripted-embedding"

    def __init__(self, *responses: str) -> None:
        self.responses = list(responses)
        self.prompts: list[str] = []

    def _complete(self, system: str, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.responses.pop(0)

    def embed(self, text: str) -> list[float]:
        return [1.0]


class TestResponseParsing:
    """Tests for raw response parsing helpers."""

    def test_strip_code_fences(self) -> None:
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'
        assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'

    def test_parse_json_object(self) -> None:
        assert parse_json_object('```json\n{"kind": "other"}\n```') == {"kind": "other"}

    def test_parse_invalid_json(self) -> None:
        with pytest.raises(AIResponseError) as exc_info:
            parse_json_object("not json")
        assert exc_info.value.raw_response == "not json"

    def test_parse_non_object(self) -> None:
        with pytest.raises(AIResponseError, match="Expected a JSON object"):
            parse_json_object("[1, 2]")


class TestStructuredOperations:
    """Tests for the structured operations built on _complete."""

    def test_classify_page(self) -> None:
        client = ScriptedAIClient('{"kind": "event_detail"}')

        assert client.classify_page("# Show", "https://a.com/show") == PageKind.EVENT_DETAIL
        assert "https://a.com/show" in client.prompts[0]

    def test_classify_unknown_kind(self) -> None:
        client = ScriptedAIClient('{"kind": "blog"}')

        with pytest.raises(AIResponseError, match="Validation error"):
            client.classify_page("# Blog", "https://a.com/blog")

    def test_extract_event_page(self) -> None:
        response = {
            "type": "event_detail",
            "payload": {
                "title": " Spring Show ",
                "start_at": "2026-05-01T18:00:00+02:00",
                "status": "scheduled",
                "artists": None,
            },
        }
        client = ScriptedAIClient(json.dumps(response))

        result = client.extract_page("# Spring Show", "https://a.com/spring")

        assert isinstance(result, EventDetailPage)
        assert result.page_kind == PageKind.EVENT_DETAIL
        assert result.payload.title == "Spring Show"
        assert result.payload.status == EventStatus.SCHEDULED
        assert result.payload.artists == []

    def test_extract_other_page(self) -> None:
        client = ScriptedAIClient('{"type": "event_list"}')

        result = client.extract_page("# Shows", "https://a.com/shows")

        assert result.page_kind == PageKind.EVENT_LIST

    def test_extract_event_without_payload(self) -> None:
        client = ScriptedAIClient('{"type": "event_detail"}')

        with pytest.raises(AIResponseError):
            client.extract_page("# Show", "https://a.com/show")

    def test_extract_gallery_nulls(self) -> None:
        client = ScriptedAIClient('{"name": "Acme", "about": null, "tags": null}')

        result = client.extract_gallery("# Acme", "https://acme-gallery.com")

        assert result.name == "Acme"
        assert result.about == ""
        assert result.tags == []

    def test_extract_opening_hours(self) -> None:
        response = {"days": [{"dow": 1, "ranges": [{"open_minute": 660, "close_minute": 1140}]}]}
        client = ScriptedAIClient(json.dumps(response))

        result = client.extract_opening_hours("Tue 11-19")

        assert result.days[0].dow == 1
        assert result.days[0].ranges[0].close_minute == 1140

    def test_markdown_truncated(self) -> None:
        client = ScriptedAIClient('{"kind": "other"}')
        client.max_markdown_length = 10

        client.classify_page("x" * 50, "https://a.com")

        assert "x" * 10 in client.prompts[0]
        assert "x" * 11 not in client.prompts[0]


class TestExtractionSchemas:
    """Tests for the extraction schema invariants."""

    def test_tagged_variants(self) -> None:
        assert isinstance(parse_page_extraction({"type": "other"}), OtherPage)
        with pytest.raises(ValidationError):
            parse_page_extraction({"type": "unknown"})

    def test_blank_title_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_page_extraction({"type": "event_detail", "payload": {"title": "  "}})

    def test_minute_range_order(self) -> None:
        with pytest.raises(ValidationError):
            MinuteRange(open_minute=600, close_minute=600)

    def test_duplicate_weekday_rejected(self) -> None:
        with pytest.raises(ValidationError):
            OpeningHoursExtraction.model_validate({"days": [{"dow": 0}, {"dow": 0}]})

    def test_classify_prompt_contains_kinds(self) -> None:
        prompt = build_classify_prompt("# Home", "https://a.com")
        for kind in ("gallery_main", "gallery_about", "event_list", "event_detail", "other"):
            assert kind in prompt


class TestProviders:
    """Tests for provider construction and the OpenAI provider."""

    def test_unsupported_provider(self) -> None:
        with pytest.raises(ValueError):
            get_ai_client("mistral", api_key="x")

    def test_default_client_requires_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("AI_PROVIDER", raising=False)

        with pytest.raises(ValueError, match="No API key"):
            get_default_ai_client()

    def test_openai_complete_and_embed(self) -> None:
        """Test the OpenAI provider with a mocked SDK."""
        mock_openai = MagicMock()
        mock_openai.chat.completions.create.return_value = MagicMock(
            choices=[MagicMock(message=MagicMock(content='{"kind": "gallery_about"}'))]
        )
        mock_openai.embeddings.create.return_value = MagicMock(
            data=[MagicMock(embedding=[0.5, 0.25])]
        )

        with patch("openai.OpenAI", return_value=mock_openai):
            client = get_ai_client(AIProvider.OPENAI, api_key="test-key", model="gpt-test")

        assert client.classify_page("# About", "https://a.com/about") == PageKind.GALLERY_ABOUT
        assert client.embed("hello") == [0.5, 0.25]
        kwargs = mock_openai.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_openai_api_error(self) -> None:
        mock_openai = MagicMock()
        mock_openai.chat.completions.create.side_effect = RuntimeError("boom")

        with patch("openai.OpenAI", return_value=mock_openai):
            client = get_ai_client("openai", api_key="test-key")

        with pytest.raises(AIServiceError, match="boom"):
            client.classify_page("# Home", "https://a.com")

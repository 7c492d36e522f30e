"""
Tests for analysis result parsing, prompts, knowledge and clients.
"""

import asyncio
import json

import pytest

from image_batch_pipeline.api import (
    AnalysisMode,
    AnalysisRequest,
    KnowledgeProvider,
    ParsedAnalysis,
    PromptBuilder,
    RawTextAnalysis,
    RemoteAnalysisClient,
    get_client,
    parse_analysis,
)
from image_batch_pipeline.api.prompt import GENERAL_PROMPT
from image_batch_pipeline.errors import AnalysisError

from conftest import FakeAnalysisClient


class TestParseAnalysis:
    """Tests for parse_analysis."""

    def test_plain_json(self):
        result = parse_analysis('{"description": "A red stamp", "objects": ["stamp"], "confidence": 85}')

        assert isinstance(result, ParsedAnalysis)
        assert result.description == "A red stamp"
        assert result.objects == ["stamp"]
        assert result.confidence == 85

    def test_json_inside_markdown_fence(self):
        text = 'Here you go:\n```json\n{"description": "x", "colors": ["red"]}\n```'

        result = parse_analysis(text)

        assert isinstance(result, ParsedAnalysis)
        assert result.colors == ["red"]

    def test_camel_case_fields(self):
        result = parse_analysis({
            "description": "Jenny",
            "collectibleDetails": {"type": "stamp", "year": "1918", "estimatedValue": 500},
            "estimatedValueRange": {"min": 100, "max": 900},
            "conditionAssessment": "Fine",
        })

        assert result.collectible_details.year == "1918"
        assert result.collectible_details.estimated_value == 500
        assert result.estimated_value_range.max == 900
        assert result.condition_assessment == "Fine"

    def test_dict_input_is_not_modified(self):
        payload = {"kind": "parsed", "description": "Card"}

        result = parse_analysis(payload)

        assert result.description == "Card"
        assert payload == {"kind": "parsed", "description": "Card"}

    @pytest.mark.parametrize("text", [
        "The image shows a stamp.",
        "{not json}",
        '{"confidence": "very high"}',
        "",
        None,
    ])
    def test_falls_back_to_raw_text(self, text):
        result = parse_analysis(text)

        assert isinstance(result, RawTextAnalysis)
        assert result.description == (text or "")
        assert result.objects == []
        assert result.confidence == 0

    def test_wire_shape(self):
        wire = parse_analysis('{"description": "d", "estimatedValueRange": {"min": 1, "max": 2}}').to_wire()

        assert wire["estimatedValueRange"] == {"min": 1, "max": 2}
        assert "kind" not in wire
        assert "collectibleDetails" not in wire


class TestKnowledgeProvider:
    """Tests for KnowledgeProvider."""

    def test_must_be_initialized(self):
        with pytest.raises(RuntimeError):
            KnowledgeProvider().knowledge()

    def test_initialize_is_idempotent(self):
        provider = KnowledgeProvider()
        provider.initialize()
        first = provider.knowledge()
        provider.initialize()

        assert provider.is_ready
        assert provider.knowledge() == first
        assert "=== Stamp Identification Guidelines (txt) ===" in first

    def test_added_resources_are_included(self):
        provider = KnowledgeProvider()
        provider.add_resource("Local Notes", "txt", "Check the perforation gauge.")
        provider.initialize()

        assert "Check the perforation gauge." in provider.knowledge()


class TestPromptBuilder:
    """Tests for PromptBuilder."""

    def test_general_prompt(self):
        assert PromptBuilder().build(AnalysisMode.GENERAL) == GENERAL_PROMPT

    def test_collectible_prompt_names_the_item(self):
        prompt = PromptBuilder().build(AnalysisMode.TRADING_CARD)

        assert "trading card" in prompt
        assert "estimatedValueRange" in prompt

    def test_stamp_prompt_includes_knowledge(self):
        provider = KnowledgeProvider()
        provider.initialize()

        prompt = PromptBuilder(provider).build("stamp")

        assert prompt.startswith("Using the following knowledge about stamp identification:")
        assert "Stamp Identification Guidelines" in prompt

    def test_knowledge_only_for_stamps(self):
        provider = KnowledgeProvider()
        provider.initialize()

        assert "Stamp Identification Guidelines" not in PromptBuilder(provider).build("postcard")

    def test_uninitialized_knowledge_fails(self):
        with pytest.raises(RuntimeError):
            PromptBuilder(KnowledgeProvider()).build("stamp")


class TestAnalysisClient:
    """Tests for the shared AnalysisClient behaviour."""

    def test_transport_errors_become_analysis_errors(self):
        client = FakeAnalysisClient()
        request = AnalysisRequest.from_bytes(b"png")
        client.fail_for = {request.image_base64}

        with pytest.raises(AnalysisError, match="fake-model"):
            asyncio.run(client.analyze(request))

    def test_request_from_bytes(self):
        request = AnalysisRequest.from_bytes(b"abc", "image/png", "postcard")

        assert request.image_base64 == "YWJj"
        assert request.analysis_mode is AnalysisMode.POSTCARD


class TestRemoteAnalysisClient:
    """Tests for RemoteAnalysisClient."""

    @pytest.fixture
    def client(self):
        return RemoteAnalysisClient(api_key="secret", base_url="https://example.test/functions/v1/")

    def test_requires_key(self, monkeypatch):
        monkeypatch.delenv("ANALYSIS_SERVICE_KEY", raising=False)
        with pytest.raises(ValueError):
            RemoteAnalysisClient(base_url="https://example.test")

    def test_requires_url(self, monkeypatch):
        monkeypatch.delenv("ANALYSIS_SERVICE_URL", raising=False)
        with pytest.raises(ValueError):
            RemoteAnalysisClient(api_key="secret")

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ANALYSIS_SERVICE_KEY", "env-key")
        monkeypatch.setenv("ANALYSIS_SERVICE_URL", "https://env.test")

        client = get_client("remote")

        assert client.api_key == "env-key"
        assert client.base_url == "https://env.test"

    def test_general_payload(self, client):
        request = AnalysisRequest.from_bytes(b"abc")

        payload = client._build_payload(request, "prompt")

        assert payload == {"imageBase64": "YWJj", "mimeType": "image/png"}

    def test_collectible_payload(self, client):
        request = AnalysisRequest.from_bytes(b"abc", analysis_mode=AnalysisMode.STAMP)

        payload = client._build_payload(request, "prompt text")

        assert payload["collectibleType"] == "stamp"
        assert payload["enhancedPrompt"] == "prompt text"

    def test_analyze_parses_response(self, client):
        sent = []

        async def fake_post(payload):
            sent.append(payload)
            return json.dumps({"description": "Airmail", "confidence": 70})

        client._post = fake_post
        result = asyncio.run(client.analyze(AnalysisRequest.from_bytes(b"abc")))

        assert result.description == "Airmail"
        assert sent[0]["mimeType"] == "image/png"

    def test_remote_errors_pass_through(self, client):
        async def failing_post(payload):
            raise AnalysisError("API error: 500 Internal Server Error")

        client._post = failing_post

        with pytest.raises(AnalysisError, match="500"):
            asyncio.run(client.analyze(AnalysisRequest.from_bytes(b"abc")))


def test_get_client_unknown():
    with pytest.raises(ValueError):
        get_client("nope")

"""Tests for AI extractor module."""

import json

import pytest
from unittest.mock import AsyncMock, Mock, patch

from ..ai_extractor import AIExtractor, ClaudeProvider, OpenAIProvider, extract_json
from ..error_handling import ExtractionError, ExtractionValidationError
from ..models import Company
from .conftest import FakeProvider, extractor_with

COMPANIES = [Company(EntryId=101, CompanyName="Acme GmbH")]


class TestClaudeProvider:
    """Test Claude AI provider."""

    @patch("anthropic.AsyncAnthropic")
    def test_claude_provider_init(self, mock_anthropic):
        provider = ClaudeProvider(api_key="test-key", model="claude-3")

        mock_anthropic.assert_called_once_with(api_key="test-key")
        assert provider.model == "claude-3"

    @pytest.mark.asyncio
    @patch("anthropic.AsyncAnthropic")
    async def test_complete(self, mock_anthropic):
        mock_client = Mock()
        mock_client.messages.create = AsyncMock(
            return_value=Mock(content=[Mock(text='{"companies": []}')])
        )
        mock_anthropic.return_value = mock_client

        provider = ClaudeProvider(api_key="test-key")
        reply = await provider.complete("prompt", model="claude-haiku")

        assert reply == '{"companies": []}'
        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-haiku"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]


class TestOpenAIProvider:
    """Test OpenAI provider."""

    @pytest.mark.asyncio
    @patch("openai.AsyncOpenAI")
    async def test_complete(self, mock_openai):
        mock_client = Mock()
        mock_client.chat.completions.create = AsyncMock(
            return_value=Mock(choices=[Mock(message=Mock(content="[]"))])
        )
        mock_openai.return_value = mock_client

        provider = OpenAIProvider(api_key="test-key")

        assert await provider.complete("prompt") == "[]"
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["response_format"] == {"type": "json_object"}


class TestExtractJson:
    def test_plain(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced(self):
        assert extract_json('Sure:\n```json\n["Acme"]\n```\n') == ["Acme"]

    def test_surrounding_prose(self):
        assert extract_json('Here you go: {"a": [1, 2]} hope this helps') == {"a": [1, 2]}

    def test_no_json(self):
        with pytest.raises(ValueError):
            extract_json("no companies mentioned")


class TestAIExtractor:
    """Test main AI extractor class."""

    @patch("anthropic.AsyncAnthropic")
    def test_init_claude(self, mock_anthropic):
        extractor = AIExtractor(provider="claude", api_key="test-key")
        assert isinstance(extractor.provider, ClaudeProvider)

    def test_unsupported_provider(self):
        with pytest.raises(ValueError, match="Unsupported AI provider"):
            AIExtractor(provider="unknown", api_key="test-key")

    @pytest.mark.asyncio
    async def test_company_names_deduplicated(self):
        extractor = extractor_with(
            json.dumps({"companies": ["Acme GmbH", " Beta AG ", "Acme GmbH", ""]})
        )

        assert await extractor.extract_company_names("text") == ["Acme GmbH", "Beta AG"]

    @pytest.mark.asyncio
    async def test_company_names_bare_list(self):
        extractor = extractor_with('```\n["Acme"]\n```')
        assert await extractor.extract_company_names("text") == ["Acme"]

    @pytest.mark.asyncio
    async def test_company_names_prompt_and_model(self):
        provider = FakeProvider('{"companies": []}')
        extractor = AIExtractor(provider=provider, names_model="small-model")

        assert await extractor.extract_company_names("Max, Acme GmbH") == []

        prompt, model = provider.calls[0]
        assert prompt.endswith("Max, Acme GmbH")
        assert model == "small-model"

    @pytest.mark.asyncio
    async def test_company_names_unparseable(self):
        extractor = extractor_with("I could not find any companies.")

        with pytest.raises(ExtractionValidationError) as exc_info:
            await extractor.extract_company_names("text")

        assert "Failed to extract company names" in str(exc_info.value)
        assert exc_info.value.raw_response == "I could not find any companies."

    @pytest.mark.asyncio
    async def test_provider_failure_wrapped(self):
        extractor = extractor_with(RuntimeError("rate limited"))

        with pytest.raises(ExtractionError) as exc_info:
            await extractor.extract_company_names("text")

        assert not isinstance(exc_info.value, ExtractionValidationError)
        assert exc_info.value.stage == "Extracting company names"
        assert "rate limited" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_generate_contacts(self, contacts_reply):
        provider = FakeProvider(contacts_reply)
        extractor = AIExtractor(provider=provider)

        contacts = await extractor.generate_contacts("Max Mustermann, CFO at Acme", COMPANIES)

        assert [c.Email for c in contacts] == ["max@acme.de", "erika@acme.de"]
        assert contacts[1].ProfessionalTitle == "Dr."

        prompt = provider.calls[0][0]
        assert "Company mapping:" in prompt
        assert '"EntryId": 101' in prompt
        assert '"661148": "Herr"' in prompt
        assert prompt.endswith("Max Mustermann, CFO at Acme")

    @pytest.mark.asyncio
    async def test_generate_contacts_rejects_unknown_codes(self, contact_data):
        contact_data["ContactType"] = "12345"
        extractor = extractor_with(json.dumps([contact_data]))

        with pytest.raises(ExtractionValidationError, match="Failed to generate contacts"):
            await extractor.generate_contacts("text", COMPANIES)

    @pytest.mark.asyncio
    async def test_unknown_employer_allowed_by_default(self, contact_data):
        contact_data["Employer"] = "999"
        extractor = extractor_with(json.dumps([contact_data]))

        contacts = await extractor.generate_contacts("text", COMPANIES)
        assert contacts[0].Employer == "999"

    @pytest.mark.asyncio
    async def test_unknown_employer_strict(self, contact_data):
        contact_data["Employer"] = "999"
        extractor = extractor_with(json.dumps([contact_data]), strict_employer_check=True)

        with pytest.raises(ExtractionValidationError, match="999"):
            await extractor.generate_contacts("text", COMPANIES)

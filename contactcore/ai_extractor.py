"""AI integration for extracting company names and contact records from text."""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import TypeAdapter, ValidationError

from . import constants
from .error_handling import ContactCoreError, ExtractionError, ExtractionValidationError
from .logging_config import get_logger, log_event, Timer
from .models import CONTACT_TYPES, SALUTATIONS, Company, Contact

logger = get_logger(__name__)

_NAMES_ADAPTER = TypeAdapter(List[str])
_CONTACTS_ADAPTER = TypeAdapter(List[Contact])

COMPANY_NAMES_PROMPT = """From this list, extract all company names as in the provided format.

Respond with JSON only, using this structure:
{"companies": ["Company A", "Company B"]}

List:
"""

CONTACTS_PROMPT = """Bring the provided information on contact persons into the correct format.
Use the provided mapping from company names to ids. YOU MUST ONLY use the ids that are provided.
If there is no id for a given company, YOU MUST leave the field empty.
Choose an appropriate Contact Type for every contact.
Only supply an optional Job Title, if the position of the contact is NOT already EXACTLY covered by the Contact Type (e.g. CFO=CFO), otherwise leave it EMPTY.
Also choose the appropriate Anrede.

Allowed Anrede codes: {salutations}
Allowed ContactType codes: {contact_types}

Respond with JSON only, using this structure:
{{"contacts": [
  {{
    "Anrede": "code",
    "ProfessionalTitle": "optional, e.g. Dr.",
    "FirstName": "...",
    "LastName": "...",
    "Email": "...",
    "BusinessPhone": "optional",
    "Employer": "optional EntryId from the company list",
    "ContactType": "code",
    "JobTitle": "optional"
  }}
]}}
"""


class AIProvider(ABC):
    """Base class for AI providers."""

    @abstractmethod
    async def complete(self, prompt: str, model: Optional[str] = None) -> str:
        """Send a single user prompt and return the text of the reply."""
        pass


class ClaudeProvider(AIProvider):
    """Claude AI provider."""

    def __init__(
        self,
        api_key: str,
        model: str = constants.DEFAULT_CLAUDE_MODEL,
        max_tokens: int = constants.DEFAULT_MAX_TOKENS,
        temperature: float = constants.DEFAULT_TEMPERATURE,
    ):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

        # Lazy import to avoid dependency if not using Claude
        try:
            import anthropic

            self.client = anthropic.AsyncAnthropic(api_key=api_key)
        except ImportError:
            raise ImportError(
                "anthropic package required for Claude provider. Install with: pip install anthropic"
            )

    async def complete(self, prompt: str, model: Optional[str] = None) -> str:
        response = await self.client.messages.create(
            model=model or self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.content[0].text


class OpenAIProvider(AIProvider):
    """OpenAI provider."""

    def __init__(
        self,
        api_key: str,
        model: str = constants.DEFAULT_OPENAI_MODEL,
        max_tokens: int = constants.DEFAULT_MAX_TOKENS,
        temperature: float = constants.DEFAULT_TEMPERATURE,
    ):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

        # Lazy import to avoid dependency if not using OpenAI
        try:
            import openai

            self.client = openai.AsyncOpenAI(api_key=api_key)
        except ImportError:
            raise ImportError(
                "openai package required for OpenAI provider. Install with: pip install openai"
            )

    async def complete(self, prompt: str, model: Optional[str] = None) -> str:
        response = await self.client.chat.completions.create(
            model=model or self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            messages=[
                {
                    "role": "system",
                    "content": "You are a data-entry assistant that extracts structured records from text.",
                },
                {"role": "user", "content": prompt},
            ],
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content


def extract_json(response: str) -> Any:
    """Pull the JSON payload out of a model reply.

    Models sometimes wrap JSON in markdown code blocks or add prose around it.
    """
    if "```" in response:
        fence_start = response.find("```json")
        start = fence_start + 7 if fence_start != -1 else response.find("```") + 3
        end = response.find("```", start)
        candidate = response[start:end if end != -1 else None].strip()
    else:
        starts = [i for i in (response.find("{"), response.find("[")) if i != -1]
        if not starts:
            raise ValueError("no JSON found in response")
        start = min(starts)
        closer = "}" if response[start] == "{" else "]"
        candidate = response[start:response.rfind(closer) + 1]

    return json.loads(candidate)


def _unwrap(data: Any, key: str) -> Any:
    """Accept either a bare array or an object holding the array under ``key``."""
    if isinstance(data, dict):
        if key in data:
            return data[key]
        if len(data) == 1:
            return next(iter(data.values()))
    return data


def _excerpt(response: str) -> str:
    return response[: constants.RESPONSE_EXCERPT_LENGTH]


class AIExtractor:
    """Turns free text into company names and contact records."""

    def __init__(
        self,
        provider: Union[str, AIProvider],
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        names_model: Optional[str] = None,
        max_tokens: int = constants.DEFAULT_MAX_TOKENS,
        temperature: float = constants.DEFAULT_TEMPERATURE,
        strict_employer_check: bool = False,
    ):
        """Initialize AI extractor.

        Args:
            provider: AI provider name ("claude" or "openai") or a provider instance
            api_key: API key for the provider
            model: Optional model name override
            names_model: Optional model used for company name extraction
            max_tokens: Reply length limit
            temperature: Sampling temperature
            strict_employer_check: Reject contacts whose Employer is not a resolved company id
        """
        if isinstance(provider, AIProvider):
            self.provider = provider
            self.provider_name = type(provider).__name__
        else:
            self.provider_name = provider.lower()
            if self.provider_name == "claude":
                self.provider = ClaudeProvider(
                    api_key, model or constants.DEFAULT_CLAUDE_MODEL, max_tokens, temperature
                )
            elif self.provider_name == "openai":
                self.provider = OpenAIProvider(
                    api_key, model or constants.DEFAULT_OPENAI_MODEL, max_tokens, temperature
                )
            else:
                raise ValueError(f"Unsupported AI provider: {provider}")

        self.names_model = names_model
        self.strict_employer_check = strict_employer_check

    async def _complete(self, prompt: str, stage: str, model: Optional[str] = None) -> str:
        try:
            with Timer() as timer:
                response = await self.provider.complete(prompt, model=model)
        except ContactCoreError:
            raise
        except Exception as e:
            raise ExtractionError(
                f"{stage} failed: {e}",
                stage=stage,
                context={"provider": self.provider_name, "original_error": type(e).__name__},
            ) from e

        log_event(
            __name__,
            "ai_completion",
            stage=stage,
            provider=self.provider_name,
            response_chars=len(response or ""),
            duration_ms=timer.duration_ms,
        )
        return response or ""

    async def extract_company_names(self, text: str) -> List[str]:
        """Extract the company names mentioned in ``text``.

        Returns:
            Distinct, non-blank names in order of first appearance
        """
        stage = "Extracting company names"
        response = await self._complete(COMPANY_NAMES_PROMPT + text, stage, model=self.names_model)

        try:
            names = _NAMES_ADAPTER.validate_python(_unwrap(extract_json(response), "companies"))
        except (ValueError, ValidationError) as e:
            raise ExtractionValidationError(
                f"Failed to extract company names: {e}",
                stage=stage,
                raw_response=_excerpt(response),
            ) from e

        unique: Dict[str, None] = {}
        for name in names:
            name = name.strip()
            if name:
                unique.setdefault(name, None)
        return list(unique)

    async def generate_contacts(
        self, text: str, companies: Sequence[Company]
    ) -> List[Contact]:
        """Build contact records from ``text``.

        Args:
            text: The original input text
            companies: Resolved companies; their ids are the only valid Employer values

        Returns:
            Contacts validated against the contact schema
        """
        stage = "Generating contacts"
        response = await self._complete(self.build_contacts_prompt(text, companies), stage)

        try:
            contacts = _CONTACTS_ADAPTER.validate_python(_unwrap(extract_json(response), "contacts"))
        except (ValueError, ValidationError) as e:
            raise ExtractionValidationError(
                f"Failed to generate contacts: {e}",
                stage=stage,
                raw_response=_excerpt(response),
            ) from e

        if self.strict_employer_check:
            self.check_employers(contacts, companies)

        return contacts

    @staticmethod
    def build_contacts_prompt(text: str, companies: Sequence[Company]) -> str:
        mapping = [company.model_dump() for company in companies]
        header = CONTACTS_PROMPT.format(
            salutations=json.dumps(SALUTATIONS, ensure_ascii=False),
            contact_types=json.dumps(CONTACT_TYPES, ensure_ascii=False),
        )
        return (
            f"{header}\n"
            f"Company mapping:\n{json.dumps(mapping, ensure_ascii=False)}\n\n"
            f"Contact information:\n{text}"
        )

    @staticmethod
    def check_employers(contacts: Sequence[Contact], companies: Sequence[Company]) -> None:
        """Raise if any contact names an employer id that was not resolved."""
        known = {str(company.EntryId) for company in companies}
        unknown = sorted({c.Employer for c in contacts if c.Employer and c.Employer not in known})
        if unknown:
            raise ExtractionValidationError(
                f"Generated contacts reference unknown employer ids: {', '.join(unknown)}",
                stage="Generating contacts",
            )

"""Query variation requests, generation and quality checks."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace

import httpx

from geocrawl.core.errors import GenerationError, ValidationError
from geocrawl.core.interfaces import VariationGeneratorProtocol
from geocrawl.services.models import (
    GeneratedVariation,
    VariationGenerationResult,
    VariationType,
)

logger = logging.getLogger(__name__)

MIN_VARIATIONS = 5
MAX_VARIATIONS = 30

SYSTEM_PROMPT = """You are an expert in SEO and search queries.
Based on the user's base search query, generate realistic variations that
real users would type.

Variation types:
- demographic: includes age, gender, occupation or similar (e.g. "cancer insurance for women in their 50s")
- informational: looks for information (e.g. "what is cancer insurance", "cancer insurance coverage")
- comparison: looks for comparisons or rankings (e.g. "cancer insurance comparison", "best cancer insurance ranking")
- recommendation: asks for a recommendation (e.g. "recommend a cancer insurance", "which cancer insurance is good")

Requirements:
1. Use natural, conversational language in the language of the base query
2. The search intent must be clear
3. Spread the variations evenly over the four types
4. Queries a real user would enter
5. No duplicates"""


@dataclass(frozen=True)
class VariationRequest:
    """Input for generating query variations.

    Args:
        base_query: Query the variations derive from
        count: Number of variations to generate, 5 to 30
        product_category: Optional product category for context
        product_name: Optional product name for context

    Raises:
        ValidationError: If base_query is blank or count is out of range
    """

    base_query: str
    count: int
    product_category: str | None = None
    product_name: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.base_query, str) or not self.base_query.strip():
            raise ValidationError("baseQuery is required")
        if (
            isinstance(self.count, bool)
            or not isinstance(self.count, int)
            or not MIN_VARIATIONS <= self.count <= MAX_VARIATIONS
        ):
            raise ValidationError(
                f"count must be between {MIN_VARIATIONS} and {MAX_VARIATIONS}"
            )


def validate_variations(
    variations: list[GeneratedVariation], base_query: str
) -> list[str]:
    """Check generated variations for quality problems.

    Args:
        variations: Generated variations
        base_query: Query they were generated from

    Returns:
        Problem descriptions; empty when the set looks fine
    """
    problems: list[str] = []

    if not variations:
        problems.append("No variations were generated")

    queries = [v.query.strip().lower() for v in variations]
    if len(set(queries)) != len(queries):
        problems.append("Duplicate variations found")

    if base_query.strip().lower() in queries:
        problems.append("A variation is identical to the base query")

    if variations and len({v.type for v in variations}) < 2:
        problems.append("Variation types are too concentrated")

    return problems


class ChatVariationGenerator:
    """Generates variations with an OpenAI-compatible chat completions API.

    Args:
        client: Shared HTTP client, owned by the caller
        endpoint_url: API base URL, e.g. "https://api.openai.com/v1"
        api_key: API key sent as bearer token
        model: Chat model name
        temperature: Sampling temperature
        max_tokens: Completion token limit
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint_url: str,
        api_key: str | None = None,
        model: str = "gpt-4o",
        temperature: float = 0.8,
        max_tokens: int = 2000,
        timeout: float = 60.0,
    ) -> None:
        self._client = client
        self.endpoint_url = endpoint_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def generate(self, request: VariationRequest) -> VariationGenerationResult:
        """Generate variations for a request.

        Raises:
            GenerationError: If the API call fails or returns unusable JSON
        """
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(request)},
            ],
            "response_format": {"type": "json_object"},
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

        try:
            response = await self._client.post(
                f"{self.endpoint_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            completion = response.json()
            content = completion["choices"][0]["message"]["content"] or "{}"
            parsed = json.loads(content)
        except httpx.HTTPError as exc:
            raise GenerationError(f"Variation API error: {exc}") from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise GenerationError(f"Unexpected variation API response: {exc}") from exc

        return VariationGenerationResult(
            variations=parse_variations(parsed),
            model_used=completion.get("model", self.model),
            tokens_used=(completion.get("usage") or {}).get("total_tokens", 0),
        )


def build_user_prompt(request: VariationRequest) -> str:
    lines = [f'Base query: "{request.base_query}"']
    if request.product_category:
        lines.append(f'Product category: "{request.product_category}"')
    if request.product_name:
        lines.append(f'Product name: "{request.product_name}"')
    lines.append("")
    lines.append(
        f"Generate {request.count} diverse search queries based on the above."
    )
    lines.append("")
    lines.append(
        'Return JSON: {"variations": [{"query": "...", '
        '"type": "demographic | informational | comparison | recommendation", '
        '"reasoning": "why this variation"}]}'
    )
    return "\n".join(lines)


def parse_variations(parsed: object) -> list[GeneratedVariation]:
    """Convert the generator's JSON into variations.

    Entries without a query or with an unknown type are dropped.
    """
    if not isinstance(parsed, dict):
        return []

    variations = []
    for item in parsed.get("variations") or []:
        if not isinstance(item, dict):
            continue
        query = item.get("query")
        if not isinstance(query, str) or not query.strip():
            continue
        try:
            variation_type = VariationType(str(item.get("type", "")).strip().lower())
        except ValueError:
            logger.debug("Dropping variation with unknown type: %r", item.get("type"))
            continue
        variations.append(
            GeneratedVariation(
                query=query.strip(),
                type=variation_type,
                reasoning=str(item.get("reasoning") or ""),
            )
        )
    return variations


class VariationService:
    """Generates variations and attaches quality warnings.

    Args:
        generator: Variation generator implementation
    """

    def __init__(self, generator: VariationGeneratorProtocol) -> None:
        self.generator = generator

    async def generate(self, request: VariationRequest) -> VariationGenerationResult:
        result = await self.generator.generate(request)
        warnings = validate_variations(result.variations, request.base_query)
        for warning in warnings:
            logger.warning("Variations for %r: %s", request.base_query, warning)
        return replace(result, warnings=warnings)

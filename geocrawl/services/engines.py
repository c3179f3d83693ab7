"""HTTP client for the per-query analysis service."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx

from geocrawl.services.models import EngineResponse, VisibilityTarget


class HttpAnalysisEngine:
    """One analysis engine reached through the analysis service.

    Posts ``{"query": ..., "engine": name}`` to the analysis endpoint and
    expects ``{"success": bool, "answer": str, "citations": [...]}`` back.
    "domain", "brand", "brandAliases" and "competitors" are added to the
    request body when a visibility target sets them. Citations may be plain
    URLs or objects with a "url" key.

    Note: Timeouts are enforced by the orchestrator per engine call; this
    client only applies the shared client's defaults.

    Args:
        name: Engine name sent to the service and reported in results
        client: Shared HTTP client, owned by the caller
        endpoint_url: Analysis service URL
        api_key: Optional bearer token
    """

    def __init__(
        self,
        name: str,
        client: httpx.AsyncClient,
        endpoint_url: str,
        api_key: str | None = None,
    ) -> None:
        self.name = name
        self._client = client
        self.endpoint_url = endpoint_url
        self.api_key = api_key

    async def analyze(
        self, query: str, target: VisibilityTarget | None = None
    ) -> EngineResponse:
        """Analyze a query with this engine.

        Args:
            query: Query text
            target: Own domain, brand and competitors to send along

        Returns:
            EngineResponse; success is False on non-2xx status or when the
            service reports a failure

        Raises:
            httpx.HTTPError: On network errors
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload: dict[str, Any] = {"query": query, "engine": self.name}
        if target is not None:
            payload.update(target.to_payload())

        response = await self._client.post(
            self.endpoint_url,
            json=payload,
            headers=headers,
        )
        if not response.is_success:
            return EngineResponse(
                success=False,
                error=f"HTTP {response.status_code}: {response.reason_phrase}",
            )

        data = response.json()
        if not data.get("success"):
            error = data.get("error")
            if isinstance(error, dict):
                error = error.get("message")
            return EngineResponse(
                success=False, error=error or "Engine returned failure"
            )

        return EngineResponse(
            success=True,
            answer=data.get("answer") or "",
            citations=_citation_urls(data.get("citations") or []),
        )


def _citation_urls(citations: list[Any]) -> list[str]:
    urls = []
    for citation in citations:
        url = citation.get("url") if isinstance(citation, dict) else citation
        if isinstance(url, str) and url:
            urls.append(url)
    return urls


def build_engines(
    names: Sequence[str],
    client: httpx.AsyncClient,
    endpoint_url: str,
    api_key: str | None = None,
) -> list[HttpAnalysisEngine]:
    """Create one HttpAnalysisEngine per name, keeping the order."""
    return [
        HttpAnalysisEngine(name, client, endpoint_url, api_key=api_key)
        for name in names
    ]

"""robots.txt policy checks for polite crawling.

Only ``Disallow`` rules in the ``User-agent: *`` section are honored, matched
as plain path prefixes. A bare ``Disallow: /`` is ignored.

Checks fail open: when robots.txt is missing or cannot be fetched the URL is
allowed and the decision carries a reason. A missing or unreachable policy
never blocks crawling. Hosts rejected by the URL validator (private ranges,
loopback, cloud metadata) are never contacted; they fail open here and the
fetch worker refuses them later.

Example:
    >>> async with httpx.AsyncClient() as client:
    ...     checker = RobotsPolicyChecker(client)
    ...     decision = await checker.check_policy("https://example.com/page")
    >>> decision.allowed
    True
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from geocrawl.core.config import DEFAULT_USER_AGENT
from geocrawl.core.errors import PolicyCheckError, ValidationError
from geocrawl.core.url_validation import TargetUrl, UrlValidator
from geocrawl.crawler.models import PolicyDecision

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5


def parse_disallow_rules(robots_txt: str) -> list[str]:
    """Collect Disallow paths from the ``User-agent: *`` section.

    Any other ``User-agent`` line closes the wildcard section. Empty values
    and a bare "/" are skipped.

    Args:
        robots_txt: Raw robots.txt body

    Returns:
        Disallowed path prefixes in document order

    Example:
        >>> parse_disallow_rules("User-agent: *\\nDisallow: /admin\\nDisallow: /")
        ['/admin']
    """
    disallowed: list[str] = []
    in_wildcard_section = False

    for line in robots_txt.splitlines():
        # Inline comments are not part of the value
        content = line.split("#", 1)[0].strip()
        if ":" not in content:
            continue

        field, _, value = content.partition(":")
        field = field.strip().lower()
        value = value.strip()

        if field == "user-agent":
            in_wildcard_section = value == "*"
        elif field == "disallow" and in_wildcard_section:
            if value and value != "/":
                disallowed.append(value)

    return disallowed


def is_path_disallowed(path: str, disallowed: list[str]) -> bool:
    """Return True if ``path`` starts with any disallowed prefix."""
    return any(path.startswith(prefix) for prefix in disallowed)


def decide(target: TargetUrl, robots_txt: str) -> PolicyDecision:
    """Apply a robots.txt body to one URL."""
    if is_path_disallowed(target.path, parse_disallow_rules(robots_txt)):
        return PolicyDecision(
            allowed=False,
            reason=f"Disallowed by robots.txt: {target.path}",
            raw_policy_text=robots_txt,
        )
    return PolicyDecision(allowed=True, raw_policy_text=robots_txt)


class RobotsPolicyChecker:
    """Fetches robots.txt and decides whether URLs may be crawled.

    Args:
        client: Shared HTTP client, owned by the caller
        user_agent: Identifying User-Agent header
        timeout: Timeout in seconds for each robots.txt request
        validator: Host checks applied to every robots.txt URL and redirect
            hop; defaults to one that blocks private hosts
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 5.0,
        validator: UrlValidator | None = None,
    ) -> None:
        self._client = client
        self.user_agent = user_agent
        self.timeout = timeout
        self.validator = validator or UrlValidator()

    async def check_policy(self, url: str) -> PolicyDecision:
        """Decide whether a single URL may be fetched.

        Args:
            url: URL to check

        Returns:
            PolicyDecision; allowed with a reason when robots.txt could not
            be retrieved or the host may not be contacted
        """
        try:
            target = self.validator.validate(url)
        except ValidationError as exc:
            return self._fail_open(url, f"robots.txt check failed: {exc}")

        try:
            robots_txt = await self.fetch_policy(target.origin)
        except PolicyCheckError as exc:
            return self._fail_open(url, str(exc))

        if robots_txt is None:
            return PolicyDecision(allowed=True, reason="No robots.txt found")
        return decide(target, robots_txt)

    async def check_policy_batch(self, urls: list[str]) -> dict[str, PolicyDecision]:
        """Decide for many URLs at once.

        Each distinct origin's robots.txt is requested once and all requests
        run concurrently without a cap. A failure for one origin only affects
        the URLs of that origin.

        Args:
            urls: URLs to check

        Returns:
            Mapping of each input URL to its PolicyDecision
        """
        targets: dict[str, TargetUrl] = {}
        decisions: dict[str, PolicyDecision] = {}

        for url in urls:
            try:
                targets[url] = self.validator.validate(url)
            except ValidationError as exc:
                decisions[url] = self._fail_open(
                    url, f"robots.txt check failed: {exc}"
                )

        origins = list(dict.fromkeys(target.origin for target in targets.values()))
        fetched = await asyncio.gather(
            *(self.fetch_policy(origin) for origin in origins),
            return_exceptions=True,
        )
        documents = dict(zip(origins, fetched))

        for url, target in targets.items():
            document = documents[target.origin]
            if isinstance(document, BaseException):
                decisions[url] = self._fail_open(url, str(document))
            elif document is None:
                decisions[url] = PolicyDecision(
                    allowed=True, reason="No robots.txt found"
                )
            else:
                decisions[url] = decide(target, document)

        return {url: decisions[url] for url in urls}

    async def fetch_policy(self, origin: str) -> str | None:
        """Fetch ``{origin}/robots.txt``.

        Redirects are followed one hop at a time, up to MAX_REDIRECTS, and
        every hop is checked with the validator before it is requested.

        Args:
            origin: Scheme and authority, e.g. "https://example.com"

        Returns:
            Body text, or None when the server answers with a non-2xx status

        Raises:
            PolicyCheckError: On timeouts, network errors, blocked redirect
                targets and redirect loops
        """
        robots_url = f"{origin}/robots.txt"
        current = robots_url
        for _ in range(MAX_REDIRECTS + 1):
            response = await self._get(current)
            if response.next_request is None:
                break
            current = str(response.next_request.url)
            try:
                self.validator.validate(current)
            except ValidationError as exc:
                raise PolicyCheckError(
                    f"robots.txt check failed: redirect blocked: {exc}"
                ) from exc
        else:
            raise PolicyCheckError(
                f"robots.txt check failed: more than {MAX_REDIRECTS} redirects"
            )

        if not response.is_success:
            logger.debug(
                "No robots.txt at %s (HTTP %s)", robots_url, response.status_code
            )
            return None
        return response.text

    async def _get(self, url: str) -> httpx.Response:
        try:
            return await self._client.get(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
                follow_redirects=False,
            )
        except httpx.TimeoutException as exc:
            raise PolicyCheckError(
                f"robots.txt check failed: timed out fetching {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise PolicyCheckError(
                f"robots.txt check failed: {type(exc).__name__}: {exc}"
            ) from exc

    def _fail_open(self, url: str, reason: str) -> PolicyDecision:
        logger.info("Allowing %s without policy: %s", url, reason)
        return PolicyDecision(allowed=True, reason=reason)

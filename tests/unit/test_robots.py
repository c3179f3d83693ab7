"""Unit tests for robots.txt parsing and the fail-open policy checker."""

import httpx
import pytest
import respx

from geocrawl.core.config import DEFAULT_USER_AGENT
from geocrawl.crawler.robots import (
    MAX_REDIRECTS,
    RobotsPolicyChecker,
    is_path_disallowed,
    parse_disallow_rules,
)


class TestParseDisallowRules:
    def test_without_wildcard_section_nothing_is_disallowed(self) -> None:
        robots_txt = "User-agent: Googlebot\nDisallow: /private\n"

        rules = parse_disallow_rules(robots_txt)

        assert rules == []
        assert not is_path_disallowed("/private/page", rules)

    def test_wildcard_prefix_rule(self) -> None:
        rules = parse_disallow_rules("User-agent: *\nDisallow: /a\n")

        assert is_path_disallowed("/a", rules)
        assert is_path_disallowed("/about", rules)
        assert is_path_disallowed("/a/b", rules)
        assert not is_path_disallowed("/b", rules)

    def test_bare_slash_never_blocks(self) -> None:
        rules = parse_disallow_rules("User-agent: *\nDisallow: /\n")

        assert rules == []
        assert not is_path_disallowed("/anything", rules)

    def test_empty_disallow_is_ignored(self) -> None:
        assert parse_disallow_rules("User-agent: *\nDisallow:\n") == []

    def test_other_user_agent_closes_wildcard_section(self) -> None:
        robots_txt = (
            "User-agent: *\n"
            "Disallow: /tmp\n"
            "\n"
            "User-agent: Bingbot\n"
            "Disallow: /bing-only\n"
        )

        assert parse_disallow_rules(robots_txt) == ["/tmp"]

    def test_field_names_are_case_insensitive_and_comments_stripped(self) -> None:
        robots_txt = (
            "# site policy\n"
            "USER-AGENT: *\n"
            "disallow: /cart   # checkout flow\n"
            "Allow: /cart/public\n"
        )

        assert parse_disallow_rules(robots_txt) == ["/cart"]


class TestRobotsPolicyChecker:
    @respx.mock
    @pytest.mark.asyncio
    async def test_disallowed_path(self, http_client: httpx.AsyncClient) -> None:
        respx.get("https://a.test/robots.txt").mock(
            return_value=httpx.Response(200, text="User-agent: *\nDisallow: /y\n")
        )
        checker = RobotsPolicyChecker(http_client)

        decision = await checker.check_policy("https://a.test/y")

        assert decision.allowed is False
        assert decision.reason == "Disallowed by robots.txt: /y"
        assert decision.raw_policy_text == "User-agent: *\nDisallow: /y\n"

    @respx.mock
    @pytest.mark.asyncio
    async def test_sends_identifying_user_agent(
        self, http_client: httpx.AsyncClient
    ) -> None:
        route = respx.get("https://a.test/robots.txt").mock(
            return_value=httpx.Response(200, text="")
        )
        checker = RobotsPolicyChecker(http_client)

        await checker.check_policy("https://a.test/")

        assert route.calls.last.request.headers["User-Agent"] == DEFAULT_USER_AGENT

    @respx.mock
    @pytest.mark.asyncio
    async def test_timeout_fails_open(self, http_client: httpx.AsyncClient) -> None:
        respx.get("https://slow.test/robots.txt").mock(
            side_effect=httpx.ConnectTimeout("timed out")
        )
        checker = RobotsPolicyChecker(http_client)

        decision = await checker.check_policy("https://slow.test/page")

        assert decision.allowed is True
        assert decision.reason is not None
        assert "timed out" in decision.reason

    @respx.mock
    @pytest.mark.asyncio
    async def test_network_error_fails_open(
        self, http_client: httpx.AsyncClient
    ) -> None:
        respx.get("https://down.test/robots.txt").mock(
            side_effect=httpx.ConnectError("connection refused")
        )
        checker = RobotsPolicyChecker(http_client)

        decision = await checker.check_policy("https://down.test/page")

        assert decision.allowed is True
        assert "robots.txt check failed" in (decision.reason or "")

    @respx.mock
    @pytest.mark.asyncio
    async def test_missing_robots_allows(self, http_client: httpx.AsyncClient) -> None:
        respx.get("https://a.test/robots.txt").mock(return_value=httpx.Response(404))
        checker = RobotsPolicyChecker(http_client)

        decision = await checker.check_policy("https://a.test/page")

        assert decision.allowed is True
        assert decision.reason == "No robots.txt found"

    @pytest.mark.asyncio
    async def test_malformed_url_fails_open(self, http_client: httpx.AsyncClient) -> None:
        checker = RobotsPolicyChecker(http_client)

        decision = await checker.check_policy("not a url")

        assert decision.allowed is True
        assert decision.reason is not None

    @respx.mock
    @pytest.mark.asyncio
    async def test_batch_fetches_each_origin_once(
        self, http_client: httpx.AsyncClient
    ) -> None:
        a_route = respx.get("https://a.test/robots.txt").mock(
            return_value=httpx.Response(200, text="User-agent: *\nDisallow: /y\n")
        )
        respx.get("https://b.test/robots.txt").mock(
            side_effect=httpx.ReadTimeout("timed out")
        )
        checker = RobotsPolicyChecker(http_client)
        urls = ["https://a.test/x", "https://a.test/y", "https://b.test/z", "bogus"]

        decisions = await checker.check_policy_batch(urls)

        assert list(decisions) == urls
        assert a_route.call_count == 1
        assert decisions["https://a.test/x"].allowed is True
        assert decisions["https://a.test/y"].allowed is False
        # one origin failing leaves the others untouched
        assert decisions["https://b.test/z"].allowed is True
        assert decisions["https://b.test/z"].reason is not None
        assert decisions["bogus"].allowed is True

    @respx.mock
    @pytest.mark.asyncio
    async def test_metadata_host_is_never_contacted(
        self, http_client: httpx.AsyncClient
    ) -> None:
        route = respx.get("http://169.254.169.254/robots.txt").mock(
            return_value=httpx.Response(200, text="")
        )
        checker = RobotsPolicyChecker(http_client)

        decision = await checker.check_policy("http://169.254.169.254/latest/meta-data")
        decisions = await checker.check_policy_batch(
            ["http://169.254.169.254/latest/meta-data", "http://127.0.0.1/admin"]
        )

        assert not route.called
        assert decision.allowed is True
        assert "robots.txt check failed" in (decision.reason or "")
        assert all(d.allowed for d in decisions.values())
        assert all(d.reason for d in decisions.values())

    @respx.mock
    @pytest.mark.asyncio
    async def test_redirect_to_private_host_fails_open_without_request(
        self, http_client: httpx.AsyncClient
    ) -> None:
        respx.get("https://public.test/robots.txt").mock(
            return_value=httpx.Response(
                302, headers={"Location": "http://127.0.0.1/robots.txt"}
            )
        )
        internal = respx.get("http://127.0.0.1/robots.txt").mock(
            return_value=httpx.Response(200, text="User-agent: *\nDisallow: /x\n")
        )
        checker = RobotsPolicyChecker(http_client)

        decision = await checker.check_policy("https://public.test/x")

        assert not internal.called
        assert decision.allowed is True
        assert "redirect blocked" in (decision.reason or "")

    @respx.mock
    @pytest.mark.asyncio
    async def test_follows_public_redirect(self, http_client: httpx.AsyncClient) -> None:
        respx.get("http://a.test/robots.txt").mock(
            return_value=httpx.Response(
                301, headers={"Location": "https://a.test/robots.txt"}
            )
        )
        respx.get("https://a.test/robots.txt").mock(
            return_value=httpx.Response(200, text="User-agent: *\nDisallow: /y\n")
        )
        checker = RobotsPolicyChecker(http_client)

        decision = await checker.check_policy("http://a.test/y")

        assert decision.allowed is False

    @respx.mock
    @pytest.mark.asyncio
    async def test_redirect_loop_fails_open(self, http_client: httpx.AsyncClient) -> None:
        route = respx.get("https://loop.test/robots.txt").mock(
            return_value=httpx.Response(
                302, headers={"Location": "https://loop.test/robots.txt"}
            )
        )
        checker = RobotsPolicyChecker(http_client)

        decision = await checker.check_policy("https://loop.test/page")

        assert decision.allowed is True
        assert "redirects" in (decision.reason or "")
        assert route.call_count == MAX_REDIRECTS + 1

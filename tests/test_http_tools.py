"""Tests for HTTP tools module."""

import httpx
import pytest
import respx
from httpx import Response

from mutascan.errors import NetworkError
from mutascan.tools.http import USER_AGENTS, HTTPClient


class TestHTTPClient:
    """Test HTTPClient functionality."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_request(self):
        """Test basic GET request."""
        respx.get("https://example.com").mock(return_value=Response(200, text="Hello World"))

        async with HTTPClient() as client:
            response = await client.get("https://example.com")

        assert response.status_code == 200
        assert response.body == "Hello World"
        assert response.url == "https://example.com"
        assert response.elapsed_ms >= 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_post_with_body(self):
        """Form attempts send a raw urlencoded body."""
        route = respx.post("https://example.com/login").mock(return_value=Response(200))

        async with HTTPClient() as client:
            await client.request(
                "POST",
                "https://example.com/login",
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                content="q=%27",
            )

        assert route.calls.last.request.content == b"q=%27"

    @pytest.mark.asyncio
    @respx.mock
    async def test_response_metadata(self):
        """Content type and server header are captured."""
        respx.get("https://example.com").mock(
            return_value=Response(
                200,
                text="OK",
                headers={"Content-Type": "text/html", "Server": "nginx/1.18.0"},
            )
        )

        async with HTTPClient() as client:
            response = await client.get("https://example.com")

        assert response.content_type == "text/html"
        assert response.server == "nginx/1.18.0"

    @pytest.mark.asyncio
    @respx.mock
    async def test_user_agent_rotates(self):
        """Requests without a User-Agent cycle through the built-in list."""
        route = respx.get("https://example.com").mock(return_value=Response(200))

        async with HTTPClient() as client:
            for _ in range(len(USER_AGENTS) + 1):
                await client.get("https://example.com")

        agents = [call.request.headers["user-agent"] for call in route.calls]
        assert agents[: len(USER_AGENTS)] == list(USER_AGENTS)
        assert agents[-1] == USER_AGENTS[0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_custom_user_agent_is_kept(self):
        route = respx.get("https://example.com").mock(return_value=Response(200))

        async with HTTPClient(headers={"User-Agent": "scanner/1.0"}) as client:
            await client.get("https://example.com")

        assert route.calls.last.request.headers["user-agent"] == "scanner/1.0"

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_errors_become_network_errors(self):
        respx.get("https://example.com").mock(side_effect=httpx.ConnectError("refused"))

        async with HTTPClient() as client:
            with pytest.raises(NetworkError, match="refused"):
                await client.get("https://example.com")

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeouts_become_network_errors(self):
        respx.get("https://example.com").mock(side_effect=httpx.ReadTimeout("slow"))

        async with HTTPClient() as client:
            with pytest.raises(NetworkError, match="timed out"):
                await client.get("https://example.com")

    @pytest.mark.asyncio
    @respx.mock
    async def test_redirects_are_not_followed(self):
        respx.get("https://example.com/a").mock(
            return_value=Response(302, headers={"Location": "https://example.com/b"})
        )

        async with HTTPClient() as client:
            response = await client.get("https://example.com/a")

        assert response.status_code == 302

    @pytest.mark.asyncio
    async def test_request_outside_context_fails(self):
        with pytest.raises(RuntimeError, match="async with"):
            await HTTPClient().get("https://example.com")

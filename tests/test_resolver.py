"""
SURFACESCAN Transport Resolver Tests
"""

import asyncio

import httpx
import pytest

from surfacescan.core.cancellation import CancelToken
from surfacescan.core.errors import OperationCancelled, RequestTimeout, TransportError
from surfacescan.core.resolver import TransportResolver

RELAY_ONE = "https://relay-one.test/?u={url}"
RELAY_TWO = "https://relay-two.test/fetch"


def refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class TestRelayUrls:
    """Test relay URL construction."""

    def test_template_gets_encoded_url(self):
        """Test {url} is replaced with the percent-encoded target."""
        url = TransportResolver.build_relay_url(RELAY_ONE, "https://target.test/a?b=1")
        assert url == "https://relay-one.test/?u=https%3A%2F%2Ftarget.test%2Fa%3Fb%3D1"

    def test_prefix_gets_raw_url(self):
        """Test non-template relays are used as a prefix."""
        url = TransportResolver.build_relay_url(RELAY_TWO + "/", "https://target.test/")
        assert url == "https://relay-two.test/fetch/https://target.test/"


class TestDirectStrategy:
    """Test the direct path."""

    @pytest.mark.asyncio
    async def test_direct_success(self, make_resolver):
        """Test a 2xx direct response is returned without touching relays."""
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            return httpx.Response(200, text="ok")

        resolver = make_resolver(handler, relays=[RELAY_ONE])
        response = await resolver.resolve("https://target.test/")

        assert response.status_code == 200
        assert response.transport.used_proxy is False
        assert response.transport.attempts_direct == 1
        assert response.transport.attempts_via_proxy == 0
        assert hosts == ["target.test"]

    @pytest.mark.asyncio
    async def test_redirect_status_counts_as_direct_success(self, make_resolver):
        """Test 3xx is a direct success when redirects are not followed through."""
        def handler(request):
            return httpx.Response(304)

        response = await make_resolver(handler, relays=[RELAY_ONE]).resolve("https://target.test/")
        assert response.status_code == 304
        assert not response.via_relay


class TestRelayFallback:
    """Test falling back through relays."""

    @pytest.mark.asyncio
    async def test_second_relay_succeeds(self, make_resolver):
        """Test direct and relay #1 failing, relay #2 answering."""
        def handler(request):
            if request.url.host == "relay-two.test":
                return httpx.Response(200, text="relayed")
            return refuse(request)

        resolver = make_resolver(handler, relays=[RELAY_ONE, RELAY_TWO])
        response = await resolver.resolve("https://target.test/")

        assert response.body == "relayed"
        assert response.transport.used_proxy is True
        assert response.transport.proxy_index == 1
        assert response.transport.proxy_url == RELAY_TWO
        assert response.transport.attempts_via_proxy >= 2
        assert "ConnectError" in response.transport.direct_error

    @pytest.mark.asyncio
    async def test_successful_relay_is_sticky(self, make_resolver):
        """Test the next call starts with the relay that last worked."""
        calls = []

        def handler(request):
            calls.append(request.url.host)
            if request.url.host == "relay-two.test":
                return httpx.Response(200)
            return refuse(request)

        resolver = make_resolver(handler, relays=[RELAY_ONE, RELAY_TWO])
        await resolver.resolve("https://target.test/")
        assert resolver.relay_index == 1

        calls.clear()
        response = await resolver.resolve("https://target.test/other")
        assert calls == ["target.test", "relay-two.test"]
        assert response.transport.attempts_via_proxy == 1

    @pytest.mark.asyncio
    async def test_relay_error_status_is_success(self, make_resolver):
        """Test a relay's HTTP error response is still a response."""
        def handler(request):
            if request.url.host == "relay-one.test":
                return httpx.Response(404, text="not here")
            return refuse(request)

        response = await make_resolver(handler, relays=[RELAY_ONE]).resolve("https://target.test/")
        assert response.status_code == 404
        assert response.via_relay

    @pytest.mark.asyncio
    async def test_direct_error_response_returned_when_relays_fail(self, make_resolver):
        """Test a direct 503 is returned when no relay gets through."""
        def handler(request):
            if request.url.host == "target.test":
                return httpx.Response(503, text="busy")
            return refuse(request)

        response = await make_resolver(handler, relays=[RELAY_ONE]).resolve("https://target.test/")
        assert response.status_code == 503
        assert response.transport.used_proxy is False
        assert response.transport.direct_error == "HTTP 503"
        assert response.transport.attempts_via_proxy == 1


class TestFailures:
    """Test aggregate failures."""

    @pytest.mark.asyncio
    async def test_unreachable_without_relays(self, make_resolver):
        """Test an unreachable host yields an aggregate transport error."""
        with pytest.raises(TransportError) as exc:
            await make_resolver(refuse).resolve("https://target.test/")

        message = str(exc.value)
        assert message.startswith("All attempts failed. Errors: Direct:")
        assert "connection refused" in message
        assert not isinstance(exc.value, RequestTimeout)

    @pytest.mark.asyncio
    async def test_error_lists_every_relay(self, make_resolver):
        """Test each failed strategy is named in the error."""
        resolver = make_resolver(refuse, relays=[RELAY_ONE, RELAY_TWO])
        with pytest.raises(TransportError) as exc:
            await resolver.resolve("https://target.test/")

        assert len(exc.value.reasons) == 3
        assert f"Relay #1 ({RELAY_ONE})" in str(exc.value)
        assert f"Relay #2 ({RELAY_TWO})" in str(exc.value)

    @pytest.mark.asyncio
    async def test_all_timeouts_raise_request_timeout(self, make_resolver):
        """Test timeouts on every strategy surface as RequestTimeout."""
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200)

        with pytest.raises(RequestTimeout):
            await make_resolver(handler).resolve("https://target.test/", timeout=0.05)

    @pytest.mark.asyncio
    async def test_cancel_token_stops_resolution(self, make_resolver):
        """Test a fired token aborts the in-flight request."""
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200)

        token = CancelToken()
        asyncio.get_running_loop().call_later(0.02, token.cancel, "paused")
        resolver = make_resolver(handler, relays=[RELAY_ONE])

        with pytest.raises(OperationCancelled) as exc:
            await resolver.resolve("https://target.test/", timeout=10, cancel=token)
        assert exc.value.reason == "paused"

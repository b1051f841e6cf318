"""Tests for the outbound probe client, driven through httpx.MockTransport."""

import httpx
import pytest

from cluster_services.errors import HttpError
from cluster_services.http_client import HttpClient, sanitize_headers

URL = "http://web.default.svc.cluster.local:8080/api/items"


@pytest.mark.asyncio
class TestRequest:

    async def test_json_body_decoded(self, probes, http_client):
        probes.add(URL, json={"items": [1, 2]})

        result = await http_client.get(URL)

        assert result["statusCode"] == 200
        assert result["body"] == {"items": [1, 2]}
        assert isinstance(result["responseTime"], int)
        assert result["responseTime"] >= 0

    async def test_text_body_kept_as_text(self, probes, http_client):
        probes.add(URL, text="ok")
        assert (await http_client.get(URL))["body"] == "ok"

    async def test_error_status_is_a_result(self, probes, http_client):
        probes.add(URL, status=503, json={"error": "down"})

        result = await http_client.get(URL)

        assert result["statusCode"] == 503
        assert result["body"] == {"error": "down"}

    async def test_empty_body_is_none(self, probes, http_client):
        probes.add(URL, status=204)
        assert (await http_client.get(URL))["body"] is None

    async def test_head_and_options_carry_no_body(self, probes, http_client):
        probes.add(URL, text="ignored")

        head = await http_client.head(URL)
        options = await http_client.options(URL)

        assert "body" not in head
        assert "body" not in options
        assert [r.method for r in probes.requests] == ["HEAD", "OPTIONS"]

    async def test_request_headers_forwarded(self, probes, http_client):
        probes.add(URL)

        await http_client.get(URL, headers={"X-Trace": "abc"})

        assert probes.requests[0].headers["x-trace"] == "abc"

    async def test_sensitive_response_headers_redacted(self, probes, http_client):
        probes.add(
            URL,
            text="ok",
            headers={"Set-Cookie": "session=secret", "X-Request-Id": "r-1"},
        )

        headers = (await http_client.get(URL))["headers"]

        assert headers["set-cookie"] == "[REDACTED]"
        assert headers["x-request-id"] == "r-1"

    async def test_redirects_not_followed(self, probes, http_client):
        probes.add(URL, status=302, headers={"Location": "http://evil.com/"})

        result = await http_client.get(URL)

        assert result["statusCode"] == 302
        assert probes.urls == [URL]


@pytest.mark.asyncio
class TestTransportFailures:

    async def test_connection_refused(self, probes, http_client):
        probes.refuse(URL)

        with pytest.raises(HttpError) as exc_info:
            await http_client.get(URL)

        assert exc_info.value.status_code == 0
        assert str(exc_info.value) == "Connection refused - service may be down"

    async def test_timeout(self, probes, http_client):
        probes.timeout(URL)

        with pytest.raises(HttpError) as exc_info:
            await http_client.get(URL, timeout_ms=100)

        assert exc_info.value.status_code == 0
        assert str(exc_info.value) == "Request timeout"

    async def test_other_transport_error(self):
        def handler(request):
            raise httpx.RemoteProtocolError("bad framing", request=request)

        client = HttpClient(transport=httpx.MockTransport(handler))

        with pytest.raises(HttpError) as exc_info:
            await client.get(URL)

        assert str(exc_info.value).startswith("HTTP request failed:")

    async def test_aclose_allows_reuse(self, probes, http_client):
        probes.add(URL)
        await http_client.get(URL)
        await http_client.aclose()

        assert (await http_client.get(URL))["statusCode"] == 200


class TestSanitizeHeaders:

    def test_case_insensitive_match(self):
        headers = httpx.Headers({"Authorization": "Bearer x", "X-API-Key": "k", "Content-Type": "text/plain"})

        sanitized = sanitize_headers(headers)

        assert sanitized == {
            "authorization": "[REDACTED]",
            "x-api-key": "[REDACTED]",
            "content-type": "text/plain",
        }

    def test_repeated_headers_joined(self):
        headers = httpx.Headers([("Via", "a"), ("Via", "b")])
        assert sanitize_headers(headers) == {"via": "a, b"}

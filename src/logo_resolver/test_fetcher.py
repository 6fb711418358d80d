import unittest
from unittest.mock import AsyncMock

import httpx

from logo_resolver.fetcher import Fetcher
from logo_resolver.models import ErrorKind


def make_fetcher(handler, test_case):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    test_case.addAsyncCleanup(client.aclose)
    sleep = AsyncMock()
    return Fetcher(client, sleep=sleep), sleep


class TestFetcher(unittest.IsolatedAsyncioTestCase):
    """Test the retrying Fetcher."""

    async def test_transient_503_then_success(self):
        """Two 503s then a 200 succeed on the third attempt with linear backoff."""
        statuses = iter([503, 503, 200])
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(next(statuses), content=b"ok")

        fetcher, sleep = make_fetcher(handler, self)
        result = await fetcher.get("https://x.test/logo.png")

        self.assertTrue(result.ok)
        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.content, b"ok")
        self.assertEqual(result.attempts, 3)
        self.assertEqual(len(calls), 3)

        delays = [call.args[0] for call in sleep.await_args_list]
        self.assertEqual(len(delays), 2)
        self.assertAlmostEqual(delays[0], 0.2)
        self.assertAlmostEqual(delays[1], 0.4)

    async def test_client_error_not_retried(self):
        """A 404 comes back immediately as data."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        fetcher, sleep = make_fetcher(handler, self)
        result = await fetcher.get("https://x.test/missing.png")

        self.assertFalse(result.ok)
        self.assertEqual(result.status_code, 404)
        self.assertEqual(result.error_kind, ErrorKind.HTTP_STATUS)
        self.assertEqual(result.attempts, 1)
        self.assertEqual(len(calls), 1)
        sleep.assert_not_awaited()

    async def test_rate_limit_exhausts_retries(self):
        """429 is retried up to three attempts, then the last response is returned."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429)

        fetcher, _ = make_fetcher(handler, self)
        result = await fetcher.get("https://x.test/")

        self.assertFalse(result.ok)
        self.assertEqual(result.status_code, 429)
        self.assertEqual(result.error_kind, ErrorKind.HTTP_STATUS)
        self.assertEqual(result.attempts, 3)
        self.assertEqual(len(calls), 3)

    async def test_network_error_returned_as_data(self):
        """Connection failures never raise; they are reported after three attempts."""
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        fetcher, sleep = make_fetcher(handler, self)
        result = await fetcher.get("https://down.test/")

        self.assertFalse(result.ok)
        self.assertEqual(result.status_code, 0)
        self.assertEqual(result.error_kind, ErrorKind.NETWORK)
        self.assertIn("ConnectError", result.error)
        self.assertEqual(result.attempts, 3)
        self.assertEqual(len(calls), 3)
        self.assertEqual(sleep.await_count, 2)

    async def test_timeout_then_success(self):
        """A read timeout is retried."""
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, content=b"<html></html>")

        fetcher, _ = make_fetcher(handler, self)
        result = await fetcher.get("https://slow.test/")

        self.assertTrue(result.ok)
        self.assertEqual(result.attempts, 2)

    async def test_browser_user_agent_sent(self):
        """Every request carries the desktop browser User-Agent."""
        seen = {}

        def handler(request):
            seen["ua"] = request.headers.get("User-Agent", "")
            seen["token"] = request.headers.get("X-Token")
            return httpx.Response(200)

        fetcher, _ = make_fetcher(handler, self)
        await fetcher.fetch("https://x.test/", "HEAD", headers={"X-Token": "abc"})

        self.assertTrue(seen["ua"].startswith("Mozilla/5.0"))
        self.assertIn("Chrome", seen["ua"])
        self.assertEqual(seen["token"], "abc")

    async def test_redirect_followed(self):
        """Redirects are followed and the final URL is recorded."""

        def handler(request):
            if request.url.path == "/old.png":
                return httpx.Response(301, headers={"Location": "https://x.test/new.png"})
            return httpx.Response(200, content=b"data")

        fetcher, _ = make_fetcher(handler, self)
        result = await fetcher.get("https://x.test/old.png")

        self.assertTrue(result.ok)
        self.assertEqual(result.final_url, "https://x.test/new.png")
        self.assertEqual(result.attempts, 1)

    async def test_content_type_normalized(self):
        """content_type drops parameters and lower-cases the media type."""

        def handler(request):
            return httpx.Response(200, headers={"Content-Type": "Image/SVG+XML; charset=utf-8"})

        fetcher, _ = make_fetcher(handler, self)
        result = await fetcher.get("https://x.test/logo")

        self.assertEqual(result.content_type, "image/svg+xml")

    async def test_declared_charset_decodes_text(self):
        page = "<title>Caf\u00e9</title>"

        def handler(request):
            if request.url.path == "/utf16":
                return httpx.Response(
                    200,
                    content=page.encode("utf-16"),
                    headers={"Content-Type": "text/html; charset=utf-16"},
                )
            return httpx.Response(
                200,
                content=page.encode("latin-1"),
                headers={"Content-Type": "text/html; charset=iso-8859-1"},
            )

        fetcher, _ = make_fetcher(handler, self)
        utf16 = await fetcher.get("https://x.test/utf16")
        latin1 = await fetcher.get("https://x.test/latin1")

        self.assertEqual(utf16.encoding, "utf-16")
        self.assertEqual(utf16.text, page)
        self.assertEqual(latin1.text, page)

    async def test_text_defaults_to_utf8(self):
        def handler(request):
            return httpx.Response(
                200, content="\u00a9 Acme".encode(), headers={"Content-Type": "text/html"}
            )

        fetcher, _ = make_fetcher(handler, self)
        result = await fetcher.get("https://x.test/")

        self.assertEqual(result.text, "\u00a9 Acme")


if __name__ == "__main__":
    unittest.main()

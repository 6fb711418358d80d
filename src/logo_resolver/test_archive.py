import unittest
from unittest.mock import AsyncMock

import httpx

from logo_resolver.archive import ArchiveResolver
from logo_resolver.fetcher import Fetcher
from logo_resolver.models import ErrorKind
from logo_resolver.validator import FormatValidator


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
SNAPSHOT_PNG = "http://web.archive.org/web/20200101000000/https://x.test/logo.png"
SNAPSHOT_PAGE = "http://web.archive.org/web/20200101000000/https://x.test/about"


def availability(url=None):
    if url is None:
        return {"url": "https://x.test/logo.png", "archived_snapshots": {}}
    return {
        "url": "https://x.test/logo.png",
        "archived_snapshots": {
            "closest": {"available": True, "status": "200", "url": url}
        },
    }


class TestArchiveResolver(unittest.IsolatedAsyncioTestCase):
    """Test the Wayback Machine availability lookup."""

    def make_resolver(self, api_response, snapshot_body=PNG_BYTES):
        self.requests = []

        def handler(request):
            self.requests.append(request)
            if request.url.host == "archive.org":
                return api_response()
            return httpx.Response(200, content=snapshot_body)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.addAsyncCleanup(client.aclose)
        fetcher = Fetcher(client, sleep=AsyncMock())
        return ArchiveResolver(fetcher, FormatValidator(fetcher))

    async def test_archived_image_validated(self):
        resolver = self.make_resolver(
            lambda: httpx.Response(200, json=availability(SNAPSHOT_PNG))
        )
        result = await resolver.find_snapshot("https://x.test/logo.png")

        self.assertTrue(result.success)
        self.assertEqual(result.final_url, SNAPSHOT_PNG)
        self.assertEqual(result.source_url, "https://x.test/logo.png")
        self.assertIsNone(result.reason)

        api_request, snapshot_request = self.requests
        self.assertEqual(api_request.url.path, "/wayback/available")
        self.assertEqual(api_request.url.params["url"], "https://x.test/logo.png")
        self.assertEqual(snapshot_request.url.host, "web.archive.org")
        self.assertTrue(snapshot_request.url.path.endswith("/logo.png"))

    async def test_archived_image_invalid(self):
        resolver = self.make_resolver(
            lambda: httpx.Response(200, json=availability(SNAPSHOT_PNG)),
            snapshot_body=b"<html>Wayback Machine error</html>",
        )
        result = await resolver.find_snapshot("https://x.test/logo.png")

        self.assertFalse(result.success)
        self.assertIsNone(result.final_url)
        self.assertEqual(result.error_kind, ErrorKind.ARCHIVE_NOT_FOUND)

    async def test_archived_page_returned_unchecked(self):
        resolver = self.make_resolver(
            lambda: httpx.Response(200, json=availability(SNAPSHOT_PAGE))
        )
        result = await resolver.find_snapshot("https://x.test/about")

        self.assertTrue(result.success)
        self.assertEqual(result.final_url, SNAPSHOT_PAGE)
        self.assertEqual(len(self.requests), 1)

    async def test_no_snapshot(self):
        resolver = self.make_resolver(lambda: httpx.Response(200, json=availability()))
        result = await resolver.find_snapshot("https://x.test/logo.png")

        self.assertFalse(result.success)
        self.assertEqual(result.reason, "No archive snapshot found")
        self.assertEqual(result.error_kind, ErrorKind.ARCHIVE_NOT_FOUND)

    async def test_unexpected_shape(self):
        resolver = self.make_resolver(
            lambda: httpx.Response(200, json={"archived_snapshots": {"closest": []}})
        )
        result = await resolver.find_snapshot("https://x.test/logo.png")

        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, ErrorKind.ARCHIVE_NOT_FOUND)

    async def test_malformed_json(self):
        resolver = self.make_resolver(lambda: httpx.Response(200, content=b"{not json"))
        result = await resolver.find_snapshot("https://x.test/logo.png")

        self.assertFalse(result.success)
        self.assertIn("Could not parse archive response", result.reason)

    async def test_api_error_status(self):
        """A failing archive API is retried and then reported, never raised."""
        resolver = self.make_resolver(lambda: httpx.Response(503))
        result = await resolver.find_snapshot("https://x.test/logo.png")

        self.assertFalse(result.success)
        self.assertEqual(result.reason, "Archive API HTTP 503")
        self.assertEqual(result.error_kind, ErrorKind.HTTP_STATUS)
        self.assertEqual(len(self.requests), 3)


if __name__ == "__main__":
    unittest.main()

"""Bounded HTTP fetching gated by source validation."""

import asyncio
import logging
from typing import Callable, Optional, Tuple, Union

import httpx

from recipe_importer.app.core.config import get_settings
from recipe_importer.app.services.url_parsing.models import (
    ExtractionFailure,
    FetchedDocument,
    FetchedImage,
    ImportErrorCode,
    SourceVerdict,
    failure,
)
from recipe_importer.app.services.url_parsing.parsing_utils import sanitize_url
from recipe_importer.app.services.url_parsing.source_guard import validate_source_url

logger = logging.getLogger(__name__)

MAX_RESPONSE_SIZE = 5 * 1024 * 1024
MAX_REDIRECTS = 5
CONNECT_TIMEOUT_SECONDS = 5.0
TOTAL_TIMEOUT_SECONDS = 10.0
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
IMAGE_CONTENT_TYPES = ("image/",)
REDIRECT_STATUSES = {301, 302, 303, 307, 308}

ClientFactory = Callable[..., httpx.AsyncClient]


class _FetchError(Exception):
    def __init__(self, code: ImportErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def _default_client_factory(**kwargs) -> httpx.AsyncClient:
    return httpx.AsyncClient(**kwargs)


class SafeFetcher:
    """GET a user-supplied URL under strict redirect, time, size and type bounds.

    Redirects are followed by hand so that every hop, the first included,
    passes source validation before any request is sent. The body is streamed and abandoned as soon
    as it crosses ``max_bytes``.
    """

    def __init__(
        self,
        guard: Callable[[str], SourceVerdict] = validate_source_url,
        client_factory: ClientFactory = _default_client_factory,
        max_bytes: int = MAX_RESPONSE_SIZE,
        max_redirects: int = MAX_REDIRECTS,
        connect_timeout: float = CONNECT_TIMEOUT_SECONDS,
        total_timeout: float = TOTAL_TIMEOUT_SECONDS,
        user_agent: Optional[str] = None,
    ):
        self.guard = guard
        self.client_factory = client_factory
        self.max_bytes = max_bytes
        self.max_redirects = max_redirects
        self.connect_timeout = connect_timeout
        self.total_timeout = total_timeout
        self.user_agent = user_agent or get_settings().scraper_user_agent

    async def fetch_document(self, url: str) -> Union[FetchedDocument, ExtractionFailure]:
        try:
            body, content_type, final_url = await self._fetch(url, HTML_CONTENT_TYPES, "text/html,application/xhtml+xml")
        except _FetchError as exc:
            return failure(exc.code, exc.message)
        return FetchedDocument(body=body, content_type=content_type, final_url=final_url)

    async def fetch_image(self, url: str) -> Union[FetchedImage, ExtractionFailure]:
        try:
            body, content_type, final_url = await self._fetch(url, IMAGE_CONTENT_TYPES, "image/*")
        except _FetchError as exc:
            return failure(exc.code, exc.message)
        return FetchedImage(body=body, content_type=content_type, final_url=final_url)

    async def _fetch(self, url: str, allowed_types: Tuple[str, ...], accept: str) -> Tuple[bytes, str, str]:
        timeout = httpx.Timeout(self.total_timeout, connect=self.connect_timeout)
        headers = {"User-Agent": self.user_agent, "Accept": accept}
        try:
            async with self.client_factory(timeout=timeout, follow_redirects=False, headers=headers) as client:
                return await asyncio.wait_for(
                    self._follow(client, url, allowed_types), timeout=self.total_timeout
                )
        except asyncio.TimeoutError:
            logger.info("Fetch deadline exceeded for %s", sanitize_url(url))
            raise _FetchError(ImportErrorCode.TIMEOUT, "The page took too long to load")
        except httpx.TimeoutException:
            logger.info("Timeout for %s", sanitize_url(url))
            raise _FetchError(ImportErrorCode.TIMEOUT, "The page took too long to load")
        except (httpx.ConnectError, httpx.RemoteProtocolError) as exc:
            logger.info("Connection failed for %s: %s", sanitize_url(url), exc.__class__.__name__)
            raise _FetchError(ImportErrorCode.CONNECTION_FAILED, "Could not connect to the server")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.info("Fetch error for %s: %s", sanitize_url(url), exc.__class__.__name__)
            raise _FetchError(ImportErrorCode.FETCH_FAILED, "Could not fetch the page")

    async def _follow(
        self, client: httpx.AsyncClient, url: str, allowed_types: Tuple[str, ...]
    ) -> Tuple[bytes, str, str]:
        current = url
        for hop in range(self.max_redirects + 1):
            verdict = await asyncio.to_thread(self.guard, current)
            if not verdict.allowed and hop == 0:
                logger.info("Disallowed fetch target %s: %s", sanitize_url(current), verdict.reason)
                raise _FetchError(ImportErrorCode.INVALID_URL, verdict.reason or "URL is not allowed")
            if not verdict.allowed:
                logger.info("Redirect to disallowed target %s: %s", sanitize_url(current), verdict.reason)
                raise _FetchError(ImportErrorCode.FETCH_FAILED, "Could not fetch the page")

            request = client.build_request("GET", current)
            response = await client.send(request, stream=True)
            try:
                if response.status_code in REDIRECT_STATUSES and response.headers.get("location"):
                    current = str(response.url.join(response.headers["location"]))
                    continue
                return await self._read_body(response, allowed_types)
            finally:
                await response.aclose()

        logger.info("Too many redirects for %s", sanitize_url(url))
        raise _FetchError(ImportErrorCode.TOO_MANY_REDIRECTS, "Too many redirects")

    async def _read_body(self, response: httpx.Response, allowed_types: Tuple[str, ...]) -> Tuple[bytes, str, str]:
        final_url = str(response.url)
        if not response.is_success:
            logger.info("HTTP %s for %s", response.status_code, sanitize_url(final_url))
            raise _FetchError(ImportErrorCode.FETCH_FAILED, "Could not fetch the page")

        content_type = response.headers.get("content-type", "")
        if not content_type.strip().lower().startswith(allowed_types):
            logger.info("Invalid content-type for %s: %s", sanitize_url(final_url), content_type)
            raise _FetchError(ImportErrorCode.INVALID_CONTENT_TYPE, "The URL does not appear to be a web page")

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            logger.info("Declared length too large for %s: %s bytes", sanitize_url(final_url), declared)
            raise _FetchError(ImportErrorCode.RESPONSE_TOO_LARGE, "The page is too large to process")

        chunks = bytearray()
        async for chunk in response.aiter_bytes():
            chunks.extend(chunk)
            if len(chunks) > self.max_bytes:
                logger.info("Response too large for %s: over %d bytes", sanitize_url(final_url), self.max_bytes)
                raise _FetchError(ImportErrorCode.RESPONSE_TOO_LARGE, "The page is too large to process")
        return bytes(chunks), content_type, final_url


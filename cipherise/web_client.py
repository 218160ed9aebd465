"""Async HTTP transport for the Cipherise server.

WebClient sends JSON requests and classifies failures into the SDK's
transport errors:

- RequestTimeoutError: 408/502/504 (a reverse proxy may answer 502 before
  the server gives up), a non-204 response with an empty body, an
  "error_message" of "Request timeout", or an httpx timeout
- SessionExpiredError: an "error_message" mentioning an invalid or
  expired session
- TransportError: any other "error_message", an unparseable body, or a
  network failure

The session token, when present, travels in the SessionId header.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from .common.config import get_settings
from .common.errors import RequestTimeoutError, SessionExpiredError, TransportError
from .common.logger import VERBOSE, get_logger
from .common.utils import normalize_base_url

http_logger = get_logger("http")

TIMEOUT_STATUSES = (408, 502, 504)


class WebClient:
    def __init__(
        self,
        url: str,
        logger: Optional[logging.LoggerAdapter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        log_http: Optional[bool] = None,
    ):
        settings = get_settings()
        self.url = normalize_base_url(url)
        self.logger = logger or logging.LoggerAdapter(get_logger("web_client"), {})
        self.log_http = settings.log_http if log_http is None else log_http

        self._owns_client = http_client is None
        if http_client is None:
            effective = timeout if timeout is not None else settings.http_timeout
            http_client = httpx.AsyncClient(timeout=httpx.Timeout(effective))
        self._http = http_client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "WebClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def post_url(self, url: str, form: Any, session_id: Optional[str]) -> Any:
        """Send a POST request with a JSON body to an absolute URL."""
        self.logger.log(VERBOSE, 'post_url("%s", `%s`, %s)', url, json.dumps(form), session_id)
        if self.log_http:
            http_logger.debug("Request: POST %s with %s", url, json.dumps(form))
        return await self._send("POST", url, session_id, json_body=form)

    async def post_uri(self, uri: str, form: Any, session_id: Optional[str]) -> Any:
        """Send a POST request to a path relative to the server URL."""
        return await self.post_url(self.url + uri, form, session_id)

    async def get_url(self, url: str, session_id: Optional[str]) -> Any:
        """Send a GET request to an absolute URL."""
        self.logger.log(VERBOSE, 'get_url("%s", %s)', url, session_id)
        if self.log_http:
            http_logger.debug("Request: GET %s", url)
        return await self._send("GET", url, session_id)

    async def get_uri(self, uri: str, session_id: Optional[str]) -> Any:
        """Send a GET request to a path relative to the server URL."""
        return await self.get_url(self.url + uri, session_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _send(self, method: str, url: str, session_id: Optional[str], json_body: Any = None) -> Any:
        headers: Dict[str, str] = {}
        if session_id:
            headers["SessionId"] = session_id

        try:
            if method == "POST":
                response = await self._http.post(url, json=json_body, headers=headers)
            else:
                response = await self._http.get(url, headers=headers)
        except httpx.TimeoutException as e:
            if self.log_http:
                http_logger.debug("Response (failed): %s", e)
            raise RequestTimeoutError("Operation timed out") from e
        except httpx.HTTPError as e:
            if self.log_http:
                http_logger.debug("Response (failed): %s", e)
            raise TransportError(f"Request to {url} failed: {e}") from e

        try:
            body = self.classify(response)
        except TransportError as e:
            if self.log_http:
                http_logger.debug("Response (failed): %s", e)
            raise

        if self.log_http:
            http_logger.debug("Response: %s", json.dumps(body))
        return body

    @staticmethod
    def classify(response: httpx.Response) -> Any:
        """Return the decoded JSON body of `response` or raise the matching error."""
        status = response.status_code
        if status in TIMEOUT_STATUSES:
            raise RequestTimeoutError("Operation timed out")

        text = response.text
        if not text.strip():
            if status == 204:
                return {}
            raise RequestTimeoutError("Operation timed out")

        try:
            body = json.loads(text)
        except ValueError as e:
            raise TransportError(f"Invalid response: `{text}`") from e

        error_message = body.get("error_message") if isinstance(body, dict) else None
        if error_message:
            error_message = str(error_message)
            if error_message == "Request timeout":
                raise RequestTimeoutError("Operation timed out")

            lowered = error_message.lower()
            if "invalid session" in lowered or "expired session" in lowered:
                raise SessionExpiredError("Cipherise session expired")

            raise TransportError(error_message)

        return body

"""
HTTP transport for the Power BI and Fabric REST APIs.

This module assembles URLs from ``:name`` path templates, decodes response
bodies by content type, and retries a rate-limited (429) request exactly once
after honoring its Retry-After header.

Classes:
    RateLimitedError: Raised for a 429 response, consumed by the retry policy
    RequestHandler: Sends a single request, mapping transport failures
    ResponseHandler: Decodes a response or raises CommunicationError
    HttpTransport: Authenticated, retrying call entry point
"""

import json
import logging
import math
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Literal, Optional

import requests
from tenacity import Retrying, retry_if_exception, stop_after_attempt

from .auth import TokenManager
from .constants import APIConfig
from .errors import CommunicationError

logger = logging.getLogger(__name__)

HttpMethod = Literal["GET", "POST", "PATCH", "DELETE", "PUT"]

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Cache-Control": "no-cache",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
}


class RateLimitedError(Exception):
    """Exception for an HTTP 429 response.

    The platform answers 429 with a Retry-After header indicating when the
    client may try again. This exception carries the parsed delay for the
    retry policy.
    """

    def __init__(self, retry_after: float, status_text: str = "Too Many Requests"):
        self.status_code = 429
        self.retry_after = retry_after
        self.status_text = status_text
        super().__init__(f"Rate limited (HTTP 429), retry after {retry_after}s")


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> float:
    """Convert a Retry-After header into a delay in seconds.

    The header holds either a number of seconds or an HTTP date. A missing or
    unparseable header yields the default delay; a date in the past yields 0.

    Args:
        value: Raw header value
        now: Reference time for HTTP dates (defaults to current UTC time)

    Returns:
        Delay in seconds
    """
    if value is None or not str(value).strip():
        return float(APIConfig.DEFAULT_RETRY_AFTER_SECONDS)

    value = str(value).strip()
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            logger.warning(f"Non-finite Retry-After header {value!r}, using default delay")
            return float(APIConfig.DEFAULT_RETRY_AFTER_SECONDS)
        return max(seconds, 0.0)

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        logger.warning(f"Unparseable Retry-After header {value!r}, using default delay")
        return float(APIConfig.DEFAULT_RETRY_AFTER_SECONDS)

    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max((retry_at - now).total_seconds(), 0.0)


def is_rate_limited(exception: BaseException) -> bool:
    return isinstance(exception, RateLimitedError)


def get_retry_wait_time(retry_state: Any) -> float:
    """Tenacity wait function that honors the Retry-After of a 429 response.

    Args:
        retry_state: The tenacity retry state object

    Returns:
        Number of seconds to wait before retrying
    """
    exception = retry_state.outcome.exception()
    if isinstance(exception, RateLimitedError):
        return float(exception.retry_after)
    return float(APIConfig.DEFAULT_RETRY_AFTER_SECONDS)


def _log_rate_limit(retry_state: Any) -> None:
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(f"Received 429 Too Many Requests. Retrying after {wait:.0f} seconds")


def assemble_url(
    url: str,
    path_params: Optional[Dict[str, Any]] = None,
    query_params: Optional[Dict[str, Any]] = None,
) -> str:
    """Substitute ``:name`` tokens and append query parameters.

    Query values are appended verbatim as ``key=value`` pairs joined by ``&``;
    no percent-encoding is performed, so callers must pass URL-safe values.
    Single quotes are stripped from query keys.
    """
    call_url = url
    for name, value in (path_params or {}).items():
        call_url = call_url.replace(f":{name}", str(value))

    if query_params:
        query = "&".join(
            f"{key.replace(chr(39), '')}={value}" for key, value in query_params.items()
        )
        call_url = f"{call_url}?{query}"

    return call_url


class RequestHandler:
    """Sends a single HTTP request and maps transport failures.

    Timeouts, connection failures and other request exceptions become
    CommunicationError with synthetic status codes (408, 503, 500).
    """

    def __init__(self, default_timeout: int = APIConfig.DEFAULT_TIMEOUT):
        self._default_timeout = default_timeout

    def execute(
        self,
        method: HttpMethod,
        url: str,
        operation_name: str,
        timeout: Optional[int] = None,
        **kwargs: Any
    ) -> requests.Response:
        """Execute an HTTP request.

        Args:
            method: HTTP method
            url: Fully assembled URL
            operation_name: Description of operation (for logging)
            timeout: Request timeout in seconds (uses default if not specified)
            **kwargs: Additional arguments passed to requests

        Returns:
            Response object

        Raises:
            CommunicationError: If the request could not be completed
        """
        timeout = timeout or self._default_timeout

        try:
            logger.info(f"{operation_name}: {method} {url}")
            return requests.request(method, url, timeout=timeout, **kwargs)

        except requests.exceptions.Timeout as e:
            logger.error(f"{operation_name}: Request timeout after {timeout}s")
            raise CommunicationError(408, f"Request timed out after {timeout} seconds") from e

        except requests.exceptions.ConnectionError as e:
            logger.error(f"{operation_name}: Connection error: {e}")
            raise CommunicationError(503, "Connection error") from e

        except requests.exceptions.RequestException as e:
            logger.error(f"{operation_name}: Request error: {e}")
            raise CommunicationError(500, f"Request failed: {e}") from e


class ResponseHandler:
    """Decodes API responses by content type.

    - ``application/xml`` / ``text/xml``: bytes decoded with the declared
      charset (utf-8 by default)
    - ``application/zip``: raw text
    - anything else: JSON when the body is non-empty, otherwise None
    """

    @staticmethod
    def _charset(content_type: str) -> str:
        for part in content_type.split(";"):
            part = part.strip()
            if part.lower().startswith("charset="):
                return part.split("=", 1)[1].strip().strip('"') or "utf-8"
        return "utf-8"

    @classmethod
    def handle(cls, response: requests.Response) -> Any:
        """Return the decoded body of a successful response.

        Raises:
            RateLimitedError: On HTTP 429
            CommunicationError: On any other non-2xx status or an invalid JSON body
        """
        status = response.status_code
        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            raise RateLimitedError(retry_after)

        if not 200 <= status < 300:
            reason = getattr(response, "reason", "") or ""
            body = response.text or ""
            logger.error(f"HTTP {status} {reason}: {body[:500]}")
            raise CommunicationError(status, str(reason), body)

        content_type = response.headers.get("Content-Type") or ""

        if "application/xml" in content_type or "text/xml" in content_type:
            charset = cls._charset(content_type)
            try:
                return response.content.decode(charset)
            except LookupError:
                logger.warning(f"Unknown charset {charset!r}, decoding as utf-8")
                return response.content.decode("utf-8", errors="replace")

        if content_type == "application/zip":
            return response.text

        text = response.text
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON response: {e}")
            logger.debug(f"Response text: {text[:500]}")
            raise CommunicationError(status, f"Invalid JSON response: {e}", text) from e


class HttpTransport:
    """Authenticated HTTP calls against one REST root.

    A 429 response suspends the calling operation for the Retry-After delay
    and retries the identical request once. A second 429, or any other
    non-2xx response, surfaces as CommunicationError. Other failures are
    never retried here.

    Example:
        >>> transport = HttpTransport(APIConfig.POWERBI_API_URL, token_manager)
        >>> transport.call("GET", "/groups/:groupId/reports", path_params={"groupId": gid})
    """

    def __init__(
        self,
        base_url: str,
        token_manager: TokenManager,
        timeout: int = APIConfig.DEFAULT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int = APIConfig.RATE_LIMIT_ATTEMPTS,
    ):
        """
        Args:
            base_url: REST root that path templates are appended to
            token_manager: Source of bearer tokens for this API
            timeout: Per-request timeout in seconds
            sleep: Suspension primitive used while waiting out a 429
            max_attempts: Total attempts for a rate-limited request
        """
        self.base_url = base_url.rstrip("/")
        self.token_manager = token_manager
        self._sleep = sleep
        self._max_attempts = max_attempts
        self._request_handler = RequestHandler(default_timeout=timeout)

    def _headers(self, extra: Optional[Dict[str, str]] = None, json_content: bool = True) -> Dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        if json_content:
            headers["Content-Type"] = "application/json"
        headers["Authorization"] = f"Bearer {self.token_manager.get_token()}"
        if extra:
            headers.update(extra)
        return headers

    def _send(
        self,
        method: HttpMethod,
        url: str,
        operation_name: str,
        json_body: Any,
        files: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
    ) -> Any:
        kwargs: Dict[str, Any] = {"headers": self._headers(headers, json_content=files is None)}
        if json_body is not None:
            kwargs["data"] = json.dumps(json_body)
        if files is not None:
            kwargs["files"] = files

        response = self._request_handler.execute(method, url, operation_name, **kwargs)
        return ResponseHandler.handle(response)

    def call(
        self,
        method: HttpMethod,
        path: str,
        path_params: Optional[Dict[str, Any]] = None,
        query_params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        files: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        operation_name: Optional[str] = None,
    ) -> Any:
        """Issue a request and return the decoded body.

        Args:
            method: HTTP method
            path: Path template relative to the base URL
            path_params: Values for ``:name`` tokens in the path
            query_params: Query parameters appended verbatim
            json_body: Body serialized as JSON
            files: Multipart files (disables the JSON content type)
            headers: Extra headers merged over the defaults
            operation_name: Description used in log lines

        Returns:
            Decoded response body (dict, list, str or None)

        Raises:
            CommunicationError: On a non-2xx response after the 429 retry
            AuthenticationError: If no bearer token can be obtained
        """
        url = assemble_url(f"{self.base_url}{path}", path_params, query_params)
        operation_name = operation_name or f"{method} {path}"

        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception(is_rate_limited),
            wait=get_retry_wait_time,
            sleep=self._sleep,
            before_sleep=_log_rate_limit,
            reraise=True,
        )
        try:
            return retrying(self._send, method, url, operation_name, json_body, files, headers)
        except RateLimitedError as e:
            logger.error(f"{operation_name}: still rate limited after {self._max_attempts} attempts")
            raise CommunicationError(e.status_code, e.status_text) from e

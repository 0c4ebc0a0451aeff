"""ERPNext HTTP Client.

Low-level HTTP client for ERPNext whitelisted server methods.
Handles token authentication headers, retries, and error handling.
"""

from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass, field
import asyncio
import json

import aiohttp

from core.observability.logging import get_logger

logger = get_logger(__name__)


class ERPNextApiError(Exception):
    """Base exception for ERPNext API errors."""
    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ERPNextAuthenticationError(ERPNextApiError):
    """Authentication failed (401/403)."""
    pass


class ERPNextNotFoundError(ERPNextApiError):
    """Server method not found (404)."""
    pass


class ERPNextRateLimitError(ERPNextApiError):
    """Rate limit exceeded (429)."""
    def __init__(self, message: str, retry_after: float = 60):
        super().__init__(message, 429)
        self.retry_after = retry_after


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a Retry-After header.

    Only the delta-seconds form is honoured; HTTP dates, blanks and junk
    return None so the caller falls back to its own backoff.
    """
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


@dataclass
class ERPNextConfig:
    """Configuration for the ERPNext client."""
    base_url: str
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    timeout_seconds: float = 60.0

    def method_url(self, method: str) -> str:
        return f"{self.base_url.rstrip('/')}/api/method/{method}"


class ERPNextClient:
    """HTTP client for ERPNext server methods.

    Usage:
        client = ERPNextClient(ERPNextConfig(base_url, api_key, api_secret))
        payload = await client.call_method("get_stock_flow_by_warehouse")
        await client.close()
    """

    def __init__(self, config: ERPNextConfig):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.config.api_key and self.config.api_secret:
            headers["Authorization"] = f"token {self.config.api_key}:{self.config.api_secret}"
        return headers

    async def call_method(
        self,
        method: str,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Call a whitelisted server method with automatic retries.

        Args:
            method: Dotted or plain server method name
            params: Query parameters

        Returns:
            Decoded JSON response

        Raises:
            ERPNextAuthenticationError: Credentials rejected
            ERPNextNotFoundError: Method does not exist
            ERPNextRateLimitError: Rate limit exceeded after retries
            ERPNextApiError: Other API or transport errors
        """
        session = await self._get_session()
        url = self.config.method_url(method)
        retry_config = self.config.retry_config
        last_error: Optional[Exception] = None

        for attempt in range(retry_config.max_retries + 1):
            try:
                timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)

                async with session.get(
                    url,
                    headers=self._get_headers(),
                    params=params,
                    timeout=timeout,
                ) as response:
                    response_text = await response.text()

                    # Success
                    if response.status < 400:
                        return json.loads(response_text) if response_text else {}

                    if response.status in (401, 403):
                        raise ERPNextAuthenticationError(
                            f"Authentication failed: {response_text}",
                            response.status,
                            response_text
                        )

                    if response.status == 404:
                        raise ERPNextNotFoundError(
                            f"Server method not found: {method}",
                            response.status,
                            response_text
                        )

                    if response.status == 429:
                        retry_after = parse_retry_after(response.headers.get("Retry-After"))
                        if retry_after is None:
                            retry_after = retry_config.get_delay(attempt)
                        if attempt < retry_config.max_retries:
                            delay = min(retry_after, retry_config.max_delay)
                            logger.warning(f"Rate limited, waiting {delay}s...")
                            await asyncio.sleep(delay)
                            continue
                        raise ERPNextRateLimitError("Rate limit exceeded", retry_after)

                    # Retry on server errors
                    if response.status in retry_config.retry_on_status:
                        if attempt < retry_config.max_retries:
                            delay = retry_config.get_delay(attempt)
                            logger.warning(
                                f"Request failed with {response.status}, "
                                f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})"
                            )
                            await asyncio.sleep(delay)
                            continue

                    # Non-retryable error
                    raise ERPNextApiError(
                        f"API error {response.status}: {response_text[:500]}",
                        response.status,
                        response_text
                    )

            except ERPNextApiError:
                raise  # Don't retry our own exceptions
            except json.JSONDecodeError as e:
                raise ERPNextApiError(f"Invalid JSON from {method}: {e}")
            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_error = e
                if attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(
                        f"Request failed with {type(e).__name__}: {e}, "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise ERPNextApiError(f"Request failed after {retry_config.max_retries} retries: {e}")

        raise ERPNextApiError(f"Request failed: {last_error}")

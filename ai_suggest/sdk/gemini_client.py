"""
Gemini generateContent client with credential failover.

Sends completion requests and rotates through a pool of API keys when a
request fails.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import httpx

from ..core.token_counter import TokenUsage

logger = logging.getLogger(__name__)


class CredentialsExhaustedError(Exception):
    """Raised when every credential in the pool failed for one request."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        message = f"All {attempts} credential(s) failed"
        if last_error is not None:
            message += f"; last error: {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class CredentialPool:
    """Ordered, non-empty list of credentials with a circular cursor.

    The cursor always satisfies ``0 <= index < len(pool)``.
    """

    def __init__(self, credentials: Sequence[str]):
        """Initialize the pool.

        Raises:
            ValueError: If no credential is given or any credential is empty
        """
        if not credentials:
            raise ValueError("credential pool cannot be empty")
        if any(not c or not c.strip() for c in credentials):
            raise ValueError("credentials cannot be empty strings")
        self._credentials = tuple(credentials)
        self.index = 0

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def current(self) -> str:
        return self._credentials[self.index]

    def advance(self) -> None:
        """Move the cursor to the next credential, wrapping around."""
        self.index = (self.index + 1) % len(self._credentials)


@dataclass(frozen=True)
class Completion:
    """A usable completion candidate and its reported token usage."""
    text: str
    usage: TokenUsage


def build_payload(prompt: str) -> Dict[str, Any]:
    """Request body for generateContent."""
    return {"contents": [{"parts": [{"text": prompt}]}]}


def extract_completion(response: Any) -> Optional[Completion]:
    """Read ``candidates[0].content.parts[0].text`` from a response body.

    Returns:
        The completion, or None when the body has no non-empty candidate text
    """
    try:
        text = response["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str) or not text.strip():
        return None
    return Completion(text=text.strip(), usage=TokenUsage.from_response(response))


class CredentialRotatingDispatcher:
    """Posts requests to the completion endpoint, failing over across keys.

    Any request failure (connection error, timeout, error status, non-JSON
    body) moves to the next credential and retries immediately. Each
    credential is tried at most once per call to :meth:`send`. The cursor is
    kept between calls, so a working key stays in use.
    """

    def __init__(
        self,
        url: str,
        credentials: Sequence[str],
        timeout: float = 5.0,
        credential_header: str = "X-goog-api-key",
        client: Optional[httpx.Client] = None,
    ):
        """Initialize the dispatcher.

        Args:
            url: Endpoint URL
            credentials: Ordered API keys (required, non-empty)
            timeout: Upper bound in seconds for each attempt
            credential_header: Header that carries the key
            client: HTTP client to use (a new one is created if omitted)

        Raises:
            ValueError: If url or credentials are missing
        """
        if not url or not url.strip():
            raise ValueError("url is required and cannot be empty")
        if timeout <= 0:
            raise ValueError("timeout must be > 0")

        self.url = url
        self.pool = CredentialPool(credentials)
        self.timeout = timeout
        self.credential_header = credential_header
        self.client = client or httpx.Client()

    def send(self, payload: Dict[str, Any]) -> Any:
        """POST ``payload`` and return the decoded JSON body.

        Raises:
            CredentialsExhaustedError: After one failed attempt per credential
        """
        attempts = len(self.pool)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            index = self.pool.index
            try:
                response = self.client.post(
                    self.url,
                    json=payload,
                    headers={
                        "Content-Type": "application/json",
                        self.credential_header: self.pool.current,
                    },
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.json()
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.debug(
                    "Attempt %d/%d with credential #%d failed: %s",
                    attempt, attempts, index, e,
                )
                self.pool.advance()

        # Every failure advanced the cursor, so it is back where this call began.
        raise CredentialsExhaustedError(attempts, last_error)

    def complete(self, prompt: str) -> Optional[Completion]:
        """Send ``prompt`` and return its completion, if the response has one.

        Raises:
            CredentialsExhaustedError: If no credential produced a response
        """
        response = self.send(build_payload(prompt))
        completion = extract_completion(response)
        if completion is None:
            logger.debug("Response had no usable candidate")
        return completion

    def close(self) -> None:
        self.client.close()

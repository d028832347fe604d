"""TokenClient: short-lived session credentials for the realtime ASR service."""
import logging
from abc import ABC, abstractmethod

import httpx

from src.constants import MSG_NO_TOKEN, SPEECHMATICS_TOKEN_TTL, SPEECHMATICS_TOKEN_URL, TOKEN_HTTP_TIMEOUT
from src.errors import TokenError

logger = logging.getLogger(__name__)


class TokenClient(ABC):
    @abstractmethod
    async def fetch_token(self) -> str:
        """Return a usable credential. Raises TokenError when none is issued."""
        ...


class StaticTokenClient(TokenClient):

    def __init__(self, token: str | None) -> None:
        self._token = token

    async def fetch_token(self) -> str:
        match self._token:
            case str() as t if t.strip():
                return t.strip()
            case _:
                raise TokenError(MSG_NO_TOKEN)


class SpeechmaticsTokenClient(TokenClient):
    """Exchanges the long-lived API key for a temporary realtime key."""

    def __init__(
        self,
        api_key: str,
        url: str = SPEECHMATICS_TOKEN_URL,
        ttl: int = SPEECHMATICS_TOKEN_TTL,
        timeout: float = TOKEN_HTTP_TIMEOUT,
    ) -> None:
        self._api_key = api_key
        self._url = url
        self._ttl = ttl
        self._timeout = timeout

    async def fetch_token(self) -> str:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._url,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={"ttl": self._ttl},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise TokenError(
                f"Token request failed: HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise TokenError(f"Token request failed: {exc}") from exc

        match payload:
            case {"key_value": str() as key} if key:
                return key
            case {"token": str() as key} if key:
                return key
            case _:
                logger.error(MSG_NO_TOKEN)
                raise TokenError(MSG_NO_TOKEN)

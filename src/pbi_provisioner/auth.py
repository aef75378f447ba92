"""
Bearer token acquisition for the Power BI and Fabric APIs.

A TokenManager is parameterized by an Audience (authority, resource, scopes)
and owns its own token cache. One instance exists per target platform, so
tokens minted for different scopes are never shared.

Example:
    >>> manager = TokenManager(
    ...     Audience.powerbi(),
    ...     tenant_id="...", client_id="...", client_secret="...",
    ... )
    >>> headers = {"Authorization": f"Bearer {manager.get_token()}"}
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from azure.identity import ClientSecretCredential

from .constants import APIConfig
from .errors import AuthenticationError, MissingParameterError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Audience:
    """
    Target API descriptor for a client-credentials exchange.

    Attributes:
        authority: Identity authority host
        resource: Resource identifier used to derive the default scope
        scopes: Explicit scopes; defaults to ``<resource>/.default``
    """
    authority: str = APIConfig.AUTHORITY
    resource: str = APIConfig.POWERBI_RESOURCE
    scopes: List[str] = field(default_factory=list)

    @property
    def effective_scopes(self) -> List[str]:
        if self.scopes:
            return list(self.scopes)
        return [f"{self.resource.rstrip('/')}/.default"]

    @classmethod
    def powerbi(cls, authority: Optional[str] = None, scopes: Optional[List[str]] = None) -> "Audience":
        return cls(
            authority=authority or APIConfig.AUTHORITY,
            resource=APIConfig.POWERBI_RESOURCE,
            scopes=list(scopes or []),
        )

    @classmethod
    def fabric(cls, authority: Optional[str] = None, scopes: Optional[List[str]] = None) -> "Audience":
        return cls(
            authority=authority or APIConfig.AUTHORITY,
            resource=APIConfig.FABRIC_RESOURCE,
            scopes=list(scopes or []),
        )


@dataclass(frozen=True)
class AccessToken:
    """A bearer credential with its absolute expiry in epoch milliseconds."""
    value: str
    expires_at_ms: int

    def is_valid(
        self,
        now_ms: Optional[int] = None,
        safety_margin_ms: int = APIConfig.TOKEN_SAFETY_MARGIN_SECONDS * 1000,
    ) -> bool:
        if not self.value:
            return False
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        return now_ms + safety_margin_ms < self.expires_at_ms


class TokenManager:
    """
    Acquires and caches a bearer token for one audience.

    The cache is read before every call and refreshed only when the token is
    missing or within the safety margin of its expiry. Concurrent callers
    sharing an instance may both refresh an expired token; the last writer
    wins and both hold a valid token.
    """

    def __init__(
        self,
        audience: Audience,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        safety_margin_seconds: int = APIConfig.TOKEN_SAFETY_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the token manager.

        Args:
            audience: Target API descriptor
            tenant_id: Directory (tenant) id of the app registration
            client_id: Application (client) id
            client_secret: Client secret of the app registration
            safety_margin_seconds: Refresh tokens this long before expiry
            clock: Returns the current time in epoch seconds

        Raises:
            MissingParameterError: If any identity setting is empty
        """
        missing = [
            name for name, value in (
                ("tenant_id", tenant_id),
                ("client_id", client_id),
                ("client_secret", client_secret),
            ) if not value
        ]
        if missing:
            raise MissingParameterError(", ".join(missing))

        self.audience = audience
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._safety_margin_ms = safety_margin_seconds * 1000
        self._clock = clock
        self._credential: Optional[Any] = None
        self._token: Optional[AccessToken] = None
        self._lock = threading.Lock()

    def _get_credential(self) -> Any:
        """Build the azure-identity credential used for the exchange."""
        return ClientSecretCredential(
            tenant_id=self._tenant_id,
            client_id=self._client_id,
            client_secret=self._client_secret,
            authority=self.audience.authority,
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def is_valid(self, token: Optional[AccessToken]) -> bool:
        return token is not None and token.is_valid(self._now_ms(), self._safety_margin_ms)

    def acquire_token(self) -> AccessToken:
        """
        Perform a client-credentials exchange and return a fresh token.

        Raises:
            AuthenticationError: If the identity provider rejects the exchange
        """
        scopes = self.audience.effective_scopes
        try:
            if self._credential is None:
                self._credential = self._get_credential()
            result = self._credential.get_token(*scopes)
        except Exception as e:
            logger.error(f"Token exchange failed for scopes {scopes}: {e}")
            raise AuthenticationError(str(e)) from e

        if not result or not getattr(result, "token", None):
            raise AuthenticationError("identity provider returned no access token")

        return AccessToken(value=result.token, expires_at_ms=int(result.expires_on * 1000))

    def obtain_valid_token(self, previous: Optional[AccessToken] = None) -> AccessToken:
        """
        Return ``previous`` unchanged if it is still valid, else mint a new one.

        Args:
            previous: Token from an earlier call, if any

        Returns:
            A token valid for at least the safety margin
        """
        if self.is_valid(previous):
            logger.debug(f"Reusing access token expiring at {previous.expires_at_ms}")
            return previous

        logger.info("Access token is missing or about to expire. Requesting a new one.")
        return self.acquire_token()

    def get_token(self) -> str:
        """Return a valid bearer token value, refreshing the cache when needed."""
        with self._lock:
            cached = self._token
        token = self.obtain_valid_token(cached)
        if token is not cached:
            with self._lock:
                self._token = token
        return token.value

    def clear(self) -> None:
        with self._lock:
            self._token = None

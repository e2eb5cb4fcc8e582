"""Token-based identity provider.

The interactive login ceremony of a browser identity provider is out of
reach for a command line client, so this provider turns a pre-issued
delegation (``IDENTITY_TOKEN`` / ``IDENTITY_PRINCIPAL``) into an
:class:`~decentra.models.Identity` whose expiry honours the session ceiling
requested at login.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Optional

from pydantic import SecretStr

from decentra.config import Settings, settings
from decentra.logging import logger
from decentra.models import Identity
from decentra.utils import redact_token, utc_now


class TokenIdentityProvider:
    """Identity provider backed by a pre-issued delegation token.

    Args:
        token: Delegation token attached to remote calls
        principal: Principal the token was issued for
        clock: Callable returning the current UTC time

    Example:
        >>> provider = TokenIdentityProvider("tok-abcdefghijkl", "2vxsx-fae")
    """

    def __init__(
        self,
        token: Optional[str],
        principal: Optional[str],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._token = token
        self._principal = principal
        self._clock = clock
        self._identity: Identity | None = None

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "TokenIdentityProvider":
        config = config or settings
        return cls(config.identity_token, config.identity_principal)

    async def login(
        self,
        session_ceiling: timedelta,
        on_success: Callable[[Identity], None],
        on_error: Callable[[str], None],
    ) -> None:
        if not self._token or not self._principal:
            on_error("No identity configured. Set IDENTITY_TOKEN and IDENTITY_PRINCIPAL.")
            return

        self._identity = Identity(
            principal=self._principal,
            delegation=SecretStr(self._token),
            expires_at=self._clock() + session_ceiling,
        )
        logger.debug(
            f"Issued identity {redact_token(self._principal)} "
            f"valid for {int(session_ceiling.total_seconds())}s"
        )
        on_success(self._identity)

    async def logout(self) -> None:
        self._identity = None

    async def is_authenticated(self) -> bool:
        identity = self._identity
        if identity is None:
            return False
        if identity.expires_at is not None and identity.expires_at <= self._clock():
            self._identity = None
            return False
        return True

    def get_identity(self) -> Identity | None:
        return self._identity


__all__ = ["TokenIdentityProvider"]

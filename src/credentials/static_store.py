# src/credentials/static_store.py — v1
"""In-memory credential store with an optional deployment-wide fallback key."""

from __future__ import annotations

import logging

from scriptconveyor.core.errors import CredentialNotFoundError
from scriptconveyor.credentials.base_credential_store import BaseCredentialStore

logger = logging.getLogger(__name__)


class StaticCredentialStore(BaseCredentialStore):
    """Credentials from a mapping, falling back to per-provider defaults.

    Args:
        credentials: {(owner_id, provider): secret}.
        fallback: {provider: secret} used when an owner has none
            (e.g. ANTHROPIC_API_KEY from settings).
    """

    def __init__(
        self,
        credentials: dict[tuple[str, str], str] | None = None,
        fallback: dict[str, str] | None = None,
    ) -> None:
        self._credentials = dict(credentials or {})
        self._fallback = {k: v for k, v in (fallback or {}).items() if v}

    def set_credential(self, owner_id: str, provider: str, secret: str) -> None:
        self._credentials[(owner_id, provider)] = secret

    async def get_credential(self, owner_id: str, provider: str) -> str:
        secret = self._credentials.get((owner_id, provider))
        if secret:
            return secret
        secret = self._fallback.get(provider)
        if secret:
            logger.debug("Using fallback %s credential for owner %s", provider, owner_id)
            return secret
        raise CredentialNotFoundError(f"No {provider} credential for owner {owner_id}")

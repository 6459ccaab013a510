# src/credentials/base_credential_store.py — v1
"""Abstract credential store: fetch an owner's model provider secret.

Storage and encryption of secrets live outside the conveyor; it only reads.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseCredentialStore(ABC):
    """Read-only access to per-owner provider credentials."""

    @abstractmethod
    async def get_credential(self, owner_id: str, provider: str) -> str:
        """Return the secret for (owner, provider).

        Raises:
            CredentialNotFoundError: No secret is configured.
        """

# src/storage/base_artifact_store.py — v1
"""Abstract artifact store interface.

An artifact's status doubles as its processing gate: status ``revision``
means some item currently owns it. Every version append flips the previous
current version in the same transaction, so exactly one version is current.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from scriptconveyor.core.models import (
    Artifact,
    ArtifactStatus,
    ArtifactVersion,
    Rejection,
    ScoreBreakdown,
    ScriptContent,
)


class BaseArtifactStore(ABC):
    """Durable storage for artifacts and their version history."""

    @abstractmethod
    async def persist_artifact(self, artifact: Artifact) -> ArtifactVersion:
        """Insert a fresh artifact and its version 1 in one transaction."""

    @abstractmethod
    async def append_version(
        self,
        artifact_id: str,
        content: ScriptContent,
        scores: ScoreBreakdown,
        feedback_text: str | None = None,
        targeted_element_ids: list[int] | None = None,
        item_id: str | None = None,
    ) -> ArtifactVersion:
        """Append version max+1 and make it the only current version."""

    @abstractmethod
    async def deliver_version(
        self,
        artifact_id: str,
        content: ScriptContent,
        scores: ScoreBreakdown,
        feedback_text: str | None,
        targeted_element_ids: list[int] | None,
        item_id: str,
    ) -> ArtifactVersion:
        """Update the artifact (content, scores, status pending) and append a
        version, all in one transaction."""

    @abstractmethod
    async def get(self, artifact_id: str) -> Artifact | None:
        """Load an artifact."""

    @abstractmethod
    async def get_by_source(self, owner_id: str, source_key: str) -> Artifact | None:
        """Artifact already produced for (owner, source), if any."""

    @abstractmethod
    async def claim_revision(self, artifact_id: str, max_revisions: int) -> Artifact:
        """Atomically take the gate for a new revision and count it.

        Raises:
            NotFoundError: Unknown artifact.
            RevisionLimitExceededError: revision_count already at max_revisions.
            ArtifactBusyError: Another item holds the gate.
        """

    @abstractmethod
    async def unclaim_revision(self, artifact_id: str) -> None:
        """Undo claim_revision (gate released, revision_count decremented)."""

    @abstractmethod
    async def acquire(self, artifact_id: str) -> None:
        """Take the gate without counting a revision.

        Raises:
            ArtifactBusyError: Another item holds the gate.
        """

    @abstractmethod
    async def release(self, artifact_id: str) -> None:
        """Give the gate back (status revision → pending)."""

    @abstractmethod
    async def set_review_status(
        self,
        artifact_id: str,
        status: ArtifactStatus,
        rejection: Rejection | None = None,
    ) -> Artifact:
        """Record a reviewer decision.

        Raises:
            ArtifactBusyError: A revision is in flight.
        """

    @abstractmethod
    async def list_versions(self, artifact_id: str) -> list[ArtifactVersion]:
        """All versions, oldest first."""

    @abstractmethod
    async def get_current_version(self, artifact_id: str) -> ArtifactVersion | None:
        """The single current version."""

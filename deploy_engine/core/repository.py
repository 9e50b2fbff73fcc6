# deploy_engine/core/repository.py

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from deploy_engine.core.models import JournalEntry, ResourceState


class StateRepository(ABC):
    """
    Persistence contract for deployment state.

    State is keyed by deployment name, then by resource identifier.
    Writes replace the record of a single resource; there is no bulk write.
    """

    @abstractmethod
    def load(self, deployment: str) -> Dict[str, ResourceState]:
        """
        Return the id -> ResourceState mapping for a deployment.
        Returns an empty mapping for an unknown deployment.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, deployment: str, resource_id: str) -> Optional[ResourceState]:
        raise NotImplementedError

    @abstractmethod
    def save(self, deployment: str, state: ResourceState) -> None:
        """Insert or replace the state of one resource."""
        raise NotImplementedError

    @abstractmethod
    def remove(self, deployment: str, resource_id: str) -> None:
        """Forget a resource. Removing an unknown resource is a no-op."""
        raise NotImplementedError

    @abstractmethod
    def list_deployments(self) -> List[str]:
        raise NotImplementedError

    # -------------------------
    # JOURNAL (last apply run)
    # -------------------------

    @abstractmethod
    def append_journal(self, deployment: str, entry: JournalEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    def load_journal(self, deployment: str) -> List[JournalEntry]:
        """Entries of the last apply run, in application order."""
        raise NotImplementedError

    @abstractmethod
    def mark_journal_rolled_back(self, deployment: str, seq: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear_journal(self, deployment: str) -> None:
        raise NotImplementedError

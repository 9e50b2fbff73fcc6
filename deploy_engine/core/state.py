"""Deployment state object shared by the reconciler, engine and rollback."""

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Dict, Iterator, List, Optional

from deploy_engine.core.models import Action, JournalEntry, ResourceState
from deploy_engine.core.repository import StateRepository

logger = logging.getLogger(__name__)


class LockRegistry:
    """Lazily created lock per resource identifier."""

    def __init__(self):
        self._locks: Dict[str, Lock] = {}
        self._guard = Lock()

    def get(self, key: str) -> Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = Lock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)


class DeploymentState:
    """
    Persisted state of one deployment.

    Every write goes through to the repository immediately, under the lock of
    the resource being written. Independent resources never contend.
    """

    def __init__(self, deployment: str, repository: StateRepository):
        self.deployment = deployment
        self._repo = repository
        self._locks = LockRegistry()
        self._cache: Dict[str, ResourceState] = dict(repository.load(deployment))
        self._journal_seq = len(repository.load_journal(deployment))
        self._journal_lock = Lock()

    # -------------------------
    # RESOURCE STATE
    # -------------------------

    def snapshot(self) -> Dict[str, ResourceState]:
        """Copy of the current id -> ResourceState mapping."""
        return {rid: state.copy(updated_at=state.updated_at) for rid, state in self._cache.items()}

    def get(self, resource_id: str) -> Optional[ResourceState]:
        return self._cache.get(resource_id)

    def put(self, state: ResourceState) -> None:
        with self.lock(state.resource_id):
            self._repo.save(self.deployment, state)
            self._cache[state.resource_id] = state
        logger.debug(
            f"[state] {self.deployment}/{state.resource_id} -> {state.status.value}"
        )

    def remove(self, resource_id: str) -> None:
        with self.lock(resource_id):
            self._repo.remove(self.deployment, resource_id)
            self._cache.pop(resource_id, None)
        logger.debug(f"[state] {self.deployment}/{resource_id} removed")

    @contextmanager
    def lock(self, resource_id: str) -> Iterator[None]:
        with self._locks.get(resource_id):
            yield

    # -------------------------
    # JOURNAL
    # -------------------------

    def begin_run(self) -> None:
        """Start a new apply run; the previous run's journal is discarded."""
        with self._journal_lock:
            self._repo.clear_journal(self.deployment)
            self._journal_seq = 0

    def record(
        self,
        resource_id: str,
        action: Action,
        prior: Optional[ResourceState],
        applied: Optional[ResourceState],
    ) -> JournalEntry:
        with self._journal_lock:
            self._journal_seq += 1
            entry = JournalEntry(
                seq=self._journal_seq,
                resource_id=resource_id,
                action=action,
                prior=prior,
                applied=applied,
            )
            self._repo.append_journal(self.deployment, entry)
        return entry

    def journal(self) -> List[JournalEntry]:
        return self._repo.load_journal(self.deployment)

    def mark_rolled_back(self, entry: JournalEntry) -> None:
        entry.rolled_back = True
        self._repo.mark_journal_rolled_back(self.deployment, entry.seq)

    def clear_journal(self) -> None:
        with self._journal_lock:
            self._repo.clear_journal(self.deployment)
            self._journal_seq = 0

# deploy_engine/infrastructure/memory/repository.py

from threading import Lock
from typing import Dict, List, Optional

from deploy_engine.core.models import JournalEntry, ResourceState
from deploy_engine.core.repository import StateRepository


class InMemoryStateRepository(StateRepository):
    def __init__(self):
        self._store: Dict[str, Dict[str, ResourceState]] = {}
        self._journal: Dict[str, List[JournalEntry]] = {}
        self._lock = Lock()

    def load(self, deployment: str) -> Dict[str, ResourceState]:
        with self._lock:
            return {
                rid: state.copy(updated_at=state.updated_at)
                for rid, state in self._store.get(deployment, {}).items()
            }

    def get(self, deployment: str, resource_id: str) -> Optional[ResourceState]:
        state = self._store.get(deployment, {}).get(resource_id)
        return state.copy(updated_at=state.updated_at) if state else None

    def save(self, deployment: str, state: ResourceState) -> None:
        with self._lock:
            self._store.setdefault(deployment, {})[state.resource_id] = state.copy(
                updated_at=state.updated_at
            )

    def remove(self, deployment: str, resource_id: str) -> None:
        with self._lock:
            self._store.get(deployment, {}).pop(resource_id, None)

    def list_deployments(self) -> List[str]:
        with self._lock:
            names = set(self._store) | set(self._journal)
            return sorted(
                name for name in names
                if self._store.get(name) or self._journal.get(name)
            )

    def append_journal(self, deployment: str, entry: JournalEntry) -> None:
        with self._lock:
            self._journal.setdefault(deployment, []).append(entry)

    def load_journal(self, deployment: str) -> List[JournalEntry]:
        with self._lock:
            return sorted(self._journal.get(deployment, []), key=lambda e: e.seq)

    def mark_journal_rolled_back(self, deployment: str, seq: int) -> None:
        with self._lock:
            for entry in self._journal.get(deployment, []):
                if entry.seq == seq:
                    entry.rolled_back = True

    def clear_journal(self, deployment: str) -> None:
        with self._lock:
            self._journal.pop(deployment, None)

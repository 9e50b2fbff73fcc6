#deploy_engine\executor\slots.py

"""Slot manager bounding how many plan steps run at once."""

from threading import Lock
from typing import Optional


class Slot:
    """Represents a single worker slot."""

    def __init__(self, slot_id: int):
        self.slot_id = slot_id
        self.resource_id: Optional[str] = None

    def is_free(self) -> bool:
        """Check if slot is available."""
        return self.resource_id is None

    def bind(self, resource_id: str) -> None:
        """Bind a resource step to this slot."""
        if not self.is_free():
            raise ValueError(f"Slot {self.slot_id} already occupied")
        self.resource_id = resource_id

    def release(self) -> None:
        """Release slot."""
        self.resource_id = None

    def __repr__(self) -> str:
        status = "free" if self.is_free() else f"occupied({self.resource_id})"
        return f"<Slot(id={self.slot_id}, {status})>"


class SlotManager:
    """Thread-safe pool of worker slots."""

    def __init__(self, max_slots: int):
        if max_slots < 1:
            raise ValueError("max_slots must be at least 1")

        self._slots = [Slot(i) for i in range(max_slots)]
        self._lock = Lock()

    def try_bind(self, resource_id: str) -> Optional[Slot]:
        """Bind the resource to a free slot; None when all slots are busy."""
        with self._lock:
            for slot in self._slots:
                if slot.is_free():
                    slot.bind(resource_id)
                    return slot
        return None

    def release(self, resource_id: str) -> None:
        with self._lock:
            for slot in self._slots:
                if slot.resource_id == resource_id:
                    slot.release()
                    return

    def total_slots(self) -> int:
        return len(self._slots)

    def free_slots(self) -> int:
        with self._lock:
            return sum(1 for s in self._slots if s.is_free())

    def __repr__(self) -> str:
        return (
            f"<SlotManager(total={self.total_slots()}, "
            f"free={self.free_slots()})>"
        )

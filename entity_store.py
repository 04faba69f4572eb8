"""
In-memory entity store.

All session state lives here. Writes are per-entity compare-and-swap on the
lifecycle status, so two operators acting on the same entity cannot both
move it out of a queue.
"""

import threading
import uuid
from typing import Callable, Iterable, Optional

from exceptions import StaleEntityError
from logger import get_logger
from models import ApplicationStatus, EntityProfile
from utilities.lifecycle import LifecycleAction, apply_transition

logger = get_logger(__name__)


def new_entity_id() -> str:
    return f"ENT-{uuid.uuid4().hex[:8].upper()}"


class EntityStore:
    """Thread-safe dict of EntityProfile keyed by id."""

    def __init__(self, entities: Optional[Iterable[EntityProfile]] = None):
        self._entities: dict[str, EntityProfile] = {}
        self._lock = threading.Lock()
        for entity in entities or []:
            self._entities[entity.id] = entity

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._entities

    def get(self, entity_id: str) -> EntityProfile:
        """Raises KeyError for an unknown id."""
        with self._lock:
            return self._entities[entity_id]

    def all(self) -> list[EntityProfile]:
        """Snapshot of every entity, in insertion order."""
        with self._lock:
            return list(self._entities.values())

    def add(self, entity: EntityProfile) -> EntityProfile:
        with self._lock:
            if entity.id in self._entities:
                raise ValueError(f"Entity {entity.id} already exists")
            self._entities[entity.id] = entity
        logger.debug(f"Stored new entity {entity.id} ({entity.type.value})")
        return entity

    def compare_and_swap(
        self,
        entity_id: str,
        expected_status: ApplicationStatus,
        new_entity: EntityProfile,
    ) -> EntityProfile:
        """
        Replace an entity only if it is still in `expected_status`.

        Raises:
            KeyError: unknown id
            ValueError: the replacement changes the id or entity type
            StaleEntityError: the stored entity has moved on
        """
        with self._lock:
            current = self._entities[entity_id]
            if new_entity.id != current.id or new_entity.type != current.type:
                raise ValueError(f"Entity {entity_id}: id and type are immutable")
            if current.status != expected_status:
                logger.warning(
                    f"Stale write to {entity_id}: expected {expected_status.value}, found {current.status.value}"
                )
                raise StaleEntityError(entity_id, expected_status, current.status)
            self._entities[entity_id] = new_entity
            return new_entity

    def update(self, entity_id: str, mutate: Callable[[EntityProfile], EntityProfile]) -> EntityProfile:
        """
        Atomic read-modify-write. If `mutate` raises, the stored entity is
        left unchanged and the exception propagates.
        """
        with self._lock:
            current = self._entities[entity_id]
            updated = mutate(current)
            if updated.id != current.id or updated.type != current.type:
                raise ValueError(f"Entity {entity_id}: id and type are immutable")
            self._entities[entity_id] = updated
            return updated

    def transition(self, entity_id: str, action: LifecycleAction, **kwargs) -> EntityProfile:
        """Apply a lifecycle action atomically; kwargs go to apply_transition()."""
        return self.update(entity_id, lambda current: apply_transition(current, action, **kwargs))

"""Id-keyed entity collections.

Every write to the store's in-memory state (optimistic deltas, rollbacks,
reconciliation of server copies and realtime events) goes through the
primitives of :class:`EntityCollection`, so duplicate detection lives in one
place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Iterable, Iterator, List, Optional, Tuple, Type, TypeVar

from ..core.models import ChangeEvent, ChangeType, Entity
from ..utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=Entity)


@dataclass
class PreImage(Generic[T]):
    """Prior state of selected ids: ``id -> (position, entity or None)``.

    ``generation`` is the collection generation the entries were taken from.
    """

    entries: Dict[str, Tuple[int, Optional[T]]] = field(default_factory=dict)
    generation: int = 0

    @property
    def ids(self) -> List[str]:
        return list(self.entries)


class EntityCollection(Generic[T]):
    """Insertion-ordered collection of entities keyed by id."""

    def __init__(self, model: Type[T], items: Iterable[T] = ()):
        self.model = model
        self._items: Dict[str, T] = {}
        # Bumped whenever the whole contents are replaced (scope change)
        self.generation = 0
        for item in items:
            self.insert(item)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._items

    def __repr__(self) -> str:
        return f"EntityCollection({self.model.__name__}, {len(self)} items)"

    def get(self, entity_id: Optional[str]) -> Optional[T]:
        if entity_id is None:
            return None
        return self._items.get(entity_id)

    def ids(self) -> List[str]:
        return list(self._items)

    def all(self) -> List[T]:
        return list(self._items.values())

    def find(self, predicate: Callable[[T], bool]) -> Optional[T]:
        for item in self._items.values():
            if predicate(item):
                return item
        return None

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self._items.values() if predicate(item)]

    def index_of(self, entity_id: str) -> int:
        for position, key in enumerate(self._items):
            if key == entity_id:
                return position
        return -1

    # ------------------------------------------------------------------
    # Write primitives
    # ------------------------------------------------------------------

    def insert(self, entity: T) -> bool:
        """Append ``entity`` unless its id is already present."""
        if entity.id in self._items:
            return False
        self._items[entity.id] = entity
        return True

    def insert_at(self, position: int, entity: T) -> None:
        """Place ``entity`` at ``position`` (clamped), replacing any same-id entry."""
        items = [(key, value) for key, value in self._items.items() if key != entity.id]
        position = max(0, min(position, len(items)))
        items.insert(position, (entity.id, entity))
        self._items = dict(items)

    def replace(self, entity: T) -> bool:
        """Swap the entry with ``entity``'s id in place; no-op when absent."""
        if entity.id not in self._items:
            return False
        self._items[entity.id] = entity
        return True

    def upsert(self, entity: T) -> None:
        self._items[entity.id] = entity

    def remove(self, entity_id: str) -> Optional[T]:
        return self._items.pop(entity_id, None)

    def reset(self, entities: Iterable[T]) -> None:
        self._items = {}
        self.generation += 1
        for entity in entities:
            self.insert(entity)

    def clear(self) -> None:
        self._items = {}
        self.generation += 1

    def capture(self, *entity_ids: str) -> PreImage[T]:
        """Record the current entry and position of each id."""
        entries: Dict[str, Tuple[int, Optional[T]]] = {}
        for entity_id in entity_ids:
            entries[entity_id] = (self.index_of(entity_id), self._items.get(entity_id))
        return PreImage(entries, self.generation)

    def is_current(self, pre_image: PreImage[T]) -> bool:
        """Whether ``pre_image`` was taken from the current contents."""
        return pre_image.generation == self.generation

    def restore(self, pre_image: PreImage[T]) -> bool:
        """Put back the exact prior objects; drop ids that did not exist.

        A pre-image taken before the collection was reset or cleared belongs to
        another scope and is not applied. Returns whether it was applied.
        """
        if not self.is_current(pre_image):
            logger.debug(f"Restore skipped: collection reloaded since capture of {pre_image.ids}")
            return False
        for entity_id, (_, entity) in pre_image.entries.items():
            if entity is None:
                self._items.pop(entity_id, None)
        for entity_id, (position, entity) in sorted(
            pre_image.entries.items(), key=lambda pair: pair[1][0]
        ):
            if entity is None:
                continue
            if entity_id in self._items:
                self._items[entity_id] = entity
            else:
                self.insert_at(position, entity)
        return True

    def reconcile(self, temp_id: str, canonical: T) -> None:
        """Swap a temporary entry for the server's canonical copy.

        When the canonical id differs and already arrived through another path
        (realtime echo), the temporary entry is dropped instead of duplicated.
        """
        if canonical.id == temp_id:
            if not self.replace(canonical):
                logger.debug(f"Reconcile skipped: {temp_id} no longer present")
            return
        if canonical.id in self._items:
            self._items.pop(temp_id, None)
            self._items[canonical.id] = canonical
            return
        position = self.index_of(temp_id)
        if position < 0:
            logger.debug(f"Reconcile skipped: {temp_id} no longer present")
            return
        self._items.pop(temp_id)
        self.insert_at(position, canonical)

    def apply_change(self, event: ChangeEvent) -> bool:
        """Apply a realtime row change; returns whether the collection changed."""
        if event.type == ChangeType.DELETE:
            entity_id = event.row_id
            return entity_id is not None and self.remove(entity_id) is not None
        entity = self.model.from_row(event.row)
        if event.type == ChangeType.INSERT:
            return self.insert(entity)
        return self.replace(entity)

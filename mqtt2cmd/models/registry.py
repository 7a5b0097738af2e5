"""Registry of the entities configured for one process."""

from typing import Iterable, Iterator, Optional

from .entities import Entity


class EntityRegistry:
    """Fixed, ordered collection of entities.

    Built once at startup and never modified afterwards.
    """

    def __init__(self, entities: Iterable[Entity]):
        """Initialize the registry.

        Args:
            entities: Entities in configuration order

        Raises:
            ValueError: If two entities of the same kind share a name
        """
        self._entities = tuple(entities)
        self._index: dict[tuple[str, str], Entity] = {}
        for entity in self._entities:
            key = (entity.kind, entity.name)
            if key in self._index:
                raise ValueError(f"Duplicate name in {entity.kind}: {entity.name}")
            self._index[key] = entity

    def __iter__(self) -> Iterator[Entity]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def get(self, kind: str, name: str) -> Optional[Entity]:
        """Look up an entity by kind and name."""
        return self._index.get((kind, name))

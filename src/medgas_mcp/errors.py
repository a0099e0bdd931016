"""Domain errors raised by the diagram core."""

from __future__ import annotations


class DiagramError(Exception):
    """Base class for all diagram engine errors."""


class ValidationRejected(DiagramError):
    """A connection was refused by the validator; nothing was mutated."""

    def __init__(self, message: str, source_id: int | None = None, existing_layer: str | None = None):
        super().__init__(message)
        self.source_id = source_id
        self.existing_layer = existing_layer


class EntityNotFound(DiagramError, KeyError):
    """A command referenced an id that is not in the expected collection."""

    def __init__(self, collection: str, entity_id):
        super().__init__(f"{collection} {entity_id} not found")
        self.collection = collection
        self.entity_id = entity_id

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class MalformedDocument(DiagramError, ValueError):
    """A persisted record cannot describe a valid document."""


class ImportFailed(DiagramError):
    """An external plan file could not be read."""

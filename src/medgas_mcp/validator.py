"""Cross-entity rules checked before a connection is committed."""

from __future__ import annotations

from medgas_mcp.entities import Document, GasLayer, ItemVariant
from medgas_mcp.errors import EntityNotFound, ValidationRejected


def source_layers(doc: Document, source_id: int) -> set[GasLayer]:
    """Gas layers already carried by connections touching ``source_id``."""
    return {c.gas_layer for c in doc.connections.values() if c.touches(source_id)}


def check_connection(doc: Document, start_id: int, end_id: int, gas_layer: GasLayer) -> None:
    """Raise if a ``start_id``-``end_id`` pipe on ``gas_layer`` may not be added.

    Runs against the current connection list, so the candidate itself is never
    part of the comparison. A source supplies exactly one gas across all of its
    connections; terminals and valves are unconstrained.
    """
    if start_id == end_id:
        raise ValidationRejected("A pipe must connect two different items")

    for item_id in (start_id, end_id):
        item = doc.items.get(item_id)
        if item is None:
            raise EntityNotFound("Item", item_id)
        if item.variant is not ItemVariant.SOURCE:
            continue
        for existing in source_layers(doc, item_id):
            if existing is not gas_layer:
                raise ValidationRejected(
                    f"Source '{item.label}' already supplies {existing.value}; "
                    f"it cannot also supply {gas_layer.value}",
                    source_id=item_id,
                    existing_layer=existing.value,
                )


def find_violations(doc: Document) -> list[int]:
    """Ids of sources whose connections carry more than one gas layer."""
    return [
        item.id
        for item in doc.items.values()
        if item.variant is ItemVariant.SOURCE and len(source_layers(doc, item.id)) > 1
    ]

"""Bill of materials derived from the current document."""

from __future__ import annotations

from dataclasses import dataclass, field

from medgas_mcp.entities import Document, GasLayer, ItemVariant
from medgas_mcp.router import connection_length, endpoints, is_over_length


@dataclass
class BillOfMaterials:
    counts: dict[ItemVariant, int] = field(default_factory=dict)
    pipe_length: dict[GasLayer, float] = field(default_factory=dict)
    over_length: list[int] = field(default_factory=list)

    @property
    def total_items(self) -> int:
        return sum(self.counts.values())

    @property
    def total_length(self) -> float:
        return sum(self.pipe_length.values())

    def to_dict(self) -> dict:
        return {
            "counts": {v.value: n for v, n in self.counts.items()},
            "pipe_length": {g.value: length for g, length in self.pipe_length.items()},
            "over_length": list(self.over_length),
            "total_items": self.total_items,
            "total_length": self.total_length,
        }


@dataclass(frozen=True)
class ReportRow:
    connection_id: int
    start_label: str
    end_label: str
    gas_layer: GasLayer
    length: float
    over_length: bool

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "start_label": self.start_label,
            "end_label": self.end_label,
            "gas_layer": self.gas_layer.value,
            "length": self.length,
            "over_length": self.over_length,
        }


def bill_of_materials(doc: Document) -> BillOfMaterials:
    """Item counts per variant and pipe length per gas layer.

    Every variant and layer is present in the result, zero when unused.
    Dangling connections contribute nothing.
    """
    bom = BillOfMaterials(
        counts={v: 0 for v in ItemVariant},
        pipe_length={g: 0.0 for g in GasLayer},
    )
    for item in doc.items.values():
        bom.counts[item.variant] += 1
    for conn in doc.connections.values():
        length = connection_length(doc, conn)
        if length is None:
            continue
        bom.pipe_length[conn.gas_layer] += length
        if is_over_length(length):
            bom.over_length.append(conn.id)
    return bom


def report_rows(doc: Document) -> list[ReportRow]:
    """Per-pipe rows for an external report, in connection order."""
    rows = []
    for conn in doc.connections.values():
        ends = endpoints(doc, conn)
        if ends is None:
            continue
        a, b = ends
        length = connection_length(doc, conn)
        rows.append(ReportRow(
            connection_id=conn.id,
            start_label=a.label,
            end_label=b.label,
            gas_layer=conn.gas_layer,
            length=length,
            over_length=is_over_length(length),
        ))
    return rows

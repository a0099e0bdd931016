"""Design flow per gas for a room, with HTM 02-01 diversity, and pipe sizing."""

from __future__ import annotations

import math
from dataclasses import dataclass

from medgas_mcp.entities import Document, ItemVariant

ROOM_TYPES = ("ward", "icu_standard", "icu_high_flow", "theatre")

# (upper flow bound in L/min, recommended copper size)
PIPE_SIZES: list[tuple[float, str]] = [
    (40, "12mm Copper"),
    (110, "15mm Copper"),
    (350, "22mm Copper"),
    (800, "28mm Copper"),
    (1500, "35mm Copper"),
]
OVERSIZE_PIPE = "42mm+ (Detailed Calc Req)"


@dataclass
class GasDemand:
    flow: float = 0
    note: str = ""
    pipe: str = ""

    def to_dict(self) -> dict:
        return {"flow": self.flow, "note": self.note, "pipe": self.pipe}


@dataclass
class GasLoad:
    oxygen: GasDemand
    air: GasDemand
    vacuum: GasDemand

    def to_dict(self) -> dict:
        return {"oxygen": self.oxygen.to_dict(), "air": self.air.to_dict(), "vacuum": self.vacuum.to_dict()}


def recommend_pipe(flow: float) -> str:
    if flow <= 0:
        return "N/A"
    for limit, size in PIPE_SIZES:
        if flow <= limit:
            return size
    return OVERSIZE_PIPE


def calculate_gas_load(room_type: str | None, bed_count: float) -> GasLoad:
    """Diversified design flow (L/min) for ``bed_count`` beds of ``room_type``.

    Unknown room types and non-positive counts yield zero flow. Pipes are
    sized on the raw flow, then flows are rounded up for display.
    """
    n = float(bed_count or 0)
    oxygen, air, vacuum = GasDemand(), GasDemand(), GasDemand()
    if n <= 0:
        return GasLoad(oxygen, air, vacuum)

    if room_type == "ward":
        oxygen.flow = 10 + ((n - 1) * 6) / 4
        oxygen.note = "HTM 02-01 Ward Diversity (Low Flow)"
        vacuum.flow = 5 + ((n - 1) * 5) * 0.3
        vacuum.note = "Standard Ward Suction"
    elif room_type == "icu_standard":
        oxygen.flow = 20 + ((n - 1) * 10)
        oxygen.note = "HTM 02-01 Critical Care Diversity"
        air.flow = n * 20
        air.note = "Ventilator Drive Gas (MA4)"
        vacuum.flow = n * 40
    elif room_type == "icu_high_flow":
        oxygen.flow = n * 60
        oxygen.note = "High Flow Protocol (No Diversity)"
        air.flow = n * 40
        air.note = "High Dependency Vent Support"
        vacuum.flow = n * 50
    elif room_type == "theatre":
        oxygen.flow = 100 + ((n - 1) * 20)
        oxygen.note = "Surgical Priority Load"
        air.flow = n * 40
        air.note = "Surgical Tools / Anesthesia"
        vacuum.flow = n * 120

    for demand in (oxygen, air, vacuum):
        demand.pipe = recommend_pipe(demand.flow)
        demand.flow = math.ceil(demand.flow)
    return GasLoad(oxygen, air, vacuum)


def gas_load_for_document(doc: Document, room_type: str | None = None) -> GasLoad:
    """Gas load for the terminals placed in ``doc``."""
    beds = sum(1 for i in doc.items.values() if i.variant is ItemVariant.TERMINAL)
    return calculate_gas_load(room_type or doc.settings.room_type, beds)

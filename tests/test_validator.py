"""Tests for the single-gas-per-source rule."""

import pytest

from medgas_mcp.entities import Connection, Document, GasLayer, Item, ItemVariant
from medgas_mcp.errors import EntityNotFound, ValidationRejected
from medgas_mcp.validator import check_connection, find_violations, source_layers


@pytest.fixture
def doc():
    return Document(items={
        1: Item(1, 0, 0, ItemVariant.SOURCE, "MAIN O2"),
        2: Item(2, 100, 0, ItemVariant.TERMINAL, "BED"),
        3: Item(3, 200, 0, ItemVariant.TERMINAL, "BED"),
        4: Item(4, 300, 0, ItemVariant.VALVE, "ZONE VALVE"),
    })


class TestCheckConnection:
    def test_first_connection_allowed(self, doc):
        check_connection(doc, 1, 2, GasLayer.VACUUM)

    def test_same_gas_allowed(self, doc):
        doc.connections[10] = Connection(10, 1, 2, GasLayer.O2)
        check_connection(doc, 1, 3, GasLayer.O2)

    def test_second_gas_rejected(self, doc):
        doc.connections[10] = Connection(10, 1, 2, GasLayer.O2)
        with pytest.raises(ValidationRejected) as exc:
            check_connection(doc, 3, 1, GasLayer.VACUUM)
        assert exc.value.source_id == 1
        assert exc.value.existing_layer == "O2"
        assert "MAIN O2" in str(exc.value)

    def test_non_sources_unconstrained(self, doc):
        doc.connections[10] = Connection(10, 2, 4, GasLayer.O2)
        check_connection(doc, 2, 4, GasLayer.VACUUM)
        check_connection(doc, 4, 3, GasLayer.MEDICAL_AIR)

    def test_self_connection_rejected(self, doc):
        with pytest.raises(ValidationRejected):
            check_connection(doc, 2, 2, GasLayer.O2)

    def test_missing_endpoint(self, doc):
        with pytest.raises(EntityNotFound):
            check_connection(doc, 1, 99, GasLayer.O2)


class TestViolations:
    def test_source_layers(self, doc):
        doc.connections[10] = Connection(10, 1, 2, GasLayer.O2)
        doc.connections[11] = Connection(11, 3, 1, GasLayer.O2)
        assert source_layers(doc, 1) == {GasLayer.O2}

    def test_find_violations(self, doc):
        assert find_violations(doc) == []
        doc.connections[10] = Connection(10, 1, 2, GasLayer.O2)
        doc.connections[11] = Connection(11, 1, 3, GasLayer.VACUUM)
        assert find_violations(doc) == [1]

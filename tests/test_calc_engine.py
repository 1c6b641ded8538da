"""Tests for cellgrid.calc RecalcEngine: commits and dependency-ordered recalculation."""

from __future__ import annotations

import pytest

from cellgrid import (
    ERROR_VALUE,
    CellRecord,
    CircularReference,
    Workbook,
)
from cellgrid.calc import CalcEngine, RecalcEngine, RecalcResult

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _put(engine: RecalcEngine, address: str, content: str) -> RecalcResult:
    if content.startswith("="):
        return engine.commit(address, CellRecord.for_formula(content))
    return engine.commit(address, CellRecord.literal(content))


def _value(engine: RecalcEngine, address: str) -> str | None:
    record = engine.workbook.get(address)
    return record.value if record is not None else None


def _build_chain() -> RecalcEngine:
    """D2..D4 literals, D5 = D2+D3+D4."""
    engine = RecalcEngine()
    _put(engine, "D2", "1")
    _put(engine, "D3", "2")
    _put(engine, "D4", "3")
    _put(engine, "D5", "=D2+D3+D4")
    return engine


class TestProtocol:
    def test_engine_satisfies_protocol(self) -> None:
        assert isinstance(RecalcEngine(), CalcEngine)


class TestCommit:
    def test_formula_evaluated_on_commit(self) -> None:
        engine = RecalcEngine()
        _put(engine, "B2", "5")
        _put(engine, "C2", "1.20")
        _put(engine, "D2", "=B2*C2")
        assert _value(engine, "D2") == "6"
        assert engine.workbook["D2"].formula == "=B2*C2"

    def test_chained_dependency_updates(self) -> None:
        engine = _build_chain()
        assert _value(engine, "D5") == "6"
        _put(engine, "D3", "10")
        assert _value(engine, "D5") == "14"
        _put(engine, "D4", "-4")
        assert _value(engine, "D5") == "7"

    def test_transitive_chain_in_dependency_order(self) -> None:
        """Cells declared downstream-first still evaluate upstream-first."""
        engine = RecalcEngine()
        _put(engine, "C1", "=B1*2")
        _put(engine, "B1", "=A1+1")
        _put(engine, "A1", "10")
        assert _value(engine, "B1") == "11"
        assert _value(engine, "C1") == "22"

    def test_result_reports_deltas(self) -> None:
        engine = _build_chain()
        result = _put(engine, "D2", "5")
        assert result.changed == ("D2",)
        assert result.evaluated == ("D5",)
        assert len(result.deltas) == 1
        delta = result.deltas[0]
        assert delta.cell_ref == "D5"
        assert delta.old_value == "6"
        assert delta.new_value == "10"
        assert delta.formula == "=D2+D3+D4"
        assert result.propagated_cells == 1
        assert result.max_chain_depth == 1

    def test_unchanged_write_skips_recalc(self) -> None:
        engine = _build_chain()
        result = _put(engine, "D2", "1")
        assert result.changed == ()
        assert result.evaluated == ()

    def test_address_normalized(self) -> None:
        engine = RecalcEngine()
        engine.commit("A01", CellRecord.literal("3"))
        assert "A1" in engine.workbook
        assert list(engine.workbook) == ["A1"]

    def test_formula_replaced_by_literal(self) -> None:
        engine = RecalcEngine()
        _put(engine, "A1", "1")
        _put(engine, "B1", "=A1+1")
        _put(engine, "B1", "7")
        assert "B1" not in engine.graph.formulas
        _put(engine, "A1", "100")
        assert _value(engine, "B1") == "7"

    def test_commit_keeps_other_records_identical(self) -> None:
        engine = _build_chain()
        before = engine.workbook["D3"]
        _put(engine, "D2", "9")
        assert engine.workbook["D3"] is before


class TestCircularReference:
    def test_self_cycle_rejected(self) -> None:
        engine = RecalcEngine()
        _put(engine, "A1", "4")
        with pytest.raises(CircularReference, match="A1"):
            _put(engine, "A1", "=A1")
        assert engine.workbook["A1"].value == "4"
        assert engine.workbook["A1"].formula is None

    def test_indirect_cycle_rejected(self) -> None:
        engine = RecalcEngine()
        _put(engine, "A1", "=B1")
        before = engine.workbook.to_snapshot()
        with pytest.raises(CircularReference) as excinfo:
            _put(engine, "B1", "=A1")
        assert excinfo.value.path == ["B1", "A1", "B1"]
        assert engine.workbook.to_snapshot() == before
        assert "B1" not in engine.graph.formulas

    def test_cycle_across_batch_rejected(self) -> None:
        engine = RecalcEngine()
        with pytest.raises(CircularReference):
            engine.commit_many({
                "A1": CellRecord.for_formula("=B1"),
                "B1": CellRecord.for_formula("=A1"),
            })
        assert len(engine.workbook) == 0

    def test_cyclic_snapshot_loads_as_error(self) -> None:
        wb = Workbook.from_snapshot({
            "A1": {"value": "0", "formula": "=B1"},
            "B1": {"value": "0", "formula": "=A1"},
            "C1": {"value": "0", "formula": "=A1+1"},
            "D1": {"value": "0", "formula": "=2*3"},
        })
        engine = RecalcEngine(wb)
        assert _value(engine, "A1") == ERROR_VALUE
        assert _value(engine, "B1") == ERROR_VALUE
        assert _value(engine, "C1") == ERROR_VALUE
        assert _value(engine, "D1") == "6"
        assert engine.calculate()["A1"] == ERROR_VALUE

    def test_edit_feeding_a_loaded_loop(self) -> None:
        wb = Workbook.from_snapshot({
            "A1": {"formula": "=B1+D1"},
            "B1": {"formula": "=A1"},
        })
        engine = RecalcEngine(wb)
        result = _put(engine, "D1", "5")
        assert result.changed == ("D1",)
        assert set(result.evaluated) == {"A1", "B1"}
        assert result.max_chain_depth == 0
        assert _value(engine, "D1") == "5"
        assert _value(engine, "A1") == ERROR_VALUE

    def test_breaking_a_loaded_loop_recovers(self) -> None:
        wb = Workbook.from_snapshot({
            "A1": {"formula": "=B1+D1"},
            "B1": {"formula": "=A1"},
        })
        engine = RecalcEngine(wb)
        _put(engine, "D1", "5")
        _put(engine, "B1", "2")
        assert _value(engine, "A1") == "7"


class TestErrorIsolation:
    def test_text_in_arithmetic_only_breaks_that_cell(self) -> None:
        engine = RecalcEngine()
        _put(engine, "A1", "2")
        _put(engine, "A2", "=A1*3")
        _put(engine, "B1", "=C1*2")
        _put(engine, "C1", "oops")
        assert _value(engine, "B1") == ERROR_VALUE
        assert engine.workbook["B1"].formula == "=C1*2"
        assert _value(engine, "A2") == "6"

    def test_error_reported_in_result(self) -> None:
        engine = RecalcEngine()
        _put(engine, "B1", "=C1*2")
        result = _put(engine, "C1", "oops")
        assert result.error_cells == ("B1",)

    def test_error_recovers_when_input_fixed(self) -> None:
        engine = RecalcEngine()
        _put(engine, "B1", "=C1*2")
        _put(engine, "C1", "oops")
        _put(engine, "C1", "4")
        assert _value(engine, "B1") == "8"


class TestDeletion:
    def test_deleted_reference_reads_zero(self) -> None:
        engine = _build_chain()
        result = engine.commit("D3", None)
        assert "D3" not in engine.workbook
        assert _value(engine, "D5") == "4"
        assert result.changed == ("D3",)

    def test_deleting_missing_cell_is_noop(self) -> None:
        engine = _build_chain()
        result = engine.commit("Z9", None)
        assert result.changed == ()

    def test_deleting_formula_updates_graph(self) -> None:
        engine = _build_chain()
        _put(engine, "E1", "=D5*2")
        engine.commit("D5", None)
        assert "D5" not in engine.graph.formulas
        assert _value(engine, "E1") == "0"


class TestCalculate:
    def test_full_pass(self) -> None:
        wb = Workbook.from_snapshot({
            "A1": {"value": "10"},
            "A2": {"value": "20"},
            "A3": {"value": "", "formula": "=A1+A2"},
            "A4": {"value": "", "formula": "=A3*2"},
        })
        engine = RecalcEngine(wb)
        results = engine.calculate()
        assert results == {"A3": "30", "A4": "60"}
        assert wb["A4"].value == "60"

    def test_idempotent(self) -> None:
        engine = _build_chain()
        _put(engine, "E1", "=D5/4")
        _put(engine, "E2", "=E1&\"!\"")
        first = engine.calculate()
        snapshot = engine.workbook.to_snapshot()
        second = engine.calculate()
        assert first == second
        assert engine.workbook.to_snapshot() == snapshot

    def test_load_rebuilds_graph(self) -> None:
        engine = _build_chain()
        other = Workbook.from_snapshot({"B1": {"value": "", "formula": "=A1+1"}})
        engine.load(other)
        assert engine.workbook is other
        assert set(engine.graph.formulas) == {"B1"}

    def test_independent_workbooks(self) -> None:
        first = RecalcEngine()
        second = RecalcEngine()
        _put(first, "A1", "1")
        assert "A1" not in second.workbook


class TestLoad:
    def test_missing_snapshot_values_computed(self) -> None:
        wb = Workbook.from_snapshot({"A1": {"value": "5"}, "B1": {"formula": "=A1*2"}})
        engine = RecalcEngine(wb)
        assert _value(engine, "B1") == "10"
        _put(engine, "C1", "7")
        assert _value(engine, "B1") == "10"

    def test_stale_snapshot_values_replaced(self) -> None:
        engine = RecalcEngine()
        engine.load(Workbook.from_snapshot({
            "A1": {"value": "5"},
            "B1": {"value": "999", "formula": "=A1*2"},
        }))
        assert _value(engine, "B1") == "10"

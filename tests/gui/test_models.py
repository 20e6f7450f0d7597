"""Tests for RecordTableModel and cell formatting."""
from PySide6.QtCore import Qt

from itam.gui.models import RecordTableModel, format_cell

COLUMNS = [("assetTag", "Tag"), ("name", "Name"), ("warrantyExpiry", "Warranty")]


class TestFormatCell:
    def test_scalars(self):
        assert format_cell(None) == ""
        assert format_cell(True) == "Yes"
        assert format_cell(False) == "No"
        assert format_cell(12.345) == "12.3"
        assert format_cell(7) == "7"

    def test_populated_reference(self):
        assert format_cell({"_id": "e1", "name": "Ann"}) == "Ann"
        assert format_cell({"id": 5}) == "5"

    def test_list(self):
        assert format_cell([{"name": "LT-1"}, "LT-2"]) == "LT-1, LT-2"


class TestRecordTableModel:
    def test_initial_state(self):
        model = RecordTableModel(COLUMNS)
        assert model.rowCount() == 0
        assert model.columnCount() == 3

    def test_column_headers(self):
        model = RecordTableModel(COLUMNS)
        for col, expected in enumerate(["Tag", "Name", "Warranty"]):
            assert model.headerData(col, Qt.Horizontal, Qt.DisplayRole) == expected
        assert model.headerData(9, Qt.Horizontal, Qt.DisplayRole) is None
        assert model.headerData(0, Qt.Vertical, Qt.DisplayRole) is None

    def test_set_rows_and_display(self):
        model = RecordTableModel(COLUMNS)
        model.set_rows([
            {"id": 1, "assetTag": "LT-1", "name": "ThinkPad", "warrantyExpiry": None},
            {"id": 2, "assetTag": "LT-2", "name": "MacBook"},
        ])
        assert model.rowCount() == 2
        assert model.data(model.index(0, 1), Qt.DisplayRole) == "ThinkPad"
        assert model.data(model.index(0, 2), Qt.DisplayRole) == ""
        assert model.data(model.index(1, 2), Qt.DisplayRole) == ""

    def test_tooltip_only_for_long_text(self):
        model = RecordTableModel(COLUMNS)
        long_name = "x" * 60
        model.set_rows([{"id": 1, "name": "short"}, {"id": 2, "name": long_name}])
        assert model.data(model.index(0, 1), Qt.ToolTipRole) is None
        assert model.data(model.index(1, 1), Qt.ToolTipRole) == long_name

    def test_user_role_sort_key(self):
        model = RecordTableModel(COLUMNS)
        model.set_rows([{"id": 1, "name": "ThinkPad", "assetTag": None}])
        assert model.data(model.index(0, 1), Qt.UserRole) == "thinkpad"
        assert model.data(model.index(0, 0), Qt.UserRole) == ""

    def test_rows_are_copies(self):
        rows = [{"id": 1, "name": "a"}]
        model = RecordTableModel(COLUMNS)
        model.set_rows(rows)
        rows[0]["name"] = "b"
        assert model.record_at(0)["name"] == "a"

    def test_record_lookup(self):
        model = RecordTableModel(COLUMNS, id_field="_id")
        model.set_rows([{"_id": "abc", "name": "x"}])
        assert model.record_id_at(0) == "abc"
        assert model.record_id_at(3) is None
        assert model.record_at(-1) is None

    def test_invalid_index(self):
        model = RecordTableModel(COLUMNS)
        assert model.data(model.index(0, 0), Qt.DisplayRole) is None

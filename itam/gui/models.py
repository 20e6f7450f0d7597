"""Qt table model for one page of records."""
from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence, Tuple
from PySide6.QtCore import Qt, QAbstractTableModel, QModelIndex
import logging

logger = logging.getLogger(__name__)


def format_cell(value: Any) -> str:
    """Display text for a record value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float):
        return f"{value:.1f}"
    if isinstance(value, dict):
        # populated references such as {"_id": ..., "name": ...}
        return str(value.get("name") or value.get("title") or value.get("id") or "")
    if isinstance(value, (list, tuple)):
        return ", ".join(format_cell(v) for v in value)
    return str(value)


class RecordTableModel(QAbstractTableModel):
    """Renders ``ListResult.items`` using a resource's column list."""

    def __init__(self, columns: Sequence[Tuple[str, str]], id_field: str = "id", parent=None):
        """Initialize model.

        Args:
            columns: List of (field_name, column_title) tuples
            id_field: Record key holding the backend id
            parent: Parent QObject
        """
        super().__init__(parent)
        self.columns = list(columns)
        self.id_field = id_field
        self.data_rows: List[Dict[str, Any]] = []

    def rowCount(self, parent=QModelIndex()):
        return 0 if parent.isValid() else len(self.data_rows)

    def columnCount(self, parent=QModelIndex()):
        return 0 if parent.isValid() else len(self.columns)

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if role == Qt.DisplayRole and orientation == Qt.Horizontal:
            if 0 <= section < len(self.columns):
                return self.columns[section][1]
        return None

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid():
            return None
        row = index.row()
        col = index.column()
        if not (0 <= row < len(self.data_rows) and 0 <= col < len(self.columns)):
            return None
        value = self.data_rows[row].get(self.columns[col][0])

        if role == Qt.DisplayRole:
            return format_cell(value)
        if role == Qt.ToolTipRole:
            text = format_cell(value)
            return text if len(text) > 50 else None
        if role == Qt.UserRole:
            # raw value for sorting; strings compare case-insensitively
            if value is None:
                return ""
            if isinstance(value, str):
                return value.lower()
            return value
        return None

    def set_rows(self, rows: Sequence[Dict[str, Any]]) -> None:
        """Replace all rows (one committed page)."""
        self.beginResetModel()
        self.data_rows = [dict(r) for r in rows]
        self.endResetModel()

    def record_at(self, row: int) -> Optional[Dict[str, Any]]:
        if 0 <= row < len(self.data_rows):
            return self.data_rows[row]
        return None

    def record_id_at(self, row: int) -> Any:
        record = self.record_at(row)
        return record.get(self.id_field) if record else None


__all__ = ["RecordTableModel", "format_cell"]

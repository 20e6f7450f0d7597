"""List page for one resource: search, filters, table and pager."""
from __future__ import annotations
import logging
from typing import Dict, Optional

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QAbstractItemView,
    QCheckBox,
    QComboBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QMessageBox,
    QPushButton,
    QTableView,
    QVBoxLayout,
    QWidget,
)

from ..core import ControllerState
from .bridge import ControllerBridge
from .models import RecordTableModel

logger = logging.getLogger(__name__)


class ResourcePage(QWidget):
    """Browse one record collection through a :class:`ControllerBridge`.

    The search box forwards every keystroke; debouncing and stale-response
    protection happen in the controller. Buttons that would start a
    conflicting request are disabled while the controller is loading or a
    mutation holds the busy key.
    """

    def __init__(self, bridge: ControllerBridge, parent=None):
        super().__init__(parent)
        self.bridge = bridge
        self.resource = bridge.resource
        self.setObjectName(f"page_{self.resource.name}")
        self._filter_widgets: Dict[str, QWidget] = {}
        self._state: Optional[ControllerState] = None

        layout = QVBoxLayout(self)
        layout.setContentsMargins(6, 6, 6, 6)

        title = QLabel(f"<b>{self.resource.title}</b>")
        layout.addWidget(title)

        # Search + filters row
        bar = QHBoxLayout()
        self.search_edit = QLineEdit()
        self.search_edit.setPlaceholderText("Search...")
        self.search_edit.setClearButtonEnabled(True)
        self.search_edit.textChanged.connect(self.bridge.set_search)
        bar.addWidget(self.search_edit, 2)
        for spec in self.resource.filters:
            bar.addWidget(self._build_filter(spec))
        self.refresh_btn = QPushButton("Refresh")
        self.refresh_btn.clicked.connect(self._on_refresh)
        bar.addWidget(self.refresh_btn)
        layout.addLayout(bar)

        # Table
        self.model = RecordTableModel(self.resource.columns, self.resource.id_field, self)
        self.table = QTableView()
        self.table.setModel(self.model)
        self.table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.table.setSelectionMode(QAbstractItemView.SingleSelection)
        self.table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.table.verticalHeader().setVisible(False)
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.Interactive)
        self.table.horizontalHeader().setStretchLastSection(True)
        self.table.selectionModel().selectionChanged.connect(lambda *_: self._update_buttons())
        layout.addWidget(self.table, 1)

        # Pager + row actions
        pager = QHBoxLayout()
        self.delete_btn = QPushButton("Delete")
        self.delete_btn.setVisible(self.resource.supports_delete)
        self.delete_btn.clicked.connect(self._on_delete)
        pager.addWidget(self.delete_btn)
        self.loading_label = QLabel("")
        pager.addWidget(self.loading_label)
        pager.addStretch(1)
        self.prev_btn = QPushButton("< Prev")
        self.prev_btn.clicked.connect(self.bridge.previous_page)
        self.page_label = QLabel("")
        self.page_label.setAlignment(Qt.AlignCenter)
        self.next_btn = QPushButton("Next >")
        self.next_btn.clicked.connect(self.bridge.next_page)
        pager.addWidget(self.prev_btn)
        pager.addWidget(self.page_label)
        pager.addWidget(self.next_btn)
        layout.addLayout(pager)

        self.bridge.stateChanged.connect(self.apply_state)
        self.apply_state(self.bridge.state)

    def _build_filter(self, spec) -> QWidget:
        label = spec.label or spec.key
        if spec.kind == "bool":
            box = QCheckBox(label)
            box.setChecked(bool(spec.default))
            box.toggled.connect(lambda checked, key=spec.key: self.bridge.set_filter(key, checked))
            widget: QWidget = box
        elif spec.kind == "choice":
            combo = QComboBox()
            combo.addItem(f"Any {label.lower()}", "")
            for choice in spec.choices:
                combo.addItem(choice, choice)
            if spec.default is not None:
                combo.setCurrentIndex(max(0, combo.findData(spec.default)))
            combo.currentIndexChanged.connect(
                lambda _i, key=spec.key, c=combo: self.bridge.set_filter(key, c.currentData())
            )
            widget = combo
        else:
            edit = QLineEdit()
            edit.setPlaceholderText(label)
            edit.editingFinished.connect(
                lambda key=spec.key, e=edit: self.bridge.set_filter(key, e.text())
            )
            widget = edit
        widget.setObjectName(f"filter_{spec.key}")
        self._filter_widgets[spec.key] = widget
        return widget

    def filter_widget(self, key: str) -> QWidget:
        return self._filter_widgets[key]

    def apply_state(self, state: ControllerState) -> None:
        """Render a committed controller state."""
        if self.model.data_rows != list(state.items):
            self.model.set_rows(state.items)
        self.page_label.setText(f"Page {state.query.page} / {state.page_count}  ({state.total})")
        self.loading_label.setText("Loading..." if state.loading else "")
        if state.last_error is not None and not state.loading:
            self.loading_label.setText(state.last_error.message)
        self._state = state
        self._update_buttons()

    def _update_buttons(self) -> None:
        state = self._state
        if state is None:
            return
        page = state.query.page
        self.prev_btn.setEnabled(page > 1 and not state.loading)
        self.next_btn.setEnabled(page < state.page_count and not state.loading)
        record_id = self.selected_id()
        self.delete_btn.setEnabled(record_id is not None and state.busy_key is None)

    def selected_id(self):
        rows = self.table.selectionModel().selectedRows() if self.table.selectionModel() else []
        if not rows:
            return None
        return self.model.record_id_at(rows[0].row())

    def _on_refresh(self) -> None:
        self.bridge.refresh()

    def _on_delete(self) -> None:
        record_id = self.selected_id()
        if record_id is None:
            return
        record = self.model.record_at(self.table.selectionModel().selectedRows()[0].row()) or {}
        answer = QMessageBox.question(
            self,
            "Delete record",
            f"Delete {self.resource.describe(record)}?",
        )
        if answer == QMessageBox.Yes:
            self.bridge.delete(record_id)

    def close_page(self) -> None:
        self.bridge.close()


__all__ = ["ResourcePage"]

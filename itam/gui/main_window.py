"""Main window: sign-in dialog, resource navigation and status bar."""
from __future__ import annotations
import logging
from typing import Callable, Dict, Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QAction
from PySide6.QtWidgets import (
    QApplication,
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QSplitter,
    QStackedWidget,
    QVBoxLayout,
)

from ..api import AuthService
from ..errors import ItamError
from ..resources import ResourceSpec, list_resources
from .bridge import ControllerBridge
from .page import ResourcePage

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    "success": "#2e7d32",
    "info": "#1565c0",
    "warning": "#ef6c00",
    "error": "#c62828",
}


class LoginDialog(QDialog):
    """E-mail/password prompt; stays open and shows the error on failure."""

    def __init__(self, auth: AuthService, parent=None):
        super().__init__(parent)
        self.auth = auth
        self.setWindowTitle("Sign in")
        self.setModal(True)

        layout = QVBoxLayout(self)
        form = QFormLayout()
        self.email_edit = QLineEdit()
        self.password_edit = QLineEdit()
        self.password_edit.setEchoMode(QLineEdit.Password)
        form.addRow("Email", self.email_edit)
        form.addRow("Password", self.password_edit)
        layout.addLayout(form)

        self.error_label = QLabel("")
        self.error_label.setStyleSheet(f"color: {STATUS_COLORS['error']};")
        self.error_label.setWordWrap(True)
        layout.addWidget(self.error_label)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self._try_login)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _try_login(self) -> None:
        QApplication.setOverrideCursor(Qt.WaitCursor)
        try:
            self.auth.login(self.email_edit.text(), self.password_edit.text())
        except ItamError as e:
            self.error_label.setText(e.message)
            return
        finally:
            QApplication.restoreOverrideCursor()
        self.accept()


class MainWindow(QMainWindow):
    """Resource list on the left, one lazily built page per resource on the right.

    Args:
        bridge_factory: Builds a ControllerBridge for a resource
        auth: AuthService used for sign-out and the account label
    """

    def __init__(self, bridge_factory: Callable[[ResourceSpec], ControllerBridge],
                 auth: Optional[AuthService] = None, parent=None):
        super().__init__(parent)
        self.bridge_factory = bridge_factory
        self.auth = auth
        self.pages: Dict[str, ResourcePage] = {}
        self.setWindowTitle("IT Asset Console")
        self.resize(1200, 720)

        self.nav = QListWidget()
        self.nav.setObjectName("resourceNav")
        for spec in list_resources(nested=False):
            item = QListWidgetItem(spec.title)
            item.setData(Qt.UserRole, spec.name)
            self.nav.addItem(item)
        self.nav.currentItemChanged.connect(self._on_nav_changed)

        self.stack = QStackedWidget()
        splitter = QSplitter()
        splitter.addWidget(self.nav)
        splitter.addWidget(self.stack)
        splitter.setStretchFactor(1, 1)
        self.setCentralWidget(splitter)

        self._build_menu()
        self.statusBar().showMessage("Ready")

    def _build_menu(self) -> None:
        account = self.menuBar().addMenu("&Account")
        self.emails_action = QAction("Send e-mails for this section", self)
        self.emails_action.setCheckable(True)
        self.emails_action.setEnabled(False)
        self.emails_action.toggled.connect(self._on_emails_toggled)
        account.addAction(self.emails_action)
        account.addSeparator()
        sign_out = QAction("Sign out", self)
        sign_out.triggered.connect(self._on_sign_out)
        account.addAction(sign_out)
        quit_action = QAction("Quit", self)
        quit_action.triggered.connect(self.close)
        account.addAction(quit_action)

    # ---------------- navigation -----------------

    def open_resource(self, name: str) -> ResourcePage:
        page = self.pages.get(name)
        if page is None:
            spec = next(s for s in list_resources(nested=False) if s.name == name)
            bridge = self.bridge_factory(spec)
            bridge.notified.connect(self.show_notification)
            page = ResourcePage(bridge)
            self.pages[name] = page
            self.stack.addWidget(page)
            bridge.refresh()
        self.stack.setCurrentWidget(page)
        self._sync_emails_action(page)
        return page

    def _on_nav_changed(self, current: Optional[QListWidgetItem], _previous) -> None:
        if current is not None:
            self.open_resource(current.data(Qt.UserRole))

    def current_page(self) -> Optional[ResourcePage]:
        widget = self.stack.currentWidget()
        return widget if isinstance(widget, ResourcePage) else None

    # ---------------- notifications -----------------

    def show_notification(self, level: str, message: str) -> None:
        color = STATUS_COLORS.get(level, "")
        self.statusBar().setStyleSheet(f"color: {color};" if color else "")
        self.statusBar().showMessage(message, 6000)

    # ---------------- account -----------------

    def _sync_emails_action(self, page: ResourcePage) -> None:
        spec = page.resource
        sends_mail = bool(spec.notify_kinds) or any(a.notify for a in spec.actions)
        prefs = page.bridge.controller.session.notifications if page.bridge.controller.session else None
        self.emails_action.blockSignals(True)
        self.emails_action.setEnabled(sends_mail and prefs is not None)
        self.emails_action.setChecked(bool(prefs and prefs.emails_enabled(spec.name)))
        self.emails_action.blockSignals(False)

    def _on_emails_toggled(self, checked: bool) -> None:
        page = self.current_page()
        session = page.bridge.controller.session if page else None
        if session is None:
            return
        session.notifications.set_emails_enabled(page.resource.name, checked)
        session.save()
        self.show_notification("info", f"E-mails for {page.resource.title}: {'ON' if checked else 'OFF'}")

    def _on_sign_out(self) -> None:
        if self.auth is None:
            return
        self.auth.logout()
        self.show_notification("info", "Signed out")
        dialog = LoginDialog(self.auth, self)
        if dialog.exec() != QDialog.Accepted:
            self.close()
            return
        page = self.current_page()
        if page is not None:
            page.bridge.refresh()

    def closeEvent(self, event) -> None:
        for page in self.pages.values():
            page.close_page()
        super().closeEvent(event)


__all__ = ["MainWindow", "LoginDialog"]

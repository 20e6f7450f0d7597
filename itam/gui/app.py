"""Qt application bootstrap.

Sets up QApplication, loads configuration and the cached session, starts the
controller event loop and launches the main window.
"""

import sys
import logging
from typing import Any, Dict, Optional

from PySide6.QtWidgets import QApplication, QDialog, QMessageBox

from itam.api import AuthService, RestClient, SessionContext
from itam.config import load_typed_config
from itam.core import PaginatedQueryController
from itam.services.notify_prefs import NotificationPreferences
from .bridge import ControllerBridge, LoopThread
from .main_window import LoginDialog, MainWindow

logger = logging.getLogger(__name__)


def setup_logging():
    """Configure logging for the GUI."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def make_bridge_factory(cfg: Dict[str, Any], client: RestClient, session: SessionContext, loop_thread: LoopThread):
    lists = cfg.get("lists") or {}

    def factory(spec) -> ControllerBridge:
        controller = PaginatedQueryController(
            spec,
            client,
            session=session,
            page_size=lists.get("page_size", 10),
            debounce_ms=lists.get("debounce_ms", 250),
            min_latency_ms=lists.get("min_latency_ms", 300),
        )
        return ControllerBridge(controller, loop_thread)

    return factory


def main(cfg: Optional[Dict[str, Any]] = None) -> int:
    """Main entry point for GUI application.

    Args:
        cfg: Config dict (``itam gui`` passes its own); loaded when omitted

    Returns:
        Exit code
    """
    setup_logging()
    logger.info("Starting IT Asset Console GUI...")

    app = QApplication.instance() or QApplication(sys.argv)
    app.setApplicationName("IT Asset Console")
    app.setOrganizationName("ITAM")
    app.setStyle("Fusion")

    loop_thread = LoopThread()
    try:
        if cfg is None:
            cfg = load_typed_config().to_dict()
        prefs = NotificationPreferences((cfg.get("notifications") or {}).get("emails_disabled") or [])
        session = SessionContext((cfg.get("auth") or {}).get("cache_file"), prefs).load()
        api = cfg.get("api") or {}
        client = RestClient(
            api.get("base_url", "http://localhost:4000"),
            session=session,
            timeout=api.get("timeout", 30),
            max_attempts=api.get("max_attempts", 3),
        )
        auth = AuthService(client, session)

        if not session.authenticated:
            if LoginDialog(auth).exec() != QDialog.Accepted:
                logger.info("Sign-in cancelled. Exiting.")
                return 1

        loop_thread.start()
        window = MainWindow(make_bridge_factory(cfg, client, session, loop_thread), auth)
        window.show()
        if window.nav.count():
            window.nav.setCurrentRow(0)
        logger.info("GUI ready")
        return app.exec()

    except Exception as e:
        logger.exception("Failed to start GUI")
        QMessageBox.critical(
            None,
            "Startup Error",
            f"Failed to start application:\n\n{str(e)}\n\n"
            f"Check the backend URL (ITAM__API__BASE_URL) and configuration.",
        )
        return 1
    finally:
        loop_thread.stop()


if __name__ == "__main__":
    sys.exit(main())

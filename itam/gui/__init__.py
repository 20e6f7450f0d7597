"""Desktop shell (PySide6) on top of the list controllers."""

"""Entry point for the GUI application.

Usage:
    python -m itam.gui
"""

import sys

if __name__ == "__main__":
    from itam.gui.app import main

    sys.exit(main())

"""Central version declaration for it-asset-console.

Update this file when cutting a new release tag. Keep semantic versioning.
The CLI --version flag and the GUI window title import from here.
"""

__version__ = "0.3.0"

__all__ = ["__version__"]

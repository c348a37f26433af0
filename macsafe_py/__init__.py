"""
MacSafe - point-in-time backup, verification and restore for macOS.

Archive what matters, verify it, and rebuild the software around it.
"""

from importlib.metadata import version as _version

__version__ = _version("macsafe")

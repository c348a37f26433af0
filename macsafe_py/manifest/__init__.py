"""
Software inventory collection for MacSafe.

The backup engine persists inventory text verbatim and never interprets how
it was collected. ``InventoryProvider`` is that boundary;
``SystemInventoryProvider`` (in ``macsafe_py.manifest.system``) shells out to
``brew``, ``mas`` and ``code`` on the running Mac.
"""

import abc
from typing import List, Optional


class InventoryProvider(abc.ABC):
    """Source of the raw inventory snapshots stored with each run.

    Every method returns None when the inventory is unavailable.
    """

    @abc.abstractmethod
    def brewfile(self) -> Optional[str]:
        """Return a Brewfile describing installed taps, formulae and casks."""
        pass

    @abc.abstractmethod
    def mas_apps(self) -> Optional[str]:
        """Return ``mas "<name>", id: <id>`` lines for App Store apps."""
        pass

    @abc.abstractmethod
    def manual_apps(self) -> Optional[List[str]]:
        """Return apps installed outside Homebrew and the App Store."""
        pass

    @abc.abstractmethod
    def vscode_extensions(self) -> Optional[List[str]]:
        """Return installed VS Code extension ids."""
        pass


class StaticInventoryProvider(InventoryProvider):
    """Provider returning fixed values; empty by default."""

    def __init__(
        self,
        brewfile: Optional[str] = None,
        mas_apps: Optional[str] = None,
        manual_apps: Optional[List[str]] = None,
        vscode_extensions: Optional[List[str]] = None,
    ):
        self._brewfile = brewfile
        self._mas_apps = mas_apps
        self._manual_apps = manual_apps
        self._vscode_extensions = vscode_extensions

    def brewfile(self) -> Optional[str]:
        return self._brewfile

    def mas_apps(self) -> Optional[str]:
        return self._mas_apps

    def manual_apps(self) -> Optional[List[str]]:
        return self._manual_apps

    def vscode_extensions(self) -> Optional[List[str]]:
        return self._vscode_extensions

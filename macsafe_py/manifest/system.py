"""
Inventory provider backed by the tools installed on this Mac.
"""

import logging
from typing import List, Optional

from macsafe_py.manifest import InventoryProvider
from macsafe_py.manifest.apps import list_applications
from macsafe_py.manifest.brew import dump_brewfile, list_casks, mas_lines
from macsafe_py.manifest.mas import list_installed, parse_list_titles
from macsafe_py.manifest.vscode import list_extensions
from macsafe_py.matching import filter_manual_apps
from macsafe_py.platform import is_macos

logger = logging.getLogger(__name__)


class SystemInventoryProvider(InventoryProvider):
    """Collects inventories from ``brew``, ``mas``, ``/Applications`` and ``code``.

    The Brewfile is dumped once per provider and reused, since the App Store
    snapshot is derived from its ``mas`` lines.
    """

    def __init__(self) -> None:
        self._brewfile: Optional[str] = None
        self._brewfile_loaded = False

    def brewfile(self) -> Optional[str]:
        if not self._brewfile_loaded:
            self._brewfile = dump_brewfile()
            self._brewfile_loaded = True
        return self._brewfile

    def mas_apps(self) -> Optional[str]:
        brewfile = self.brewfile()
        if brewfile is None:
            return None
        return mas_lines(brewfile)

    def manual_apps(self) -> Optional[List[str]]:
        if not is_macos():
            logger.info("Not running on macOS. Skipping application listing.")
            return None
        apps = list_applications()
        if not apps:
            return None
        listing = list_installed() or ""
        manual = filter_manual_apps(apps, list_casks(), parse_list_titles(listing))
        logger.debug(f"{len(manual)} of {len(apps)} applications installed manually")
        return manual

    def vscode_extensions(self) -> Optional[List[str]]:
        return list_extensions()

import logging
import shutil
import tempfile
from pathlib import Path

from macsafe_py.engine import INVENTORY_PAYLOADS, MAS_APPS, BaseCodec
from macsafe_py.exceptions import ExternalToolError, NotFoundError
from macsafe_py.manifest.mas import list_installed, parse_brewfile_mas
from macsafe_py.matching import mas_app_installed
from macsafe_py.platform import find_mas
from macsafe_py.restore.installer import MasInstaller

logger = logging.getLogger("macsafe.restore.mas")


def restore_mas_apps(codec: BaseCodec, archive: Path, installer: MasInstaller) -> str:
    """Install the backed-up App Store apps that are not present yet."""
    scratch = Path(tempfile.mkdtemp(prefix="macsafe-mas-"))
    try:
        codec.unpack(archive, scratch)
        payload = scratch / INVENTORY_PAYLOADS[MAS_APPS]
        if not payload.exists():
            raise NotFoundError(f"{payload.name} missing from {archive.name}")
        apps = parse_brewfile_mas(payload.read_text())
    finally:
        shutil.rmtree(scratch, ignore_errors=True)

    if not apps:
        return f"{MAS_APPS} (0 apps)"
    if not find_mas():
        raise ExternalToolError("mas not available")

    listing = list_installed() or ""
    missing = [(name, app_id) for name, app_id in apps if not mas_app_installed(app_id, listing)]
    logger.info(f"{len(missing)} of {len(apps)} App Store apps need installing")
    if missing:
        installer.install(missing)

    listing = list_installed() or ""
    present = sum(1 for _, app_id in apps if mas_app_installed(app_id, listing))
    return f"{MAS_APPS} ({present} apps)"

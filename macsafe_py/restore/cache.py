import logging
import shutil
import tempfile
from pathlib import Path

from macsafe_py.engine import HOMEBREW_CACHE, BaseCodec
from macsafe_py.paths import directory_size

logger = logging.getLogger("macsafe.restore.cache")


def restore_homebrew_cache(codec: BaseCodec, archive: Path, cache_dir: Path) -> str:
    """
    Unpack the cache archive directly into *cache_dir*.

    The archive holds the cache directory itself as its single top-level
    entry; its contents are merged into *cache_dir* so brew finds the
    downloads where it expects them. Returns the outcome line with the size
    of *cache_dir* afterwards.
    """
    cache_dir.mkdir(parents=True, exist_ok=True)
    scratch = Path(tempfile.mkdtemp(prefix="macsafe-cache-"))
    try:
        codec.unpack(archive, scratch)
        entries = list(scratch.iterdir())
        source = entries[0] if len(entries) == 1 and entries[0].is_dir() else scratch
        logger.info(f"Merging {source.name} into {cache_dir}")
        shutil.copytree(source, cache_dir, symlinks=True, dirs_exist_ok=True)
    finally:
        shutil.rmtree(scratch, ignore_errors=True)

    size_mb = directory_size(cache_dir) / (1024 * 1024)
    return f"{HOMEBREW_CACHE} ({size_mb:.0f} MB)"

"""
Static and vendor copiers.

copy_static mirrors the static asset tree into the build root.
copy_vendor copies the prebuilt game-engine library into build/scripts:
production builds ship only the minified file, development builds also
get the full source and its map for debugging.
"""

import shutil
from pathlib import Path
from typing import List

from gamebuild.config import BuildMode, BuildSettings
from gamebuild.errors import CopyError
from gamebuild.logging import get_logger

log = get_logger('copiers')


def _copy_file(src: Path, dst: Path) -> Path:
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)
    except OSError as e:
        raise CopyError(f"Could not copy {src} -> {dst}: {e}", path=str(src)) from e
    return dst


def copy_static(settings: BuildSettings) -> List[Path]:
    """
    Copy every file under the static directory into the build root,
    keeping relative paths.

    Returns:
        Destination paths, in source order
    """
    src_root = settings.static_path
    dst_root = settings.build_path

    if not src_root.is_dir():
        log.warning("Static directory not found: %s", src_root)
        return []

    copied = []
    for src in sorted(src_root.rglob('*')):
        if not src.is_file():
            continue
        dst = dst_root / src.relative_to(src_root)
        copied.append(_copy_file(src, dst))

    log.info("Copied %d static files", len(copied))
    return copied


def vendor_files(mode: BuildMode, settings: BuildSettings) -> List[str]:
    """File names to take from the vendor directory for this mode."""
    files = [settings.vendor_min_file]
    if not mode.is_production:
        files.extend([settings.vendor_map_file, settings.vendor_full_file])
    return files


def copy_vendor(mode: BuildMode, settings: BuildSettings) -> List[Path]:
    """
    Copy the vendor library into build/scripts.

    Raises:
        CopyError: If a required vendor file is missing or unreadable
    """
    copied = []
    for name in vendor_files(mode, settings):
        src = settings.vendor_path / name
        if not src.is_file():
            raise CopyError(f"Vendor file not found: {src}", path=str(src))
        copied.append(_copy_file(src, settings.scripts_path / name))
        log.debug("  Copied: %s", name)

    log.info("Copied %d vendor files (%s)", len(copied), mode.value)
    return copied

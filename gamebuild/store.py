"""
Artifact Store - the build output tree served to the browser.

Layout:
    build/                 static assets + index.html
    build/scripts/         vendor library, game bundle, optional source map
"""

import os
import tempfile
from pathlib import Path
from typing import List, Union

from gamebuild.config import BuildSettings
from gamebuild.logging import get_logger

log = get_logger('store')


class ArtifactStore:
    """Owns the output directory and every write into it."""

    def __init__(self, settings: BuildSettings):
        self.settings = settings

    @property
    def root(self) -> Path:
        return self.settings.build_path

    @property
    def scripts(self) -> Path:
        return self.settings.scripts_path

    @property
    def bundle(self) -> Path:
        return self.settings.bundle_path

    @property
    def source_map(self) -> Path:
        return self.settings.map_path

    def ensure_layout(self) -> None:
        """Create the root and scripts directories."""
        self.scripts.mkdir(parents=True, exist_ok=True)

    def files(self) -> List[Path]:
        """Every file currently in the store, sorted."""
        if not self.root.exists():
            return []
        return sorted(p for p in self.root.rglob('*') if p.is_file())

    def clean(self, keep_files: bool = False) -> int:
        """
        Delete build output ahead of a full rebuild.

        Only files whose name contains a dot are removed (``build/**/*.*``),
        dotfiles included; directories are left in place. Deletion errors
        are ignored.

        Args:
            keep_files: Skip deletion entirely. Set when the run was
                triggered by a static-asset edit, where the following
                copy overwrites just what changed.

        Returns:
            Number of files deleted
        """
        if keep_files:
            log.debug("Keeping existing files in %s", self.root)
            return 0

        deleted = 0
        for path in self.files():
            if '.' not in path.name:
                continue
            try:
                path.unlink()
                deleted += 1
            except OSError as e:
                log.debug("Could not delete %s: %s", path, e)

        log.debug("Deleted %d files from %s", deleted, self.root)
        return deleted

    def write_atomic(self, path: Path, data: Union[str, bytes]) -> Path:
        """
        Write data to path via a temp file in the same directory.

        Readers (and a failed later build) never see a partial file.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        mode = 'wb' if isinstance(data, bytes) else 'w'
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, mode) as f:
                f.write(data)
            # mkstemp creates 0600 files; build output must stay world-readable.
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return path

    def relative(self, path: Path) -> str:
        """Path relative to the store root, for log lines."""
        try:
            return str(path.relative_to(self.root))
        except ValueError:
            return str(path)

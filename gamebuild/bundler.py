"""
Bundle Builder

Turns the JavaScript entry file into build/scripts/game.js:

    development: bundled, unminified, with game.js.map written next to it
    production:  bundled and minified, no source map

Bundling and minification are delegated to a BundleTransform. The
default, EsbuildTransform, runs the esbuild executable in a subprocess.
"""

import asyncio
import base64
import os
import re
import shutil
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from gamebuild.config import BuildMode, BuildSettings
from gamebuild.errors import BundleError
from gamebuild.logging import get_logger, green, yellow
from gamebuild.store import ArtifactStore

log = get_logger('bundler')

# Matches the trailing inline map comment esbuild (and most bundlers) emit:
#   //# sourceMappingURL=data:application/json;base64,....
_INLINE_MAP_RE = re.compile(
    r'\n?//[#@] sourceMappingURL=data:application/json;(?:charset=[\w-]+;)?base64,'
    r'([A-Za-z0-9+/=]+)\s*$'
)


class BundleTransform(Protocol):
    """Bundler/minifier the Bundle Builder delegates to."""

    async def bundle(
        self,
        entry: Path,
        *,
        module_paths: Sequence[Path],
        target: str,
        sourcemap: bool,
    ) -> str:
        """Bundle entry and its imports into one script.

        With sourcemap=True the script ends with an inline source map.
        """
        ...

    async def minify(self, code: str, *, target: str) -> str:
        """Minify code without raising its syntax level above target."""
        ...


def find_esbuild(settings: BuildSettings) -> List[str]:
    """Find the esbuild command.

    Order: explicit setting, project node_modules, PATH, npx.

    Raises:
        BundleError: If no esbuild can be found
    """
    if settings.esbuild:
        return [settings.esbuild]

    local = settings.project_root / 'node_modules' / '.bin' / 'esbuild'
    if local.exists():
        return [str(local)]

    on_path = shutil.which('esbuild')
    if on_path:
        return [on_path]

    npx = shutil.which('npx')
    if npx:
        return [npx, '--no-install', 'esbuild']

    raise BundleError(
        "esbuild not found. Install with: npm install --save-dev esbuild"
    )


class EsbuildTransform:
    """BundleTransform backed by the esbuild CLI."""

    def __init__(self, command: Sequence[str], cwd: Optional[Path] = None):
        self.command = list(command)
        self.cwd = cwd

    @classmethod
    def from_settings(cls, settings: BuildSettings) -> 'EsbuildTransform':
        return cls(find_esbuild(settings), cwd=settings.project_root)

    async def _run(self, args: Sequence[str], stdin: Optional[str] = None,
                   env: Optional[dict] = None) -> str:
        cmd = self.command + list(args)
        log.debug("Running: %s", ' '.join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if stdin is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.cwd) if self.cwd else None,
                env=env,
            )
        except OSError as e:
            raise BundleError(f"Could not start esbuild: {e}") from e

        out, err = await proc.communicate(stdin.encode() if stdin is not None else None)
        stderr = err.decode(errors='replace').strip()
        if proc.returncode != 0:
            raise BundleError(
                stderr or f"esbuild exited with code {proc.returncode}",
                stderr=stderr,
            )
        return out.decode()

    async def bundle(
        self,
        entry: Path,
        *,
        module_paths: Sequence[Path],
        target: str,
        sourcemap: bool,
    ) -> str:
        args = [str(entry), '--bundle', f'--target={target}', '--format=iife']
        if sourcemap:
            args.append('--sourcemap=inline')

        # Bare imports resolve against the source dir, like NODE_PATH.
        env = dict(os.environ)
        env['NODE_PATH'] = os.pathsep.join(str(p) for p in module_paths)
        return await self._run(args, env=env)

    async def minify(self, code: str, *, target: str) -> str:
        # Without --target the minifier assumes esnext and re-sugars lowered syntax.
        return await self._run(
            ['--minify', '--loader=js', f'--target={target}'], stdin=code,
        )


def split_inline_sourcemap(code: str, map_name: str) -> Tuple[str, Optional[str]]:
    """
    Move an inline source map out of a bundle.

    Returns:
        (code referencing map_name, decoded map JSON); the map is None and
        the code unchanged when the bundle has no inline map.
    """
    match = _INLINE_MAP_RE.search(code)
    if not match:
        return code, None

    source_map = base64.b64decode(match.group(1)).decode('utf-8')
    stripped = code[:match.start()].rstrip('\n')
    return f"{stripped}\n//# sourceMappingURL={map_name}\n", source_map


def log_build_mode(mode: BuildMode) -> None:
    if mode.is_production:
        log.info(green('Running production build...'))
    else:
        log.info(yellow('Running development build...'))


class BundleBuilder:
    """Writes the game bundle (and in development its map) into the store."""

    def __init__(self, settings: BuildSettings, transform: Optional[BundleTransform] = None):
        self.settings = settings
        self.store = ArtifactStore(settings)
        self._transform = transform

    @property
    def transform(self) -> BundleTransform:
        # Resolved lazily so a missing esbuild only fails the bundle step.
        if self._transform is None:
            self._transform = EsbuildTransform.from_settings(self.settings)
        return self._transform

    async def build(self, mode: BuildMode) -> Path:
        """
        Bundle the entry file for mode and write it to build/scripts.

        On failure nothing is written, so the previous bundle stays in place.

        Raises:
            BundleError: If the entry is missing or the transform fails
        """
        log_build_mode(mode)

        entry = self.settings.entry_path
        if not entry.is_file():
            raise BundleError(f"Entry file not found: {entry}")

        code = await self.transform.bundle(
            entry,
            module_paths=[self.settings.source_path],
            target=self.settings.target,
            sourcemap=not mode.is_production,
        )

        if mode.is_production:
            code = await self.transform.minify(code, target=self.settings.target)
            self.store.write_atomic(self.store.bundle, code)
            self.store.source_map.unlink(missing_ok=True)
        else:
            code, source_map = split_inline_sourcemap(code, self.settings.map_name)
            if source_map is not None:
                self.store.write_atomic(self.store.source_map, source_map)
            else:
                log.warning("Bundler returned no source map")
            self.store.write_atomic(self.store.bundle, code)

        log.info("Wrote %s (%d bytes)", self.store.relative(self.store.bundle),
                 self.store.bundle.stat().st_size)
        return self.store.bundle

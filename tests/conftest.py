"""Shared fixtures: a small game project on disk and an in-process bundler."""

import base64
import json
import os
import re
from pathlib import Path
from typing import List, Sequence

import pytest

from gamebuild.config import BuildSettings
from gamebuild.errors import BundleError
from gamebuild.logging import configure_logging

ENTRY_SOURCE = """\
import { makeScene } from './scene.js';

const config = {
    width: 800,
    height: 600,
    scene: makeScene(),
};

window.game = new Phaser.Game(config);
"""

SCENE_SOURCE = """\
export function makeScene() {
    return { key: 'main' };
}
"""


class FakeTransform:
    """BundleTransform stand-in that needs no node toolchain.

    bundle() concatenates the JS files in the entry's directory, entry
    last; a line containing SYNTAX_ERROR fails the build.
    """

    def __init__(self):
        self.bundle_calls: List[dict] = []
        self.minify_calls = 0
        self.minify_targets: List[str] = []

    async def bundle(self, entry: Path, *, module_paths: Sequence[Path],
                     target: str, sourcemap: bool) -> str:
        self.bundle_calls.append({
            'entry': entry, 'module_paths': list(module_paths),
            'target': target, 'sourcemap': sourcemap,
        })
        modules = sorted(p for p in entry.parent.glob('*.js') if p != entry) + [entry]
        parts = []
        for module in modules:
            text = module.read_text()
            if 'SYNTAX_ERROR' in text:
                raise BundleError(f"{module.name}: Unexpected token")
            parts.append(f"// {module.name}\n{text}")
        code = "(function () {\n" + "\n".join(parts) + "})();\n"

        if sourcemap:
            source_map = json.dumps({
                'version': 3,
                'sources': [m.name for m in modules],
                'mappings': 'AAAA',
            })
            encoded = base64.b64encode(source_map.encode()).decode()
            code += f"//# sourceMappingURL=data:application/json;base64,{encoded}\n"
        return code

    async def minify(self, code: str, *, target: str) -> str:
        self.minify_calls += 1
        self.minify_targets.append(target)
        code = re.sub(r'^\s*//.*$', '', code, flags=re.MULTILINE)
        return re.sub(r'\s+', ' ', code).strip()


@pytest.fixture(autouse=True)
def quiet_logging():
    """Plain, uncoloured log output for every test."""
    configure_logging(level='WARNING', color=False)
    yield
    configure_logging(level='INFO', color=True)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep GAMEBUILD_* variables from the outer shell out of tests."""
    for key in list(os.environ):
        if key.startswith('GAMEBUILD_') and not key.startswith('GAMEBUILD_LOG'):
            monkeypatch.delenv(key)


@pytest.fixture
def project(tmp_path) -> Path:
    """A game project laid out like the default settings expect."""
    root = tmp_path / 'game'

    src = root / 'src'
    src.mkdir(parents=True)
    (src / 'index.js').write_text(ENTRY_SOURCE)
    (src / 'scene.js').write_text(SCENE_SOURCE)

    static = root / 'static'
    (static / 'assets' / 'images').mkdir(parents=True)
    (static / 'index.html').write_text(
        '<html><body><script src="scripts/game.js"></script></body></html>'
    )
    (static / 'assets' / 'images' / 'logo.png').write_bytes(b'\x89PNG\r\n\x1a\n')
    (static / 'assets' / 'level1.json').write_text('{"tiles": []}')

    vendor = root / 'node_modules' / 'phaser' / 'build'
    vendor.mkdir(parents=True)
    (vendor / 'phaser.min.js').write_text('var Phaser={};')
    (vendor / 'phaser.js').write_text('var Phaser = {\n    VERSION: "3"\n};\n')
    (vendor / 'phaser.map').write_text('{"version":3}')

    return root


@pytest.fixture
def settings(project) -> BuildSettings:
    return BuildSettings(project_root=project)


@pytest.fixture
def transform() -> FakeTransform:
    return FakeTransform()

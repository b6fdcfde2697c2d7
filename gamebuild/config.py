"""
Build configuration.

Every path and file name the pipeline touches is a setting. Values come
from (highest wins):

    1. Explicit overrides (CLI flags)
    2. GAMEBUILD_* environment variables (a .env in the project root is
       loaded first)
    3. gamebuild.yaml in the project root
    4. Defaults below

Environment variables:
    GAMEBUILD_MODE=production
    GAMEBUILD_BUILD_DIR=dist
    GAMEBUILD_PORT=8080
    GAMEBUILD_ESBUILD=/usr/local/bin/esbuild
    (any BuildSettings field, upper-cased with the GAMEBUILD_ prefix)
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from gamebuild.errors import ConfigError

CONFIG_FILE = 'gamebuild.yaml'
ENV_PREFIX = 'GAMEBUILD_'


class BuildMode(str, Enum):
    """Build flavour. Fixed for the duration of one pipeline run."""
    DEVELOPMENT = 'development'
    PRODUCTION = 'production'

    @property
    def is_production(self) -> bool:
        return self is BuildMode.PRODUCTION


class BuildSettings(BaseModel):
    """Paths, file names and server options for one project."""

    project_root: Path = Field(default_factory=Path.cwd)

    # Inputs
    source_dir: str = 'src'
    entry_file: str = 'src/index.js'
    static_dir: str = 'static'
    vendor_dir: str = 'node_modules/phaser/build'

    # Artifact store layout
    build_dir: str = 'build'
    scripts_subdir: str = 'scripts'
    output_file: str = 'game.js'
    map_suffix: str = '.map'

    # Vendor library files
    vendor_min_file: str = 'phaser.min.js'
    vendor_full_file: str = 'phaser.js'
    vendor_map_file: str = 'phaser.map'

    # Bundler
    esbuild: Optional[str] = None
    target: str = 'es2015'

    # Dev server
    host: str = 'localhost'
    port: int = Field(default=3000, ge=0, le=65535)
    open_browser: bool = False
    watch_interval: float = Field(default=0.5, gt=0)

    def _resolve(self, relative: str) -> Path:
        return (self.project_root / relative).resolve()

    @property
    def build_path(self) -> Path:
        return self._resolve(self.build_dir)

    @property
    def scripts_path(self) -> Path:
        return self.build_path / self.scripts_subdir

    @property
    def bundle_path(self) -> Path:
        return self.scripts_path / self.output_file

    @property
    def map_name(self) -> str:
        return self.output_file + self.map_suffix

    @property
    def map_path(self) -> Path:
        return self.scripts_path / self.map_name

    @property
    def source_path(self) -> Path:
        return self._resolve(self.source_dir)

    @property
    def entry_path(self) -> Path:
        return self._resolve(self.entry_file)

    @property
    def static_path(self) -> Path:
        return self._resolve(self.static_dir)

    @property
    def vendor_path(self) -> Path:
        return self._resolve(self.vendor_dir)


def _read_config_file(project_root: Path) -> Dict[str, Any]:
    """Read gamebuild.yaml from the project root, if present."""
    path = project_root / CONFIG_FILE
    if not path.exists():
        return {}

    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid {CONFIG_FILE}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILE} must contain a mapping, got {type(data).__name__}")
    return data


def _read_env() -> Dict[str, Any]:
    """Collect GAMEBUILD_<FIELD> variables that name a BuildSettings field."""
    values = {}
    for name in BuildSettings.model_fields:
        if name == 'project_root':
            continue
        key = ENV_PREFIX + name.upper()
        if key in os.environ:
            values[name] = os.environ[key]
    return values


def load_settings(project_root: Optional[Path] = None, **overrides: Any) -> BuildSettings:
    """
    Load settings for the project at project_root.

    Args:
        project_root: Project directory (default: current directory)
        **overrides: Field values that win over every other source.
            None values are ignored so CLI defaults can be passed through.

    Raises:
        ConfigError: If the config file or any value is invalid
    """
    root = Path(project_root).resolve() if project_root else Path.cwd()
    load_dotenv(root / '.env')

    values: Dict[str, Any] = {}
    values.update(_read_config_file(root))
    values.update(_read_env())
    values.update({k: v for k, v in overrides.items() if v is not None})
    values['project_root'] = root

    try:
        return BuildSettings(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid build settings: {e}") from e


def resolve_mode(production: Optional[bool] = None) -> BuildMode:
    """
    Pick the build mode: explicit flag first, then GAMEBUILD_MODE.

    Raises:
        ConfigError: If GAMEBUILD_MODE names an unknown mode
    """
    if production:
        return BuildMode.PRODUCTION

    env_mode = os.getenv(ENV_PREFIX + 'MODE', '').strip().lower()
    if not env_mode:
        return BuildMode.DEVELOPMENT
    try:
        return BuildMode(env_mode)
    except ValueError:
        choices = ', '.join(m.value for m in BuildMode)
        raise ConfigError(f"Unknown build mode {env_mode!r} (expected one of: {choices})")

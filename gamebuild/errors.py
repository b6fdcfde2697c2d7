"""Exceptions raised by the build pipeline."""

from typing import Optional


class GameBuildError(Exception):
    """Base class for build errors."""
    pass


class ConfigError(GameBuildError):
    """Raised when settings cannot be loaded or fail validation."""
    pass


class CopyError(GameBuildError):
    """Raised when a static or vendor file cannot be copied into the build."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class BundleError(GameBuildError):
    """Raised when the bundler cannot produce the game bundle."""

    def __init__(self, message: str, stderr: str = ''):
        self.stderr = stderr
        super().__init__(message)


class StepError(GameBuildError):
    """Raised when a fatal pipeline step fails. Later steps were not run."""

    def __init__(self, step: str, cause: BaseException, run=None):
        self.step = step
        self.cause = cause
        self.run = run
        super().__init__(f"Step '{step}' failed: {cause}")

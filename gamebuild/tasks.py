"""
Named build pipelines.

The tasks are executed in the following order:

    static_assembly:  clean -> copy-static -> copy-vendor
    full_build:       static_assembly -> bundle
    watch_on_source:  full_build -> reload
    watch_on_static:  static_assembly (keeping files) -> reload

The bundle step is LOG_AND_CONTINUE so a syntax error in the game shows
up as a red log line instead of stopping the watch loop. Every other
step is FATAL.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from gamebuild.bundler import BundleBuilder, BundleTransform
from gamebuild.config import BuildMode, BuildSettings
from gamebuild.copiers import copy_static, copy_vendor
from gamebuild.logging import get_logger
from gamebuild.pipeline import Pipeline, PipelineRun, Step, StepPolicy, run_pipeline, series
from gamebuild.store import ArtifactStore

log = get_logger('tasks')

Reloader = Callable[[], Awaitable[object]]


class BuildTasks:
    """
    Builds the named pipelines for one project and build mode.

    Runs through run() are serialized: a pipeline triggered while another
    is active waits for it to finish, so two runs never write into the
    build directory at the same time.

    Args:
        settings: Project settings
        mode: Build mode for every pipeline built by this instance
        transform: Bundler override (default: esbuild)
        reloader: Awaitable callable that tells browsers to reload
    """

    def __init__(
        self,
        settings: BuildSettings,
        mode: BuildMode,
        transform: Optional[BundleTransform] = None,
        reloader: Optional[Reloader] = None,
    ):
        self.settings = settings
        self.mode = mode
        self.store = ArtifactStore(settings)
        self.builder = BundleBuilder(settings, transform)
        self.reloader = reloader
        self._lock = asyncio.Lock()

    # -- steps --------------------------------------------------------------

    def clean_step(self, keep_files: bool = False) -> Step:
        async def clean():
            await asyncio.to_thread(self.store.clean, keep_files)
        return Step('clean', clean)

    def copy_static_step(self) -> Step:
        async def copy():
            await asyncio.to_thread(copy_static, self.settings)
        return Step('copy-static', copy)

    def copy_vendor_step(self) -> Step:
        async def copy():
            await asyncio.to_thread(copy_vendor, self.mode, self.settings)
        return Step('copy-vendor', copy)

    def bundle_step(self) -> Step:
        async def bundle():
            await self.builder.build(self.mode)
        return Step('bundle', bundle, StepPolicy.LOG_AND_CONTINUE)

    def reload_step(self) -> Step:
        async def reload():
            if self.reloader is None:
                log.debug("No dev server attached, skipping reload")
                return
            await self.reloader()
        return Step('reload', reload)

    # -- pipelines ----------------------------------------------------------

    def static_assembly(self, keep_files: bool = False) -> Pipeline:
        return series(
            'static_assembly',
            self.clean_step(keep_files),
            self.copy_static_step(),
            self.copy_vendor_step(),
        )

    def full_build(self) -> Pipeline:
        return series('full_build', self.static_assembly(), self.bundle_step())

    def watch_on_source(self) -> Pipeline:
        return series('watch_on_source', self.full_build(), self.reload_step())

    def watch_on_static(self) -> Pipeline:
        # Static edits are copied over the existing build; a full wipe
        # here would also delete the bundle, which this pipeline does not rebuild.
        return series(
            'watch_on_static',
            self.static_assembly(keep_files=True),
            self.reload_step(),
        )

    def clean_only(self) -> Pipeline:
        return series('clean', self.clean_step())

    def pipeline(self, name: str) -> Pipeline:
        """Look up a pipeline by task name."""
        factories: Dict[str, Callable[[], Pipeline]] = {
            'build': self.full_build,
            'static': self.static_assembly,
            'clean': self.clean_only,
            'watch_on_source': self.watch_on_source,
            'watch_on_static': self.watch_on_static,
        }
        if name not in factories:
            raise KeyError(f"Unknown task: {name}")
        return factories[name]()

    async def run(self, pipeline: Pipeline) -> PipelineRun:
        """Run pipeline once no other run of this instance is active."""
        if self._lock.locked():
            log.debug("'%s' waiting for the active run to finish", pipeline.name)
        async with self._lock:
            self.store.ensure_layout()
            return await run_pipeline(pipeline)


TASK_NAMES = ('build', 'static', 'clean')

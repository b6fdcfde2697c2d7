#!/usr/bin/env python3
"""
gamebuild command line.

Usage:
    gamebuild [TASK] [--production] [--project DIR] [--port N] [--open]

Tasks:
    default     Full build, then serve build/ and rebuild on changes
    build       Full build once (clean, static, vendor, bundle)
    static      Copy static and vendor files only
    clean       Delete build output
    serve       Serve build/ and rebuild on changes, no initial build
"""

import argparse
import asyncio
import sys
import webbrowser
from pathlib import Path
from typing import List, Optional

from gamebuild.config import BuildMode, BuildSettings, load_settings, resolve_mode
from gamebuild.errors import ConfigError, StepError
from gamebuild.logging import (
    close_all_sinks,
    configure_logging,
    get_logger,
    red,
    reload_env_config,
)
from gamebuild.pipeline import Pipeline
from gamebuild.server import DevServer
from gamebuild.tasks import TASK_NAMES, BuildTasks
from gamebuild.watcher import FileChange, FileWatcher

log = get_logger('gamebuild')

EXIT_OK = 0
EXIT_PIPELINE_FAILED = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='gamebuild',
        description="Build and serve a browser game",
    )
    parser.add_argument(
        'task',
        nargs='?',
        default='default',
        choices=('default', 'serve') + TASK_NAMES,
        help="Task to run (default: build, then serve and watch)",
    )
    parser.add_argument(
        '--production',
        action='store_true',
        help="Production build: minified bundle, no source maps",
    )
    parser.add_argument(
        '--project',
        type=Path,
        default=None,
        help="Project root (default: current directory)",
    )
    parser.add_argument('--host', type=str, default=None, help="Dev server host")
    parser.add_argument('--port', type=int, default=None, help="Dev server port")
    parser.add_argument(
        '--open',
        action='store_true',
        default=None,
        help="Open the game in a browser once the server is up",
    )
    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


async def run_logged(tasks: BuildTasks, pipeline: Pipeline) -> bool:
    """Run pipeline, logging a fatal step error instead of raising it."""
    try:
        await tasks.run(pipeline)
    except StepError as e:
        log.error(red(f"[{e.step}] {e.cause}"))
        return False
    return True


async def serve_and_watch(tasks: BuildTasks, settings: BuildSettings,
                          stop: Optional[asyncio.Event] = None) -> None:
    """
    Serve the build directory and run the watch pipelines on changes.

    Runs until stop is set (forever when stop is None).
    """
    server = DevServer(settings.build_path, settings.host, settings.port)
    tasks.reloader = server.reload

    async def on_source_change(changes: List[FileChange]) -> None:
        await run_logged(tasks, tasks.watch_on_source())

    async def on_static_change(changes: List[FileChange]) -> None:
        await run_logged(tasks, tasks.watch_on_static())

    watchers = [
        FileWatcher(settings.source_path, ['**/*.js'], on_source_change,
                    settings.watch_interval, name='src'),
        FileWatcher(settings.static_path, ['**/*'], on_static_change,
                    settings.watch_interval, name='static'),
    ]

    await server.start()
    for watcher in watchers:
        watcher.start()

    if settings.open_browser:
        webbrowser.open(server.url)

    try:
        if stop is None:
            await asyncio.Future()
        else:
            await stop.wait()
    finally:
        for watcher in watchers:
            await watcher.stop()
        await server.stop()


async def run_task(task: str, settings: BuildSettings, mode: BuildMode) -> int:
    tasks = BuildTasks(settings, mode)

    if task != 'serve':
        pipeline = tasks.full_build() if task == 'default' else tasks.pipeline(task)
        if not await run_logged(tasks, pipeline):
            return EXIT_PIPELINE_FAILED

    if task in ('default', 'serve'):
        await serve_and_watch(tasks, settings)

    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(
            args.project,
            host=args.host,
            port=args.port,
            open_browser=args.open,
        )
        mode = resolve_mode(args.production)
    except ConfigError as e:
        log.error(red(str(e)))
        return EXIT_CONFIG_ERROR

    # load_settings has loaded the project .env; logging reads it now.
    reload_env_config()
    if args.log_level:
        configure_logging(level=args.log_level)

    try:
        return asyncio.run(run_task(args.task, settings, mode))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        return EXIT_OK
    finally:
        close_all_sinks()


if __name__ == "__main__":
    sys.exit(main())

"""
gamebuild - build pipeline and dev server for browser games.

Cleans the build directory, copies static assets and the game-engine
library, bundles the JavaScript sources and, during development, serves
the result and rebuilds it when files change.
"""

from gamebuild.config import BuildMode, BuildSettings, load_settings
from gamebuild.pipeline import Pipeline, PipelineRun, Step, StepPolicy, run_pipeline, series
from gamebuild.tasks import BuildTasks

__version__ = '0.1.0'

__all__ = [
    'BuildMode',
    'BuildSettings',
    'BuildTasks',
    'Pipeline',
    'PipelineRun',
    'Step',
    'StepPolicy',
    'load_settings',
    'run_pipeline',
    'series',
]

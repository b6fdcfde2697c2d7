"""
Pipeline Orchestrator

A pipeline is an ordered tuple of steps. Each step is a zero-argument
callable returning an awaitable; run_pipeline awaits it before starting
the next one, so steps never overlap.

Failure handling is a per-step policy:

    FATAL             the error is raised as StepError, later steps are skipped
    LOG_AND_CONTINUE  the error is logged in red and the run carries on

Usage:
    from gamebuild.pipeline import Step, StepPolicy, series, run_pipeline

    static = series('static', Step('clean', clean), Step('copy', copy))
    build = series('build', static,
                   Step('bundle', bundle, StepPolicy.LOG_AND_CONTINUE))
    run = await run_pipeline(build)
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from gamebuild.errors import StepError
from gamebuild.logging import emit_record, get_logger, red

log = get_logger('pipeline')

PIPELINE_MODULE = 'pipeline'


class StepPolicy(Enum):
    """What a step failure does to the rest of the run."""
    FATAL = 'fatal'
    LOG_AND_CONTINUE = 'log_and_continue'


class StepStatus(str, Enum):
    OK = 'ok'
    SOFT_FAILED = 'soft_failed'
    FAILED = 'failed'


@dataclass(frozen=True)
class Step:
    """
    One unit of work in a pipeline.

    Attributes:
        name: Step name used in logs and run records
        action: Zero-argument callable returning an awaitable that
            completes when the step is done
        policy: Failure policy
    """
    name: str
    action: Callable[[], Awaitable[object]]
    policy: StepPolicy = StepPolicy.FATAL


@dataclass(frozen=True)
class Pipeline:
    """Named, ordered, immutable sequence of steps."""
    name: str
    steps: Tuple[Step, ...]

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]

    def __len__(self) -> int:
        return len(self.steps)


def series(name: str, *parts: Union[Step, Pipeline]) -> Pipeline:
    """Compose steps and pipelines into one pipeline, in order."""
    steps: List[Step] = []
    for part in parts:
        if isinstance(part, Pipeline):
            steps.extend(part.steps)
        elif isinstance(part, Step):
            steps.append(part)
        else:
            raise TypeError(f"Expected Step or Pipeline, got {type(part).__name__}")
    return Pipeline(name=name, steps=tuple(steps))


class StepRecord(BaseModel):
    """Outcome and timing of one executed step."""
    name: str
    status: StepStatus
    started: float = Field(..., description="time.monotonic() at start")
    finished: float = Field(..., description="time.monotonic() at completion")
    error: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        return (self.finished - self.started) * 1000


class PipelineRun(BaseModel):
    """Record of one pipeline run."""
    pipeline: str
    steps: List[StepRecord] = Field(default_factory=list)
    completed: bool = False

    @property
    def soft_failures(self) -> List[StepRecord]:
        return [s for s in self.steps if s.status is StepStatus.SOFT_FAILED]

    @property
    def ok(self) -> bool:
        return self.completed and not self.soft_failures


async def run_pipeline(pipeline: Pipeline) -> PipelineRun:
    """
    Run each step of pipeline to completion, in order.

    Returns:
        PipelineRun with one record per executed step

    Raises:
        StepError: If a FATAL step fails; the partial run is on .run
    """
    run = PipelineRun(pipeline=pipeline.name)
    log.debug("Starting '%s': %s", pipeline.name, ' -> '.join(pipeline.step_names))

    try:
        for step in pipeline.steps:
            started = time.monotonic()
            log.debug("Starting '%s'...", step.name)
            try:
                await step.action()
            except Exception as e:
                finished = time.monotonic()
                if step.policy is StepPolicy.LOG_AND_CONTINUE:
                    log.error(red(f"[Build Error] {e}"))
                    run.steps.append(StepRecord(
                        name=step.name, status=StepStatus.SOFT_FAILED,
                        started=started, finished=finished, error=str(e),
                    ))
                    continue

                run.steps.append(StepRecord(
                    name=step.name, status=StepStatus.FAILED,
                    started=started, finished=finished, error=str(e),
                ))
                raise StepError(step.name, e, run=run) from e

            finished = time.monotonic()
            run.steps.append(StepRecord(
                name=step.name, status=StepStatus.OK,
                started=started, finished=finished,
            ))
            log.debug("Finished '%s' after %.0f ms", step.name, (finished - started) * 1000)

        run.completed = True
    finally:
        emit_record(PIPELINE_MODULE, {'type': 'run', **run.model_dump(mode='json')})

    return run

"""Tests for the named build pipelines."""

import asyncio

import pytest

from gamebuild.config import BuildMode
from gamebuild.errors import StepError
from gamebuild.pipeline import StepPolicy, StepStatus
from gamebuild.tasks import BuildTasks


class FakeReloader:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1


@pytest.fixture
def reloader():
    return FakeReloader()


@pytest.fixture
def tasks(settings, transform, reloader):
    return BuildTasks(settings, BuildMode.DEVELOPMENT, transform=transform, reloader=reloader)


def _names(store):
    return sorted(store.relative(p) for p in store.files())


class TestPipelineShapes:
    """Step order of each named pipeline."""

    def test_static_assembly(self, tasks):
        assert tasks.static_assembly().step_names == ['clean', 'copy-static', 'copy-vendor']

    def test_full_build(self, tasks):
        pipeline = tasks.full_build()
        assert pipeline.step_names == ['clean', 'copy-static', 'copy-vendor', 'bundle']
        assert pipeline.steps[-1].policy is StepPolicy.LOG_AND_CONTINUE
        assert all(s.policy is StepPolicy.FATAL for s in pipeline.steps[:-1])

    def test_watch_on_source(self, tasks):
        assert tasks.watch_on_source().step_names == [
            'clean', 'copy-static', 'copy-vendor', 'bundle', 'reload',
        ]

    def test_watch_on_static(self, tasks):
        assert tasks.watch_on_static().step_names == [
            'clean', 'copy-static', 'copy-vendor', 'reload',
        ]

    def test_lookup_by_name(self, tasks):
        assert tasks.pipeline('build').name == 'full_build'
        assert tasks.pipeline('clean').step_names == ['clean']
        with pytest.raises(KeyError):
            tasks.pipeline('deploy')


class TestFullBuild:

    def test_produces_complete_build(self, tasks):
        run = asyncio.run(tasks.run(tasks.full_build()))

        assert run.ok
        assert _names(tasks.store) == [
            'assets/images/logo.png',
            'assets/level1.json',
            'index.html',
            'scripts/game.js',
            'scripts/game.js.map',
            'scripts/phaser.js',
            'scripts/phaser.map',
            'scripts/phaser.min.js',
        ]

    def test_production_build(self, settings, transform):
        tasks = BuildTasks(settings, BuildMode.PRODUCTION, transform=transform)

        asyncio.run(tasks.run(tasks.full_build()))

        scripts = sorted(p.name for p in settings.scripts_path.iterdir())
        assert scripts == ['game.js', 'phaser.min.js']

    def test_order_and_no_overlap(self, tasks):
        run = asyncio.run(tasks.run(tasks.full_build()))

        assert [s.name for s in run.steps] == ['clean', 'copy-static', 'copy-vendor', 'bundle']
        for earlier, later in zip(run.steps, run.steps[1:]):
            assert earlier.finished <= later.started

    def test_removes_stale_output(self, tasks):
        stale = tasks.store.root / 'old-level.json'
        stale.parent.mkdir(parents=True, exist_ok=True)
        stale.write_text('{}')

        asyncio.run(tasks.run(tasks.full_build()))

        assert not stale.exists()

    def test_missing_vendor_is_fatal(self, tasks, settings, transform):
        (settings.vendor_path / 'phaser.js').unlink()

        with pytest.raises(StepError) as exc_info:
            asyncio.run(tasks.run(tasks.full_build()))

        assert exc_info.value.step == 'copy-vendor'
        assert transform.bundle_calls == []

    def test_no_reload_without_server(self, settings, transform):
        tasks = BuildTasks(settings, BuildMode.DEVELOPMENT, transform=transform)
        run = asyncio.run(tasks.run(tasks.watch_on_source()))
        assert run.steps[-1].status is StepStatus.OK


class TestWatchOnSource:
    """Bundle errors are soft: the watch loop survives them."""

    def test_bundle_error_does_not_raise(self, tasks, settings, reloader):
        (settings.source_path / 'scene.js').write_text('SYNTAX_ERROR')

        run = asyncio.run(tasks.run(tasks.watch_on_source()))

        assert run.completed
        assert [s.name for s in run.soft_failures] == ['bundle']
        assert reloader.calls == 1

    def test_recovers_once_source_is_fixed(self, tasks, settings):
        scene = settings.source_path / 'scene.js'
        original = scene.read_text()

        scene.write_text('SYNTAX_ERROR')
        asyncio.run(tasks.run(tasks.watch_on_source()))
        assert not settings.bundle_path.exists()

        scene.write_text(original)
        run = asyncio.run(tasks.run(tasks.watch_on_source()))

        assert run.ok
        assert 'makeScene' in settings.bundle_path.read_text()

    def test_reloads_after_rebuild(self, tasks, reloader):
        asyncio.run(tasks.run(tasks.watch_on_source()))
        assert reloader.calls == 1


class TestWatchOnStatic:
    """Static edits keep the existing build and copy over it."""

    def test_keeps_bundle(self, tasks, settings, transform, reloader):
        asyncio.run(tasks.run(tasks.full_build()))
        bundle = settings.bundle_path.read_text()

        (settings.static_path / 'index.html').write_text('<html><body>v2</body></html>')
        run = asyncio.run(tasks.run(tasks.watch_on_static()))

        assert run.ok
        assert settings.bundle_path.read_text() == bundle
        assert 'v2' in (settings.build_path / 'index.html').read_text()
        assert len(transform.bundle_calls) == 1
        assert reloader.calls == 1

    def test_clean_step_deletes_nothing(self, tasks, monkeypatch):
        asyncio.run(tasks.run(tasks.full_build()))
        calls = []
        original = tasks.store.clean

        def spy(keep_files=False):
            calls.append(keep_files)
            return original(keep_files)

        monkeypatch.setattr(tasks.store, 'clean', spy)
        asyncio.run(tasks.run(tasks.watch_on_static()))

        assert calls == [True]

    def test_next_full_build_cleans_again(self, tasks, settings):
        asyncio.run(tasks.run(tasks.full_build()))
        extra = settings.build_path / 'extra.txt'

        extra.write_text('left behind')
        asyncio.run(tasks.run(tasks.watch_on_static()))
        assert extra.exists()

        asyncio.run(tasks.run(tasks.full_build()))
        assert not extra.exists()

    def test_removed_static_file_stays_until_full_build(self, tasks, settings):
        asyncio.run(tasks.run(tasks.full_build()))
        (settings.static_path / 'assets' / 'level1.json').unlink()

        asyncio.run(tasks.run(tasks.watch_on_static()))
        assert (settings.build_path / 'assets' / 'level1.json').exists()

        asyncio.run(tasks.run(tasks.full_build()))
        assert not (settings.build_path / 'assets' / 'level1.json').exists()


class TestSerializedRuns:
    """Overlapping run() calls execute one after another."""

    def test_runs_do_not_interleave(self, settings, transform):
        events = []

        class SlowTransform(type(transform)):
            async def bundle(self, entry, **kwargs):
                events.append('bundle-start')
                await asyncio.sleep(0.05)
                events.append('bundle-end')
                return await super().bundle(entry, **kwargs)

        tasks = BuildTasks(settings, BuildMode.DEVELOPMENT, transform=SlowTransform())
        original_clean = tasks.store.clean

        def clean(keep_files=False):
            events.append('clean')
            return original_clean(keep_files)

        tasks.store.clean = clean

        async def both():
            await asyncio.gather(
                tasks.run(tasks.full_build()),
                tasks.run(tasks.full_build()),
            )

        asyncio.run(both())

        assert events == [
            'clean', 'bundle-start', 'bundle-end',
            'clean', 'bundle-start', 'bundle-end',
        ]

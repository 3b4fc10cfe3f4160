import pytest

from conftest import FakeModelCaller, solution_json, statement_json
from screen_solver.core.orchestrator import Orchestrator
from screen_solver.core.progress import ProgressReporter, RunFilter
from screen_solver.core.types import RunResult, Stage


def test_progress_never_moves_backwards():
    states = []
    reporter = ProgressReporter("run-1", states.append)

    reporter.update(Stage.EXTRACTING_VERIFYING, "Extracting problem", 45)
    reporter.update(Stage.EXTRACTING_VERIFYING, "Re-extracting problem", 30)

    assert [s.progress for s in states] == [45, 45]
    assert states[1].current_step == "Re-extracting problem"


def test_only_completion_reaches_100():
    states = []
    reporter = ProgressReporter("run-1", states.append)

    reporter.update(Stage.SELECTING, "Selecting", 150)
    reporter.complete("done")

    assert states[0].progress == 99
    assert states[-1].progress == 100
    assert states[-1].completed and states[-1].stage == Stage.DONE


def test_single_terminal_state():
    states = []
    reporter = ProgressReporter("run-1", states.append)

    reporter.update(Stage.CLASSIFYING, "Classifying", 10)
    reporter.fail("extraction failed")
    reporter.complete()
    reporter.fail("again")
    reporter.update(Stage.GENERATING, "late", 80)

    assert len(states) == 2
    last = states[-1]
    assert last.error == "extraction failed"
    assert not last.completed
    assert last.progress == 10
    assert reporter.closed


def test_observer_errors_do_not_escape(capsys):
    def observer(state):
        raise RuntimeError("ui gone")

    reporter = ProgressReporter("run-1", observer)
    reporter.update(Stage.CLASSIFYING, "Classifying", 10)
    reporter.complete()

    assert "ui gone" in capsys.readouterr().out


def test_no_observer_is_fine():
    reporter = ProgressReporter("run-1")
    reporter.update(Stage.CLASSIFYING, "Classifying", 10)
    reporter.complete()
    assert reporter.progress == 100


def test_run_filter_drops_other_runs():
    seen = []
    run_filter = RunFilter(seen.append)
    run_filter.begin("run-2")

    ProgressReporter("run-1", run_filter.on_progress).update(Stage.CLASSIFYING, "Classifying", 10)
    ProgressReporter("run-2", run_filter.on_progress).update(Stage.CLASSIFYING, "Classifying", 10)

    assert [s.run_id for s in seen] == ["run-2"]
    assert run_filter.accepts(RunResult(run_id="run-2", success=True))
    assert not run_filter.accepts(RunResult(run_id="run-1", success=True))

    run_filter.reset()
    assert run_filter.current is None
    assert not run_filter.accepts(RunResult(run_id="run-2", success=True))


@pytest.mark.asyncio
async def test_superseded_run_is_invisible(config, images):
    seen = []
    run_filter = RunFilter(seen.append)

    def caller():
        return FakeModelCaller(
            classify="coding", extract=statement_json(), verify="true", generate=solution_json()
        )

    old = Orchestrator(config, caller(), None, run_filter.on_progress)
    new = Orchestrator(config, caller(), None, run_filter.on_progress)
    run_filter.begin(new.run_id)

    old_result = await old.run(images)
    new_result = await new.run(images)

    assert seen and all(s.run_id == new.run_id for s in seen)
    assert not run_filter.accepts(old_result)
    assert run_filter.accepts(new_result)

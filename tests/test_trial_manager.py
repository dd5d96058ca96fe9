"""Tests for session orchestration."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from trial.data_storage import SessionDataStorage
from trial.frame_clock import HostClockError
from trial.trial_manager import SessionState, TrialManager, parse_args
from trial.trial_protocols import PERIODIC, TRIAL_BASED, SessionConfig


def short_config(**overrides):
    settings = {
        'num_trials': 2,
        'rest_duration': 200,
        'preparation_duration': 100,
        'execution_duration': 400,
        'return_cue_duration': 100,
        'log_frame_rate': 10,
    }
    settings.update(overrides)
    return SessionConfig.from_settings(TRIAL_BASED, settings)


def make_manager(**kwargs):
    kwargs.setdefault('sequence', ['open', 'closedGrasp'])
    return TrialManager(short_config(), verbose=False, **kwargs)


def feed(manager, start, stop, step):
    results = []
    t = start
    while t <= stop:
        results.append(manager.on_frame(t))
        t += step
    return results


def test_lifecycle():
    """A session runs from idle to completed and resets to idle."""
    manager = make_manager()
    assert manager.state == SessionState.IDLE
    assert manager.on_frame(0.0) is None

    assert manager.start()
    assert manager.state == SessionState.RUNNING
    assert manager.sequence == ['open', 'closedGrasp']

    feed(manager, 0, 2000, 50)
    assert manager.state == SessionState.COMPLETED
    assert manager.progress == 1.0
    assert not manager.start()

    manager.reset()
    assert manager.state == SessionState.IDLE
    assert manager.sequence is None
    assert len(manager.logger) == 0


def test_generates_sequence_once_per_session():
    """The sequence is drawn once per session, not on resume."""
    cfg = short_config(num_trials=5, seed=3)
    manager = TrialManager(cfg, verbose=False)
    manager.start()
    first = list(manager.sequence)
    assert len(first) == 5
    manager.pause()
    manager.start()
    manager.on_frame(0.0)
    assert manager.sequence == first


def test_pause_time_does_not_count():
    """Time spent paused does not advance the phase."""
    manager = make_manager()
    manager.start()
    manager.on_frame(0.0)
    manager.on_frame(100.0)
    assert manager.pause()
    assert not manager.pause()  # idempotent
    assert manager.state == SessionState.PAUSED

    assert manager.on_frame(3000.0) is None
    assert manager.machine.time_in_phase == 100.0

    assert manager.resume(10000.0)
    manager.on_frame(10050.0)
    assert manager.machine.time_in_phase == 150.0
    assert manager.machine.phase == 'rest'


def test_start_while_paused_resumes():
    """start() while paused resumes from the host clock."""
    ticks = iter([5000.0])
    manager = make_manager(clock_fn=lambda: next(ticks))
    manager.start()
    manager.on_frame(0.0)
    manager.on_frame(50.0)
    manager.pause()
    assert manager.start()
    assert manager.state == SessionState.RUNNING
    manager.on_frame(5020.0)
    assert manager.machine.time_in_phase == 70.0


def test_logging_rate():
    """Samples are logged at the configured rate."""
    manager = make_manager()
    manager.start()
    feed(manager, 0, 190, 10)  # 190 ms of rest at 100 Hz frames
    assert len(manager.records) == 1
    rec = manager.records[0]
    assert rec.phase == 'rest'
    assert rec.session_time_ms == 100.0
    assert rec.timestamp == 100.0


def test_no_logging_while_paused_or_idle():
    """Nothing is logged while idle or paused."""
    manager = make_manager()
    manager.on_frame(100.0)
    manager.start()
    manager.on_frame(0.0)
    manager.pause()
    feed(manager, 10, 500, 10)
    assert len(manager.records) == 0


def test_observers_and_listeners():
    """Observers, beat listeners and phase listeners are notified."""
    cfg = SessionConfig.from_settings(PERIODIC, {
        'num_trials': 1, 'prep_duration': 100, 'active_duration': 2000, 'frequency': 1.0,
    })
    manager = TrialManager(cfg, sequence=['open'], verbose=False)
    snapshots, beats, changes = [], [], []
    manager.add_observer(snapshots.append)
    manager.add_beat_listener(lambda n, moving: beats.append((n, moving)))
    manager.add_phase_listener(lambda old, new, snap: changes.append((old, new)))

    manager.start()
    feed(manager, 0, 2100, 50)

    assert beats == [(1, True), (2, False)]
    assert changes == [('prep', 'active'), ('active', 'complete')]
    assert len(snapshots) == 43
    assert snapshots[-1].completed
    assert manager.state == SessionState.COMPLETED


def test_beat_on_last_active_tick_reports_that_beat():
    """A beat landing on the tick that ends `active` is reported before the next trial resets it."""
    cfg = SessionConfig.from_settings(PERIODIC, {
        'num_trials': 2, 'prep_duration': 2000, 'active_duration': 3000, 'frequency': 1.0,
    })
    manager = TrialManager(cfg, sequence=['open', 'pinkyHook'], verbose=False)
    beats = []
    manager.add_beat_listener(lambda n, moving: beats.append((n, moving)))

    manager.start()
    feed(manager, 0, 10000, 100)

    assert beats == [(1, True), (2, False), (3, True)] * 2
    assert manager.state == SessionState.COMPLETED


def test_failing_observer_does_not_stop_session(capsys):
    """A raising observer is reported and the session continues."""
    manager = make_manager()

    def broken(snapshot):
        raise ValueError("render failed")

    manager.add_observer(broken)
    manager.start()
    feed(manager, 0, 250, 50)
    assert manager.state == SessionState.RUNNING
    assert manager.machine.phase == 'preparation'
    assert 'render failed' in capsys.readouterr().out


def test_host_clock_error_hard_stop():
    """A bad timestamp stops the session and keeps the samples."""
    manager = make_manager()
    manager.start()
    feed(manager, 0, 300, 10)
    logged = len(manager.records)
    assert logged > 0

    with pytest.raises(HostClockError):
        manager.on_frame(float('nan'))
    assert manager.state == SessionState.STOPPED
    assert isinstance(manager.error, HostClockError)
    assert len(manager.records) == logged
    assert manager.on_frame(400.0) is None


def test_failing_clock_function():
    """A raising clock function stops the session."""
    def dead_clock():
        raise OSError("no clock")

    manager = make_manager(clock_fn=dead_clock)
    manager.start()
    with pytest.raises(HostClockError):
        manager.on_frame()
    assert manager.state == SessionState.STOPPED


def test_stop_keeps_records():
    """stop() keeps the logged samples and blocks restart."""
    manager = make_manager()
    manager.start()
    feed(manager, 0, 250, 10)
    n = len(manager.records)
    manager.stop()
    assert manager.state == SessionState.STOPPED
    assert len(manager.records) == n
    assert not manager.start()


def test_progress():
    """Progress is elapsed time over the nominal session duration."""
    manager = make_manager()
    assert manager.progress == 0.0
    manager.start()
    assert manager.session_duration_ms == 1600.0
    feed(manager, 0, 400, 100)  # rest (200) + preparation (100) + 100 into execution
    assert manager.progress == pytest.approx(400 / 1600)


def test_run_headless_fast():
    """The headless loop runs a session to completion."""
    ticks = iter(range(0, 10**6, 20))
    manager = make_manager(clock_fn=lambda: float(next(ticks)))
    frames = manager.run_headless(frame_rate=0, time_scale=1.0)
    assert manager.state == SessionState.COMPLETED
    assert frames > 0
    assert len(manager.records) > 0


def test_run_headless_max_frames():
    """The headless loop stops after max_frames."""
    ticks = iter(range(0, 10**6, 1))
    manager = make_manager(clock_fn=lambda: float(next(ticks)))
    assert manager.run_headless(frame_rate=0, max_frames=5) == 5
    assert manager.state == SessionState.RUNNING


def test_export(tmp_path):
    """export() writes the sequence, samples, metadata and archive."""
    manager = make_manager()
    manager.start()
    feed(manager, 0, 2000, 10)
    storage = SessionDataStorage(tmp_path, verbose=False)
    paths = manager.export(storage, participant_info={'id': 'P1'}, session_info={'id': 'S1'})

    assert set(paths) == {'sequence', 'samples', 'metadata', 'archive'}
    assert SessionDataStorage.load_sequence(paths['sequence']) == ['open', 'closedGrasp']
    rows = SessionDataStorage.load_sample_log(paths['samples'])
    assert len(rows) == len(manager.records)


def test_parse_args():
    """Command-line flags are parsed."""
    args = parse_args(['--paradigm', 'periodic', '--trials', '3', '--seed', '1', '--no-save'])
    assert args.paradigm == 'periodic'
    assert args.trials == 3
    assert args.no_save and not args.gui

"""Tests for the phase state machine."""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from handpose import get_pose, pose_to_vector
from trial.phase_machine import COMPLETE_PHASE, PhaseStateMachine, clamp_progress
from trial.trial_protocols import (
    CLASSIFICATION,
    CONTINUOUS,
    PERIODIC,
    TRIAL_BASED,
    SessionConfig,
    calculate_session_duration,
    generate_sequence,
)


def vec(pose):
    return pose_to_vector(pose)


def run(machine, delta, max_ticks=100000):
    results = []
    for _ in range(max_ticks):
        result = machine.tick(delta)
        if result.ignored:
            break
        results.append(result)
    return results


def test_trial_based_example_sequence():
    """A two-trial session walks the phases in order and completes once."""
    cfg = SessionConfig.from_settings(TRIAL_BASED, {'num_trials': 2})
    machine = PhaseStateMachine(cfg, ['open', 'closedGrasp'])
    results = run(machine, 100)

    phases = [r.phase for r in results]
    one_trial = ['rest'] * 20 + ['preparation'] * 10 + ['execution'] * 40 + ['return_cue'] * 5
    assert phases == one_trial * 2

    assert sum(r.trial_advanced for r in results) == 1
    assert sum(r.session_completed for r in results) == 1
    assert results[-1].session_completed
    assert results[-1].new_phase == COMPLETE_PHASE
    assert machine.completed and machine.phase == COMPLETE_PHASE
    assert machine.trial_index == 1


@pytest.mark.parametrize("paradigm, num_trials", [
    (CLASSIFICATION, 3),
    (CONTINUOUS, 4),
    (TRIAL_BASED, 3),
    (PERIODIC, 2),
])
def test_full_session_duration_completes_once(paradigm, num_trials):
    """Deltas summing to the nominal session duration complete the session exactly once."""
    cfg = SessionConfig.from_settings(paradigm, {'num_trials': num_trials, 'seed': 7})
    sequence = generate_sequence(cfg)
    total = calculate_session_duration(cfg, len(sequence))
    machine = PhaseStateMachine(cfg, sequence)

    results = run(machine, 100)

    assert len(results) * 100 == total
    assert sum(r.session_completed for r in results) == 1
    assert results[-1].session_completed
    assert sum(r.trial_advanced for r in results) == num_trials - 1
    assert machine.trial_index == num_trials - 1


def test_completion_is_idempotent():
    """Ticks after completion are ignored."""
    cfg = SessionConfig.from_settings(TRIAL_BASED, {'num_trials': 1})
    machine = PhaseStateMachine(cfg, ['open'])
    machine.tick(1e9)  # one transition per tick
    run(machine, 10000)
    assert machine.completed
    for _ in range(3):
        result = machine.tick(100)
        assert result.ignored
        assert not result.session_completed
    assert machine.trial_index == 0


def test_exactly_one_transition_per_phase_duration():
    """The phase changes only once its duration has elapsed."""
    cfg = SessionConfig.from_settings(CLASSIFICATION, {'num_trials': 3})
    machine = PhaseStateMachine(cfg, ['rest', 'thumb', 'index'])
    changes = [machine.tick(d).phase_changed for d in (1000, 1500, 2499.5, 0.5)]
    assert changes == [False, False, False, True]
    assert machine.phase == 'cue'
    assert machine.time_in_phase == 0.0


def test_overshoot_discarded():
    """Time past the end of a phase is dropped."""
    cfg = SessionConfig.from_settings(TRIAL_BASED, {'num_trials': 2})
    machine = PhaseStateMachine(cfg, ['open', 'closedGrasp'])
    result = machine.tick(5000)  # far beyond rest
    assert result.phase_changed and result.new_phase == 'preparation'
    assert machine.time_in_phase == 0.0


def test_trial_based_poses():
    """Trial-based phases prepare, hold and release the target pose."""
    cfg = SessionConfig.from_settings(TRIAL_BASED, {'num_trials': 1, 'interpolation': 'linear'})
    machine = PhaseStateMachine(cfg, ['closedGrasp'])
    neutral, target = get_pose('neutral'), get_pose('closedGrasp')

    assert np.allclose(vec(machine.current_pose), vec(neutral))
    machine.tick(2000)  # -> preparation
    machine.tick(500)
    snap = machine.snapshot()
    assert snap.phase == 'preparation'
    assert snap.phase_progress == pytest.approx(0.5)
    assert np.allclose(vec(snap.current_pose), (vec(neutral) + vec(target)) / 2)
    assert snap.target_pose == target
    assert snap.instruction == 'Get ready: closedGrasp'

    machine.tick(500)  # -> execution
    assert machine.phase == 'execution'
    assert np.allclose(vec(machine.current_pose), vec(target))

    machine.tick(4000)  # -> return_cue
    machine.tick(250)
    assert np.allclose(vec(machine.current_pose), (vec(neutral) + vec(target)) / 2)
    assert machine.goal_pose == neutral


def test_classification_holds_neutral():
    """Classification keeps the hand at neutral throughout."""
    cfg = SessionConfig.from_settings(CLASSIFICATION, {'num_trials': 1})
    machine = PhaseStateMachine(cfg, ['thumb'])
    for delta in (5000, 500, 500, 1500):
        machine.tick(delta)
        assert machine.current_pose == get_pose('neutral')
    assert machine.stimulus_name == 'thumb'


def test_continuous_rest_and_transition():
    """Continuous mode glides between targets and snaps at rest."""
    cfg = SessionConfig.from_settings(CONTINUOUS, {
        'num_trials': 3, 'rest_duration': 1000, 'transition_duration': 1000,
        'interpolation': 'linear',
    })
    machine = PhaseStateMachine(cfg, ['neutral', 'open', 'closedGrasp'])
    assert machine.phase == 'rest'
    assert machine.current_pose == get_pose('neutral')

    result = machine.tick(1000)  # first rest done -> trial 1 transition
    assert result.trial_advanced and machine.phase == 'transition'
    machine.tick(500)
    mid = (vec(get_pose('neutral')) + vec(get_pose('open'))) / 2
    assert np.allclose(vec(machine.current_pose), mid)

    machine.tick(500)  # -> rest, snapped to target
    assert machine.phase == 'rest'
    assert machine.current_pose == get_pose('open')
    machine.tick(600)
    assert machine.current_pose == get_pose('open')

    machine.tick(400)  # -> trial 2 transition from open
    machine.tick(500)
    mid = (vec(get_pose('open')) + vec(get_pose('closedGrasp'))) / 2
    assert np.allclose(vec(machine.current_pose), mid)


def test_periodic_three_beats():
    """Three beats fire in a 3 s active phase at 1 Hz."""
    cfg = SessionConfig.from_settings(PERIODIC, {
        'num_trials': 1, 'frequency': 1.0, 'active_duration': 3000, 'prep_duration': 2000,
    })
    machine = PhaseStateMachine(cfg, ['open'])
    results = run(machine, 100)

    beats = [r for r in results if r.beat]
    assert len(beats) == 3
    assert [r.beat_count for r in beats] == [1, 2, 3]
    assert all(r.phase == 'active' for r in beats)


def test_periodic_alternation_and_goal():
    """Beats alternate the goal between target and neutral."""
    cfg = SessionConfig.from_settings(PERIODIC, {
        'num_trials': 2, 'frequency': 1.0, 'active_duration': 3000,
        'prep_duration': 1000, 'transition_duration': 300,
    })
    machine = PhaseStateMachine(cfg, ['open', 'pinkyHook'])
    neutral, target = get_pose('neutral'), get_pose('open')

    machine.tick(1000)  # -> active
    assert machine.phase == 'active' and not machine.moving_to_target

    flags = []
    for _ in range(10):
        machine.tick(100)
    flags.append(machine.moving_to_target)
    assert machine.goal_pose == target
    # mid-transition: still moving away from neutral
    assert not np.allclose(vec(machine.current_pose), vec(target))
    for _ in range(3):
        machine.tick(100)
    # capped at transition_duration, then held
    assert np.allclose(vec(machine.current_pose), vec(target))

    for _ in range(7):
        machine.tick(100)
    flags.append(machine.moving_to_target)
    assert machine.goal_pose == neutral
    assert flags == [True, False]

    result = machine.tick(1000)  # third beat and phase end -> next trial prep
    assert result.beat and result.trial_advanced
    assert result.beat_count == 3 and result.beat_moving_to_target
    assert machine.phase == 'prep'
    assert machine.beat_count == 0
    assert machine.current_pose == neutral


def test_periodic_beat_uses_phase_time():
    """Beats are timed from the start of the active phase."""
    cfg = SessionConfig.from_settings(PERIODIC, {'num_trials': 1, 'frequency': 2.0})
    machine = PhaseStateMachine(cfg, ['open'])
    machine.tick(2000)
    machine.tick(499)
    assert machine.beat_count == 0
    machine.tick(1)
    assert machine.beat_count == 1
    assert machine.snapshot().log_metadata() == {'beat_number': 1, 'moving_to_target': True}


def test_empty_sequence_is_complete():
    """An empty sequence starts completed."""
    cfg = SessionConfig.from_settings(TRIAL_BASED)
    machine = PhaseStateMachine(cfg, [])
    assert machine.completed
    assert machine.tick(100).ignored


def test_clamp_progress():
    """Progress is clamped to [0, 1] and is 1 for zero duration."""
    assert clamp_progress(50, 100) == 0.5
    assert clamp_progress(150, 100) == 1.0
    assert clamp_progress(-1, 100) == 0.0
    assert clamp_progress(10, 0) == 1.0


def test_snapshot_is_hashable():
    """Snapshots are frozen values that can be hashed and compared."""
    cfg = SessionConfig.from_settings(TRIAL_BASED, {'num_trials': 1})
    machine = PhaseStateMachine(cfg, ['open'])
    machine.tick(2500)
    first, second = machine.snapshot(), machine.snapshot()
    assert first == second
    assert hash(first) == hash(second)
    assert len({first, second}) == 1

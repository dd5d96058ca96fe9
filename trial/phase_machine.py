"""
Phase State Machine
===================
Advances a session through its paradigm's phase ordering from delta times
and computes the presented hand pose for every tick.

One tick runs, in order:
1. accumulate delta into time-in-phase (and fire periodic beats)
2. evaluate the phase transition (at most one per tick, overshoot dropped)
3. recompute the current and goal pose for the resulting phase

The paradigm-specific parts are tables: per-phase enter hooks, per-phase
tick hooks and per-phase pose rules. The loop itself is shared.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from handpose import NEUTRAL_POSE_NAME, Pose, get_curve, get_pose, interpolate_poses

from .trial_protocols import (
    CLASSIFICATION,
    CONTINUOUS,
    PERIODIC,
    TRIAL_BASED,
    PhaseSpec,
    SessionConfig,
    entry_phase_index,
    phase_plan,
)


COMPLETE_PHASE = 'complete'


# =============================================================================
# DATA MODELS
# =============================================================================

@dataclass(frozen=True)
class TickResult:
    """What happened during one tick."""
    phase: str  # phase the elapsed time was attributed to
    delta_ms: float
    phase_changed: bool = False
    new_phase: Optional[str] = None
    trial_advanced: bool = False
    beat: bool = False
    beat_count: int = 0  # beat state as of the beat, before any phase change
    beat_moving_to_target: bool = False
    session_completed: bool = False  # True only on the completing tick
    ignored: bool = False  # tick arrived after completion


@dataclass(frozen=True)
class EngineSnapshot:
    """Read-only view of the machine after a tick, handed to observers."""
    paradigm: str
    phase: str
    phase_index: int
    time_in_phase: float
    phase_duration: float
    phase_progress: float
    trial_index: int
    num_trials: int
    stimulus_name: str
    instruction: str
    current_pose: Pose
    target_pose: Pose
    beat_count: int = 0
    moving_to_target: bool = False
    completed: bool = False

    def log_metadata(self) -> Dict[str, object]:
        """Paradigm-specific sample-log fields."""
        if self.paradigm == PERIODIC:
            return {'beat_number': self.beat_count, 'moving_to_target': self.moving_to_target}
        return {}


def clamp_progress(elapsed: float, duration: float) -> float:
    if duration <= 0:
        return 1.0
    return min(max(elapsed / duration, 0.0), 1.0)


# =============================================================================
# PHASE STATE MACHINE
# =============================================================================

class PhaseStateMachine:
    """
    Single authoritative trial state for one session.

    Args:
        config: Session configuration
        sequence: Stimulus names, one per trial
    """

    def __init__(self, config: SessionConfig, sequence: Sequence[str]):
        self.config = config
        self.phases: List[PhaseSpec] = phase_plan(config)
        self.sequence: Tuple[str, ...] = tuple(sequence)
        self.curve = get_curve(config.interpolation)
        self.neutral = get_pose(NEUTRAL_POSE_NAME)

        self._enter_hooks = ENTER_HOOKS.get(config.paradigm, {})
        self._tick_hooks = TICK_HOOKS.get(config.paradigm, {})
        self._pose_rules = POSE_RULES[config.paradigm]

        self.reset()

    def reset(self):
        """Back to the entry phase of the first trial."""
        self.trial_index = 0
        self.phase_index = entry_phase_index(self.config)
        self.time_in_phase = 0.0
        self.completed = not self.sequence

        first = self.sequence[0] if self.sequence else self.config.start_pose
        self.current_pose: Pose = get_pose(first) if self.config.paradigm == CONTINUOUS else self.neutral
        self.goal_pose: Pose = self.current_pose
        self.previous_pose: Pose = self.current_pose

        # Periodic alternation
        self.beat_count = 0
        self.moving_to_target = False
        self.last_beat_time = 0.0
        self.transition_start_time = 0.0
        self.transition_start_pose: Pose = self.current_pose

        self._enter_phase(initial=True)
        self._update_pose()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def phase_spec(self) -> PhaseSpec:
        return self.phases[self.phase_index]

    @property
    def phase(self) -> str:
        return COMPLETE_PHASE if self.completed else self.phase_spec.name

    @property
    def phase_duration(self) -> float:
        return float(self.phase_spec.duration_ms)

    @property
    def phase_progress(self) -> float:
        return clamp_progress(self.time_in_phase, self.phase_duration)

    @property
    def num_trials(self) -> int:
        return len(self.sequence)

    @property
    def stimulus_name(self) -> str:
        if not self.sequence:
            return self.config.start_pose
        return self.sequence[min(self.trial_index, len(self.sequence) - 1)]

    @property
    def target_pose(self) -> Pose:
        """Nominal target of the current trial."""
        return get_pose(self.stimulus_name)

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self, delta_ms: float) -> TickResult:
        """
        Advance by `delta_ms` milliseconds.

        After completion every call is a no-op returning `ignored=True`.
        """
        if self.completed:
            return TickResult(phase=COMPLETE_PHASE, delta_ms=0.0,
                              beat_count=self.beat_count, ignored=True)

        delta = max(float(delta_ms), 0.0)
        phase = self.phase_spec.name
        self.time_in_phase += delta

        beat = False
        tick_hook = self._tick_hooks.get(phase)
        if tick_hook is not None:
            beat = tick_hook(self)
        beat_count, beat_moving = self.beat_count, self.moving_to_target

        phase_changed = trial_advanced = completed_now = False
        if self.time_in_phase >= self.phase_duration:
            phase_changed, trial_advanced, completed_now = self._advance_phase()

        self._update_pose()

        return TickResult(
            phase=phase,
            delta_ms=delta,
            phase_changed=phase_changed,
            new_phase=self.phase if phase_changed or completed_now else None,
            trial_advanced=trial_advanced,
            beat=beat,
            beat_count=beat_count,
            beat_moving_to_target=beat_moving,
            session_completed=completed_now,
        )

    def _advance_phase(self) -> Tuple[bool, bool, bool]:
        """Move to the next phase or trial. Returns (changed, trial_advanced, completed)."""
        if self.phase_index + 1 < len(self.phases):
            self.phase_index += 1
            trial_advanced = False
        elif self.trial_index + 1 >= len(self.sequence):
            self.completed = True
            return False, False, True
        else:
            self.trial_index += 1
            self.phase_index = 0
            trial_advanced = True

        self.time_in_phase = 0.0
        self._enter_phase()
        return True, trial_advanced, False

    def _enter_phase(self, initial: bool = False):
        hook = self._enter_hooks.get(self.phase_spec.name)
        if hook is not None:
            hook(self, initial)

    def _update_pose(self):
        rule = self._pose_rules.get(self.phase_spec.name, _hold_neutral)
        self.current_pose, self.goal_pose = rule(self)

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def snapshot(self) -> EngineSnapshot:
        stimulus = self.stimulus_name
        return EngineSnapshot(
            paradigm=self.config.paradigm,
            phase=self.phase,
            phase_index=self.phase_index,
            time_in_phase=self.time_in_phase,
            phase_duration=self.phase_duration,
            phase_progress=self.phase_progress,
            trial_index=self.trial_index,
            num_trials=self.num_trials,
            stimulus_name=stimulus,
            instruction=self.phase_spec.instruction.format(stimulus=stimulus),
            current_pose=self.current_pose,
            target_pose=self.goal_pose,
            beat_count=self.beat_count,
            moving_to_target=self.moving_to_target,
            completed=self.completed,
        )


# =============================================================================
# POSE RULES
# =============================================================================
# Each rule returns (current pose, goal pose) for the machine's current phase.

PoseRule = Callable[[PhaseStateMachine], Tuple[Pose, Pose]]


def _hold_neutral(m: PhaseStateMachine) -> Tuple[Pose, Pose]:
    return m.neutral, m.neutral


def _hold_current(m: PhaseStateMachine) -> Tuple[Pose, Pose]:
    return m.current_pose, m.target_pose


def _hold_target(m: PhaseStateMachine) -> Tuple[Pose, Pose]:
    target = m.target_pose
    return target, target


def _transition_to_target(m: PhaseStateMachine) -> Tuple[Pose, Pose]:
    target = m.target_pose
    return interpolate_poses(m.previous_pose, target, m.phase_progress, m.curve), target


def _prepare_target(m: PhaseStateMachine) -> Tuple[Pose, Pose]:
    target = m.target_pose
    return interpolate_poses(m.neutral, target, m.phase_progress, m.curve), target


def _return_to_neutral(m: PhaseStateMachine) -> Tuple[Pose, Pose]:
    return interpolate_poses(m.target_pose, m.neutral, m.phase_progress, m.curve), m.neutral


def _alternate(m: PhaseStateMachine) -> Tuple[Pose, Pose]:
    goal = m.target_pose if m.moving_to_target else m.neutral
    progress = clamp_progress(m.time_in_phase - m.transition_start_time,
                              m.config.transition_duration)
    return interpolate_poses(m.transition_start_pose, goal, progress, m.curve), goal


# =============================================================================
# ENTER / TICK HOOKS
# =============================================================================

def _enter_transition(m: PhaseStateMachine, initial: bool):
    m.previous_pose = m.current_pose


def _enter_rest_continuous(m: PhaseStateMachine, initial: bool):
    if not initial:
        # snap to the exact target at the end of the transition
        m.current_pose = m.target_pose
    m.previous_pose = m.current_pose


def _enter_prep(m: PhaseStateMachine, initial: bool):
    m.current_pose = m.neutral
    m.beat_count = 0
    m.moving_to_target = False


def _enter_active(m: PhaseStateMachine, initial: bool):
    m.beat_count = 0
    m.moving_to_target = False
    m.last_beat_time = 0.0
    m.transition_start_time = 0.0
    m.transition_start_pose = m.current_pose


def _advance_beats(m: PhaseStateMachine) -> bool:
    """Fire a beat when a full beat interval has passed since the last one."""
    if m.time_in_phase - m.last_beat_time < m.config.beat_interval_ms:
        return False
    m.last_beat_time = m.time_in_phase
    m.moving_to_target = not m.moving_to_target
    m.transition_start_time = m.time_in_phase
    m.transition_start_pose = m.current_pose
    m.beat_count += 1
    return True


POSE_RULES: Dict[str, Dict[str, PoseRule]] = {
    CLASSIFICATION: {
        'rest': _hold_neutral,
        'cue': _hold_neutral,
        'imagery': _hold_neutral,
    },
    CONTINUOUS: {
        'rest': _hold_current,
        'transition': _transition_to_target,
    },
    TRIAL_BASED: {
        'rest': _hold_neutral,
        'preparation': _prepare_target,
        'execution': _hold_target,
        'return_cue': _return_to_neutral,
    },
    PERIODIC: {
        'prep': _hold_neutral,
        'active': _alternate,
    },
}

ENTER_HOOKS: Dict[str, Dict[str, Callable[[PhaseStateMachine, bool], None]]] = {
    CONTINUOUS: {
        'transition': _enter_transition,
        'rest': _enter_rest_continuous,
    },
    PERIODIC: {
        'prep': _enter_prep,
        'active': _enter_active,
    },
}

TICK_HOOKS: Dict[str, Dict[str, Callable[[PhaseStateMachine], bool]]] = {
    PERIODIC: {
        'active': _advance_beats,
    },
}

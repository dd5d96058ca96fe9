"""
Trial Protocols Module
=======================
Paradigm definitions: phase orderings, default durations and the
stimulus-sequence rule of each presentation paradigm.

Contains protocols for:
- Discrete finger classification cueing (rest -> cue -> imagery)
- Continuous pose tracking (rest <-> transition)
- Trial-based pose execution (rest -> preparation -> execution -> return cue)
- Periodic beat-synchronized alternation (prep -> active)
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from handpose import (
    NEUTRAL_POSE_NAME,
    CURVES,
    DEFAULT_CURVE,
    balanced_block_sequence,
    generate_pose_sequence,
    list_poses,
    uniform_sequence,
)


# =============================================================================
# PARADIGM NAMES
# =============================================================================

CLASSIFICATION = 'classification'
CONTINUOUS = 'continuous'
TRIAL_BASED = 'trial_based'
PERIODIC = 'periodic'

CLASSIFICATION_CLASSES = ('rest', 'thumb', 'index', 'pinky')

DEFAULT_LOG_FRAME_RATE = 30.0
DEFAULT_LARGE_JUMP_PROBABILITY = 0.15
DEFAULT_FREQUENCY = 0.8
DEFAULT_TRANSITION_DURATION = 300


# =============================================================================
# PROTOCOL DEFINITIONS
# =============================================================================

CLASSIFICATION_PROTOCOL = {
    'name': CLASSIFICATION,
    'display_name': 'Finger Classification',
    'description': 'Discrete cueing of rest/thumb/index/pinky motor imagery',
    'phases': [
        {'name': 'rest', 'duration_ms': 5000, 'instruction': 'Relax and fixate.'},
        {'name': 'cue', 'duration_ms': 1000, 'instruction': 'Cue: {stimulus}'},
        {'name': 'imagery', 'duration_ms': 3000, 'instruction': 'Imagine moving: {stimulus}'},
    ],
    'entry_phase': 'rest',
    'num_trials': 320,  # 80 per class
    'sequence': 'balanced_blocks',
    'stimuli': CLASSIFICATION_CLASSES,
    'log_columns': [],
}

CONTINUOUS_PROTOCOL = {
    'name': CONTINUOUS,
    'display_name': 'Continuous Motion',
    'description': 'Virtual hand dwells on a pose, then glides to the next target',
    # The first trial only holds the start pose, so every session enters at 'rest'.
    'phases': [
        {'name': 'transition', 'duration_ms': 1200, 'instruction': 'Follow the hand to {stimulus}.'},
        {'name': 'rest', 'duration_ms': 2000, 'instruction': 'Hold {stimulus}.'},
    ],
    'entry_phase': 'rest',
    'num_trials': 50,
    'sequence': 'nearest_neighbor',
    'stimuli': None,
    'log_columns': [],
}

TRIAL_BASED_PROTOCOL = {
    'name': TRIAL_BASED,
    'display_name': 'Trial-Based Execution',
    'description': 'Prepare, execute and release one target pose per trial',
    'phases': [
        {'name': 'rest', 'duration_ms': 2000, 'instruction': 'Relax your hand.'},
        {'name': 'preparation', 'duration_ms': 1000, 'instruction': 'Get ready: {stimulus}'},
        {'name': 'execution', 'duration_ms': 4000, 'instruction': 'Form and hold {stimulus}.'},
        {'name': 'return_cue', 'duration_ms': 500, 'instruction': 'Return to neutral.'},
    ],
    'entry_phase': 'rest',
    'num_trials': 40,
    'sequence': 'balanced_blocks',
    'stimuli': None,
    'log_columns': [],
}

PERIODIC_PROTOCOL = {
    'name': PERIODIC,
    'display_name': 'Periodic Motion',
    'description': 'Metronome-paced alternation between neutral and a target pose',
    'phases': [
        {'name': 'prep', 'duration_ms': 2000, 'instruction': 'Next pose: {stimulus}'},
        {'name': 'active', 'duration_ms': 10000, 'instruction': 'Alternate with the beat: {stimulus}'},
    ],
    'entry_phase': 'prep',
    'num_trials': 20,
    'sequence': 'uniform',
    'stimuli': None,
    'log_columns': ['beat_number', 'moving_to_target'],
}


# =============================================================================
# PROTOCOL REGISTRY
# =============================================================================

PROTOCOLS = {
    CLASSIFICATION: CLASSIFICATION_PROTOCOL,
    CONTINUOUS: CONTINUOUS_PROTOCOL,
    TRIAL_BASED: TRIAL_BASED_PROTOCOL,
    PERIODIC: PERIODIC_PROTOCOL,
}


def get_paradigm(name: str) -> Dict[str, Any]:
    """
    Get a paradigm protocol by name.

    Raises:
        ValueError: If paradigm not found
    """
    if name not in PROTOCOLS:
        raise ValueError(f"Paradigm '{name}' not found. Available: {list(PROTOCOLS.keys())}")

    return PROTOCOLS[name]


def list_paradigms() -> List[str]:
    """List all available paradigm names."""
    return list(PROTOCOLS.keys())


# =============================================================================
# CONFIGURATION COERCION
# =============================================================================
# Out-of-range or non-numeric settings fall back to the documented default
# instead of failing the session.

def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def coerce_duration(value: Any, default: int) -> int:
    """Positive integer milliseconds, else `default`."""
    number = _as_number(value)
    if number is None or number <= 0:
        return default
    return int(round(number)) or default


def coerce_count(value: Any, default: int) -> int:
    """Positive integer count, else `default`."""
    number = _as_number(value)
    if number is None or number < 1:
        return default
    return int(number)


def coerce_positive(value: Any, default: float) -> float:
    """Positive float (rates, frequencies), else `default`."""
    number = _as_number(value)
    if number is None or number <= 0:
        return default
    return number


def coerce_probability(value: Any, default: float) -> float:
    """Float in [0, 1], else `default`."""
    number = _as_number(value)
    if number is None or number < 0 or number > 1:
        return default
    return number


def coerce_curve(value: Any, default: str = DEFAULT_CURVE) -> str:
    return value if isinstance(value, str) and value in CURVES else default


# =============================================================================
# SESSION CONFIG
# =============================================================================

@dataclass(frozen=True)
class PhaseSpec:
    """One named, fixed-duration phase of a trial."""
    name: str
    duration_ms: int
    instruction: str = ''


@dataclass(frozen=True)
class SessionConfig:
    """
    Immutable per-session configuration.

    Build it with `SessionConfig.from_settings()` so that every value has
    been coerced; the constructor itself trusts its arguments.
    """
    paradigm: str
    phase_durations: Mapping[str, int] = field(default_factory=dict)
    num_trials: int = 1
    interpolation: str = DEFAULT_CURVE
    log_frame_rate: float = DEFAULT_LOG_FRAME_RATE
    enabled_poses: Optional[Tuple[str, ...]] = None
    frequency: float = DEFAULT_FREQUENCY
    transition_duration: int = DEFAULT_TRANSITION_DURATION
    large_jump_probability: float = DEFAULT_LARGE_JUMP_PROBABILITY
    start_pose: str = NEUTRAL_POSE_NAME
    seed: Optional[int] = None

    @classmethod
    def from_settings(cls, paradigm: str, settings: Optional[Mapping[str, Any]] = None) -> 'SessionConfig':
        """
        Build a config from a loose settings dict.

        Recognized keys: '<phase>_duration' for each phase of the paradigm
        (e.g. 'rest_duration'), 'num_trials', 'interpolation',
        'log_frame_rate', 'enabled_poses', 'frequency',
        'transition_duration', 'large_jump_probability', 'start_pose', 'seed'.

        Raises:
            ValueError: If the paradigm is unknown
        """
        protocol = get_paradigm(paradigm)
        settings = dict(settings or {})

        durations = {
            phase['name']: coerce_duration(settings.get(f"{phase['name']}_duration"), phase['duration_ms'])
            for phase in protocol['phases']
        }

        enabled = settings.get('enabled_poses')
        if enabled is not None:
            enabled = tuple(str(p) for p in enabled)

        seed = settings.get('seed')
        if seed is not None:
            seed_number = _as_number(seed)
            seed = int(seed_number) if seed_number is not None and seed_number >= 0 else None

        start_pose = settings.get('start_pose', NEUTRAL_POSE_NAME)
        if not isinstance(start_pose, str) or not start_pose:
            start_pose = NEUTRAL_POSE_NAME

        return cls(
            paradigm=paradigm,
            phase_durations=durations,
            num_trials=coerce_count(settings.get('num_trials'), protocol['num_trials']),
            interpolation=coerce_curve(settings.get('interpolation')),
            log_frame_rate=coerce_positive(settings.get('log_frame_rate'), DEFAULT_LOG_FRAME_RATE),
            enabled_poses=enabled,
            frequency=coerce_positive(settings.get('frequency'), DEFAULT_FREQUENCY),
            transition_duration=coerce_duration(settings.get('transition_duration'),
                                                DEFAULT_TRANSITION_DURATION),
            large_jump_probability=coerce_probability(settings.get('large_jump_probability'),
                                                      DEFAULT_LARGE_JUMP_PROBABILITY),
            start_pose=start_pose,
            seed=seed,
        )

    @property
    def beat_interval_ms(self) -> float:
        return 1000.0 / self.frequency

    @property
    def log_interval_ms(self) -> float:
        return 1000.0 / self.log_frame_rate

    def to_dict(self) -> Dict[str, Any]:
        return {
            'paradigm': self.paradigm,
            'phase_durations': dict(self.phase_durations),
            'num_trials': self.num_trials,
            'interpolation': self.interpolation,
            'log_frame_rate': self.log_frame_rate,
            'enabled_poses': list(self.enabled_poses) if self.enabled_poses is not None else None,
            'frequency': self.frequency,
            'transition_duration': self.transition_duration,
            'large_jump_probability': self.large_jump_probability,
            'start_pose': self.start_pose,
            'seed': self.seed,
        }


# =============================================================================
# PROTOCOL UTILITIES
# =============================================================================

def phase_plan(config: SessionConfig) -> List[PhaseSpec]:
    """Ordered phases of one trial, with the configured durations."""
    protocol = get_paradigm(config.paradigm)
    return [
        PhaseSpec(
            name=phase['name'],
            duration_ms=config.phase_durations.get(phase['name'], phase['duration_ms']),
            instruction=phase.get('instruction', ''),
        )
        for phase in protocol['phases']
    ]


def entry_phase_index(config: SessionConfig) -> int:
    """Index of the phase the first trial starts in."""
    protocol = get_paradigm(config.paradigm)
    names = [phase['name'] for phase in protocol['phases']]
    return names.index(protocol['entry_phase'])


def log_columns(paradigm: str) -> List[str]:
    """Paradigm-specific sample log columns (after target_pose_name)."""
    return list(get_paradigm(paradigm)['log_columns'])


def stimulus_pool(config: SessionConfig) -> List[str]:
    """
    Enabled stimuli for a session.

    Classification draws from its class labels, the pose paradigms from the
    pose library minus the start pose (periodic: minus neutral, its fixed
    baseline). An empty selection falls back to the full set.
    """
    protocol = get_paradigm(config.paradigm)
    baseline = NEUTRAL_POSE_NAME if config.paradigm == PERIODIC else config.start_pose
    universe = list(protocol['stimuli']) if protocol['stimuli'] else list_poses(exclude=[baseline])
    if not config.enabled_poses:
        return universe
    enabled = set(config.enabled_poses)
    pool = [name for name in universe if name in enabled]
    return pool or universe


def generate_sequence(config: SessionConfig,
                      rng: Optional[np.random.Generator] = None) -> List[str]:
    """
    Generate the stimulus order for a session.

    Args:
        config: Session configuration
        rng: Random generator (default: seeded from `config.seed`)

    Returns:
        List of stimulus names, one per trial
    """
    if rng is None:
        rng = np.random.default_rng(config.seed)

    protocol = get_paradigm(config.paradigm)
    pool = stimulus_pool(config)
    rule = protocol['sequence']

    if rule == 'nearest_neighbor':
        return generate_pose_sequence(
            config.num_trials,
            start_pose=config.start_pose,
            allowed_poses=pool,
            large_jump_probability=config.large_jump_probability,
            rng=rng,
        )
    if rule == 'uniform':
        return uniform_sequence(pool, config.num_trials, rng=rng, baseline=NEUTRAL_POSE_NAME)
    return balanced_block_sequence(pool, config.num_trials, rng=rng,
                                   fallback=protocol['stimuli'])


def calculate_session_duration(config: SessionConfig, sequence_length: Optional[int] = None) -> float:
    """
    Nominal session duration in milliseconds.

    Args:
        config: Session configuration
        sequence_length: Number of trials (default: config.num_trials)
    """
    n = config.num_trials if sequence_length is None else sequence_length
    if n <= 0:
        return 0.0
    phases = phase_plan(config)
    per_trial = sum(p.duration_ms for p in phases)
    skipped = sum(p.duration_ms for p in phases[:entry_phase_index(config)])
    return float(n * per_trial - skipped)


def print_protocol_summary(config: SessionConfig):
    """Print a summary of a configured paradigm."""
    protocol = get_paradigm(config.paradigm)
    total_ms = calculate_session_duration(config)

    print(f"\n{'='*70}")
    print(f"{protocol['display_name'].upper()} PROTOCOL SUMMARY")
    print(f"{'='*70}")
    print(f"\n{protocol['description']}")
    print(f"\nTrials: {config.num_trials}")
    print(f"Estimated duration: {total_ms/1000:.1f} seconds ({total_ms/60000:.1f} minutes)")

    print(f"\nPhases:")
    for i, phase in enumerate(phase_plan(config), 1):
        print(f"  {i}. {phase.name}: {phase.duration_ms} ms")

    if config.paradigm == PERIODIC:
        print(f"\nFrequency: {config.frequency} Hz (beat every {config.beat_interval_ms:.0f} ms)")
        print(f"Transition: {config.transition_duration} ms")
    print(f"Interpolation: {config.interpolation}")
    print(f"Log rate: {config.log_frame_rate} Hz")
    print(f"{'='*70}\n")


# =============================================================================
# DEMO
# =============================================================================

if __name__ == '__main__':
    print("Trial Protocols Module")
    print("="*70)

    print("\nAvailable Paradigms:")
    for name in list_paradigms():
        cfg = SessionConfig.from_settings(name)
        duration = calculate_session_duration(cfg)
        print(f"  - {name}: {cfg.num_trials} trials, ~{duration/60000:.1f} min")

    demo = SessionConfig.from_settings(TRIAL_BASED, {'num_trials': 4, 'seed': 1})
    print_protocol_summary(demo)
    print("Sequence:", generate_sequence(demo))

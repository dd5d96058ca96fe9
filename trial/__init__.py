"""
Hand Pose Session Module
========================

Presentation session engine for hand pose stimuli.

Main components:
- setup_trial: Configuration
- trial_protocols: Paradigm definitions and session config
- phase_machine: Phase state machine and pose computation
- frame_clock: Host timestamps to delta time
- sample_logger: Fixed-rate sample log
- trial_manager: Core orchestration
- data_storage: CSV / JSON / HDF5 export
- trial_gui: Optional PyQt6 host window

Quick Start:
    1. Edit configuration in setup_trial.py
    2. Run: python -m trial.trial_manager
    3. Or with a window: python -m trial.trial_manager --gui
"""

__version__ = '1.0.0'

# Lazy imports to avoid requiring PyQt6 for headless usage
__all__ = [
    'TrialManager',
    'SessionState',
    'SessionDataStorage',
    'SessionWindow',
    'PhaseStateMachine',
    'SampleLogger',
    'FrameClock',
    'HostClockError',
    'SessionConfig',
    'get_paradigm',
    'list_paradigms',
    'generate_sequence',
    'PROTOCOLS',
]


def __getattr__(name):
    """Lazy import of module components."""
    if name in ['TrialManager', 'SessionState']:
        from . import trial_manager
        return getattr(trial_manager, name)
    elif name == 'SessionDataStorage':
        from .data_storage import SessionDataStorage
        return SessionDataStorage
    elif name == 'SessionWindow':
        from .trial_gui import SessionWindow
        return SessionWindow
    elif name == 'PhaseStateMachine':
        from .phase_machine import PhaseStateMachine
        return PhaseStateMachine
    elif name == 'SampleLogger':
        from .sample_logger import SampleLogger
        return SampleLogger
    elif name in ['FrameClock', 'HostClockError']:
        from . import frame_clock
        return getattr(frame_clock, name)
    elif name in ['SessionConfig', 'get_paradigm', 'list_paradigms',
                  'generate_sequence', 'PROTOCOLS']:
        from . import trial_protocols
        return getattr(trial_protocols, name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

"""
Hand Pose Session - Configuration
=================================
Central configuration file for the hand pose presentation system.

Edit this file to configure:
- Participant and session information
- Presentation paradigm and its timing
- Enabled poses and sequence seed
- Storage options
- Host loop and GUI settings

Usage:
    1. Edit configuration parameters below
    2. Run: python -m trial.trial_manager
"""

import io
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .trial_protocols import (
    PROTOCOLS,
    SessionConfig,
    calculate_session_duration,
    get_paradigm,
)

# Fix Windows console encoding issues (status marks are non-ASCII)
if sys.platform == 'win32':
    try:
        if hasattr(sys.stdout, 'buffer'):
            sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
        if hasattr(sys.stderr, 'buffer'):
            sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')
    except (AttributeError, ValueError):
        pass

# =============================================================================
# PARTICIPANT AND SESSION INFORMATION
# =============================================================================

# Participant identification
PARTICIPANT_ID = "P001"
PARTICIPANT_INFO = {
    'age': 25,
    'handedness': 'right',  # 'right', 'left', 'ambidextrous'
    'notes': '',
}

# Session identification
SESSION_ID = "S001"
SESSION_INFO = {
    'experimenter': 'Researcher Name',
    'notes': '',  # Session-specific notes
}

# =============================================================================
# PARADIGM CONFIGURATION
# =============================================================================

# 'classification', 'continuous', 'trial_based', 'periodic'
PARADIGM_NAME = 'trial_based'

# Per-paradigm overrides. Missing or invalid values fall back to the
# paradigm defaults in trial_protocols.py.
PARADIGM_SETTINGS: Dict[str, Dict[str, Any]] = {
    'classification': {
        'num_trials': 320,  # 80 per class
        'rest_duration': 5000,
        'cue_duration': 1000,
        'imagery_duration': 3000,
    },
    'continuous': {
        'num_trials': 50,
        'rest_duration': 2000,
        'transition_duration': 1200,
        'interpolation': 'minimumJerk',
        'large_jump_probability': 0.15,
    },
    'trial_based': {
        'num_trials': 40,
        'rest_duration': 2000,
        'preparation_duration': 1000,
        'execution_duration': 4000,
        'return_cue_duration': 500,
        'interpolation': 'minimumJerk',
    },
    'periodic': {
        'num_trials': 20,
        'prep_duration': 2000,
        'active_duration': 10000,
        'frequency': 0.8,  # Hz, one beat per direction change
        'transition_duration': 300,  # ms per neutral <-> target move
        'interpolation': 'easeInOut',
    },
}

# Poses the sequence generator may draw from (None = whole library).
# Ignored by the classification paradigm, which uses its class labels.
ENABLED_POSES: Optional[list] = None

# Seed for the stimulus sequence (None = fresh randomness each session)
RANDOM_SEED: Optional[int] = None

# Sample log rate, independent of the host frame rate
LOG_FRAME_RATE = 30  # Hz

# =============================================================================
# STORAGE CONFIGURATION
# =============================================================================

# Database root directory
DATABASE_ROOT = Path('./database')

# HDF5 archive next to the CSV files
SAVE_HDF5 = True

# Compression (HDF5 only)
COMPRESSION = 'gzip'  # 'gzip', 'lzf', None
COMPRESSION_LEVEL = 4  # 0-9 for gzip, higher = more compression but slower

# =============================================================================
# HOST LOOP CONFIGURATION
# =============================================================================

HOST_CONFIG = {
    'frame_rate': 60,  # Hz, headless loop and GUI timer
    'time_scale': 1.0,  # >1 runs headless sessions faster than real time
}

# =============================================================================
# GUI CONFIGURATION
# =============================================================================

GUI_CONFIG = {
    # Window
    'window_title': 'Hand Pose Presentation',
    'window_width': 1000,
    'window_height': 650,
    'fullscreen': False,

    # Colors (per phase)
    'phase_colors': {
        'rest': '#4CAF50',         # Green
        'cue': '#2196F3',          # Blue
        'imagery': '#F44336',      # Red
        'preparation': '#2196F3',
        'execution': '#F44336',
        'return_cue': '#FF9800',   # Orange
        'transition': '#2196F3',
        'prep': '#4CAF50',
        'active': '#F44336',
        'complete': '#9C27B0',     # Purple
    },
    'current_bar_color': '#2196F3',
    'target_bar_color': '#BDBDBD',

    # Fonts
    'font_instruction': ('Arial', 24, 'bold'),
    'font_status': ('Arial', 14),
}

# =============================================================================
# VALIDATION
# =============================================================================

def validate_config():
    """
    Validate configuration parameters.

    Numeric settings are not checked here: invalid values are replaced by
    the paradigm defaults when the session config is built.

    Raises:
        ValueError: If configuration is invalid
    """
    # Check participant ID
    if not PARTICIPANT_ID or not isinstance(PARTICIPANT_ID, str):
        raise ValueError("PARTICIPANT_ID must be a non-empty string")

    # Check session ID
    if not SESSION_ID or not isinstance(SESSION_ID, str):
        raise ValueError("SESSION_ID must be a non-empty string")

    # Check paradigm
    if PARADIGM_NAME not in PROTOCOLS:
        raise ValueError(f"Unknown PARADIGM_NAME '{PARADIGM_NAME}'. "
                         f"Available: {', '.join(PROTOCOLS.keys())}")

    if not isinstance(PARADIGM_SETTINGS, dict):
        raise ValueError("PARADIGM_SETTINGS must be a dict of per-paradigm dicts")

    # Check pose selection
    if ENABLED_POSES is not None and not isinstance(ENABLED_POSES, (list, tuple)):
        raise ValueError("ENABLED_POSES must be a list of pose names or None")

    # Check database root
    if not DATABASE_ROOT:
        raise ValueError("DATABASE_ROOT must be specified")

    print("[OK] Configuration validated successfully")


def get_session_dir() -> Path:
    """
    Get the directory for the current session.

    Returns:
        Path to session directory
    """
    session_dir = DATABASE_ROOT / f"participant_{PARTICIPANT_ID}" / f"session_{SESSION_ID}"
    return session_dir


def build_session_config(paradigm: Optional[str] = None,
                         overrides: Optional[Dict[str, Any]] = None) -> SessionConfig:
    """
    Build the immutable session config from the constants above.

    Args:
        paradigm: Paradigm name (default: PARADIGM_NAME)
        overrides: Settings that take precedence over PARADIGM_SETTINGS

    Returns:
        SessionConfig with every value coerced

    Raises:
        ValueError: If the paradigm is unknown
    """
    paradigm = paradigm or PARADIGM_NAME
    get_paradigm(paradigm)

    settings: Dict[str, Any] = {
        'enabled_poses': ENABLED_POSES,
        'seed': RANDOM_SEED,
        'log_frame_rate': LOG_FRAME_RATE,
    }
    settings.update(PARADIGM_SETTINGS.get(paradigm, {}))
    settings.update(overrides or {})
    return SessionConfig.from_settings(paradigm, settings)


def print_config_summary(config: Optional[SessionConfig] = None):
    """Print a summary of the current configuration."""
    config = config or build_session_config()
    protocol = get_paradigm(config.paradigm)
    total_ms = calculate_session_duration(config)

    print("\n" + "="*70)
    print("SESSION CONFIGURATION SUMMARY")
    print("="*70)
    print(f"\nParticipant: {PARTICIPANT_ID}")
    print(f"Session: {SESSION_ID}")
    print(f"\nParadigm: {protocol['display_name']}")
    print(f"  Trials: {config.num_trials}")
    print(f"  Phases: " + ", ".join(f"{name} {ms} ms" for name, ms in config.phase_durations.items()))
    print(f"  Estimated duration: {total_ms/1000:.1f} seconds ({total_ms/60000:.1f} minutes)")
    print(f"  Interpolation: {config.interpolation}")
    if config.enabled_poses:
        print(f"  Enabled poses: {', '.join(config.enabled_poses)}")
    print(f"  Seed: {config.seed if config.seed is not None else 'random'}")
    print(f"\nStorage:")
    print(f"  Database: {DATABASE_ROOT}")
    print(f"  Log rate: {config.log_frame_rate} Hz")
    print(f"  HDF5 archive: {SAVE_HDF5}")
    print("="*70)


# If run directly, show the summary and the session duration
if __name__ == '__main__':
    validate_config()
    print_config_summary()
    print("\nTo start a session, run:")
    print("  python -m trial.trial_manager")

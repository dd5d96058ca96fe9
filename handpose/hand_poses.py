"""
Hand Poses Library
==================

Each pose is a vector of normalized joint angles for the thumb, index and
pinky finger groups:

- 0 = fully extended
- 1 = fully flexed

Thumb joints: CMC (opposition), MCP (flexion), IP (flexion)
Index/Pinky joints: MCP (flexion), PIP (flexion), DIP (flexion)

The 9-element joint ordering returned by `pose_to_vector` and
`pose_to_labeled_dict` is the column order of every exported log file and
must not change.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np


# =============================================================================
# JOINT LAYOUT
# =============================================================================

FINGERS: Tuple[str, ...] = ('thumb', 'index', 'pinky')

FINGER_JOINTS: Dict[str, Tuple[str, ...]] = {
    'thumb': ('cmc', 'mcp', 'ip'),
    'index': ('mcp', 'pip', 'dip'),
    'pinky': ('mcp', 'pip', 'dip'),
}

JOINT_ORDER: Tuple[Tuple[str, str], ...] = tuple(
    (finger, joint) for finger in FINGERS for joint in FINGER_JOINTS[finger]
)

JOINT_LABELS: Tuple[str, ...] = tuple(f'{finger}_{joint}' for finger, joint in JOINT_ORDER)

NEUTRAL_POSE_NAME = 'neutral'


# =============================================================================
# POSE MODEL
# =============================================================================

@dataclass(frozen=True)
class Pose:
    """
    Immutable hand pose.

    Finger groups map joint name -> angle and are read-only views. Groups
    produced by interpolation only contain joints present in both endpoints;
    `joint()` reads a missing joint as 0.0.

    Two poses are equal when their joint angles are equal, whatever their
    names.
    """
    name: str = field(compare=False)
    thumb: Mapping[str, float]
    index: Mapping[str, float]
    pinky: Mapping[str, float]
    description: str = field(default='', compare=False)
    display_name: str = field(default='', compare=False)

    def __post_init__(self):
        for finger in FINGERS:
            object.__setattr__(self, finger, MappingProxyType(dict(getattr(self, finger))))

    def __hash__(self):
        return hash(tuple(tuple(sorted(getattr(self, finger).items())) for finger in FINGERS))

    def finger(self, finger: str) -> Mapping[str, float]:
        if finger not in FINGER_JOINTS:
            raise KeyError(f"Unknown finger group '{finger}'")
        return getattr(self, finger)

    def joint(self, finger: str, joint: str) -> float:
        return float(self.finger(finger).get(joint, 0.0))

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        return {finger: dict(self.finger(finger)) for finger in FINGERS}


def _pose(name: str, display_name: str, description: str,
          thumb: Tuple[float, float, float],
          index: Tuple[float, float, float],
          pinky: Tuple[float, float, float]) -> Pose:
    return Pose(
        name=name,
        display_name=display_name,
        description=description,
        thumb=dict(zip(FINGER_JOINTS['thumb'], thumb)),
        index=dict(zip(FINGER_JOINTS['index'], index)),
        pinky=dict(zip(FINGER_JOINTS['pinky'], pinky)),
    )


# =============================================================================
# POSE LIBRARY
# =============================================================================

HAND_POSES: Dict[str, Pose] = {
    # Slight natural curl
    'neutral': _pose('neutral', 'Neutral', 'Relaxed neutral position',
                     (0.1, 0.15, 0.1), (0.15, 0.15, 0.1), (0.2, 0.2, 0.15)),
    'open': _pose('open', 'Open Hand', 'All fingers fully extended',
                  (0.3, 0.0, 0.0), (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)),
    'closedGrasp': _pose('closedGrasp', 'Closed Grasp', 'All fingers in grasp position',
                         (0.7, 0.8, 0.7), (0.85, 0.9, 0.8), (0.9, 0.95, 0.85)),
    'thumbIndexPinch': _pose('thumbIndexPinch', 'Thumb-Index Pinch',
                             'Thumb and index finger pinch, pinky relaxed',
                             (0.85, 0.7, 0.5), (0.65, 0.7, 0.55), (0.3, 0.35, 0.25)),
    'indexExtension': _pose('indexExtension', 'Index Extension',
                            'Index finger extended, others flexed',
                            (0.4, 0.6, 0.5), (0.0, 0.0, 0.0), (0.8, 0.85, 0.75)),
    'pinkyExtension': _pose('pinkyExtension', 'Pinky Extension',
                            'Pinky finger extended, others flexed',
                            (0.4, 0.6, 0.5), (0.8, 0.85, 0.75), (0.0, 0.0, 0.0)),
    'indexPinkySpan': _pose('indexPinkySpan', 'Index-Pinky Span',
                            'Index and pinky extended and spread',
                            (0.5, 0.4, 0.3), (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)),
    # Thumb crosses the palm
    'thumbOpposition': _pose('thumbOpposition', 'Thumb Opposition', 'Thumb opposed across palm',
                             (0.9, 0.3, 0.2), (0.2, 0.25, 0.15), (0.25, 0.3, 0.2)),
    'thumbPinkyPinch': _pose('thumbPinkyPinch', 'Thumb-Pinky Pinch',
                             'Thumb and pinky pinch, index relaxed',
                             (1.0, 0.75, 0.6), (0.25, 0.3, 0.2), (0.7, 0.75, 0.6)),
    'threeFingerPinch': _pose('threeFingerPinch', 'Three Finger Pinch',
                              'Thumb, index, and pinky meet',
                              (0.9, 0.7, 0.55), (0.6, 0.65, 0.5), (0.65, 0.7, 0.55)),
    'indexHook': _pose('indexHook', 'Index Hook', 'Index finger hooked, others relaxed',
                       (0.2, 0.2, 0.15), (0.1, 0.9, 0.85), (0.25, 0.3, 0.2)),
    'pinkyHook': _pose('pinkyHook', 'Pinky Hook', 'Pinky finger hooked, others relaxed',
                       (0.2, 0.2, 0.15), (0.2, 0.25, 0.15), (0.1, 0.9, 0.85)),
}

POSE_NAMES: List[str] = list(HAND_POSES.keys())


def get_pose(name: Optional[str]) -> Pose:
    """
    Get a pose by name.

    Unknown names (including None) return the neutral pose.
    """
    if not isinstance(name, str):
        return HAND_POSES[NEUTRAL_POSE_NAME]
    return HAND_POSES.get(name, HAND_POSES[NEUTRAL_POSE_NAME])


def list_poses(exclude: Iterable[str] = ()) -> List[str]:
    """Library pose names in definition order, minus `exclude`."""
    excluded = set(exclude)
    return [name for name in POSE_NAMES if name not in excluded]


# =============================================================================
# VECTOR FORM AND DISTANCE
# =============================================================================

def pose_to_vector(pose: Pose) -> np.ndarray:
    """
    Flatten a pose into its 9 joint angles.

    Order: thumb.cmc, thumb.mcp, thumb.ip, index.mcp, index.pip, index.dip,
    pinky.mcp, pinky.pip, pinky.dip. Missing joints read as 0.0.
    """
    return np.array([pose.joint(finger, joint) for finger, joint in JOINT_ORDER], dtype=float)


def pose_to_labeled_dict(pose: Pose, prefix: str = '') -> Dict[str, float]:
    """Pose as an ordered {label: angle} dict, e.g. {'thumb_cmc': 0.1, ...}."""
    return {
        f'{prefix}{label}': pose.joint(finger, joint)
        for label, (finger, joint) in zip(JOINT_LABELS, JOINT_ORDER)
    }


def pose_from_vector(vector: Iterable[float], name: str = 'custom') -> Pose:
    """Inverse of `pose_to_vector`."""
    values = [float(v) for v in vector]
    if len(values) != len(JOINT_ORDER):
        raise ValueError(f"Expected {len(JOINT_ORDER)} joint angles, got {len(values)}")
    groups: Dict[str, Dict[str, float]] = {finger: {} for finger in FINGERS}
    for (finger, joint), value in zip(JOINT_ORDER, values):
        groups[finger][joint] = value
    return Pose(name=name, **groups)


def pose_distance(pose_a: Pose, pose_b: Pose) -> float:
    """
    Synergy distance: Euclidean distance over joints defined in both poses.
    """
    sum_squares = 0.0
    for finger in FINGERS:
        joints_a = pose_a.finger(finger)
        joints_b = pose_b.finger(finger)
        for joint, value in joints_a.items():
            if joint in joints_b:
                diff = value - joints_b[joint]
                sum_squares += diff * diff
    return float(np.sqrt(sum_squares))


def pose_distance_matrix(names: Iterable[str]) -> np.ndarray:
    """Pairwise synergy distances between library poses, in `names` order."""
    names = list(names)
    vectors = np.vstack([pose_to_vector(get_pose(n)) for n in names]) if names \
        else np.zeros((0, len(JOINT_ORDER)))
    diffs = vectors[:, None, :] - vectors[None, :, :]
    return np.sqrt(np.sum(diffs * diffs, axis=-1))

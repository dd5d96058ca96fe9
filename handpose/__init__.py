"""Hand pose library: pose model, interpolation and stimulus sequences."""

__version__ = "1.0.0"

from .hand_poses import (
    Pose,
    HAND_POSES,
    POSE_NAMES,
    FINGERS,
    FINGER_JOINTS,
    JOINT_ORDER,
    JOINT_LABELS,
    NEUTRAL_POSE_NAME,
    get_pose,
    list_poses,
    pose_to_vector,
    pose_to_labeled_dict,
    pose_from_vector,
    pose_distance,
    pose_distance_matrix,
)

from .interpolation import (
    CURVES,
    DEFAULT_CURVE,
    lerp,
    linear,
    ease_in_out,
    minimum_jerk,
    cubic_bezier,
    get_curve,
    interpolate_joints,
    interpolate_poses,
    generate_transition_keyframes,
)

from .sequences import (
    generate_pose_sequence,
    balanced_block_sequence,
    uniform_sequence,
)

__all__ = [
    # Pose model
    'Pose',
    'HAND_POSES',
    'POSE_NAMES',
    'FINGERS',
    'FINGER_JOINTS',
    'JOINT_ORDER',
    'JOINT_LABELS',
    'NEUTRAL_POSE_NAME',
    'get_pose',
    'list_poses',
    'pose_to_vector',
    'pose_to_labeled_dict',
    'pose_from_vector',
    'pose_distance',
    'pose_distance_matrix',

    # Interpolation
    'CURVES',
    'DEFAULT_CURVE',
    'lerp',
    'linear',
    'ease_in_out',
    'minimum_jerk',
    'cubic_bezier',
    'get_curve',
    'interpolate_joints',
    'interpolate_poses',
    'generate_transition_keyframes',

    # Sequences
    'generate_pose_sequence',
    'balanced_block_sequence',
    'uniform_sequence',
]

"""
Interpolation utilities for smooth pose transitions.

All curves map progress t in [0, 1] to an eased progress. Callers clamp t
before calling; nothing in this module clamps.
"""

import math
from typing import Callable, Dict, List, Mapping, Union

from .hand_poses import FINGERS, Pose


CurveFn = Callable[[float], float]

DEFAULT_CURVE = 'minimumJerk'


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation, exact at both endpoints."""
    return a * (1.0 - t) + b * t


def linear(t: float) -> float:
    return t


def ease_in_out(t: float) -> float:
    """Quadratic ease-in-out."""
    return 2 * t * t if t < 0.5 else 1 - (-2 * t + 2) ** 2 / 2


def minimum_jerk(t: float) -> float:
    """
    Minimum-jerk profile: 10t^3 - 15t^4 + 6t^5.

    Zero velocity and acceleration at t=0 and t=1.
    """
    t3 = t * t * t
    t4 = t3 * t
    t5 = t4 * t
    return 10 * t3 - 15 * t4 + 6 * t5


def cubic_bezier(t: float, p1: float = 0.4, p2: float = 0.6) -> float:
    """Cubic bezier easing with fixed endpoints 0 and 1."""
    t2 = t * t
    t3 = t2 * t
    return 3 * t * (1 - t) * (1 - t) * p1 + 3 * t2 * (1 - t) * p2 + t3


CURVES: Dict[str, CurveFn] = {
    'linear': linear,
    'easeInOut': ease_in_out,
    'ease_in_out': ease_in_out,
    'minimumJerk': minimum_jerk,
    'minimum_jerk': minimum_jerk,
    'cubicBezier': cubic_bezier,
    'cubic_bezier': cubic_bezier,
}


def get_curve(curve: Union[str, CurveFn, None] = DEFAULT_CURVE) -> CurveFn:
    """
    Resolve a curve selector to a function.

    Accepts a curve name, a callable, or None. Unknown names resolve to
    minimum-jerk.
    """
    if callable(curve):
        return curve
    return CURVES.get(curve, minimum_jerk)


def interpolate_joints(joints_a: Mapping[str, float], joints_b: Mapping[str, float],
                       t: float, curve: Union[str, CurveFn, None] = DEFAULT_CURVE) -> Dict[str, float]:
    """Blend one finger group. Joints missing from either side are dropped."""
    smooth_t = get_curve(curve)(t)
    return {
        joint: lerp(value, joints_b[joint], smooth_t)
        for joint, value in joints_a.items()
        if joint in joints_b
    }


def interpolate_poses(pose_a: Pose, pose_b: Pose, t: float,
                      curve: Union[str, CurveFn, None] = DEFAULT_CURVE,
                      name: str = 'interpolated') -> Pose:
    """
    Intermediate pose between `pose_a` (t=0) and `pose_b` (t=1).

    Args:
        pose_a: Start pose
        pose_b: End pose
        t: Progress, already clamped to [0, 1]
        curve: 'linear', 'easeInOut', 'minimumJerk' (default) or a callable
        name: Name given to the derived pose

    Returns:
        New Pose; neither input is modified
    """
    groups = {
        finger: interpolate_joints(pose_a.finger(finger), pose_b.finger(finger), t, curve)
        for finger in FINGERS
    }
    return Pose(name=name, **groups)


def generate_transition_keyframes(start_pose: Pose, end_pose: Pose, duration_ms: float,
                                  frame_rate_hz: float = 60,
                                  curve: Union[str, CurveFn, None] = DEFAULT_CURVE) -> List[Dict]:
    """
    Sample a full transition at a fixed frame rate.

    Returns:
        List of {'time_ms', 't', 'pose'} dicts, first at t=0 and last at t=1
    """
    num_frames = max(1, math.ceil((duration_ms / 1000.0) * frame_rate_hz))
    keyframes = []
    for i in range(num_frames + 1):
        t = i / num_frames
        keyframes.append({
            'time_ms': (i / frame_rate_hz) * 1000.0,
            't': t,
            'pose': interpolate_poses(start_pose, end_pose, t, curve),
        })
    return keyframes

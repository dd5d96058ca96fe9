"""
Stimulus Sequence Generation
============================

Three generators, one per presentation paradigm:

- generate_pose_sequence: nearest-neighbor random walk (continuous tracking)
- balanced_block_sequence: whole shuffled blocks (trial / classification)
- uniform_sequence: independent uniform draws (periodic alternation)

Every generator takes an optional `numpy.random.Generator`; pass a seeded
one (`np.random.default_rng(seed)`) to reproduce a sequence exactly.
None of them raise on an empty pool: they fall back to the pose library
minus the start/baseline pose.
"""

from typing import List, Optional, Sequence

import numpy as np

from .hand_poses import NEUTRAL_POSE_NAME, list_poses, pose_distance_matrix


NEAR_FRACTION = 0.4
FAR_START_FRACTION = 0.6
MIN_NEAR_CANDIDATES = 3


def _rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


def _unique(names: Sequence[str]) -> List[str]:
    seen = set()
    out = []
    for name in names:
        if name not in seen:
            seen.add(name)
            out.append(name)
    return out


def _pick(candidates: Sequence[str], rng: np.random.Generator) -> str:
    return candidates[int(rng.integers(len(candidates)))]


def generate_pose_sequence(num_poses: int,
                           start_pose: str = NEUTRAL_POSE_NAME,
                           allowed_poses: Optional[Sequence[str]] = None,
                           allow_repeats: bool = False,
                           occasional_large_jump: bool = True,
                           large_jump_probability: float = 0.15,
                           rng: Optional[np.random.Generator] = None) -> List[str]:
    """
    Random walk that mostly steps to nearby poses in synergy space.

    The first entry is always `start_pose`. Each following entry is drawn
    from the candidates sorted by distance to the previous entry: with
    probability `large_jump_probability` from the farthest 40%, otherwise
    from the nearest max(3, 40%).

    Args:
        num_poses: Sequence length
        start_pose: First entry (excluded from the candidate pool)
        allowed_poses: Enabled pose names; None or empty means the whole library
        allow_repeats: Allow the same pose twice in a row
        occasional_large_jump: Enable far jumps at all
        large_jump_probability: Probability of a far jump per step
        rng: Random generator

    Returns:
        List of pose names. If no candidate other than `start_pose` is
        enabled, `start_pose` repeated `num_poses` times.
    """
    if num_poses <= 0:
        return []
    rng = _rng(rng)

    if allowed_poses:
        pool = [p for p in _unique(allowed_poses) if p != start_pose]
    else:
        pool = list_poses(exclude=[start_pose])

    if not pool:
        return [start_pose] * num_poses

    names = _unique([start_pose] + pool)
    position = {name: i for i, name in enumerate(names)}
    distances = pose_distance_matrix(names)

    sequence = [start_pose]
    for _ in range(1, num_poses):
        current = sequence[-1]

        candidates = list(pool)
        if not allow_repeats:
            candidates = [p for p in candidates if p != current]
            if not candidates:
                # single-pose pool: a repeat cannot be avoided
                candidates = list(pool)

        row = distances[position[current]]
        candidates.sort(key=lambda p: row[position[p]])

        make_large_jump = occasional_large_jump and rng.random() < large_jump_probability

        if make_large_jump and len(candidates) > MIN_NEAR_CANDIDATES:
            far = candidates[int(len(candidates) * FAR_START_FRACTION):]
            sequence.append(_pick(far, rng))
        else:
            near = candidates[:max(MIN_NEAR_CANDIDATES, int(len(candidates) * NEAR_FRACTION))]
            sequence.append(_pick(near, rng))

    return sequence


def balanced_block_sequence(pool: Optional[Sequence[str]],
                            length: int,
                            rng: Optional[np.random.Generator] = None,
                            fallback: Optional[Sequence[str]] = None) -> List[str]:
    """
    Concatenate shuffled copies of the pool, truncated to `length`.

    Each element appears floor(length/k) or ceil(length/k) times for a pool
    of k distinct names. When a new block would start with the entry that
    ended the previous block, that first element is swapped with a later
    one in the same block. A one-element pool repeats.

    Args:
        pool: Enabled stimulus names
        length: Number of entries
        rng: Random generator
        fallback: Pool used when `pool` is empty (default: library minus neutral)
    """
    if length <= 0:
        return []
    rng = _rng(rng)

    names = _unique(pool or [])
    if not names:
        names = _unique(fallback or []) or list_poses(exclude=[NEUTRAL_POSE_NAME])

    sequence: List[str] = []
    while len(sequence) < length:
        block = [names[i] for i in rng.permutation(len(names))]
        if sequence and len(block) > 1 and block[0] == sequence[-1]:
            swap = int(rng.integers(1, len(block)))
            block[0], block[swap] = block[swap], block[0]
        sequence.extend(block)

    return sequence[:length]


def uniform_sequence(pool: Optional[Sequence[str]],
                     num_trials: int,
                     rng: Optional[np.random.Generator] = None,
                     baseline: str = NEUTRAL_POSE_NAME) -> List[str]:
    """
    Independent uniform draws from the enabled pool, never the baseline.
    """
    if num_trials <= 0:
        return []
    rng = _rng(rng)

    names = [p for p in _unique(pool or []) if p != baseline]
    if not names:
        names = list_poses(exclude=[baseline])

    indices = rng.integers(len(names), size=num_trials)
    return [names[int(i)] for i in indices]

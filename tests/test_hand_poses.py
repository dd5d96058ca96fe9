"""Tests for the hand pose library."""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from handpose import (
    HAND_POSES,
    JOINT_LABELS,
    POSE_NAMES,
    Pose,
    get_pose,
    list_poses,
    pose_distance,
    pose_distance_matrix,
    pose_from_vector,
    pose_to_labeled_dict,
    pose_to_vector,
)


def test_library_contents():
    """The library holds 12 named poses with angles in [0, 1]."""
    assert len(POSE_NAMES) == 12
    assert POSE_NAMES[0] == 'neutral'
    assert 'closedGrasp' in HAND_POSES
    for name, pose in HAND_POSES.items():
        assert pose.name == name
        assert pose.display_name
        values = pose_to_vector(pose)
        assert np.all(values >= 0.0) and np.all(values <= 1.0)


def test_get_pose_unknown_falls_back_to_neutral():
    """Unknown or non-string names return the neutral pose."""
    neutral = HAND_POSES['neutral']
    assert get_pose('doesNotExist') == neutral
    assert get_pose(None) == neutral
    assert get_pose(['open']) == neutral
    assert get_pose('open') is HAND_POSES['open']


def test_vector_order_is_fixed():
    """Joint vectors follow the fixed thumb, index, pinky order."""
    assert JOINT_LABELS == (
        'thumb_cmc', 'thumb_mcp', 'thumb_ip',
        'index_mcp', 'index_pip', 'index_dip',
        'pinky_mcp', 'pinky_pip', 'pinky_dip',
    )
    vec = pose_to_vector(get_pose('thumbPinkyPinch'))
    assert vec.tolist() == [1.0, 0.75, 0.6, 0.25, 0.3, 0.2, 0.7, 0.75, 0.6]


def test_labeled_dict_prefix():
    """Labeled dicts keep the joint order and apply the prefix."""
    record = pose_to_labeled_dict(get_pose('open'), prefix='current_')
    assert list(record) == [f'current_{label}' for label in JOINT_LABELS]
    assert record['current_thumb_cmc'] == pytest.approx(0.3)


def test_missing_joint_reads_zero():
    """Joints absent from a group read as 0.0."""
    partial = Pose(name='partial', thumb={'cmc': 0.5}, index={}, pinky={'dip': 0.2})
    assert pose_to_vector(partial).tolist() == [0.5, 0, 0, 0, 0, 0, 0, 0, 0.2]


def test_pose_from_vector_inverse():
    """pose_from_vector inverts pose_to_vector and checks the length."""
    pose = get_pose('indexHook')
    rebuilt = pose_from_vector(pose_to_vector(pose))
    assert np.allclose(pose_to_vector(rebuilt), pose_to_vector(pose))
    with pytest.raises(ValueError):
        pose_from_vector([0.1, 0.2])


def test_distance_symmetric_and_zero_on_self():
    """Synergy distance is symmetric, non-negative and zero on itself."""
    for a in POSE_NAMES:
        pa = get_pose(a)
        assert pose_distance(pa, pa) == 0.0
        for b in POSE_NAMES:
            pb = get_pose(b)
            assert pose_distance(pa, pb) == pytest.approx(pose_distance(pb, pa))
            assert pose_distance(pa, pb) >= 0.0


def test_distance_matrix_matches_pairwise():
    """The distance matrix agrees with pairwise pose_distance."""
    names = list_poses()
    matrix = pose_distance_matrix(names)
    assert matrix.shape == (12, 12)
    assert np.allclose(matrix, matrix.T)
    assert np.allclose(np.diag(matrix), 0.0)
    i, j = names.index('open'), names.index('closedGrasp')
    assert matrix[i, j] == pytest.approx(pose_distance(get_pose('open'), get_pose('closedGrasp')))


def test_list_poses_exclude():
    """list_poses drops the excluded names."""
    names = list_poses(exclude=['neutral', 'open'])
    assert 'neutral' not in names and 'open' not in names
    assert len(names) == 10


def test_library_poses_are_read_only():
    """Writing a joint of a library pose raises and leaves the library unchanged."""
    pose = get_pose('open')
    with pytest.raises(TypeError):
        pose.thumb['cmc'] = 0.99
    assert HAND_POSES['open'].thumb['cmc'] == pytest.approx(0.3)

    source = {'cmc': 0.5}
    partial = Pose(name='partial', thumb=source, index={}, pinky={})
    source['cmc'] = 0.9
    assert partial.joint('thumb', 'cmc') == 0.5


def test_equality_ignores_names_and_poses_hash():
    """Poses compare by joint angles and can be used as dict keys."""
    pose = get_pose('indexHook')
    renamed = pose_from_vector(pose_to_vector(pose), name='copy')
    assert renamed == pose
    assert hash(renamed) == hash(pose)
    assert pose != get_pose('pinkyHook')
    assert len({get_pose(name) for name in POSE_NAMES}) == 12

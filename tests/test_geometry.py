import random

import numpy as np
import pytest

from exptran.geometry import (
    average_depth_scale,
    closest_point_index,
    generate_points,
    reproject_weak,
    rodrigues,
    weak_perspective_project,
)

CAMERA = np.array([[100.0, 0.0, 50.0], [0.0, 120.0, 40.0], [0.0, 0.0, 1.0]])
VERTICES = np.array(
    [[0.0, 0.0, 1.0], [1.0, 2.0, 0.5], [-1.5, 0.5, 0.0], [2.0, -1.0, 0.3], [0.3, 0.7, 0.2]]
)


def test_rodrigues_zero_is_identity():
    assert np.allclose(rodrigues([0.0, 0.0, 0.0]), np.eye(3))


def test_rodrigues_is_proper_rotation():
    r = rodrigues([0.3, -0.7, 1.1])
    assert np.allclose(r @ r.T, np.eye(3))
    assert np.linalg.det(r) == pytest.approx(1.0)


def test_rodrigues_quarter_turn_about_z():
    r = rodrigues([0.0, 0.0, np.pi / 2])
    assert np.allclose(r @ np.array([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0])


def test_rodrigues_axis_is_fixed():
    axis = np.array([0.2, 0.4, -0.1])
    assert np.allclose(rodrigues(axis) @ axis, axis)


def test_average_depth_scale_identity_rotation():
    scale = average_depth_scale(np.eye(3), [0.0, 0.0, 10.0], CAMERA, 2.0)
    assert scale == pytest.approx(12.0)


def test_weak_projection_of_origin_hits_principal_point_shift():
    projected = weak_perspective_project([0.0, 0.0, 0.0], [0.0, 0.0, 10.0], CAMERA, [[0.0, 0.0]], 0.0)
    assert np.allclose(projected, [[50.0, 40.0]])


def test_weak_projection_round_trip_identity_rotation():
    translation = np.array([0.5, -0.3, 20.0])
    depth = 1.5
    projected = weak_perspective_project([0.0, 0.0, 0.0], translation, CAMERA, VERTICES, depth)
    lifted = reproject_weak(projected, [0.0, 0.0, 0.0], translation, CAMERA, depth)
    assert np.allclose(lifted[:, :2], VERTICES[:, :2])
    assert np.allclose(lifted[:, 2], depth)


def test_reproject_then_closest_point_recovers_indices():
    translation = np.array([0.0, 0.0, 30.0])
    depth = 0.0
    projected = weak_perspective_project(np.eye(3), translation, CAMERA, VERTICES, depth)
    lifted = reproject_weak(projected, np.eye(3), translation, CAMERA, depth)
    flat = VERTICES.copy()
    flat[:, 2] = depth
    indices = [closest_point_index(flat, p) for p in lifted]
    assert indices == list(range(len(VERTICES)))


def test_closest_point_index_first_on_tie():
    verts = [[1.0, 0.0, 0.0], [-1.0, 0.0, 0.0]]
    assert closest_point_index(verts, [0.0, 0.0, 0.0]) == 0


def test_closest_point_index_empty_raises():
    with pytest.raises(ValueError):
        closest_point_index(np.zeros((0, 3)), [0.0, 0.0, 0.0])


def test_generate_points_indices_and_count():
    points, indices = generate_points(
        [0.1, 0.2, 0.0], [0.0, 0.0, 25.0], CAMERA, VERTICES, 0.5, 20, random.Random(7)
    )
    assert points.shape == (20, 2)
    assert len(indices) == 20
    assert all(0 <= i < len(VERTICES) for i in indices)


def test_generate_points_reproducible_with_seed():
    a = generate_points([0.1, 0.0, 0.0], [0.0, 0.0, 25.0], CAMERA, VERTICES, 0.5, 10, random.Random(3))
    b = generate_points([0.1, 0.0, 0.0], [0.0, 0.0, 25.0], CAMERA, VERTICES, 0.5, 10, random.Random(3))
    assert np.array_equal(a[0], b[0])
    assert a[1] == b[1]


def test_generate_points_match_weak_projection_without_rotation():
    translation = [1.0, -2.0, 40.0]
    points, indices = generate_points(
        [0.0, 0.0, 0.0], translation, CAMERA, VERTICES, 0.8, 15, random.Random(11)
    )
    expected = weak_perspective_project([0.0, 0.0, 0.0], translation, CAMERA, VERTICES[indices], 0.8)
    assert np.allclose(points, expected)


def test_generate_points_empty_vertices_raises():
    with pytest.raises(ValueError):
        generate_points([0.0, 0.0, 0.0], [0.0, 0.0, 1.0], CAMERA, np.zeros((0, 3)), 0.0, 3)
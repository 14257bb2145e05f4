"""Rigid transformations and weak-perspective projections of face points."""

from __future__ import annotations

import random
from typing import Sequence

import numpy as np


def rodrigues(rvec: Sequence[float]) -> np.ndarray:
    """Convert an axis-angle rotation vector to a 3x3 rotation matrix."""
    r = np.asarray(rvec, dtype=float).reshape(3)
    theta = float(np.linalg.norm(r))
    if theta < 1e-12:
        return np.eye(3)
    k = r / theta
    kx = np.array(
        [[0.0, -k[2], k[1]], [k[2], 0.0, -k[0]], [-k[1], k[0], 0.0]]
    )
    c = np.cos(theta)
    return c * np.eye(3) + (1.0 - c) * np.outer(k, k) + np.sin(theta) * kx


def _rotation_matrix(rotation) -> np.ndarray:
    rot = np.asarray(rotation, dtype=float)
    if rot.shape == (3, 3):
        return rot
    return rodrigues(rot)


def _vector(translation) -> np.ndarray:
    return np.asarray(translation, dtype=float).reshape(3)


def average_depth_scale(rotation_matrix, translation, camera_matrix, average_depth) -> float:
    """Homogeneous depth of the point (1, 1, average_depth) after projection."""
    r = np.asarray(rotation_matrix, dtype=float)
    k = np.asarray(camera_matrix, dtype=float)
    point = np.array([1.0, 1.0, float(average_depth)])
    projected = k @ r @ point + k @ _vector(translation)
    return float(projected[2])


def weak_perspective_project(rotation, translation, camera_matrix, points, average_depth) -> np.ndarray:
    """Project model points whose depth is replaced by ``average_depth``.

    ``rotation`` is a rotation vector or matrix; ``points`` holds x, y
    coordinates (any further columns are ignored). Returns an N x 2 array.
    """
    r = _rotation_matrix(rotation)
    t = _vector(translation)
    k = np.asarray(camera_matrix, dtype=float)
    result = []
    for p in np.asarray(points, dtype=float):
        homogeneous = k @ (r @ np.array([p[0], p[1], float(average_depth)]) + t)
        homogeneous = homogeneous / homogeneous[2]
        result.append(homogeneous[:2])
    return np.array(result, dtype=float).reshape(-1, 2)


def reproject_weak(image_points, rotation, translation, camera_matrix, average_depth) -> np.ndarray:
    """Lift image points back into model space under a weak-perspective camera.

    Returns an N x 3 array of model-space points.
    """
    r = _rotation_matrix(rotation)
    t = _vector(translation)
    k = np.asarray(camera_matrix, dtype=float)
    z_avg = average_depth_scale(r, t, k, average_depth)
    cx, cy = k[0, 2], k[1, 2]
    fx, fy = k[0, 0], k[1, 1]
    result = []
    for x, y in np.asarray(image_points, dtype=float).reshape(-1, 2):
        camera_point = np.array([(x - cx) * z_avg / fx, (y - cy) * z_avg / fy, z_avg])
        result.append(r.T @ (camera_point - t))
    return np.array(result, dtype=float).reshape(-1, 3)


def closest_point_index(vertices, point) -> int:
    """Index of the vertex nearest to ``point``; the first one on ties."""
    verts = np.asarray(vertices, dtype=float)
    if verts.size == 0:
        raise ValueError("no vertices to search")
    target = np.asarray(point, dtype=float).reshape(-1)
    dims = min(verts.shape[1], target.size)
    distances = np.sum((verts[:, :dims] - target[:dims]) ** 2, axis=1)
    return int(np.argmin(distances))


def generate_points(rotation, translation, camera_matrix, vertices, average_depth, count, rng=None):
    """Pick ``count`` random vertices and project them into the image.

    Every point is dehomogenised with the depth of the first one picked.
    Returns the N x 2 image points and the list of chosen vertex indices.
    """
    verts = np.asarray(vertices, dtype=float)
    if len(verts) == 0:
        raise ValueError("no vertices to sample from")
    rng = rng if rng is not None else random.Random()
    r = _rotation_matrix(rotation)
    t = _vector(translation)
    k = np.asarray(camera_matrix, dtype=float)

    indices: list[int] = []
    points = []
    z_avg = 0.0
    for _ in range(count):
        index = rng.randrange(len(verts))
        p = verts[index]
        homogeneous = k @ (r @ np.array([p[0], p[1], float(average_depth)]) + t)
        if z_avg == 0:
            z_avg = homogeneous[2]
        homogeneous = homogeneous / z_avg
        indices.append(index)
        points.append(homogeneous[:2])
    return np.array(points, dtype=float).reshape(-1, 2), indices
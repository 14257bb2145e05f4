"""Reprojection errors of the face model used as objectives for minimisation."""

from __future__ import annotations

import sys
from typing import Sequence

import numpy as np

from exptran.geometry import rodrigues
from exptran.linalg import kron

WORST_ERROR = sys.float_info.max


def _rotation_matrix(rotation) -> np.ndarray:
    rot = np.asarray(rotation, dtype=float)
    if rot.shape == (3, 3):
        return rot
    return rodrigues(rot)


def _vector(translation) -> np.ndarray:
    return np.asarray(translation, dtype=float).reshape(3)


def _points(points) -> np.ndarray:
    return np.asarray(points, dtype=float).reshape(-1, 2)


class _ProjectedModel:
    """Mode matrices, core tensor and camera shared by the error functions."""

    def __init__(self, u_id, u_ex, core, projection) -> None:
        u_id = np.array(u_id, dtype=float)
        u_ex = np.array(u_ex, dtype=float)
        core = np.array(core, dtype=float)
        projection = np.array(projection, dtype=float)
        if u_id.ndim != 2 or u_id.shape[0] != u_id.shape[1]:
            raise ValueError("identity mode matrix must be square")
        if u_ex.ndim != 2 or u_ex.shape[0] != u_ex.shape[1]:
            raise ValueError("expression mode matrix must be square")
        if core.ndim != 2 or core.shape[0] % 3 or core.shape[1] != u_id.shape[0] * u_ex.shape[0]:
            raise ValueError("core tensor has the wrong shape for the mode matrices")
        if projection.shape != (3, 3):
            raise ValueError("projection must be a 3x3 camera matrix")
        self.u_id = u_id
        self.u_ex = u_ex
        self.core = core
        self.projection = projection

    @property
    def n_f(self) -> int:
        return self.u_id.shape[0]

    @property
    def n_e(self) -> int:
        return self.u_ex.shape[0]

    @property
    def n_v(self) -> int:
        return self.core.shape[0] // 3

    def _block(self, index) -> np.ndarray:
        index = int(index)
        if not 0 <= index < self.n_v:
            raise IndexError(f"vertex index {index} out of range 0..{self.n_v - 1}")
        return self.core[3 * index:3 * index + 3]

    @staticmethod
    def _combination(weights, basis, what) -> np.ndarray:
        w = np.asarray(weights, dtype=float).reshape(-1)
        if w.size != basis.shape[0]:
            raise ValueError(f"{what} weights do not match the model")
        return w @ basis

    @staticmethod
    def _squared_error(offset, blocks, k, points) -> float:
        total = 0.0
        for block, (px, py) in zip(blocks, points):
            proj = offset + block @ k
            dx = px - proj[0] / proj[2]
            dy = py - proj[1] / proj[2]
            total += dx * dx + dy * dy
        return float(total)


class ModelImageError(_ProjectedModel):
    """Squared reprojection error of one frame as a function of expression weights.

    The identity weights are fixed with :meth:`set_weights`; calling the
    object with expression weights returns the summed squared distance of the
    projected model vertices from the feature points. Any negative weight
    gives the largest float.
    """

    def __init__(self, u_id, u_ex, core, projection, rotation, translation) -> None:
        super().__init__(u_id, u_ex, core, projection)
        self.rotation = _rotation_matrix(rotation)
        self.translation = _vector(translation)
        self.weights: list[float] = []
        self._linear_id: np.ndarray | None = None
        self._points = np.zeros((0, 2))
        self._indices: list[int] = []
        self._projected: list[np.ndarray] = []

    def set_weights(self, weights) -> None:
        """Fix the identity weights."""
        self._linear_id = self._combination(weights, self.u_id, "identity")
        self.weights = [float(v) for v in np.asarray(weights, dtype=float).reshape(-1)]

    def set_points(self, points, indices) -> None:
        """Set the feature points and the vertex each of them belongs to."""
        pts = _points(points)
        indices = [int(i) for i in indices]
        if len(pts) != len(indices):
            raise ValueError("every feature point needs exactly one vertex index")
        pr = self.projection @ self.rotation
        self._projected = [pr @ self._block(i) for i in indices]
        self._points = pts
        self._indices = indices

    def __call__(self, x: Sequence[float]) -> float:
        if any(v < 0 for v in x):
            return WORST_ERROR
        if self._linear_id is None:
            raise RuntimeError("identity weights have not been set")
        linear_ex = self._combination(x, self.u_ex, "expression")
        k = kron(self._linear_id, linear_ex).ravel()
        offset = self.projection @ self.translation
        return self._squared_error(offset, self._projected, k, self._points)


class ModelIdentityError(_ProjectedModel):
    """Squared reprojection error over several frames as a function of identity weights.

    Every frame has its own pose and expression weights. The projected core
    rows of a vertex are prepared once, with the rotation of the first frame
    in which the vertex appears.
    """

    def __init__(self, u_id, u_ex, core, projection) -> None:
        super().__init__(u_id, u_ex, core, projection)
        self.weights: list[list[float]] = []
        self.rotations: list[np.ndarray] = []
        self.translations: list[np.ndarray] = []
        self._points: list[np.ndarray] = []
        self._indices: list[list[int]] = []
        self._projected: dict[int, np.ndarray] = {}

    def set_weights(self, weights) -> None:
        """Set the expression weights of every frame."""
        weights = [[float(v) for v in np.asarray(w, dtype=float).reshape(-1)] for w in weights]
        for w in weights:
            if len(w) != self.n_e:
                raise ValueError("expression weights do not match the model")
        self.weights = weights

    def set_transformations(self, rotations, translations) -> None:
        """Set the pose of every frame; rotations are vectors or matrices."""
        if len(rotations) != len(translations):
            raise ValueError("every frame needs a rotation and a translation")
        self.rotations = [_rotation_matrix(r).copy() for r in rotations]
        self.translations = [_vector(t).copy() for t in translations]

    def set_points(self, points, indices) -> None:
        """Set the feature points of every frame and their vertex indices."""
        points = [_points(p) for p in points]
        indices = [[int(i) for i in frame] for frame in indices]
        if len(points) != len(indices):
            raise ValueError("every frame needs points and indices")
        if len(points) > len(self.rotations):
            raise RuntimeError("set the transformations of every frame before the points")
        for frame_points, frame_indices, rotation in zip(points, indices, self.rotations):
            if len(frame_points) != len(frame_indices):
                raise ValueError("every feature point needs exactly one vertex index")
            pr = self.projection @ rotation
            for index in frame_indices:
                if index not in self._projected:
                    self._projected[index] = pr @ self._block(index)
        self._points = points
        self._indices = indices

    def __call__(self, x: Sequence[float]) -> float:
        if any(v < 0 for v in x):
            return WORST_ERROR
        if len(self.weights) < len(self._indices):
            raise RuntimeError("expression weights have not been set for every frame")
        linear_id = self._combination(x, self.u_id, "identity")
        total = 0.0
        for frame, (frame_points, frame_indices) in enumerate(zip(self._points, self._indices)):
            linear_ex = self.weights[frame] @ self.u_ex
            k = kron(linear_id, linear_ex).ravel()
            offset = self.projection @ self.translations[frame]
            blocks = [self._projected[i] for i in frame_indices]
            total += self._squared_error(offset, blocks, k, frame_points)
        return float(total)
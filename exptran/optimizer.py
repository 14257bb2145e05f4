"""Common machinery for estimating identity and expression weights of a face."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from exptran.geometry import average_depth_scale, rodrigues
from exptran.linalg import kron


@dataclass(eq=False)
class FaceState:
    """Identity and expression weights of a face together with its average depth."""

    w_id: np.ndarray
    w_ex: np.ndarray
    average_depth: float = 0.0

    def __post_init__(self) -> None:
        self.w_id = np.array(self.w_id, dtype=float).reshape(-1)
        self.w_ex = np.array(self.w_ex, dtype=float).reshape(-1)
        self.average_depth = float(self.average_depth)

    @classmethod
    def uniform(cls, n_f, n_e, average_depth=0.0) -> "FaceState":
        """A face whose weights are spread evenly over every identity and expression."""
        if n_f <= 0 or n_e <= 0:
            raise ValueError("a face needs at least one identity and one expression")
        return cls(np.full(n_f, 1.0 / n_f), np.full(n_e, 1.0 / n_e), average_depth)

    def set_weights(self, w_id, w_ex) -> None:
        """Replace both weight vectors; the average depth is kept."""
        self.w_id = np.array(w_id, dtype=float).reshape(-1)
        self.w_ex = np.array(w_ex, dtype=float).reshape(-1)


def _rotation_matrix(rotation) -> np.ndarray:
    rot = np.asarray(rotation, dtype=float)
    if rot.shape == (3, 3):
        return rot
    return rodrigues(rot)


class Optimizer(ABC):
    """Estimates model weights from 2D feature points and a known pose.

    ``u_id`` (n_f x n_f) and ``u_ex`` (n_e x n_e) are the mode matrices and
    ``core`` is the core tensor flattened along the vertex mode, with three
    rows per vertex and n_f*n_e columns.
    """

    def __init__(self, u_id, u_ex, core) -> None:
        u_id = np.array(u_id, dtype=float)
        u_ex = np.array(u_ex, dtype=float)
        core = np.array(core, dtype=float)
        if u_id.ndim != 2 or u_id.shape[0] != u_id.shape[1]:
            raise ValueError("identity mode matrix must be square")
        if u_ex.ndim != 2 or u_ex.shape[0] != u_ex.shape[1]:
            raise ValueError("expression mode matrix must be square")
        if core.ndim != 2 or core.shape[0] % 3 or core.shape[1] != u_id.shape[0] * u_ex.shape[0]:
            raise ValueError("core tensor has the wrong shape for the mode matrices")
        self.u_id = u_id
        self.u_ex = u_ex
        self.core = core
        self._blocks: dict[int, np.ndarray] = {}

    @property
    def n_f(self) -> int:
        return self.u_id.shape[0]

    @property
    def n_e(self) -> int:
        return self.u_ex.shape[0]

    @property
    def n_v(self) -> int:
        return self.core.shape[0] // 3

    @property
    def cached_indices(self) -> tuple[int, ...]:
        """Vertex indices whose core rows are held ready, in first-seen order."""
        return tuple(self._blocks)

    def _slice(self, index) -> np.ndarray:
        index = int(index)
        if not 0 <= index < self.n_v:
            raise IndexError(f"vertex index {index} out of range 0..{self.n_v - 1}")
        return self.core[3 * index:3 * index + 3].copy()

    def set_point_indices(self, point_indices) -> None:
        """Prepare the core rows of the given vertices, dropping earlier ones."""
        self._blocks = {}
        for index in point_indices:
            index = int(index)
            if index not in self._blocks:
                self._blocks[index] = self._slice(index)

    def core_block(self, index) -> np.ndarray:
        """The three rows of the core tensor that belong to one vertex."""
        block = self._blocks.get(int(index))
        return block if block is not None else self._slice(index)

    # Helpers shared by the concrete optimisers.

    @staticmethod
    def _pose(camera_matrix, rotation, translation, average_depth):
        """Rotation matrix, translation, weak camera and projected average depth."""
        r = _rotation_matrix(rotation)
        t = np.asarray(translation, dtype=float).reshape(3)
        k = np.asarray(camera_matrix, dtype=float)
        z_avg = average_depth_scale(r, t, k, average_depth)
        return r, t, k[:2, :3], z_avg

    @staticmethod
    def _targets(points, weak, translation) -> np.ndarray:
        """Feature points with the projected translation removed, stacked x, y."""
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        offset = weak @ translation / translation[2]
        return (pts - offset).reshape(-1)

    def _design(self, pr, indices, basis=None) -> np.ndarray:
        """Stack ``pr @ block @ basis`` for each vertex, two rows per vertex."""
        width = self.n_f * self.n_e if basis is None else basis.shape[1]
        rows = [pr @ self.core_block(index) for index in indices]
        if basis is not None:
            rows = [row @ basis for row in rows]
        return np.vstack(rows) if rows else np.zeros((0, width))

    def _expression_basis(self, w_id) -> np.ndarray:
        w_id = np.asarray(w_id, dtype=float).reshape(-1)
        if w_id.size != self.n_f:
            raise ValueError("identity weights do not match the model")
        combination = (w_id @ self.u_id).reshape(-1, 1)
        return kron(combination, np.eye(self.n_e)) @ self.u_ex.T

    def _identity_basis(self, w_ex) -> np.ndarray:
        w_ex = np.asarray(w_ex, dtype=float).reshape(-1)
        if w_ex.size != self.n_e:
            raise ValueError("expression weights do not match the model")
        combination = (w_ex @ self.u_ex).reshape(-1, 1)
        return kron(np.eye(self.n_f), combination) @ self.u_id.T

    @staticmethod
    def _check_counts(points, indices) -> None:
        if len(np.asarray(points, dtype=float).reshape(-1, 2)) != len(indices):
            raise ValueError("every feature point needs exactly one vertex index")

    @abstractmethod
    def estimate_model_parameters(self, feature_points, camera_matrix, face, point_indices,
                                  rotation, translation):
        """Estimate identity and expression weights from one frame.

        Updates ``face`` and returns ``(weights_id, weights_ex)``.
        """

    @abstractmethod
    def estimate_expression_parameters(self, feature_points, camera_matrix, face, point_indices,
                                       rotation, translation):
        """Estimate expression weights from one frame, keeping the identity.

        Updates ``face`` and returns the expression weights.
        """

    @abstractmethod
    def estimate_identity_parameters(self, feature_points_list, camera_matrix, face,
                                     point_indices_list, rotations, translations, weights_ex):
        """Estimate one identity shared by several frames with known expressions.

        Updates ``face`` and returns the identity weights.
        """
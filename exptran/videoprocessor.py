"""Fit the face model to a sequence of frames.

Feature points are tracked through the frames, a pose is estimated for
every frame, extra points are added, and identity and expression weights
are refined until they stop changing.
"""

from __future__ import annotations

import enum
import random
from typing import Callable, Sequence

import numpy as np

from exptran.geometry import (
    closest_point_index,
    generate_points,
    reproject_weak,
    weak_perspective_project,
)
from exptran.linalg import kron
from exptran.optimizer import FaceState, Optimizer

_EXP_EPS = 0.0001
_ID_EPS = 0.001

TrackFn = Callable[[object, object, np.ndarray, list], tuple]
PoseFn = Callable[[np.ndarray, np.ndarray, np.ndarray, object], tuple]


class IdConstraint(enum.Enum):
    """Whether every frame has its own identity or all frames share one."""

    NONE = "none"
    CONST = "const"


class PointGeneration(enum.Enum):
    """How extra points are added to the tracked feature points."""

    THREE_D = "3d"
    TWO_D = "2d"
    HYBRID = "hybrid"
    NONE = "none"


class FrameIndexError(IndexError):
    """A frame was asked for that has not been computed."""


def _sum_sq(a, b) -> float:
    d = np.asarray(a, dtype=float).reshape(-1) - np.asarray(b, dtype=float).reshape(-1)
    return float(np.dot(d, d))


def converged(prev_exp, exp, prev_id, ident) -> bool:
    """Whether no frame's weights moved more than the termination thresholds.

    A frame's expression weights may move by a squared distance of at most
    0.0001, identity weights by at most 0.001.
    """
    if any(_sum_sq(p, c) > _EXP_EPS for p, c in zip(prev_exp, exp)):
        return False
    return not any(_sum_sq(p, c) > _ID_EPS for p, c in zip(prev_id, ident))


class VideoProcessor:
    """Estimates pose and model weights for every frame of a clip.

    ``track(prev_frame, next_frame, points, indices)`` follows points from
    one frame to the next and returns the points it kept with their vertex
    indices. ``estimate_pose(image_points, object_points, camera_matrix,
    guess)`` returns a rotation vector and a translation; ``guess`` is
    ``None`` for the first frame and the previous pose afterwards.

    Two-dimensional point generation needs ``sample_image_points``, a
    callable that returns new image points given the current ones.
    ``landmarks`` lists vertices that three-dimensional generation always
    projects in full perspective and adds.
    """

    new_point_count = 400

    def __init__(self, optimizer: Optimizer, track: TrackFn, estimate_pose: PoseFn,
                 camera_matrix, frames=5, iterations=3,
                 id_constraint=IdConstraint.CONST,
                 point_generator=PointGeneration.THREE_D,
                 with_first_frame=True) -> None:
        if frames < 1:
            raise ValueError("at least one frame is needed")
        self.optimizer = optimizer
        self.track = track
        self.estimate_pose = estimate_pose
        self.camera_matrix = np.asarray(camera_matrix, dtype=float)
        self.frames = int(frames)
        self.iterations = int(iterations)
        self.id_constraint = IdConstraint(id_constraint)
        self.point_generator = PointGeneration(point_generator)
        self.with_first_frame = bool(with_first_frame)
        self.sample_image_points: Callable[[np.ndarray], Sequence] | None = None
        self.landmarks: Sequence[int] = ()
        self.rng = random.Random()

        self.rotations: list[np.ndarray] = []
        self.translations: list[np.ndarray] = []
        self.generated_points: list[np.ndarray] = []
        self.weights_exp: list[list[float]] = []
        self.weights_id: list[list[float]] = []

    # Model helpers

    def _vertices(self, face: FaceState) -> np.ndarray:
        opt = self.optimizer
        weights = kron(face.w_id @ opt.u_id, face.w_ex @ opt.u_ex).ravel()
        return (opt.core @ weights).reshape(-1, 3)

    def _track_all(self, frame_data, points, indices):
        """Follow points through every frame; returns per-frame points and indices."""
        all_points = [np.asarray(points, dtype=float).reshape(-1, 2)]
        all_indices = [list(indices)]
        for i in range(1, self.frames):
            nxt_points, nxt_indices = self.track(frame_data[i - 1], frame_data[i],
                                                 all_points[-1], list(all_indices[-1]))
            all_points.append(np.asarray(nxt_points, dtype=float).reshape(-1, 2))
            all_indices.append([int(k) for k in nxt_indices])
        return all_points, all_indices

    def _project_landmarks(self, rotation, translation, vertices) -> np.ndarray:
        from exptran.geometry import rodrigues

        r = rodrigues(rotation)
        t = np.asarray(translation, dtype=float).reshape(3)
        result = []
        for index in self.landmarks:
            h = self.camera_matrix @ (r @ vertices[index] + t)
            result.append(h[:2] / h[2])
        return np.array(result, dtype=float).reshape(-1, 2)

    def _sample_2d(self, rotation, translation, face, vertices, points):
        if self.sample_image_points is None:
            raise ValueError("two-dimensional point generation needs sample_image_points")
        new = np.asarray(self.sample_image_points(points), dtype=float).reshape(-1, 2)
        lifted = reproject_weak(new, rotation, translation, self.camera_matrix,
                                face.average_depth)
        return new, [closest_point_index(vertices, p) for p in lifted]

    def _sample_3d(self, rotation, translation, face, vertices):
        return generate_points(rotation, translation, self.camera_matrix, vertices,
                               face.average_depth, self.new_point_count, self.rng)

    def _generate(self, rotation, translation, face, points, indices):
        """Add new points to the first frame's points according to the generator."""
        kind = self.point_generator
        if kind is PointGeneration.NONE:
            return points, indices
        vertices = self._vertices(face)
        points = np.asarray(points, dtype=float).reshape(-1, 2)
        indices = list(indices)
        parts = []
        if kind in (PointGeneration.TWO_D, PointGeneration.HYBRID):
            parts.append(self._sample_2d(rotation, translation, face, vertices, points))
        if kind in (PointGeneration.THREE_D, PointGeneration.HYBRID):
            parts.append(self._sample_3d(rotation, translation, face, vertices))
        if kind is PointGeneration.THREE_D and self.landmarks:
            parts.append((self._project_landmarks(rotation, translation, vertices),
                          [int(i) for i in self.landmarks]))
        for new_points, new_indices in parts:
            points = np.vstack([points, np.asarray(new_points, dtype=float).reshape(-1, 2)])
            indices.extend(int(i) for i in new_indices)
        return points, indices

    # Estimation

    def update_weights(self, points, indices, rotations, translations, face):
        """One refinement of the weights of every frame.

        Returns ``(weights_exp, weights_id)``: one expression vector per
        frame, and one identity vector per frame or a single shared one.
        """
        opt = self.optimizer
        weights_exp: list[list[float]] = []
        weights_id: list[list[float]] = []
        if self.id_constraint is IdConstraint.NONE:
            for i in range(self.frames):
                w_id, w_ex = opt.estimate_model_parameters(
                    points[i], self.camera_matrix, face, indices[i],
                    rotations[i], translations[i])
                weights_exp.append(list(w_ex))
                weights_id.append(list(w_id))
        else:
            for i in range(self.frames):
                w_ex = opt.estimate_expression_parameters(
                    points[i], self.camera_matrix, face, indices[i],
                    rotations[i], translations[i])
                weights_exp.append(list(w_ex))
            w_id = opt.estimate_identity_parameters(
                points[:self.frames], self.camera_matrix, face, indices[:self.frames],
                rotations[:self.frames], translations[:self.frames], weights_exp)
            weights_id.append(list(w_id))
        return weights_exp, weights_id

    def process(self, input_points, input_indices, frame_data) -> None:
        """Track, estimate poses and fit weights; results are kept on the processor."""
        if len(frame_data) < self.frames:
            raise ValueError(f"{self.frames} frames are needed, {len(frame_data)} given")
        input_points = np.asarray(input_points, dtype=float).reshape(-1, 2)
        input_indices = [int(i) for i in input_indices]
        if len(input_points) != len(input_indices):
            raise ValueError("every input point needs exactly one vertex index")

        opt = self.optimizer
        face = FaceState.uniform(opt.n_f, opt.n_e)
        face.average_depth = float(np.mean(self._vertices(face)[:, 2]))

        feature_points, point_indices = self._track_all(frame_data, input_points,
                                                        input_indices)

        vertices = self._vertices(face)
        rotations: list[np.ndarray] = []
        translations: list[np.ndarray] = []
        guess = None
        for points, indices in zip(feature_points, point_indices):
            rvec, tvec = self.estimate_pose(points, vertices[indices], self.camera_matrix, guess)
            rvec = np.array(rvec, dtype=float).reshape(3)
            tvec = np.array(tvec, dtype=float).reshape(3)
            rotations.append(rvec)
            translations.append(tvec)
            guess = (rvec.copy(), tvec.copy())
        self.rotations = rotations
        self.translations = translations

        current = input_points.copy()
        indices = list(input_indices)
        if self.with_first_frame:
            opt.set_point_indices(indices)
            opt.estimate_model_parameters(current, self.camera_matrix, face, indices,
                                          rotations[0], translations[0])

        current, indices = self._generate(rotations[0], translations[0], face, current, indices)
        opt.set_point_indices(indices)
        estimation_points, estimation_indices = self._track_all(frame_data, current, indices)

        weights_exp: list[list[float]] = []
        weights_id: list[list[float]] = []
        for j in range(self.iterations):
            prev_exp, prev_id = weights_exp, weights_id
            weights_exp, weights_id = self.update_weights(
                estimation_points, estimation_indices, rotations, translations, face)
            if j > 0 and converged(prev_exp, weights_exp, prev_id, weights_id):
                break
        self.weights_exp = weights_exp
        self.weights_id = weights_id

        self.generated_points = []
        for i in range(self.frames):
            self.face_for_frame(i, face)
            verts = self._vertices(face)[estimation_indices[i]]
            self.generated_points.append(weak_perspective_project(
                rotations[i], translations[i], self.camera_matrix, verts,
                face.average_depth))

    # Results

    def _check_frame(self, frame_index, available) -> int:
        index = int(frame_index)
        if not 0 <= index < available:
            raise FrameIndexError(
                f"frame index {index} outside the {available} frames computed")
        return index

    def face_for_frame(self, frame_index, face: FaceState) -> FaceState:
        """Give ``face`` the weights fitted for one frame; its depth is kept."""
        index = self._check_frame(frame_index, len(self.weights_exp))
        id_index = 0 if self.id_constraint is IdConstraint.CONST else index
        face.set_weights(self.weights_id[id_index], self.weights_exp[index])
        return face

    def pose_for_frame(self, frame_index):
        """Rotation vector and translation estimated for one frame."""
        index = self._check_frame(frame_index, len(self.rotations))
        return self.rotations[index].copy(), self.translations[index].copy()

    def generated_points_for_frame(self, frame_index) -> np.ndarray:
        """Model points projected with the fitted weights and pose of one frame."""
        index = self._check_frame(frame_index, len(self.generated_points))
        return self.generated_points[index].copy()
"""Weight estimation by regularised linear least squares in closed form."""

from __future__ import annotations

import numpy as np

from exptran.optimizer import Optimizer


class ClosedFormOptimizer(Optimizer):
    """Estimates weights by solving regularised normal equations.

    The regulariser pulls every weight vector towards the mean weight
    vector, whose entries are all ``1 / size``, with strength ``reg_param``.
    """

    max_iterations = 4

    def __init__(self, u_id, u_ex, core, reg_param) -> None:
        super().__init__(u_id, u_ex, core)
        self.reg_param = float(reg_param)
        self._reg_id = self.reg_param * np.eye(self.n_f)
        self._reg_ex = self.reg_param * np.eye(self.n_e)
        self._left_id = np.full(self.n_f, self.reg_param / self.n_f)
        self._left_ex = np.full(self.n_e, self.reg_param / self.n_e)

    @staticmethod
    def _solve(a, f, reg, left, z_avg=1.0) -> np.ndarray:
        """Solve ``(A'A / z + z * reg) w = A'f + z * left`` for ``w``."""
        at = a.T
        w = (at @ a) / z_avg + z_avg * reg
        b = at @ f + z_avg * left
        return np.linalg.solve(w, b)

    def estimate_model_parameters(self, feature_points, camera_matrix, face, point_indices,
                                  rotation, translation):
        """Alternate expression and identity solves; returns ``(weights_id, weights_ex)``."""
        self._check_counts(feature_points, point_indices)
        r, t, weak, z_avg = self._pose(camera_matrix, rotation, translation, face.average_depth)
        f = self._targets(feature_points, weak, t)
        projected_core = self._design(weak @ r / z_avg, point_indices)

        x = np.array(face.w_ex, dtype=float)
        y = np.array(face.w_id, dtype=float)
        for _ in range(self.max_iterations):
            a_ex = projected_core @ self._expression_basis(y)
            x = self._solve(a_ex, f, self._reg_ex, self._left_ex)
            a_id = projected_core @ self._identity_basis(x)
            y = self._solve(a_id, f, self._reg_id, self._left_id)

        face.set_weights(y, x)
        return [float(v) for v in y], [float(v) for v in x]

    def estimate_expression_parameters(self, feature_points, camera_matrix, face, point_indices,
                                       rotation, translation):
        """Solve for expression weights with the face's identity fixed; returns them."""
        self._check_counts(feature_points, point_indices)
        r, t, weak, z_avg = self._pose(camera_matrix, rotation, translation, face.average_depth)
        f = self._targets(feature_points, weak, t)
        a = self._design(weak @ r, point_indices, self._expression_basis(face.w_id))
        x = self._solve(a, f, self._reg_ex, self._left_ex, z_avg)
        face.set_weights(face.w_id, x)
        return [float(v) for v in x]

    def estimate_identity_parameters(self, feature_points_list, camera_matrix, face,
                                     point_indices_list, rotations, translations, weights_ex):
        """Solve for one identity over all frames; the face takes the first frame's expression.

        The projected average depth of the last frame scales the system.
        """
        counts = {len(feature_points_list), len(point_indices_list), len(rotations),
                  len(translations), len(weights_ex)}
        if not feature_points_list or len(counts) != 1:
            raise ValueError("every frame needs points, indices, a pose and expression weights")

        targets = []
        blocks = []
        z_avg = 1.0
        for points, indices, rotation, translation, w_ex in zip(
                feature_points_list, point_indices_list, rotations, translations, weights_ex):
            self._check_counts(points, indices)
            r, t, weak, z_avg = self._pose(camera_matrix, rotation, translation,
                                           face.average_depth)
            targets.append(self._targets(points, weak, t))
            blocks.append(self._design(weak @ r, indices, self._identity_basis(w_ex)))

        y = self._solve(np.vstack(blocks), np.concatenate(targets), self._reg_id,
                        self._left_id, z_avg)
        face.set_weights(y, weights_ex[0])
        return [float(v) for v in y]
"""Weight estimation by non-negative least squares."""

from __future__ import annotations

import numpy as np

from exptran.optimizer import Optimizer

NNLS_MAX_ITER = 3000
_KKT_EPS = 1e-8


def ekkt(h, f, x, e) -> bool:
    """Whether ``x`` satisfies the e-KKT conditions of min x'Hx/2 + f'x, x >= 0."""
    h = np.asarray(h, dtype=float)
    f = np.asarray(f, dtype=float).reshape(-1)
    x = np.asarray(x, dtype=float).reshape(-1)
    gradient = h @ x + f
    for value, slope in zip(x, gradient):
        if value < 0:
            return False
        if value > 0 and slope > e:
            return False
    return not bool(np.any(gradient < -e))


def scannls(a, b, max_iter=NNLS_MAX_ITER) -> np.ndarray:
    """Minimise ||b - A x||^2 / 2 subject to x >= 0 by sequential coordinate descent.

    Starts from zero and stops once the e-KKT conditions hold or after
    ``max_iter`` sweeps over all coordinates.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float).reshape(-1)
    if a.ndim != 2 or a.shape[0] != b.size:
        raise ValueError("matrix rows and right-hand side length differ")
    h = a.T @ a
    f = -(a.T @ b)
    n = h.shape[0]
    x = np.zeros(n)
    mu = f.copy()
    for _ in range(max_iter):
        for k in range(n):
            with np.errstate(divide="ignore", invalid="ignore"):
                step = x[k] - mu[k] / h[k, k]
            new = max(0.0, float(step))
            if new != x[k]:
                mu = mu + (new - x[k]) * h[:, k]
                x[k] = new
        if ekkt(h, f, x, _KKT_EPS):
            break
    return x


class NNLSOptimizer(Optimizer):
    """Estimates weights as non-negative least-squares fits to the feature points."""

    nnls_max_iter = NNLS_MAX_ITER
    max_iterations = 5

    def __init__(self, u_id, u_ex, core) -> None:
        super().__init__(u_id, u_ex, core)

    def estimate_model_parameters(self, feature_points, camera_matrix, face, point_indices,
                                  rotation, translation):
        """Alternate expression and identity fits; returns ``(weights_id, weights_ex)``."""
        self._check_counts(feature_points, point_indices)
        r, t, weak, z_avg = self._pose(camera_matrix, rotation, translation, face.average_depth)
        f = self._targets(feature_points, weak, t)
        projected_core = self._design(weak @ r / z_avg, point_indices)

        x = np.array(face.w_ex, dtype=float)
        y = np.array(face.w_id, dtype=float)
        for _ in range(self.max_iterations):
            x = scannls(projected_core @ self._expression_basis(y), f, self.nnls_max_iter)
            y = scannls(projected_core @ self._identity_basis(x), f, self.nnls_max_iter)

        face.set_weights(y, x)
        return [float(v) for v in y], [float(v) for v in x]

    def estimate_expression_parameters(self, feature_points, camera_matrix, face, point_indices,
                                       rotation, translation):
        """Fit expression weights for the face's identity; returns them."""
        self._check_counts(feature_points, point_indices)
        r, t, weak, z_avg = self._pose(camera_matrix, rotation, translation, face.average_depth)
        f = self._targets(feature_points, weak, t)
        a = self._design(weak @ r / z_avg, point_indices, self._expression_basis(face.w_id))
        x = scannls(a, f, self.nnls_max_iter)
        face.set_weights(face.w_id, x)
        return [float(v) for v in x]

    def estimate_identity_parameters(self, feature_points_list, camera_matrix, face,
                                     point_indices_list, rotations, translations, weights_ex):
        """Fit one identity over all frames; the face takes the first frame's expression."""
        frames = list(zip(feature_points_list, point_indices_list, rotations, translations,
                          weights_ex))
        counts = {len(feature_points_list), len(point_indices_list), len(rotations),
                  len(translations), len(weights_ex)}
        if not frames or len(counts) != 1:
            raise ValueError("every frame needs points, indices, a pose and expression weights")

        targets = []
        blocks = []
        for points, indices, rotation, translation, w_ex in frames:
            self._check_counts(points, indices)
            r, t, weak, z_avg = self._pose(camera_matrix, rotation, translation,
                                           face.average_depth)
            targets.append(self._targets(points, weak, t))
            blocks.append(self._design(weak @ r / z_avg, indices, self._identity_basis(w_ex)))

        y = scannls(np.vstack(blocks), np.concatenate(targets), self.nnls_max_iter)
        face.set_weights(y, weights_ex[0])
        return [float(v) for v in y]
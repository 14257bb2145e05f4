"""Weight estimation by Nelder-Mead minimisation of the reprojection error."""

from __future__ import annotations

import numpy as np

from exptran.errors import ModelIdentityError, ModelImageError
from exptran.optimizer import Optimizer
from exptran.simplex import nelder_mead


class NelderMeadOptimizer(Optimizer):
    """Estimates weights by minimising the reprojection error without gradients."""

    passes = 3
    scale = 1.0

    def __init__(self, u_id, u_ex, core) -> None:
        super().__init__(u_id, u_ex, core)

    def _fit_expression(self, points, camera_matrix, indices, rotation, translation,
                        w_id, w_ex) -> list[float]:
        error = ModelImageError(self.u_id, self.u_ex, self.core, camera_matrix,
                                rotation, translation)
        error.set_weights(w_id)
        error.set_points(points, indices)
        _, ex = nelder_mead(error, w_ex, self.scale)
        return ex

    def _fit_identity(self, points_list, camera_matrix, indices_list, rotations,
                      translations, weights_ex, w_id) -> list[float]:
        error = ModelIdentityError(self.u_id, self.u_ex, self.core, camera_matrix)
        error.set_transformations(rotations, translations)
        error.set_weights(weights_ex)
        error.set_points(points_list, indices_list)
        _, ident = nelder_mead(error, w_id, self.scale)
        return ident

    def estimate_model_parameters(self, feature_points, camera_matrix, face, point_indices,
                                  rotation, translation):
        """Alternate expression and identity minimisations; returns ``(weights_id, weights_ex)``."""
        self._check_counts(feature_points, point_indices)
        w_id = [float(v) for v in face.w_id]
        w_ex = [float(v) for v in face.w_ex]
        for _ in range(self.passes):
            w_ex = self._fit_expression(feature_points, camera_matrix, point_indices,
                                        rotation, translation, w_id, w_ex)
            w_id = self._fit_identity([feature_points], camera_matrix, [point_indices],
                                      [rotation], [translation], [w_ex], w_id)
        face.set_weights(w_id, w_ex)
        return list(w_id), list(w_ex)

    def estimate_expression_parameters(self, feature_points, camera_matrix, face, point_indices,
                                       rotation, translation):
        """Minimise over expression weights with the face's identity fixed; returns them."""
        self._check_counts(feature_points, point_indices)
        w_ex = self._fit_expression(feature_points, camera_matrix, point_indices, rotation,
                                    translation, face.w_id, face.w_ex)
        face.set_weights(face.w_id, w_ex)
        return list(w_ex)

    def estimate_identity_parameters(self, feature_points_list, camera_matrix, face,
                                     point_indices_list, rotations, translations, weights_ex):
        """Minimise over one identity shared by all frames; the face takes the first expression."""
        counts = {len(feature_points_list), len(point_indices_list), len(rotations),
                  len(translations), len(weights_ex)}
        if not feature_points_list or len(counts) != 1:
            raise ValueError("every frame needs points, indices, a pose and expression weights")
        w_id = self._fit_identity(feature_points_list, camera_matrix, point_indices_list,
                                  rotations, translations, weights_ex, face.w_id)
        face.set_weights(w_id, np.asarray(weights_ex[0], dtype=float))
        return list(w_id)
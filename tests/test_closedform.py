import numpy as np
import pytest

from exptran.closedform import ClosedFormOptimizer
from exptran.geometry import average_depth_scale, rodrigues
from exptran.optimizer import FaceState

N_F, N_E, N_V = 2, 3, 6
CAMERA = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])
ROTATION = np.array([0.1, -0.05, 0.02])
TRANSLATION = np.array([0.1, -0.2, 10.0])
DEPTH = 1.0
TRUE_ID = np.array([0.3, 0.7])
TRUE_EX = np.array([0.2, 0.5, 0.3])


def _model():
    rng = np.random.default_rng(7)
    core = rng.normal(size=(3 * N_V, N_F * N_E))
    return np.eye(N_F), np.eye(N_E), core


def _points(core, w_id, w_ex, indices):
    """Synthesise weak-perspective feature points from the bilinear face model."""
    r = rodrigues(ROTATION)
    weak = CAMERA[:2]
    z = average_depth_scale(r, TRANSLATION, CAMERA, DEPTH)
    offset = weak @ TRANSLATION / TRANSLATION[2]
    weights = np.kron(w_id, w_ex)
    return np.array([
        weak @ r @ core[3 * i:3 * i + 3] @ weights / z + offset for i in indices
    ])


def _face():
    return FaceState.uniform(N_F, N_E, DEPTH)


def test_expression_recovered_without_regularisation():
    u_id, u_ex, core = _model()
    opt = ClosedFormOptimizer(u_id, u_ex, core, 0.0)
    indices = list(range(N_V))
    face = _face()
    face.set_weights(TRUE_ID, face.w_ex)
    points = _points(core, TRUE_ID, TRUE_EX, indices)
    result = opt.estimate_expression_parameters(points, CAMERA, face, indices,
                                                ROTATION, TRANSLATION)
    assert np.allclose(result, TRUE_EX, atol=1e-8)
    assert np.allclose(face.w_ex, TRUE_EX, atol=1e-8)
    assert np.allclose(face.w_id, TRUE_ID)


def test_strong_regularisation_pulls_expression_to_mean():
    u_id, u_ex, core = _model()
    opt = ClosedFormOptimizer(u_id, u_ex, core, 1e12)
    indices = list(range(N_V))
    points = _points(core, TRUE_ID, TRUE_EX, indices)
    result = opt.estimate_expression_parameters(points, CAMERA, _face(), indices,
                                                ROTATION, TRANSLATION)
    assert np.allclose(result, np.full(N_E, 1.0 / N_E), atol=1e-6)


def test_identity_recovered_over_frames():
    u_id, u_ex, core = _model()
    opt = ClosedFormOptimizer(u_id, u_ex, core, 0.0)
    indices = [0, 2, 4, 5]
    other = np.array([0.6, 0.1, 0.3])
    frames = [_points(core, TRUE_ID, TRUE_EX, indices), _points(core, TRUE_ID, other, indices)]
    face = _face()
    result = opt.estimate_identity_parameters(
        frames, CAMERA, face, [indices, indices], [ROTATION, ROTATION],
        [TRANSLATION, TRANSLATION], [TRUE_EX, other])
    assert np.allclose(result, TRUE_ID, atol=1e-8)
    assert np.allclose(face.w_ex, TRUE_EX)
    assert face.average_depth == DEPTH


def test_model_parameters_stay_at_exact_solution():
    u_id, u_ex, core = _model()
    opt = ClosedFormOptimizer(u_id, u_ex, core, 0.0)
    indices = list(range(N_V))
    points = _points(core, TRUE_ID, TRUE_EX, indices)
    face = FaceState(TRUE_ID, TRUE_EX, DEPTH)
    w_id, w_ex = opt.estimate_model_parameters(points, CAMERA, face, indices,
                                               ROTATION, TRANSLATION)
    assert np.allclose(w_id, TRUE_ID, atol=1e-6)
    assert np.allclose(w_ex, TRUE_EX, atol=1e-6)
    assert np.allclose(face.w_id, w_id)
    assert face.average_depth == DEPTH


def test_model_parameters_reproduce_product_of_weights():
    u_id, u_ex, core = _model()
    opt = ClosedFormOptimizer(u_id, u_ex, core, 0.0)
    indices = list(range(N_V))
    points = _points(core, TRUE_ID, TRUE_EX, indices)
    w_id, w_ex = opt.estimate_model_parameters(points, CAMERA, _face(), indices,
                                               ROTATION, TRANSLATION)
    fitted = _points(core, np.array(w_id), np.array(w_ex), indices)
    assert len(w_id) == N_F and len(w_ex) == N_E
    assert np.max(np.abs(fitted - points)) < 1e-3


def test_mismatched_point_and_index_counts_raise():
    u_id, u_ex, core = _model()
    opt = ClosedFormOptimizer(u_id, u_ex, core, 1.0)
    points = _points(core, TRUE_ID, TRUE_EX, [0, 1, 2])
    with pytest.raises(ValueError):
        opt.estimate_expression_parameters(points, CAMERA, _face(), [0, 1],
                                           ROTATION, TRANSLATION)


def test_mismatched_frame_lists_raise():
    u_id, u_ex, core = _model()
    opt = ClosedFormOptimizer(u_id, u_ex, core, 1.0)
    points = _points(core, TRUE_ID, TRUE_EX, [0, 1])
    with pytest.raises(ValueError):
        opt.estimate_identity_parameters([points], CAMERA, _face(), [[0, 1]],
                                         [ROTATION, ROTATION], [TRANSLATION], [TRUE_EX])


def test_vertex_index_out_of_range_raises():
    u_id, u_ex, core = _model()
    opt = ClosedFormOptimizer(u_id, u_ex, core, 1.0)
    with pytest.raises(IndexError):
        opt.estimate_expression_parameters([[1.0, 2.0]], CAMERA, _face(), [N_V],
                                           ROTATION, TRANSLATION)
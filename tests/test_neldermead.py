import numpy as np
import pytest

from exptran.errors import ModelIdentityError, ModelImageError
from exptran.geometry import rodrigues
from exptran.neldermead import NelderMeadOptimizer
from exptran.optimizer import FaceState
from exptran.tensor import TensorModel

N_F, N_E, N_V = 2, 3, 6
U_ID = np.eye(N_F)
U_EX = np.eye(N_E)
CORE = np.random.default_rng(11).uniform(-1.0, 1.0, (3 * N_V, N_F * N_E))
K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])
T = np.array([0.0, 0.0, 20.0])
R0 = np.zeros(3)
W_ID = [0.3, 0.7]
W_EX = [0.2, 0.5, 0.3]
INDICES = [0, 1, 2, 3, 4, 5]


def project(w_id, w_ex, rvec, t):
    verts = TensorModel(U_ID, U_EX, CORE).interpolate_expression(w_id, w_ex)
    cam = (K @ (rodrigues(rvec) @ verts.T + np.asarray(t).reshape(3, 1))).T
    return (cam[:, :2] / cam[:, 2:3])[INDICES]


def image_error(points, w_id, w_ex):
    error = ModelImageError(U_ID, U_EX, CORE, K, R0, T)
    error.set_weights(w_id)
    error.set_points(points, INDICES)
    return error(w_ex)


@pytest.fixture
def optimizer():
    return NelderMeadOptimizer(U_ID, U_EX, CORE)


@pytest.fixture
def face():
    return FaceState.uniform(N_F, N_E, average_depth=0.0)


def test_expression_fit_does_not_increase_error(optimizer, face):
    points = project(W_ID, W_EX, R0, T)
    before = image_error(points, face.w_id, face.w_ex)
    w_ex = optimizer.estimate_expression_parameters(points, K, face, INDICES, R0, T)
    assert len(w_ex) == N_E
    assert image_error(points, face.w_id, w_ex) <= before + 1e-9


def test_expression_fit_updates_face(optimizer, face):
    points = project(W_ID, W_EX, R0, T)
    w_id_before = face.w_id.copy()
    w_ex = optimizer.estimate_expression_parameters(points, K, face, INDICES, R0, T)
    assert np.allclose(face.w_ex, w_ex)
    assert np.allclose(face.w_id, w_id_before)


def test_model_fit_does_not_increase_error(optimizer, face):
    points = project(W_ID, W_EX, R0, T)
    before = image_error(points, face.w_id, face.w_ex)
    w_id, w_ex = optimizer.estimate_model_parameters(points, K, face, INDICES, R0, T)
    assert (len(w_id), len(w_ex)) == (N_F, N_E)
    assert image_error(points, w_id, w_ex) <= before + 1e-9
    assert np.allclose(face.w_id, w_id)
    assert np.allclose(face.w_ex, w_ex)


def test_model_fit_point_count_mismatch(optimizer, face):
    with pytest.raises(ValueError):
        optimizer.estimate_model_parameters([[1.0, 1.0]], K, face, [0, 1], R0, T)


def test_identity_fit_does_not_increase_error(optimizer, face):
    translations = [T, np.array([0.5, 0.5, 21.0])]
    ex_frames = [W_EX, [0.6, 0.2, 0.2]]
    points = [project(W_ID, w, R0, t) for w, t in zip(ex_frames, translations)]
    error = ModelIdentityError(U_ID, U_EX, CORE, K)
    error.set_transformations([R0, R0], translations)
    error.set_weights(ex_frames)
    error.set_points(points, [INDICES, INDICES])
    before = error(face.w_id)

    w_id = optimizer.estimate_identity_parameters(points, K, face, [INDICES, INDICES],
                                                  [R0, R0], translations, ex_frames)
    assert len(w_id) == N_F
    assert error(w_id) <= before + 1e-9
    assert np.allclose(face.w_ex, ex_frames[0])
    assert np.allclose(face.w_id, w_id)


def test_identity_fit_frame_count_mismatch(optimizer, face):
    points = project(W_ID, W_EX, R0, T)
    with pytest.raises(ValueError):
        optimizer.estimate_identity_parameters([points], K, face, [INDICES], [R0, R0], [T],
                                               [W_EX])


def test_identity_fit_needs_frames(optimizer, face):
    with pytest.raises(ValueError):
        optimizer.estimate_identity_parameters([], K, face, [], [], [], [])
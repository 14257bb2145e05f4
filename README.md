# exptran

A library for fitting a multilinear (identity × expression) face model to
2D feature points seen in a sequence of frames.

A face model has three parts: an identity mode matrix `u_id` (n_f × n_f), an
expression mode matrix `u_ex` (n_e × n_e), and a core tensor flattened along
the vertex mode (3·n_v rows, n_f·n_e columns). Given a camera matrix and a pose
for each frame, the optimisers estimate the identity and expression weights
that best explain the observed image points under a weak-perspective camera.

## Modules

- `exptran.simplex`: `nelder_mead(func, start, scale=1.0)` minimises a
  function of at least two variables with the downhill simplex method. It
  returns `(minimum, point)`. `rosenbrock(x)` is the usual test function.
- `exptran.geometry`: pose and projection helpers.
  - `rodrigues` turns a rotation vector into a matrix.
  - `average_depth_scale` gives the projected depth of the point
    (1, 1, average_depth).
  - `weak_perspective_project` projects model points with their depth replaced
    by the average depth.
  - `reproject_weak` lifts image points back into model space.
  - `closest_point_index` finds the nearest vertex to a point.
  - `generate_points` picks random vertices and projects them. It accepts a
    `random.Random` for repeatable picks.
- `exptran.linalg`: `svd(a, with_u, with_v, eps, tol)` computes a singular
  value decomposition by Householder bidiagonalisation and QR iteration. It
  returns `(q, u, v)` and raises `ConvergenceError` when a singular value does
  not converge. `kron(a, b)` is the Kronecker product.
- `exptran.tensor`: `TensorModel`, which holds `u_id`, `u_ex` and `core`.
  - `TensorModel.from_samples(samples, scale=0.01)` builds a model from an
    identities × expressions × 3·vertices array.
  - `save(path)` and `TensorModel.load(path, n_f, n_e, n_v)` store and read the
    model as plain text.
  - `interpolate_expression(w_id, w_ex, brute=False)` returns the n_v × 3
    vertices for given weights.
  - `read_vertex_file(path, count)` reads the coordinates of one legacy VTK
    polydata mesh.
- `exptran.optimizer`: the abstract `Optimizer` base class. It also defines
  `FaceState`, which holds a face's identity weights, expression weights and
  average depth. `FaceState.uniform(n_f, n_e)` spreads the weights evenly.
- `exptran.nnls`: non-negative least squares.
  - `scannls(a, b, max_iter)` solves it by sequential coordinate descent.
  - `ekkt(h, f, x, e)` is its e-KKT stopping test.
  - `NNLSOptimizer` estimates the weights with it.
- `exptran.closedform`: `ClosedFormOptimizer(u_id, u_ex, core, reg_param)`
  solves regularised normal equations that pull the weights towards their
  mean.
- `exptran.errors`: reprojection errors that can be passed to `nelder_mead`.
  Any negative weight makes them return the largest float.
  - `ModelImageError` covers one frame, as a function of the expression
    weights.
  - `ModelIdentityError` covers several frames, as a function of the identity
    weights.
- `exptran.neldermead`: `NelderMeadOptimizer` minimises those errors with the
  simplex method.
- `exptran.videoprocessor`: `VideoProcessor` runs the whole fit over a clip.
  - `process(input_points, input_indices, frame_data)` does three things. It
    tracks the points through the frames, estimates a pose per frame, and adds
    extra points as chosen by `PointGeneration` (`THREE_D`, `TWO_D`, `HYBRID`
    or `NONE`). It then refines the weights until `converged` reports them
    stable or the iteration limit is reached.
  - `IdConstraint.CONST` shares one identity across all frames.
    `IdConstraint.NONE` fits one identity per frame.
  - Results are read back with `face_for_frame`, `pose_for_frame` and
    `generated_points_for_frame`. Asking for a frame that was not computed
    raises `FrameIndexError`.

Every optimiser has the same three methods:

- `estimate_model_parameters` estimates identity and expression for one frame
  and returns `(weights_id, weights_ex)`.
- `estimate_expression_parameters` estimates the expression only.
- `estimate_identity_parameters` estimates one identity shared by several
  frames.

Each of them also updates the `FaceState` it is given.

## Example

```python
import numpy as np

from exptran.nnls import NNLSOptimizer
from exptran.optimizer import FaceState
from exptran.simplex import nelder_mead, rosenbrock
from exptran.tensor import TensorModel

print(rosenbrock([1.0, 1.0]))  # 0.0, the global minimum
minimum, point = nelder_mead(rosenbrock, [-1.2, 1.0], 1.0)

rng = np.random.default_rng(0)
samples = rng.random((3, 2, 3 * 10))  # 3 identities, 2 expressions, 10 vertices
model = TensorModel.from_samples(samples)
vertices = model.interpolate_expression([1 / 3] * 3, [0.5, 0.5])  # 10 x 3

optimizer = NNLSOptimizer(model.u_id, model.u_ex, model.core)
face = FaceState.uniform(model.n_f, model.n_e)
```

## What the package does not do

This is a library of computations only. It does not read video or images and
has no point tracker or pose solver of its own. `VideoProcessor` must be given
two callables:

- `track`, which follows points from one frame to the next.
- `estimate_pose`, which returns a rotation vector and a translation.

Two-dimensional point generation also needs a `sample_image_points` callable.

The package has no viewer, no windows and no command-line program.

## Requirements

Python 3.10 or later and NumPy. The tests use pytest (`pip install .[test]`).
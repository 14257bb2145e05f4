"""Multilinear face model: identity and expression modes of a vertex tensor."""

from __future__ import annotations

from pathlib import Path

import numpy as np

from exptran.linalg import kron, svd

_HEADER_LINES = 4
_SVD_EPS = 1e-6
_SVD_TOL = 1e-6


def read_vertex_file(path, count) -> np.ndarray:
    """Read ``count`` coordinates from a legacy VTK polydata file.

    Four header lines are skipped, then a keyword with the point number and
    the data type name, then the coordinates follow.
    """
    lines = Path(path).read_text().splitlines()
    tokens = " ".join(lines[_HEADER_LINES:]).split()
    values = tokens[3:3 + count]
    if len(values) < count:
        raise ValueError(f"{path}: expected {count} coordinates, found {len(values)}")
    return np.array([float(v) for v in values], dtype=float)


class TensorModel:
    """Core tensor with its identity and expression mode matrices.

    ``u_id`` is n_f x n_f, ``u_ex`` is n_e x n_e and ``core`` is the core
    tensor flattened along the vertex mode, 3*n_v x n_f*n_e.
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

    @property
    def n_f(self) -> int:
        return self.u_id.shape[0]

    @property
    def n_e(self) -> int:
        return self.u_ex.shape[0]

    @property
    def n_v(self) -> int:
        return self.core.shape[0] // 3

    @classmethod
    def from_samples(cls, samples, scale=0.01) -> "TensorModel":
        """Build the model from samples indexed [identity, expression, coordinate].

        The mode matrices are the left singular vectors of the mode
        flattenings (scaled by ``scale``) times their transposes.
        """
        data = np.asarray(samples, dtype=float)
        if data.ndim != 3 or data.shape[2] % 3:
            raise ValueError("samples must be identities x expressions x 3*vertices")
        n_f, n_e, coords = data.shape

        identity_flat = scale * data.reshape(n_f, n_e * coords)
        _, u_id, _ = svd(identity_flat @ identity_flat.T, True, False, _SVD_EPS, _SVD_TOL)

        expression_flat = scale * data.transpose(1, 0, 2).reshape(n_e, n_f * coords)
        _, u_ex, _ = svd(expression_flat @ expression_flat.T, True, False, _SVD_EPS, _SVD_TOL)

        vertex_flat = data.reshape(n_f * n_e, coords).T
        core = vertex_flat @ kron(u_id, u_ex)
        return cls(u_id, u_ex, core)

    @classmethod
    def load(cls, path, n_f, n_e, n_v) -> "TensorModel":
        """Read a model written by :meth:`save` with the given dimensions."""
        values = np.array(Path(path).read_text().split(), dtype=float)
        sizes = (n_f * n_f, n_e * n_e, 3 * n_v * n_f * n_e)
        if values.size < sum(sizes):
            raise ValueError(f"{path}: expected {sum(sizes)} values, found {values.size}")
        u_id = values[:sizes[0]].reshape(n_f, n_f)
        u_ex = values[sizes[0]:sizes[0] + sizes[1]].reshape(n_e, n_e)
        start = sizes[0] + sizes[1]
        core = values[start:start + sizes[2]].reshape(3 * n_v, n_f * n_e)
        return cls(u_id, u_ex, core)

    def save(self, path) -> None:
        """Write the identity matrix, expression matrix and core, one per line."""
        blocks = (self.u_id, self.u_ex, self.core)
        text = "\n".join(" ".join(repr(float(v)) for v in block.ravel()) for block in blocks)
        Path(path).write_text(text + "\n")

    def interpolate_expression(self, w_id, w_ex, brute=False) -> np.ndarray:
        """Vertices of the face for identity and expression weights.

        Without ``brute`` the weights are first mapped through the mode
        matrices; with it they are used directly. Returns an n_v x 3 array.
        """
        w_id = np.asarray(w_id, dtype=float).reshape(-1)
        w_ex = np.asarray(w_ex, dtype=float).reshape(-1)
        if w_id.size != self.n_f or w_ex.size != self.n_e:
            raise ValueError("weight vectors do not match the model dimensions")
        if not brute:
            w_id = w_id @ self.u_id
            w_ex = w_ex @ self.u_ex
        vertices = self.core @ kron(w_id, w_ex).ravel()
        return vertices.reshape(self.n_v, 3)
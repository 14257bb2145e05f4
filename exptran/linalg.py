"""Singular value decomposition and Kronecker products on dense matrices."""

from __future__ import annotations

import math

import numpy as np

_MAX_SWEEPS = 30


class ConvergenceError(ArithmeticError):
    """The QR iteration did not converge for one singular value."""

    def __init__(self, index: int) -> None:
        super().__init__(f"no convergence at singular value {index}")
        self.index = index


def _rotate(matrix: np.ndarray, first: int, second: int, c: float, s: float) -> None:
    """Apply a plane rotation to two columns of ``matrix`` in place."""
    a = matrix[:, first].copy()
    b = matrix[:, second].copy()
    matrix[:, first] = a * c + b * s
    matrix[:, second] = -a * s + b * c


def _bidiagonalize(u: np.ndarray, q: np.ndarray, e: np.ndarray, tol: float):
    """Householder reduction of ``u`` to bidiagonal form, in place.

    Returns the last ``g`` and ``l`` of the sweep and the largest
    ``|q[i]| + |e[i]|`` seen.
    """
    m = u.shape[0]
    n = q.size
    g = x = 0.0
    l = 0
    for i in range(n):
        e[i] = g
        l = i + 1
        s = float(np.dot(u[i:m, i], u[i:m, i]))
        if s < tol:
            g = 0.0
        else:
            f = float(u[i, i])
            g = math.sqrt(s) if f < 0 else -math.sqrt(s)
            h = f * g - s
            u[i, i] = f - g
            for j in range(l, n):
                s = float(np.dot(u[i:m, i], u[i:m, j]))
                u[i:m, j] += (s / h) * u[i:m, i]
        q[i] = g

        s = float(np.dot(u[i, l:n], u[i, l:n]))
        if l >= n or s < tol:
            g = 0.0
        else:
            f = float(u[i, i + 1])
            g = math.sqrt(s) if f < 0 else -math.sqrt(s)
            h = f * g - s
            u[i, i + 1] = f - g
            e[l:n] = u[i, l:n] / h
            for j in range(l, m):
                s = float(np.dot(u[j, l:n], u[i, l:n]))
                u[j, l:n] += s * e[l:n]
        y = abs(float(q[i])) + abs(float(e[i]))
        if y > x:
            x = y
    return g, l, x


def _accumulate_right(u: np.ndarray, v: np.ndarray, e: np.ndarray, g: float, l: int) -> None:
    n = v.shape[0]
    for i in range(n - 1, -1, -1):
        if g != 0.0:
            h = float(u[i, i + 1]) * g
            v[l:n, i] = u[i, l:n] / h
            for j in range(l, n):
                s = float(np.dot(u[i, l:n], v[l:n, j]))
                v[l:n, j] += s * v[l:n, i]
        v[i, l:n] = 0.0
        v[l:n, i] = 0.0
        v[i, i] = 1.0
        g = float(e[i])
        l = i


def _accumulate_left(u: np.ndarray, q: np.ndarray) -> None:
    m = u.shape[0]
    n = q.size
    for i in range(n, m):
        u[i, n:m] = 0.0
        u[i, i] = 1.0
    for i in range(n - 1, -1, -1):
        l = i + 1
        g = float(q[i])
        u[i, l:m] = 0.0
        if g != 0.0:
            h = float(u[i, i]) * g
            for j in range(l, m):
                s = float(np.dot(u[l:m, i], u[l:m, j]))
                u[i:m, j] += (s / h) * u[i:m, i]
            u[i:m, i] /= g
        else:
            u[i:m, i] = 0.0
        u[i, i] += 1.0


def svd(a, with_u=True, with_v=True, eps=1e-6, tol=1e-6):
    """Singular value decomposition by Householder bidiagonalisation and QR.

    ``a`` must have at least as many rows as columns. Returns ``(q, u, v)``
    where ``q`` holds the non-negative singular values in no particular
    order, ``u`` is an m x m orthogonal matrix whose first n columns pair
    with ``q`` and ``v`` is the n x n matrix of right singular vectors, so
    that ``a == u[:, :n] @ diag(q) @ v.T``. ``u`` or ``v`` is ``None`` when
    it was not asked for. ``eps`` is the relative precision used to split
    the bidiagonal form and ``tol`` the smallest squared column norm a
    Householder reflection is built for.
    """
    a = np.array(a, dtype=float)
    if a.ndim != 2:
        raise ValueError("svd expects a two-dimensional matrix")
    m, n = a.shape
    if m < n:
        raise ValueError("svd needs at least as many rows as columns")

    u = np.zeros((m, m))
    u[:, :n] = a
    v = np.zeros((n, n))
    q = np.zeros(n)
    e = np.zeros(n)

    g, l, x = _bidiagonalize(u, q, e, tol)
    if with_v:
        _accumulate_right(u, v, e, g, l)
    if with_u:
        _accumulate_left(u, q)

    eps = eps * x
    for k in range(n - 1, -1, -1):
        sweeps = 0
        while True:
            cancel = True
            for l in range(k, -1, -1):
                if abs(e[l]) <= eps:
                    cancel = False
                    break
                if abs(q[l - 1]) <= eps:
                    break

            if cancel:
                c, s = 0.0, 1.0
                l1 = l - 1
                for i in range(l, k + 1):
                    f = s * float(e[i])
                    e[i] *= c
                    if abs(f) <= eps:
                        break
                    g = float(q[i])
                    h = math.sqrt(f * f + g * g)
                    q[i] = h
                    c = g / h
                    s = -f / h
                    if with_u:
                        _rotate(u, l1, i, c, s)

            z = float(q[k])
            if l == k:
                break

            sweeps += 1
            if sweeps > _MAX_SWEEPS:
                raise ConvergenceError(k)

            # Shift from the bottom 2x2 minor.
            x = float(q[l])
            y = float(q[k - 1])
            g = float(e[k - 1])
            h = float(e[k])
            f = ((y - z) * (y + z) + (g - h) * (g + h)) / (2.0 * h * y)
            g = math.sqrt(f * f + 1.0)
            f = ((x - z) * (x + z) + h * (y / ((f - g) if f < 0 else (f + g)) - h)) / x

            c = s = 1.0
            for i in range(l + 1, k + 1):
                g = float(e[i])
                y = float(q[i])
                h = s * g
                g *= c
                z = math.sqrt(f * f + h * h)
                e[i - 1] = z
                c = f / z
                s = h / z
                f = x * c + g * s
                g = -x * s + g * c
                h = y * s
                y *= c
                if with_v:
                    _rotate(v, i - 1, i, c, s)
                z = math.sqrt(f * f + h * h)
                q[i - 1] = z
                c = f / z
                s = h / z
                f = c * g + s * y
                x = -s * g + c * y
                if with_u:
                    _rotate(u, i - 1, i, c, s)
            e[l] = 0.0
            e[k] = f
            q[k] = x

        if z < 0.0:
            q[k] = -z
            if with_v:
                v[:, k] = -v[:, k]

    return q, (u if with_u else None), (v if with_v else None)


def kron(a, b) -> np.ndarray:
    """Kronecker product of two matrices; vectors are taken as single rows."""
    a = np.atleast_2d(np.asarray(a, dtype=float))
    b = np.atleast_2d(np.asarray(b, dtype=float))
    if a.ndim != 2 or b.ndim != 2:
        raise ValueError("kron expects matrices")
    m, n = a.shape
    p, q = b.shape
    return np.einsum("ij,kl->ikjl", a, b).reshape(m * p, n * q)
"""Nelder-Mead downhill simplex minimisation without gradients."""

from __future__ import annotations

import math
from typing import Callable, Sequence

_MAX_ITER = 1000
_ALPHA = 1.0  # reflection
_BETA = 0.5  # contraction
_GAMMA = 2.0  # expansion
_DELTA = 0.5  # shrink
_EPSILON = 1.0e-6


def rosenbrock(x: Sequence[float]) -> float:
    """Rosenbrock's banana function of the first two coordinates of ``x``."""
    a = x[1] - x[0] * x[0]
    b = 1.0 - x[0]
    return 100.0 * a * a + b * b


def _order(f: list[float]) -> tuple[int, int, int]:
    """Return the indices of the best, second worst and worst vertex."""
    if f[1] > f[2]:
        vh, vs = 1, 2
    else:
        vh, vs = 2, 1
    vl = 0
    for i, value in enumerate(f):
        if value <= f[vl]:
            vl = i
        if value > f[vh]:
            vs = vh
            vh = i
        elif value > f[vs] and i != vh:
            vs = i
    return vl, vs, vh


def _towards(origin: list[float], target: list[float], factor: float) -> list[float]:
    return [o + factor * (t - o) for o, t in zip(origin, target)]


def nelder_mead(
    func: Callable[[list[float]], float],
    start: Sequence[float],
    scale: float = 1.0,
) -> tuple[float, list[float]]:
    """Minimise ``func`` starting from ``start``.

    The initial simplex is a regular simplex whose edge length is set by
    ``scale``. Returns the smallest function value found and the point at
    which it was found. The problem must have at least two dimensions.
    """
    start = [float(v) for v in start]
    n = len(start)
    if n < 2:
        raise ValueError("the simplex method needs at least two dimensions")

    pn = scale * (math.sqrt(n + 1) - 1 + n) / (n * math.sqrt(2))
    qn = scale * (math.sqrt(n + 1) - 1) / (n * math.sqrt(2))

    simplex = [list(start)]
    for i in range(n):
        simplex.append([s + (pn if j == i else qn) for j, s in enumerate(start)])
    f = [func(list(vertex)) for vertex in simplex]

    for _ in range(_MAX_ITER):
        vl, vs, vh = _order(f)

        centroid = [
            sum(vertex[j] for i, vertex in enumerate(simplex) if i != vh) / n
            for j in range(n)
        ]

        vr = [m + _ALPHA * (m - w) for m, w in zip(centroid, simplex[vh])]
        fr = func(list(vr))

        if f[vl] <= fr < f[vs]:
            simplex[vh], f[vh] = vr, fr
            continue

        if fr < f[vl]:
            ve = _towards(centroid, vr, _GAMMA)
            fe = func(list(ve))
            if fr > fe:
                simplex[vh], f[vh] = ve, fe
            else:
                simplex[vh], f[vh] = vr, fr
            continue

        if fr >= f[vh]:
            vc = _towards(centroid, vr, _BETA)
            fc = func(list(vc))
            if fc < f[vh]:
                simplex[vh], f[vh] = vc, fc
                continue
        else:
            vc = _towards(centroid, simplex[vh], _BETA)
            fc = func(list(vc))
            if fc <= fr:
                simplex[vh], f[vh] = vc, fc
                continue

        best = simplex[vl]
        simplex = [
            vertex if i == vl else _towards(best, vertex, _DELTA)
            for i, vertex in enumerate(simplex)
        ]
        # Only the two worst vertices are re-evaluated after a shrink.
        f[vh] = func(list(simplex[vh]))
        f[vs] = func(list(simplex[vs]))

        favg = sum(f) / (n + 1)
        spread = math.sqrt(sum((value - favg) ** 2 / n for value in f))
        if spread < _EPSILON:
            break

    vl = 0
    for i, value in enumerate(f):
        if f[vl] > value:
            vl = i
    return f[vl], list(simplex[vl])
"""Triangle shape quality.

The score is the normalised area / edge-length ratio

    q = 4 * sqrt(3) * A / (a^2 + b^2 + c^2)

which equals 1 for an equilateral triangle and tends to 0 for slivers and
needles. It only depends on the triangle's shape, so it is unchanged by
rigid motions and uniform scaling.
"""
from __future__ import annotations

import math

import numpy as np

_NORMALISER = 4.0 * math.sqrt(3.0)

# Below this the triangle is treated as degenerate and scored exactly 0.
DEGENERATE_QUALITY = 1e-9


def triangle_area(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray) -> float:
    p0 = np.asarray(p0, dtype=np.float64)
    cross = np.cross(np.asarray(p1, dtype=np.float64) - p0, np.asarray(p2, dtype=np.float64) - p0)
    return 0.5 * float(np.linalg.norm(cross))


def triangle_quality(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray) -> float:
    tri = np.asarray([p0, p1, p2], dtype=np.float64)
    return float(_qualities(tri[None, ...])[0])


def triangle_areas(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    tris = np.asarray(vertices, dtype=np.float64)[np.asarray(faces, dtype=np.int64)]
    cross = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
    return 0.5 * np.linalg.norm(cross, axis=1)


def triangle_qualities(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Quality score for every face of a mesh, shape (M,)."""
    tris = np.asarray(vertices, dtype=np.float64)[np.asarray(faces, dtype=np.int64)]
    return _qualities(tris)


def _qualities(tris: np.ndarray) -> np.ndarray:
    # tris: (M, 3, 3)
    e0 = tris[:, 1] - tris[:, 0]
    e1 = tris[:, 2] - tris[:, 1]
    e2 = tris[:, 0] - tris[:, 2]
    sq_sum = (e0 * e0).sum(axis=1) + (e1 * e1).sum(axis=1) + (e2 * e2).sum(axis=1)
    area = 0.5 * np.linalg.norm(np.cross(e0, -e2), axis=1)

    q = np.zeros(len(tris), dtype=np.float64)
    ok = np.isfinite(sq_sum) & np.isfinite(area) & (sq_sum > 0.0) & (area > 0.0)
    q[ok] = _NORMALISER * area[ok] / sq_sum[ok]
    q[q < DEGENERATE_QUALITY] = 0.0
    # Rounding can push an equilateral triangle a hair above 1.
    return np.clip(q, 0.0, 1.0)


def summarize(qualities: np.ndarray, bad: float) -> dict[str, float]:
    """Summary statistics used by the ``quality`` CLI command."""
    q = np.asarray(qualities, dtype=np.float64)
    if q.size == 0:
        return {"triangles": 0, "degenerate": 0, "below_bad": 0,
                "min": 0.0, "mean": 0.0, "median": 0.0, "max": 0.0}
    return {
        "triangles": int(q.size),
        "degenerate": int(np.count_nonzero(q == 0.0)),
        "below_bad": int(np.count_nonzero(q < bad)),
        "min": float(q.min()),
        "mean": float(q.mean()),
        "median": float(np.median(q)),
        "max": float(q.max()),
    }

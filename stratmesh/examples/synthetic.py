from __future__ import annotations

import math
from pathlib import Path
from typing import Iterable, Tuple

import numpy as np

from ..core.scene import SurfaceMesh

MeshArrays = Tuple[np.ndarray, np.ndarray, np.ndarray]  # vertices, faces, normals

PRESETS = ("equilateral", "sliver", "plane", "box", "arrow")

# Apex height of the sliver preset for a unit base; gives quality ~0.05.
SLIVER_HEIGHT = 0.0217


def _equilateral(size: float) -> MeshArrays:
    # Area is size**2.
    side = size * math.sqrt(4.0 / math.sqrt(3.0))
    vertices = np.array([
        [0.0, 0.0, 0.0],
        [side, 0.0, 0.0],
        [side / 2.0, side * math.sqrt(3.0) / 2.0, 0.0],
    ])
    faces = np.array([[0, 1, 2]], dtype=np.int64)
    normals = np.tile([0.0, 0.0, 1.0], (3, 1))
    return vertices, faces, normals


def _sliver(size: float) -> MeshArrays:
    vertices = np.array([
        [0.0, 0.0, 0.0],
        [size, 0.0, 0.0],
        [size / 2.0, size * SLIVER_HEIGHT, 0.0],
    ])
    faces = np.array([[0, 1, 2]], dtype=np.int64)
    normals = np.tile([0.0, 0.0, 1.0], (3, 1))
    return vertices, faces, normals


def _grid_plane(size: float, divisions: int, z: float = 0.0) -> MeshArrays:
    lin = np.linspace(-size / 2.0, size / 2.0, divisions + 1)
    xv, yv = np.meshgrid(lin, lin, indexing="ij")
    vertices = np.column_stack([xv.ravel(), yv.ravel(), np.full(xv.size, z)])

    faces = []
    for i in range(divisions):
        for j in range(divisions):
            idx0 = i * (divisions + 1) + j
            idx1 = idx0 + 1
            idx2 = idx0 + (divisions + 1)
            idx3 = idx2 + 1
            faces.append([idx0, idx2, idx3])
            faces.append([idx0, idx3, idx1])
    normals = np.tile([0.0, 0.0, 1.0], (len(vertices), 1))
    return vertices, np.asarray(faces, dtype=np.int64), normals


def _box(size: float) -> MeshArrays:
    """Axis-aligned cube with normals split along every edge."""
    h = size / 2.0
    parts = []
    for axis in range(3):
        for sign in (-1.0, 1.0):
            u, v = [a for a in range(3) if a != axis]
            quad = np.zeros((4, 3))
            quad[:, axis] = sign * h
            quad[:, u] = [-h, h, h, -h]
            quad[:, v] = [-h, -h, h, h]
            normal = np.zeros(3)
            normal[axis] = sign
            faces = np.array([[0, 1, 2], [0, 2, 3]], dtype=np.int64)
            if sign < 0:
                faces = faces[:, ::-1]
            parts.append((quad, faces, np.tile(normal, (4, 1))))
    return _merge_parts(parts)


def _arrow(size: float, resolution: int = 6) -> MeshArrays:
    """Arrow along +x: a capped shaft and a cone tip, normals split at the rims."""
    tip_length, tip_radius, shaft_radius = 0.35, 0.1, 0.03
    x_tip = 1.0 - tip_length
    theta = 2.0 * math.pi * np.arange(resolution) / resolution
    cos, sin = np.cos(theta), np.sin(theta)
    nxt = (np.arange(resolution) + 1) % resolution
    ring_idx = np.arange(resolution)

    def ring(x: float, r: float) -> np.ndarray:
        return np.column_stack([np.full(resolution, x), r * cos, r * sin])

    radial = np.column_stack([np.zeros(resolution), cos, sin])
    minus_x = np.tile([-1.0, 0.0, 0.0], (resolution, 1))

    # shaft side
    shaft_v = np.vstack([ring(0.0, shaft_radius), ring(x_tip, shaft_radius)])
    shaft_f = np.vstack([
        np.column_stack([ring_idx, resolution + nxt, nxt]),
        np.column_stack([ring_idx, resolution + ring_idx, resolution + nxt]),
    ])
    shaft = (shaft_v, shaft_f, np.vstack([radial, radial]))

    # shaft base cap
    cap_v = np.vstack([[0.0, 0.0, 0.0], ring(0.0, shaft_radius)])
    cap_f = np.column_stack([np.zeros(resolution, dtype=np.int64), 1 + nxt, 1 + ring_idx])
    cap = (cap_v, cap_f, np.vstack([[-1.0, 0.0, 0.0], minus_x]))

    # annulus under the cone
    ann_v = np.vstack([ring(x_tip, shaft_radius), ring(x_tip, tip_radius)])
    ann_f = np.vstack([
        np.column_stack([ring_idx, nxt, resolution + nxt]),
        np.column_stack([ring_idx, resolution + nxt, resolution + ring_idx]),
    ])
    annulus = (ann_v, ann_f, np.vstack([minus_x, minus_x]))

    # cone, one apex copy per segment so each facet gets its own apex normal
    slope = tip_radius / tip_length
    cone_n = np.column_stack([np.full(resolution, slope), cos, sin])
    mid = theta + math.pi / resolution
    apex_n = np.column_stack([np.full(resolution, slope), np.cos(mid), np.sin(mid)])
    cone_v = np.vstack([ring(x_tip, tip_radius), np.tile([1.0, 0.0, 0.0], (resolution, 1))])
    cone_f = np.column_stack([ring_idx, resolution + ring_idx, nxt])
    cone = (cone_v, cone_f, np.vstack([cone_n, apex_n]))

    vertices, faces, normals = _merge_parts([shaft, cap, annulus, cone])
    return vertices * size, faces, normals


def _merge_parts(parts: Iterable[MeshArrays]) -> MeshArrays:
    vertices: list[np.ndarray] = []
    faces: list[np.ndarray] = []
    normals: list[np.ndarray] = []
    offset = 0
    for verts, tri, nrm in parts:
        vertices.append(verts)
        normals.append(nrm)
        faces.append(tri + offset)
        offset += verts.shape[0]
    all_normals = np.vstack(normals)
    all_normals = all_normals / np.linalg.norm(all_normals, axis=1, keepdims=True)
    return np.vstack(vertices), np.vstack(faces).astype(np.int64), all_normals


def mesh_arrays(preset: str, size: float = 1.0) -> MeshArrays:
    preset = preset.lower()
    if preset == "equilateral":
        return _equilateral(size)
    if preset == "sliver":
        return _sliver(size)
    if preset == "plane":
        return _grid_plane(size, divisions=8)
    if preset == "box":
        return _box(size)
    if preset == "arrow":
        return _arrow(size)
    raise ValueError(f"Unknown synthetic mesh preset '{preset}'.")


def build_mesh(preset: str, size: float = 1.0) -> SurfaceMesh:
    return SurfaceMesh(*mesh_arrays(preset, size))


def write_ascii_ply(path: Path, vertices: np.ndarray, faces: np.ndarray, normals: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("ply\n")
        f.write("format ascii 1.0\n")
        f.write(f"element vertex {len(vertices)}\n")
        f.write("property float x\nproperty float y\nproperty float z\n")
        f.write("property float nx\nproperty float ny\nproperty float nz\n")
        f.write(f"element face {len(faces)}\n")
        f.write("property list uchar int vertex_indices\n")
        f.write("end_header\n")
        for (x, y, z), (nx, ny, nz) in zip(vertices, normals):
            f.write(f"{x:.9g} {y:.9g} {z:.9g} {nx:.6f} {ny:.6f} {nz:.6f}\n")
        for tri in faces:
            f.write(f"3 {tri[0]} {tri[1]} {tri[2]}\n")


def generate_mesh(preset: str, size: float, path: Path) -> None:
    write_ascii_ply(path, *mesh_arrays(preset, size))

from pathlib import Path

import numpy as np
import pytest

from stratmesh.core.scene import SurfaceMesh
from stratmesh.examples.synthetic import generate_mesh, mesh_arrays


def _write_plane_without_normals(path: Path) -> None:
    vertices = [
        (-1.0, -1.0, 0.0),
        (1.0, -1.0, 0.0),
        (1.0, 1.0, 0.0),
        (-1.0, 1.0, 0.0),
    ]
    faces = [
        (0, 1, 2),
        (0, 2, 3),
    ]
    with open(path, "w", encoding="utf-8") as f:
        f.write("ply\n")
        f.write("format ascii 1.0\n")
        f.write(f"element vertex {len(vertices)}\n")
        f.write("property float x\nproperty float y\nproperty float z\n")
        f.write(f"element face {len(faces)}\n")
        f.write("property list uchar int vertex_indices\n")
        f.write("end_header\n")
        for v in vertices:
            f.write(f"{v[0]} {v[1]} {v[2]}\n")
        for face in faces:
            f.write(f"3 {face[0]} {face[1]} {face[2]}\n")


def test_ascii_ply_with_normals_round_trips(tmp_path: Path) -> None:
    path = tmp_path / "arrow.ply"
    generate_mesh("arrow", 2.0, path)
    vertices, faces, normals = mesh_arrays("arrow", 2.0)

    mesh = SurfaceMesh.from_path(path)
    np.testing.assert_allclose(mesh.vertices, vertices, atol=1e-6)
    np.testing.assert_array_equal(mesh.faces, faces)
    np.testing.assert_allclose(mesh.normals, normals, atol=1e-5)


def test_missing_normals_are_filled_upstream(tmp_path: Path) -> None:
    path = tmp_path / "plane.ply"
    _write_plane_without_normals(path)
    mesh = SurfaceMesh.from_path(path)
    assert mesh.n_triangles == 2
    np.testing.assert_allclose(np.abs(mesh.normals[:, 2]), 1.0, atol=1e-6)


def test_missing_normals_rejected_when_not_computed(tmp_path: Path) -> None:
    path = tmp_path / "plane.ply"
    _write_plane_without_normals(path)
    with pytest.raises(ValueError):
        SurfaceMesh.from_path(path, compute_normals=False)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        SurfaceMesh.from_path(tmp_path / "nope.ply")


def test_from_vtk_polydata() -> None:
    vtk = pytest.importorskip("vtk")
    source = vtk.vtkSphereSource()
    source.SetThetaResolution(8)
    source.SetPhiResolution(6)
    source.Update()
    mesh = SurfaceMesh.from_vtk(source.GetOutput())
    assert mesh.n_triangles > 0
    np.testing.assert_allclose(np.linalg.norm(mesh.normals, axis=1), 1.0, atol=1e-5)

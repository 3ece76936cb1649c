import numpy as np
import pytest

from stratmesh.core.exporter import LasWriter, NpzWriter, PlyWriter, VtpWriter
from stratmesh.core.pointcloud import PointBatch


def _batch() -> PointBatch:
    return PointBatch(
        xyz=np.array([[0.0, 0.0, 0.0], [1.0, 0.5, 0.25], [0.0, 1.0, 2.0]], dtype=np.float32),
        attrs={
            "normal": np.array([[0.0, 0.0, 1.0], [0.0, 1.0, 0.0], [1.0, 0.0, 0.0]], dtype=np.float32),
            "triangle_id": np.array([0, 3, 7], dtype=np.int64),
        },
    )


def test_npz_writer_concatenates_batches(tmp_path) -> None:
    path = tmp_path / "cloud.npz"
    writer = NpzWriter(str(path))
    writer.write_batch(_batch())
    writer.write_batch(_batch())
    writer.close()

    with np.load(path) as data:
        assert data["xyz"].shape == (6, 3)
        assert data["normal"].shape == (6, 3)
        np.testing.assert_array_equal(data["triangle_id"], [0, 3, 7, 0, 3, 7])


def test_npz_writer_empty_run_still_writes_file(tmp_path) -> None:
    path = tmp_path / "empty.npz"
    writer = NpzWriter(str(path))
    writer.write_batch(PointBatch.empty())
    writer.close()
    writer.close()
    with np.load(path) as data:
        assert data["xyz"].shape == (0, 3)


def test_ply_writer_emits_normals(tmp_path) -> None:
    path = tmp_path / "points.ply"
    writer = PlyWriter(str(path))
    writer.write_batch(_batch())
    writer.close()

    with open(path, "r", encoding="utf-8") as f:
        lines = [line.strip() for line in f.readlines()]
    assert lines[0] == "ply"
    assert "element vertex 3" in lines
    assert "property float nx" in lines
    end_idx = lines.index("end_header")
    data = np.array([[float(val) for val in row.split()] for row in lines[end_idx + 1:]])
    assert data.shape == (3, 6)
    np.testing.assert_allclose(data[:, :3], _batch().xyz)
    np.testing.assert_allclose(data[:, 3:], _batch().normals)


def test_las_writer_stores_normals_as_extra_bytes(tmp_path) -> None:
    laspy = pytest.importorskip("laspy")
    path = tmp_path / "points.las"
    writer = LasWriter(str(path))
    writer.write_batch(_batch())
    writer.close()

    las = laspy.read(path)
    assert len(las.x) == 3
    np.testing.assert_allclose(np.asarray(las.z), [0.0, 0.25, 2.0], atol=1e-3)
    assert {"NormalX", "NormalY", "NormalZ", "TriangleId"} <= set(las.point_format.extra_dimension_names)
    np.testing.assert_allclose(np.asarray(las["NormalZ"]), [1.0, 0.0, 0.0])
    np.testing.assert_array_equal(np.asarray(las["TriangleId"]), [0, 3, 7])


def test_vtp_writer_round_trip(tmp_path) -> None:
    vtk = pytest.importorskip("vtk")
    path = tmp_path / "points.vtp"
    writer = VtpWriter(str(path))
    writer.write_batch(_batch())
    writer.close()

    reader = vtk.vtkXMLPolyDataReader()
    reader.SetFileName(str(path))
    reader.Update()
    poly = reader.GetOutput()
    assert poly.GetNumberOfPoints() == 3
    assert poly.GetNumberOfVerts() == 3
    assert poly.GetPointData().GetNormals() is not None
    assert poly.GetPointData().GetArray("TriangleId") is not None


def test_las_writer_handles_large_extent_meshes(tmp_path) -> None:
    laspy = pytest.importorskip("laspy")
    from stratmesh.core.sampler import SamplerConfig, StratifiedSampler
    from stratmesh.core.scene import SurfaceMesh

    vertices = np.array([[0.0, 0.0, 0.0], [5000.0, 0.0, 0.0], [0.0, 5000.0, 0.0]])
    faces = np.array([[0, 1, 2]], dtype=np.int64)
    normals = np.tile([0.0, 0.0, 1.0], (3, 1))
    mesh = SurfaceMesh(vertices, faces, normals)
    sampler = StratifiedSampler(mesh, SamplerConfig(level=0, lambda_=1e-5))

    path = tmp_path / "wide.las"
    stats = sampler.run_to_writer(LasWriter(str(path)), seed=0)

    las = laspy.read(path)
    assert len(las.x) == stats["points"] > 0
    assert np.all(np.asarray(las.x) >= -1e-2)
    assert np.all(np.asarray(las.x) + np.asarray(las.y) <= 5000.0 + 1e-2)


def test_las_writer_coarsens_scale_beyond_int32_range(tmp_path) -> None:
    laspy = pytest.importorskip("laspy")
    xyz = np.array([[0.0, 0.0, 0.0], [1.0e8, 2.0, 3.0]], dtype=np.float32)
    path = tmp_path / "far.las"
    writer = LasWriter(str(path))
    writer.write_batch(PointBatch(xyz=xyz, attrs={}))
    writer.close()

    las = laspy.read(path)
    scales = las.header.scales
    assert scales[0] > 1e-3
    assert scales[1] == pytest.approx(1e-3)
    np.testing.assert_allclose(np.asarray(las.x), xyz[:, 0], atol=scales[0])
    np.testing.assert_allclose(np.asarray(las.z), xyz[:, 2], atol=1e-3)

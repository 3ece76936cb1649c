from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Dict, Any, List
import numpy as np
import pathlib

import laspy  # type: ignore
from .pointcloud import PointBatch, concatenate_batches
from .utils import get_logger

_log = get_logger()

# Largest scaled coordinate a LAS int32 can hold, with headroom for rounding.
_LAS_INT_LIMIT = 2**31 - 1024

# Per-point attributes mapped onto LAS extra-bytes dimensions.
_LAS_EXTRAS: Dict[str, List[tuple[str, str]]] = {
    "normal": [("NormalX", "float32"), ("NormalY", "float32"), ("NormalZ", "float32")],
    "triangle_id": [("TriangleId", "uint32")],
    "stratum_index": [("StratumIndex", "uint32")],
}


@dataclass
class LasWriter:
    """Streaming LAS/LAZ writer using laspy (v2+).

    The header is created on the first batch so the extra-bytes dimensions
    match the attributes actually present.
    """
    path: str
    point_format: int = 6
    compress: bool = False
    scale: tuple[float, float, float] = (1e-3, 1e-3, 1e-3)
    offset: Optional[tuple[float, float, float]] = None

    def __post_init__(self) -> None:
        self._fh: Optional[laspy.LasWriter] = None  # type: ignore
        self._header: Optional[laspy.LasHeader] = None  # type: ignore
        self._extras: Dict[str, List[str]] = {}
        self._closed = False

    def write_batch(self, batch: PointBatch) -> None:
        if self._fh is None:
            self._open(batch)
        assert self._fh is not None and self._header is not None
        if len(batch) == 0:
            return
        self._fh.write_points(self._records(batch))

    def close(self) -> None:
        if self._closed:
            return
        if self._fh is None:
            self._open(PointBatch.empty())
        assert self._fh is not None
        self._fh.close()
        self._fh = None
        self._closed = True

    def _open(self, batch: PointBatch) -> None:
        hdr = laspy.LasHeader(point_format=laspy.PointFormat(self.point_format), version="1.4")
        if self.offset is not None:
            offsets = np.asarray(self.offset, dtype=np.float64)
        elif len(batch):
            offsets = np.min(batch.xyz, axis=0).astype(np.float64)
        else:
            offsets = np.zeros(3)
        hdr.offsets = offsets
        hdr.scales = self._scales_for(batch, offsets)

        for attr, dims in _LAS_EXTRAS.items():
            if attr not in batch.attrs:
                continue
            for name, dtype in dims:
                hdr.add_extra_dim(laspy.ExtraBytesParams(name=name, type=dtype))
            self._extras[attr] = [name for name, _ in dims]

        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = laspy.open(path, mode="w", header=hdr, do_compress=self.compress)
        self._header = hdr
        _log.info("Opened %s (PF=%d, compress=%s)", path.name, self.point_format, self.compress)

    def _scales_for(self, batch: PointBatch, offsets: np.ndarray) -> np.ndarray:
        """Requested scales, coarsened per axis where the batch would overflow int32."""
        scales = np.asarray(self.scale, dtype=np.float64)
        if len(batch) == 0:
            return scales
        xyz = batch.xyz.astype(np.float64)
        reach = np.max(np.abs(xyz - offsets), axis=0)
        needed = reach / _LAS_INT_LIMIT
        coarse = needed > scales
        if np.any(coarse):
            scales = np.where(coarse, needed, scales)
            _log.warning(
                "Point extent %s exceeds the LAS range at scale %s; using scales %s.",
                reach.tolist(), list(self.scale), scales.tolist(),
            )
        return scales

    def _records(self, batch: PointBatch) -> "laspy.ScaleAwarePointRecord":
        pts = laspy.ScaleAwarePointRecord.zeros(len(batch), header=self._header)
        pts.x = batch.xyz[:, 0]
        pts.y = batch.xyz[:, 1]
        pts.z = batch.xyz[:, 2]
        for attr, names in self._extras.items():
            if attr not in batch.attrs:
                _log.warning("Batch lacks '%s' declared in the LAS header; writing zeros.", attr)
                continue
            values = batch.attrs[attr]
            if values.ndim == 1:
                values = values[:, None]
            for col, name in enumerate(names):
                pts[name] = values[:, col]
        return pts


class PlyWriter:
    """ASCII PLY point set: xyz plus nx/ny/nz when normals are present."""
    def __init__(self, path: str) -> None:
        self.path = path
        self._batches: List[PointBatch] = []
        self._closed = False

    def write_batch(self, batch: PointBatch) -> None:
        self._batches.append(batch)

    def close(self) -> None:
        if self._closed:
            return
        batch = concatenate_batches(self._batches)
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        normals = batch.attrs.get("normal")
        with open(path, "w", encoding="utf-8") as f:
            f.write("ply\nformat ascii 1.0\n")
            f.write(f"element vertex {len(batch)}\n")
            f.write("property float x\nproperty float y\nproperty float z\n")
            if normals is not None:
                f.write("property float nx\nproperty float ny\nproperty float nz\n")
            f.write("end_header\n")
            if normals is None:
                for x, y, z in batch.xyz:
                    f.write(f"{float(x)} {float(y)} {float(z)}\n")
            else:
                for (x, y, z), (nx, ny, nz) in zip(batch.xyz, normals):
                    f.write(f"{float(x)} {float(y)} {float(z)} {float(nx)} {float(ny)} {float(nz)}\n")
        self._batches.clear()
        self._closed = True


class NpzWriter:
    """Compressed NumPy archive with ``xyz`` and one array per attribute."""
    def __init__(self, path: str) -> None:
        self.path = path
        self._batches: List[PointBatch] = []
        self._closed = False

    def write_batch(self, batch: PointBatch) -> None:
        self._batches.append(batch)

    def close(self) -> None:
        if self._closed:
            return
        batch = concatenate_batches(self._batches)
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        out: Dict[str, Any] = {"xyz": batch.xyz}
        out.update(batch.attrs)
        np.savez_compressed(path, **out)
        self._batches.clear()
        self._closed = True


class VtpWriter:
    """VTK XML poly data with one vertex cell per point; requires VTK."""
    def __init__(self, path: str, binary: bool = True) -> None:
        self.path = path
        self.binary = binary
        self._batches: List[PointBatch] = []
        self._closed = False

    def write_batch(self, batch: PointBatch) -> None:
        self._batches.append(batch)

    def close(self) -> None:
        if self._closed:
            return
        try:
            import vtk  # type: ignore
            from vtk.util.numpy_support import numpy_to_vtk
        except Exception as exc:
            raise RuntimeError("VTK is required to write .vtp output.") from exc

        batch = concatenate_batches(self._batches)
        n = len(batch)
        pts = vtk.vtkPoints()
        pts.SetData(numpy_to_vtk(np.ascontiguousarray(batch.xyz, dtype=np.float32), deep=True))
        verts = vtk.vtkCellArray()
        for i in range(n):
            verts.InsertNextCell(1)
            verts.InsertCellPoint(i)

        poly = vtk.vtkPolyData()
        poly.SetPoints(pts)
        poly.SetVerts(verts)
        if "normal" in batch.attrs:
            normals = numpy_to_vtk(np.ascontiguousarray(batch.attrs["normal"], dtype=np.float32), deep=True)
            normals.SetName("Normals")
            poly.GetPointData().SetNormals(normals)
        if "triangle_id" in batch.attrs:
            ids = numpy_to_vtk(np.ascontiguousarray(batch.attrs["triangle_id"], dtype=np.int64), deep=True)
            ids.SetName("TriangleId")
            poly.GetPointData().AddArray(ids)

        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        writer = vtk.vtkXMLPolyDataWriter()
        writer.SetFileName(str(path))
        writer.SetInputData(poly)
        if self.binary:
            writer.SetDataModeToBinary()
        else:
            writer.SetDataModeToAscii()
        writer.Write()
        self._batches.clear()
        self._closed = True

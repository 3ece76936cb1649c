from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
import numpy as np

from .quality import triangle_areas, triangle_qualities
from .utils import get_logger, readonly, ensure_unit_vectors

_log = get_logger()

try:
    import vtk  # type: ignore
    from vtk.util.numpy_support import vtk_to_numpy
    _HAVE_VTK = True
except Exception:
    vtk = None  # type: ignore
    _HAVE_VTK = False

try:
    import trimesh  # type: ignore
    _HAVE_TRIMESH = True
except Exception:
    trimesh = None  # type: ignore
    _HAVE_TRIMESH = False


@dataclass(frozen=True)
class TriangleRecord:
    """Per-triangle data derived once per sampling run."""
    index: int
    vertex_ids: Tuple[int, int, int]
    area: float
    quality: float


class SurfaceMesh:
    """Read-only triangle mesh with per-vertex positions and normals.

    Normals are expected to be ready for barycentric interpolation, i.e.
    already split at sharp edges if that is wanted. The loaders can ask VTK
    to do the splitting (``feature_angle_deg``) the same way an upstream
    ``vtkPolyDataNormals`` stage would.
    """
    def __init__(self, vertices: np.ndarray, faces: np.ndarray, normals: np.ndarray) -> None:
        v = np.asarray(vertices, dtype=np.float64)
        f = np.asarray(faces)
        n = np.asarray(normals, dtype=np.float64) if normals is not None else None

        if v.ndim != 2 or v.shape[1] != 3:
            raise ValueError(f"vertices must have shape (N, 3), got {v.shape}")
        if f.size == 0:
            f = f.reshape(0, 3)
        if f.ndim != 2 or f.shape[1] != 3:
            raise ValueError(f"faces must have shape (M, 3), got {f.shape}")
        if not np.issubdtype(f.dtype, np.integer):
            raise ValueError("faces must hold integer vertex indices")
        if n is None:
            raise ValueError("SurfaceMesh requires per-vertex normals.")
        if n.shape != v.shape:
            raise ValueError(f"normals shape {n.shape} != vertices shape {v.shape}")
        if not np.all(np.isfinite(v)):
            raise ValueError("vertices contain non-finite coordinates")
        if f.size and (f.min() < 0 or f.max() >= len(v)):
            raise ValueError("face index out of range")

        self._vertices = readonly(v)
        self._faces = readonly(f.astype(np.int64, copy=False))
        self._normals = readonly(n)

    # -- constructors --
    @classmethod
    def from_arrays(cls, vertices: np.ndarray, faces: np.ndarray, normals: Optional[np.ndarray] = None) -> "SurfaceMesh":
        if normals is None:
            normals = _upstream_normals(np.asarray(vertices, dtype=np.float64), np.asarray(faces, dtype=np.int64))
        return cls(vertices, faces, normals)

    @classmethod
    def from_vtk(cls, poly: "vtk.vtkPolyData", compute_normals: bool = True, feature_angle_deg: Optional[float] = None) -> "SurfaceMesh":
        if not _HAVE_VTK:
            raise RuntimeError("VTK is required to pass in vtkPolyData.")
        poly = _vtk_prepare(poly, compute_normals, feature_angle_deg)
        return cls(*_numpy_from_vtk(poly))

    @classmethod
    def from_path(cls, path: str | Path, compute_normals: bool = True, feature_angle_deg: Optional[float] = None) -> "SurfaceMesh":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(path)
        suffix = path.suffix.lower()

        if suffix == ".ply" and _is_ascii_ply(path) and feature_angle_deg is None:
            vertices, faces, normals = _load_ascii_ply(path)
            if normals is None:
                if not compute_normals:
                    raise ValueError(f"{path.name} has no per-vertex normals.")
                normals = _upstream_normals(vertices, faces)
            return cls(vertices, faces, normals)

        if _HAVE_VTK:
            if suffix == ".ply":
                reader = vtk.vtkPLYReader()
            elif suffix == ".vtp":
                reader = vtk.vtkXMLPolyDataReader()
            elif suffix == ".obj":
                reader = vtk.vtkOBJReader()
            elif suffix == ".stl":
                reader = vtk.vtkSTLReader()
            else:
                _log.warning("Unknown mesh extension '%s'; trying VTK's generic reader.", suffix)
                reader = vtk.vtkGenericDataObjectReader()
            reader.SetFileName(str(path))
            reader.Update()
            return cls.from_vtk(reader.GetOutput(), compute_normals=compute_normals, feature_angle_deg=feature_angle_deg)

        if feature_angle_deg is not None:
            _log.warning("Sharp-edge normal splitting needs VTK; using normals as loaded.")

        if _HAVE_TRIMESH:
            tm = trimesh.load_mesh(str(path), process=False, force="mesh")
            vertices = np.asarray(tm.vertices, dtype=np.float64)
            faces = np.asarray(tm.faces, dtype=np.int64)
            # trimesh fills in area-weighted normals when the file has none
            return cls(vertices, faces, np.asarray(tm.vertex_normals, dtype=np.float64))

        if suffix == ".ply":
            raise RuntimeError("Binary PLY needs VTK or trimesh installed.")
        raise RuntimeError("Install VTK/trimesh or provide ASCII PLY mesh.")

    # -- API --
    @property
    def vertices(self) -> np.ndarray:
        return self._vertices

    @property
    def faces(self) -> np.ndarray:
        return self._faces

    @property
    def normals(self) -> np.ndarray:
        return self._normals

    @property
    def n_triangles(self) -> int:
        return int(self._faces.shape[0])

    def bounds(self) -> tuple[float, float, float, float, float, float]:
        if len(self._vertices) == 0:
            raise RuntimeError("Mesh has no vertices.")
        mn = self._vertices.min(axis=0)
        mx = self._vertices.max(axis=0)
        return (float(mn[0]), float(mx[0]), float(mn[1]), float(mx[1]), float(mn[2]), float(mx[2]))

    def triangle(self, index: int) -> tuple[np.ndarray, np.ndarray]:
        """Corner positions and normals of one face, each (3, 3)."""
        ids = self._faces[index]
        return self._vertices[ids], self._normals[ids]

    def triangle_areas(self) -> np.ndarray:
        return triangle_areas(self._vertices, self._faces)

    def triangle_qualities(self) -> np.ndarray:
        return triangle_qualities(self._vertices, self._faces)

    def surface_area(self) -> float:
        return float(self.triangle_areas().sum())

    def triangle_records(self) -> List[TriangleRecord]:
        areas = self.triangle_areas()
        qualities = self.triangle_qualities()
        return [
            TriangleRecord(
                index=i,
                vertex_ids=(int(f[0]), int(f[1]), int(f[2])),
                area=float(areas[i]),
                quality=float(qualities[i]),
            )
            for i, f in enumerate(self._faces)
        ]


# -- normals produced upstream of the sampler --
def _upstream_normals(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    if _HAVE_TRIMESH:
        tm = trimesh.Trimesh(vertices=vertices, faces=faces, process=False)
        return np.asarray(tm.vertex_normals, dtype=np.float64)
    if _HAVE_VTK:
        poly = _vtk_from_numpy(vertices, faces)
        poly = _vtk_prepare(poly, compute_normals=True, feature_angle_deg=None)
        _, _, normals = _numpy_from_vtk(poly)
        return normals
    raise RuntimeError("Mesh has no normals; install trimesh or VTK to compute them upstream.")


# -- VTK helpers --
def _vtk_prepare(poly: "vtk.vtkPolyData", compute_normals: bool, feature_angle_deg: Optional[float]) -> "vtk.vtkPolyData":
    tri = vtk.vtkTriangleFilter()
    tri.SetInputData(poly)
    tri.PassLinesOff()
    tri.PassVertsOff()
    tri.Update()
    poly = tri.GetOutput()

    has_normals = poly.GetPointData().GetNormals() is not None
    if feature_angle_deg is not None or (compute_normals and not has_normals):
        n = vtk.vtkPolyDataNormals()
        n.SetInputData(poly)
        n.ComputePointNormalsOn()
        n.ComputeCellNormalsOff()
        n.ConsistencyOn()
        if feature_angle_deg is not None:
            n.SplittingOn()
            n.SetFeatureAngle(float(feature_angle_deg))
        else:
            n.SplittingOff()
        n.Update()
        poly = n.GetOutput()
    elif not has_normals:
        raise ValueError("Mesh has no per-vertex normals.")
    return poly


def _numpy_from_vtk(poly: "vtk.vtkPolyData") -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    pts = vtk_to_numpy(poly.GetPoints().GetData()).astype(np.float64)
    polys = vtk_to_numpy(poly.GetPolys().GetData())
    faces = polys.reshape(-1, 4)[:, 1:4].astype(np.int64)
    normals = vtk_to_numpy(poly.GetPointData().GetNormals()).astype(np.float64)
    return pts, faces, ensure_unit_vectors(normals)


def _vtk_from_numpy(vertices: np.ndarray, faces: np.ndarray) -> "vtk.vtkPolyData":
    pts = vtk.vtkPoints()
    pts.SetNumberOfPoints(len(vertices))
    for i, (x, y, z) in enumerate(vertices):
        pts.SetPoint(i, float(x), float(y), float(z))
    cells = vtk.vtkCellArray()
    for a, b, c in faces:
        cells.InsertNextCell(3)
        cells.InsertCellPoint(int(a))
        cells.InsertCellPoint(int(b))
        cells.InsertCellPoint(int(c))
    poly = vtk.vtkPolyData()
    poly.SetPoints(pts)
    poly.SetPolys(cells)
    return poly


# -- ASCII PLY --
def _is_ascii_ply(path: Path) -> bool:
    with open(path, "rb") as f:
        head = f.read(256)
    lines = head.split(b"\n")
    return len(lines) > 1 and lines[0].strip() == b"ply" and lines[1].strip().startswith(b"format ascii")


def _load_ascii_ply(path: Path) -> tuple[np.ndarray, np.ndarray, Optional[np.ndarray]]:
    with open(path, "r", encoding="utf-8") as f:
        header: list[str] = []
        while True:
            line = f.readline()
            if not line:
                raise RuntimeError("Unexpected EOF while reading PLY header.")
            line = line.strip()
            header.append(line)
            if line == "end_header":
                break

        n_vertices = 0
        n_faces = 0
        vertex_props: list[str] = []
        current_element = None
        for line in header[2:]:
            parts = line.split()
            if not parts:
                continue
            if parts[0] == "element":
                current_element = parts[1]
                if current_element == "vertex":
                    n_vertices = int(parts[2])
                elif current_element == "face":
                    n_faces = int(parts[2])
            elif parts[0] == "property" and current_element == "vertex":
                vertex_props.append(parts[-1])

        for name in ("x", "y", "z"):
            if name not in vertex_props:
                raise RuntimeError(f"PLY vertex element lacks property '{name}'.")
        xyz_cols = [vertex_props.index(c) for c in ("x", "y", "z")]
        has_normals = all(c in vertex_props for c in ("nx", "ny", "nz"))
        nrm_cols = [vertex_props.index(c) for c in ("nx", "ny", "nz")] if has_normals else []

        rows = []
        for _ in range(n_vertices):
            parts = f.readline().split()
            if len(parts) < len(vertex_props):
                raise RuntimeError("Vertex line is shorter than the declared properties.")
            rows.append([float(v) for v in parts[: len(vertex_props)]])

        faces = []
        for _ in range(n_faces):
            parts = f.readline().split()
            if not parts:
                continue
            if int(parts[0]) != 3:
                raise RuntimeError("Only triangular faces are supported in ASCII PLY.")
            faces.append(tuple(int(v) for v in parts[1:4]))

    table = np.asarray(rows, dtype=np.float64).reshape(n_vertices, len(vertex_props))
    vertices = table[:, xyz_cols]
    normals = ensure_unit_vectors(table[:, nrm_cols]) if has_normals else None
    return vertices, np.asarray(faces, dtype=np.int64).reshape(-1, 3), normals

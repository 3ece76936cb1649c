from __future__ import annotations

from pathlib import Path

from ..config import RunConfig
from ..config.schema import OUTPUT_EXTENSIONS
from ..core.exporter import LasWriter, NpzWriter, PlyWriter, VtpWriter
from ..core.sampler import SamplerConfig
from ..core.scene import SurfaceMesh


def build_mesh(cfg: RunConfig) -> SurfaceMesh:
    mesh_cfg = cfg.mesh
    return SurfaceMesh.from_path(
        mesh_cfg.path,
        compute_normals=mesh_cfg.compute_normals,
        feature_angle_deg=mesh_cfg.feature_angle_deg,
    )


def build_sampler_config(cfg: RunConfig) -> SamplerConfig:
    s = cfg.sampling
    return SamplerConfig(
        level=s.level,
        lambda_=s.lambda_,
        bad=s.bad,
        max_expected_per_stratum=s.max_expected_per_stratum,
        max_points_per_stratum=s.max_points_per_stratum,
        workers=s.workers,
    )


def apply_output_override(cfg: RunConfig, output: Path) -> None:
    """Point the run at ``output``; its extension selects the format."""
    out = Path(output).resolve()
    ext = out.suffix.lower()
    if ext not in OUTPUT_EXTENSIONS:
        raise ValueError(f"Unsupported output extension '{ext}'")
    cfg.output.path = out
    cfg.output.format = ext.lstrip(".")  # type: ignore[assignment]
    if ext == ".las":
        cfg.output.compress = False
    elif ext == ".laz":
        cfg.output.compress = True if cfg.output.compress is None else cfg.output.compress


def build_writer(cfg: RunConfig):
    out_cfg = cfg.output
    format_lower = out_cfg.format.lower()
    if format_lower in {"las", "laz"}:
        compress = out_cfg.compress
        if compress is None:
            compress = format_lower == "laz"
        return LasWriter(
            str(out_cfg.path),
            point_format=out_cfg.point_format,
            compress=compress,
        )
    if format_lower == "npz":
        return NpzWriter(str(out_cfg.path))
    if format_lower == "ply":
        return PlyWriter(str(out_cfg.path))
    if format_lower == "vtp":
        return VtpWriter(str(out_cfg.path))
    raise ValueError(f"Unsupported output format: {out_cfg.format}")


def writer_for_path(path: Path):
    fmt = Path(path).suffix.lower()
    if fmt == ".las":
        return LasWriter(str(path), compress=False)
    if fmt == ".laz":
        return LasWriter(str(path), compress=True)
    if fmt == ".npz":
        return NpzWriter(str(path))
    if fmt == ".ply":
        return PlyWriter(str(path))
    if fmt == ".vtp":
        return VtpWriter(str(path))
    raise ValueError(f"Output must end with one of {sorted(OUTPUT_EXTENSIONS)}")

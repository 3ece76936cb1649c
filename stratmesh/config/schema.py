from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..core.errors import ConfigurationError


class MeshConfig(BaseModel):
    path: Path
    compute_normals: bool = True
    feature_angle_deg: Optional[float] = Field(default=None, gt=0.0, le=180.0)


class SamplingConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    level: int = Field(default=3, ge=0, strict=True)
    lambda_: float = Field(default=10.0, ge=0.0, allow_inf_nan=False, alias="lambda")
    bad: float = Field(default=0.5, ge=0.0, le=1.0)
    max_expected_per_stratum: float = Field(default=32.0, gt=0.0)
    max_points_per_stratum: int = Field(default=100_000, ge=1)
    workers: int = Field(default=1, ge=1)


OutputFormat = Literal["npz", "ply", "las", "laz", "vtp"]
OUTPUT_EXTENSIONS = {".npz", ".ply", ".las", ".laz", ".vtp"}


class OutputConfig(BaseModel):
    path: Path
    format: OutputFormat = "npz"
    compress: Optional[bool] = None
    point_format: int = 6

    @model_validator(mode="after")
    def _validate_format(self) -> "OutputConfig":
        if self.format == "laz" and self.compress is False:
            raise ValueError("format 'laz' implies compress=True")
        return self


class RunConfig(BaseModel):
    mesh: MeshConfig
    sampling: SamplingConfigModel = SamplingConfigModel()
    output: OutputConfig
    seed: Optional[int] = Field(default=None, ge=0)


def parse_config(data: object, base_dir: Optional[Path] = None) -> RunConfig:
    """Validate a mapping; relative paths resolve against ``base_dir``."""
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a mapping.")
    try:
        cfg = RunConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
    if base_dir is not None:
        if not cfg.output.path.is_absolute():
            cfg.output.path = (base_dir / cfg.output.path).resolve()
        if not cfg.mesh.path.is_absolute():
            cfg.mesh.path = (base_dir / cfg.mesh.path).resolve()
    return cfg


def load_config(path: str | Path) -> RunConfig:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse {path.name}: {exc}") from exc
    return parse_config(data, base_dir=path.parent)

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import yaml

from stratmesh.config import load_config
from stratmesh.core.errors import ConfigurationError
from stratmesh.examples.synthetic import generate_mesh
from stratmesh.sdk import sample_from_config


def _write_config(path: Path, mesh_name: str, output_name: str, **sampling) -> None:
    config = {
        "mesh": {"path": mesh_name},
        "sampling": {"level": 3, "lambda": 400.0, "bad": 0.5, **sampling},
        "output": {"path": output_name, "format": "npz"},
        "seed": 123,
    }
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f)


def _setup(tmp_path: Path, output_name: str = "points.npz", **sampling) -> Path:
    generate_mesh("arrow", 1.0, tmp_path / "arrow.ply")
    cfg_path = tmp_path / "run.yaml"
    _write_config(cfg_path, "arrow.ply", output_name, **sampling)
    return cfg_path


def test_sample_from_config_path(tmp_path: Path) -> None:
    cfg_path = _setup(tmp_path)
    result = sample_from_config(cfg_path)

    assert result.output_path.exists()
    assert str(result.output_path).endswith("points.npz")
    with np.load(result.output_path) as data:
        xyz = data["xyz"]
        normals = data["normal"]
    assert xyz.shape[0] == result.stats["points"] > 0
    np.testing.assert_allclose(np.linalg.norm(normals, axis=1), 1.0, atol=1e-5)
    assert result.stats["triangles"] == 36


def test_same_seed_gives_identical_files(tmp_path: Path) -> None:
    cfg_path = _setup(tmp_path)
    first = sample_from_config(cfg_path, output=tmp_path / "a.npz")
    second = sample_from_config(cfg_path, output=tmp_path / "b.npz")
    with np.load(first.output_path) as a, np.load(second.output_path) as b:
        np.testing.assert_array_equal(a["xyz"], b["xyz"])


def test_sample_from_config_object_override(tmp_path: Path) -> None:
    cfg_path = _setup(tmp_path)
    cfg = load_config(cfg_path)

    override_path = tmp_path / "override.ply"
    result = sample_from_config(cfg, output=override_path, seed=999, level=0, lambda_=0.0)

    assert result.output_path == override_path.resolve()
    assert result.config.output.format == "ply"
    assert result.config.sampling.level == 0
    assert result.stats["points"] == 0
    with open(override_path, "r", encoding="utf-8") as f:
        lines = [line.strip() for line in f]
    assert "element vertex 0" in lines
    # the caller's object is left untouched
    assert cfg.sampling.level == 3


def test_invalid_override_fails_before_sampling(tmp_path: Path) -> None:
    cfg_path = _setup(tmp_path, output_name="never.npz")
    with pytest.raises(ConfigurationError):
        sample_from_config(cfg_path, lambda_=-5.0)
    assert not (tmp_path / "never.npz").exists()


def test_negative_seed_fails_before_sampling(tmp_path: Path) -> None:
    cfg_path = _setup(tmp_path, output_name="never.npz")
    with pytest.raises(ConfigurationError):
        sample_from_config(cfg_path, seed=-3)
    assert not (tmp_path / "never.npz").exists()

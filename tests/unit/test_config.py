from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from stratmesh.config import load_config, parse_config
from stratmesh.core.errors import ConfigurationError
from stratmesh.runtime.builders import apply_output_override, build_sampler_config, build_writer
from stratmesh.core.exporter import LasWriter, NpzWriter


def _write(path: Path, data: object) -> Path:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return path


def test_load_config_resolves_relative_paths(tmp_path: Path) -> None:
    cfg_path = _write(tmp_path / "run.yaml", {
        "mesh": {"path": "meshes/arrow.ply"},
        "sampling": {"level": 8, "lambda": 10.0, "bad": 0.5},
        "output": {"path": "out/points.npz"},
        "seed": 5,
    })
    cfg = load_config(cfg_path)
    assert cfg.mesh.path == (tmp_path / "meshes" / "arrow.ply").resolve()
    assert cfg.output.path == (tmp_path / "out" / "points.npz").resolve()
    assert cfg.sampling.level == 8
    assert cfg.sampling.lambda_ == 10.0
    assert cfg.seed == 5


def test_defaults_fill_sampling_section() -> None:
    cfg = parse_config({"mesh": {"path": "/m.ply"}, "output": {"path": "/o.npz"}})
    sampler_cfg = build_sampler_config(cfg)
    assert sampler_cfg.level == 3
    assert sampler_cfg.lambda_ == 10.0
    assert sampler_cfg.bad == 0.5
    assert sampler_cfg.max_expected_per_stratum == 32.0
    assert isinstance(build_writer(cfg), NpzWriter)


@pytest.mark.parametrize(
    "sampling",
    [
        {"lambda": -1.0},
        {"level": -2},
        {"level": 1.5},
        {"bad": 2.0},
        {"workers": 0},
    ],
)
def test_invalid_sampling_section_is_a_configuration_error(sampling: dict) -> None:
    with pytest.raises(ConfigurationError):
        parse_config({"mesh": {"path": "/m.ply"}, "sampling": sampling, "output": {"path": "/o.npz"}})


def test_non_mapping_root_is_rejected(tmp_path: Path) -> None:
    cfg_path = _write(tmp_path / "bad.yaml", [1, 2, 3])
    with pytest.raises(ConfigurationError):
        load_config(cfg_path)


def test_output_override_sets_format() -> None:
    cfg = parse_config({"mesh": {"path": "/m.ply"}, "output": {"path": "/o.npz"}})
    apply_output_override(cfg, Path("/tmp/points.laz"))
    assert cfg.output.format == "laz"
    assert cfg.output.compress is True
    writer = build_writer(cfg)
    assert isinstance(writer, LasWriter) and writer.compress
    with pytest.raises(ValueError):
        apply_output_override(cfg, Path("/tmp/points.xyz"))


def test_negative_seed_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        parse_config({"mesh": {"path": "/m.ply"}, "output": {"path": "/o.npz"}, "seed": -4})

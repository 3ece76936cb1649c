from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..config import RunConfig, load_config
from ..core.sampler import StratifiedSampler, validate_seed
from ..runtime.builders import (
    apply_output_override,
    build_mesh,
    build_sampler_config,
    build_writer,
)


@dataclass(frozen=True)
class ConfigRunResult:
    """Summary of a sampling run driven by a configuration file."""

    stats: Dict[str, Any]
    output_path: Path
    config: RunConfig


def sample_from_config(
    config: Union[str, Path, RunConfig],
    *,
    output: Optional[Path] = None,
    seed: Optional[int] = None,
    level: Optional[int] = None,
    lambda_: Optional[float] = None,
    bad: Optional[float] = None,
    workers: Optional[int] = None,
) -> ConfigRunResult:
    """Run a sampling job described by a configuration file or object.

    Parameters
    ----------
    config:
        Path to a YAML file or a pre-loaded :class:`~stratmesh.config.schema.RunConfig`.
    output:
        Optional override for the output file. The extension drives the
        format (``.npz``, ``.ply``, ``.las``, ``.laz`` or ``.vtp``).
    seed:
        Optional RNG seed. Falls back to the value in the config; without
        either the run draws fresh entropy and is not reproducible.
    level, lambda_, bad, workers:
        Optional overrides of the ``sampling`` section.

    Returns
    -------
    ConfigRunResult
        Run statistics, the resolved output path and the configuration
        object actually used.

    Raises
    ------
    ConfigurationError
        If the file or any override holds invalid sampling parameters.
    """

    cfg = load_config(config) if not isinstance(config, RunConfig) else config.model_copy(deep=True)

    if level is not None:
        cfg.sampling.level = level
    if lambda_ is not None:
        cfg.sampling.lambda_ = lambda_
    if bad is not None:
        cfg.sampling.bad = bad
    if workers is not None:
        cfg.sampling.workers = workers
    if output is not None:
        apply_output_override(cfg, output)
    else:
        cfg.output.path = Path(cfg.output.path).resolve()

    # Validate before touching the mesh or the filesystem.
    sampler_cfg = build_sampler_config(cfg)
    run_seed = seed if seed is not None else cfg.seed
    validate_seed(run_seed)
    cfg.output.path.parent.mkdir(parents=True, exist_ok=True)

    mesh = build_mesh(cfg)
    sampler = StratifiedSampler(mesh, cfg=sampler_cfg)
    writer = build_writer(cfg)

    stats = sampler.run_to_writer(writer, seed=run_seed)

    return ConfigRunResult(stats=stats, output_path=Path(cfg.output.path), config=cfg)

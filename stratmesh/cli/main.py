from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from ..config.schema import OUTPUT_EXTENSIONS
from ..core.errors import ConfigurationError
from ..core.quality import summarize
from ..core.sampler import SamplerConfig, StratifiedSampler
from ..core.scene import SurfaceMesh
from ..examples.synthetic import PRESETS, generate_mesh
from ..runtime.builders import writer_for_path
from ..sdk import sample_from_config

app = typer.Typer(help="Stratified point sampling of triangle meshes")
mesh_app = typer.Typer(help="Synthetic mesh helpers")
app.add_typer(mesh_app, name="mesh")


def _configure_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="[%(levelname)s] %(message)s")
    logging.getLogger("stratmesh").setLevel(numeric)


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=2)


def _execute_sample(
    config: Path,
    output_override: Optional[Path],
    seed_override: Optional[int],
    level: Optional[int],
    lambda_: Optional[float],
    bad: Optional[float],
    workers: Optional[int],
    log_level: str,
) -> None:
    _configure_logging(log_level)
    if output_override is not None and output_override.suffix.lower() not in OUTPUT_EXTENSIONS:
        raise typer.BadParameter(
            f"Output must end with one of {sorted(OUTPUT_EXTENSIONS)}", param_hint="--output"
        )
    try:
        result = sample_from_config(
            config,
            output=output_override,
            seed=seed_override,
            level=level,
            lambda_=lambda_,
            bad=bad,
            workers=workers,
        )
    except ConfigurationError as exc:
        _fail(str(exc))
    stats = result.stats
    typer.echo(f"Completed {stats['points']} points from {stats['leaves']} strata → {result.output_path}")


@app.command("sample")
def sample(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override output path (extension sets format)."),
    seed: Optional[int] = typer.Option(None, "--seed", min=0, help="Override random seed."),
    level: Optional[int] = typer.Option(None, "--level", help="Override maximum subdivision depth."),
    lambda_: Optional[float] = typer.Option(None, "--lambda", help="Override expected samples per unit area."),
    bad: Optional[float] = typer.Option(None, "--bad", help="Override quality threshold in [0, 1]."),
    workers: Optional[int] = typer.Option(None, "--workers", help="Override number of worker threads."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Run a sampling job specified by a YAML config."""

    _execute_sample(config, output, seed, level, lambda_, bad, workers, log_level)


@app.command("run")
def run(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override output path (extension sets format)."),
    seed: Optional[int] = typer.Option(None, "--seed", min=0, help="Override random seed."),
    level: Optional[int] = typer.Option(None, "--level", help="Override maximum subdivision depth."),
    lambda_: Optional[float] = typer.Option(None, "--lambda", help="Override expected samples per unit area."),
    bad: Optional[float] = typer.Option(None, "--bad", help="Override quality threshold in [0, 1]."),
    workers: Optional[int] = typer.Option(None, "--workers", help="Override number of worker threads."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Alias for `sample`"""

    _execute_sample(config, output, seed, level, lambda_, bad, workers, log_level)


@app.command("sample-mesh")
def sample_mesh_cli(
    mesh: Path = typer.Option(..., "--mesh", help="Input mesh path.", exists=True, file_okay=True, dir_okay=False, readable=True),
    output: Path = typer.Option(..., "--output", "-o", help="Output point set path (.npz/.ply/.las/.laz/.vtp)."),
    level: int = typer.Option(3, "--level", help="Maximum subdivision depth."),
    lambda_: float = typer.Option(10.0, "--lambda", help="Expected samples per unit area."),
    bad: float = typer.Option(0.5, "--bad", help="Quality threshold below which strata keep splitting."),
    max_expected: float = typer.Option(32.0, "--max-expected", help="Largest expected count a leaf may hold."),
    workers: int = typer.Option(1, "--workers", help="Number of worker threads."),
    feature_angle_deg: Optional[float] = typer.Option(None, "--feature-angle-deg", help="Split normals at sharper edges (needs VTK)."),
    seed: Optional[int] = typer.Option(None, "--seed", min=0, help="Random seed for deterministic sampling."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Quick sampling run driven entirely from CLI options."""

    _configure_logging(log_level)
    try:
        sampler_cfg = SamplerConfig(
            level=level,
            lambda_=lambda_,
            bad=bad,
            max_expected_per_stratum=max_expected,
            workers=workers,
        )
    except ConfigurationError as exc:
        _fail(str(exc))

    output = output.resolve()
    try:
        writer = writer_for_path(output)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--output")

    surface = SurfaceMesh.from_path(mesh.resolve(), feature_angle_deg=feature_angle_deg)
    sampler = StratifiedSampler(surface, cfg=sampler_cfg)
    stats = sampler.run_to_writer(writer, seed=seed)
    typer.echo(f"Completed {stats['points']} points from {stats['leaves']} strata → {output}")


@app.command("quality")
def quality(
    mesh: Path = typer.Argument(..., exists=True, readable=True, help="Input mesh path."),
    bad: float = typer.Option(0.5, "--bad", help="Report how many triangles score below this."),
) -> None:
    """Summarise triangle shape quality of a mesh."""

    if not 0.0 <= bad <= 1.0:
        raise typer.BadParameter("bad must be within [0, 1].", param_hint="--bad")
    surface = SurfaceMesh.from_path(mesh.resolve())
    summary = summarize(surface.triangle_qualities(), bad)
    typer.echo(f"triangles: {summary['triangles']}")
    typer.echo(f"degenerate: {summary['degenerate']}")
    typer.echo(f"below {bad:g}: {summary['below_bad']}")
    typer.echo(
        f"quality min/mean/median/max: {summary['min']:.4f} / {summary['mean']:.4f} / "
        f"{summary['median']:.4f} / {summary['max']:.4f}"
    )


@mesh_app.command("generate")
def mesh_generate(
    output: Path = typer.Argument(..., help="Output mesh path (.ply)."),
    preset: str = typer.Option("arrow", "--preset", help=f"Synthetic mesh preset ({', '.join(PRESETS)})."),
    size: float = typer.Option(1.0, "--size", help="Scale factor."),
) -> None:
    """Generate a synthetic mesh with per-vertex normals."""

    if preset.lower() not in PRESETS:
        raise typer.BadParameter(f"preset must be one of {list(PRESETS)}.", param_hint="--preset")
    out = output.resolve()
    generate_mesh(preset=preset, size=size, path=out)
    typer.echo(f"Wrote synthetic mesh to {out}")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()

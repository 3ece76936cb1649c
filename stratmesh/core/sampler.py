from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import math
import numpy as np

from .errors import ConfigurationError, DegenerateGeometryError, SamplingCancelled
from .pointcloud import PointBatch, concatenate_batches
from .scene import SurfaceMesh, TriangleRecord
from .stratifier import Stratifier, StratumTree
from .utils import ensure_unit_vectors, get_logger

_log = get_logger()

# Poisson means above this are treated as corrupt input rather than drawn.
POISSON_MEAN_LIMIT = 1e12


@dataclass
class SamplerConfig:
    """Sampling parameters.

    ``level`` bounds the subdivision depth, ``lambda_`` is the expected number
    of samples per unit area and ``bad`` the quality below which strata keep
    splitting while depth allows. The remaining fields are tunables of the
    stopping rule, the overflow cap and the thread pool.
    """
    level: int = 3
    lambda_: float = 10.0
    bad: float = 0.5
    max_expected_per_stratum: float = 32.0
    max_points_per_stratum: int = 100_000
    workers: int = 1

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if isinstance(self.level, bool) or not isinstance(self.level, (int, np.integer)):
            raise ConfigurationError(f"level must be a non-negative integer, got {self.level!r}")
        if self.level < 0:
            raise ConfigurationError(f"level must be >= 0, got {self.level}")
        if not _is_real(self.lambda_) or not math.isfinite(self.lambda_) or self.lambda_ < 0:
            raise ConfigurationError(f"lambda must be a finite number >= 0, got {self.lambda_!r}")
        if not _is_real(self.bad) or not (0.0 <= self.bad <= 1.0):
            raise ConfigurationError(f"bad must be within [0, 1], got {self.bad!r}")
        if not _is_real(self.max_expected_per_stratum) or not self.max_expected_per_stratum > 0:
            raise ConfigurationError("max_expected_per_stratum must be > 0")
        if isinstance(self.max_points_per_stratum, bool) or int(self.max_points_per_stratum) < 1:
            raise ConfigurationError("max_points_per_stratum must be >= 1")
        if isinstance(self.workers, bool) or int(self.workers) < 1:
            raise ConfigurationError("workers must be >= 1")


def validate_seed(seed: Optional[int]) -> None:
    if seed is None:
        return
    if isinstance(seed, bool) or not isinstance(seed, (int, np.integer)) or seed < 0:
        raise ConfigurationError(f"seed must be a non-negative integer, got {seed!r}")


def _is_real(value: Any) -> bool:
    return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, bool)


@dataclass
class TriangleSamples:
    """Points drawn for one source triangle plus its bookkeeping."""
    triangle_id: int
    batch: PointBatch
    strata: int = 0
    leaves: int = 0
    max_depth: int = 0
    overflow_events: int = 0
    degenerate: bool = False


@dataclass
class SamplingResult:
    batch: PointBatch
    stats: Dict[str, Any] = field(default_factory=dict)


class StratumSampler:
    """Poisson point counts per leaf and area-uniform placement inside it."""
    def __init__(self, lambda_: float, max_points_per_stratum: int = 100_000) -> None:
        self.lambda_ = float(lambda_)
        self.max_points_per_stratum = int(max_points_per_stratum)

    def draw_counts(self, areas: np.ndarray, rng: np.random.Generator) -> tuple[np.ndarray, int]:
        """One Poisson draw per leaf; returns (counts, number of capped leaves)."""
        means = self.lambda_ * np.asarray(areas, dtype=np.float64)
        counts = np.zeros(len(means), dtype=np.int64)
        drawable = np.isfinite(means) & (means >= 0.0) & (means <= POISSON_MEAN_LIMIT)
        counts[drawable] = rng.poisson(means[drawable])
        capped = ~drawable | (counts > self.max_points_per_stratum)
        counts[capped] = self.max_points_per_stratum
        return counts, int(np.count_nonzero(capped))

    @staticmethod
    def uniform_weights(n: int, rng: np.random.Generator) -> np.ndarray:
        """Area-uniform barycentric weights, shape (n, 3), all strictly positive."""
        r = rng.random((n, 2))
        # zero draws would land on a corner or an edge
        zero = r == 0.0
        while np.any(zero):
            r[zero] = rng.random(int(np.count_nonzero(zero)))
            zero = r == 0.0
        s = np.sqrt(r[:, 0])
        return np.column_stack([1.0 - s, s * (1.0 - r[:, 1]), s * r[:, 1]])

    def sample_tree(
        self,
        tree: StratumTree,
        positions: np.ndarray,
        normals: np.ndarray,
        rng: np.random.Generator,
    ) -> TriangleSamples:
        leaf_ids, corners, areas = tree.leaf_arrays()
        counts, capped = self.draw_counts(areas, rng)
        if capped:
            _log.warning(
                "Triangle %d: %d stratum draw(s) capped at %d points.",
                tree.triangle_id, capped, self.max_points_per_stratum,
            )

        result = TriangleSamples(
            triangle_id=tree.triangle_id,
            batch=PointBatch.empty(),
            strata=len(tree),
            leaves=len(leaf_ids),
            max_depth=tree.max_depth(),
            overflow_events=capped,
        )
        total = int(counts.sum())
        if total == 0:
            return result

        owner = np.repeat(np.arange(len(leaf_ids)), counts)
        weights = self.uniform_weights(total, rng)
        # leaf-local weights -> barycentrics of the source triangle
        bary = np.einsum("nj,njk->nk", weights, corners[owner])
        xyz = bary @ np.asarray(positions, dtype=np.float64)
        nrm = ensure_unit_vectors(bary @ np.asarray(normals, dtype=np.float64))

        result.batch = PointBatch(
            xyz=xyz,
            attrs={
                "normal": nrm.astype(np.float32),
                "triangle_id": np.full(total, tree.triangle_id, dtype=np.int64),
                "stratum_index": leaf_ids[owner].astype(np.int32),
                "barycentric": bary,
            },
        )
        return result


class StratifiedSampler:
    """Runs stratification and leaf sampling over every triangle of a mesh.

    Each triangle gets its own generator spawned from one ``SeedSequence``,
    so the output only depends on the seed and never on ``workers``.
    """
    def __init__(self, mesh: SurfaceMesh, cfg: Optional[SamplerConfig] = None) -> None:
        self.mesh = mesh
        self.cfg = cfg or SamplerConfig()
        self.cfg.validate()
        self.stratifier = Stratifier(
            level=self.cfg.level,
            lambda_=self.cfg.lambda_,
            bad=self.cfg.bad,
            max_expected_per_stratum=self.cfg.max_expected_per_stratum,
        )
        self.stratum_sampler = StratumSampler(self.cfg.lambda_, self.cfg.max_points_per_stratum)

    def sample_triangle(self, record: TriangleRecord, rng: np.random.Generator) -> TriangleSamples:
        positions, normals = self.mesh.triangle(record.index)
        try:
            tree = self.stratifier.build(record.index, positions, record.area, record.quality)
        except DegenerateGeometryError as exc:
            _log.debug("%s; emitting no samples.", exc)
            return TriangleSamples(triangle_id=record.index, batch=PointBatch.empty(), degenerate=True)
        return self.stratum_sampler.sample_tree(tree, positions, normals, rng)

    def sample(
        self,
        seed: Optional[int] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> SamplingResult:
        """Sample the whole mesh. ``should_cancel`` is polled between triangles."""
        validate_seed(seed)
        records = self.mesh.triangle_records()
        seeds = np.random.SeedSequence(seed).spawn(len(records))

        def work(i: int) -> TriangleSamples:
            if should_cancel is not None and should_cancel():
                raise SamplingCancelled(f"Sampling cancelled before triangle {i}.")
            return self.sample_triangle(records[i], np.random.default_rng(seeds[i]))

        workers = int(self.cfg.workers)
        if workers > 1 and len(records) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                parts: List[TriangleSamples] = list(pool.map(work, range(len(records))))
        else:
            parts = [work(i) for i in range(len(records))]

        batch = concatenate_batches(p.batch for p in parts)
        sampled_area = float(sum(r.area for r, p in zip(records, parts) if not p.degenerate))
        stats: Dict[str, Any] = {
            "triangles": len(records),
            "degenerate_triangles": sum(1 for p in parts if p.degenerate),
            "strata": sum(p.strata for p in parts),
            "leaves": sum(p.leaves for p in parts),
            "max_depth": max((p.max_depth for p in parts), default=0),
            "points": len(batch),
            "surface_area": sampled_area,
            "expected_points": self.cfg.lambda_ * sampled_area,
            "overflow_events": sum(p.overflow_events for p in parts),
        }
        _log.info(
            "Sampler finished: %d triangles → %d leaf strata → %d points (expected %.1f)",
            stats["triangles"], stats["leaves"], stats["points"], stats["expected_points"],
        )
        if stats["degenerate_triangles"]:
            _log.info("Skipped %d degenerate triangle(s).", stats["degenerate_triangles"])
        return SamplingResult(batch=batch, stats=stats)

    def run_to_writer(
        self,
        writer,
        seed: Optional[int] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> Dict[str, Any]:
        """Sample, hand the point set to ``writer`` and close it. Returns run statistics."""
        result = self.sample(seed=seed, should_cancel=should_cancel)
        writer.write_batch(result.batch)
        writer.close()
        return result.stats

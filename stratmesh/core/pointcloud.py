from __future__ import annotations
from dataclasses import dataclass, field
import numpy as np
from typing import Dict, Iterable, List

# Attributes every sampled batch carries, with their per-row tail shape and dtype.
STANDARD_ATTRS: Dict[str, tuple[tuple[int, ...], type]] = {
    "normal": ((3,), np.float32),
    "triangle_id": ((), np.int64),
    "stratum_index": ((), np.int32),
    "barycentric": ((3,), np.float64),
}


@dataclass
class PointBatch:
    """A flat set of sampled points with arbitrary per-point attributes."""
    xyz: np.ndarray                       # (N, 3)
    attrs: Dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.xyz = np.asarray(self.xyz).astype(np.float32, copy=False).reshape(-1, 3)
        n = len(self.xyz)
        for k, v in list(self.attrs.items()):
            v = np.asarray(v)
            if v.ndim == 0 or v.shape[0] != n:
                raise ValueError(f"Attribute '{k}' length {v.shape[0] if v.ndim else 0} != {n}")
            self.attrs[k] = v

    def __len__(self) -> int:
        return len(self.xyz)

    @property
    def normals(self) -> np.ndarray:
        return self.attrs["normal"]

    @classmethod
    def empty(cls) -> "PointBatch":
        attrs = {k: np.zeros((0,) + tail, dtype=dt) for k, (tail, dt) in STANDARD_ATTRS.items()}
        return cls(xyz=np.zeros((0, 3), dtype=np.float32), attrs=attrs)


def concatenate_batches(batches: Iterable[PointBatch]) -> PointBatch:
    """Merge batches in the given order without deduplication.

    Attributes missing from some batches are zero-filled, using the shape and
    dtype of the first batch that has them.
    """
    parts: List[PointBatch] = [b for b in batches if len(b) > 0]
    if not parts:
        return PointBatch.empty()
    if len(parts) == 1:
        return parts[0]

    meta: Dict[str, tuple[tuple[int, ...], np.dtype]] = {}
    for b in parts:
        for k, v in b.attrs.items():
            meta.setdefault(k, (v.shape[1:], v.dtype))

    attrs: Dict[str, np.ndarray] = {}
    for k, (tail, dt) in meta.items():
        attrs[k] = np.concatenate([
            b.attrs[k].astype(dt, copy=False) if k in b.attrs else np.zeros((len(b),) + tail, dtype=dt)
            for b in parts
        ], axis=0)
    return PointBatch(xyz=np.vstack([b.xyz for b in parts]), attrs=attrs)

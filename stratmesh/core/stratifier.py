from __future__ import annotations
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple
import numpy as np

from .errors import DegenerateGeometryError
from .quality import triangle_quality

# Barycentric corners of a root stratum: the source triangle itself.
_ROOT_CORNERS = np.eye(3, dtype=np.float64)


@dataclass
class Stratum:
    """One node of a triangle's stratum tree.

    ``corners`` holds the stratum's three corners as rows of barycentric
    coordinates relative to the source triangle. Parent and children are
    indices into the owning :class:`StratumTree`.
    """
    corners: np.ndarray
    depth: int
    parent: int
    triangle_id: int
    area: float
    quality: float
    children: Tuple[int, ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children


@dataclass
class StratumTree:
    """Arena of strata for one source triangle; the root is index 0."""
    triangle_id: int
    strata: List[Stratum] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.strata)

    def __getitem__(self, index: int) -> Stratum:
        return self.strata[index]

    def append(self, stratum: Stratum) -> int:
        self.strata.append(stratum)
        return len(self.strata) - 1

    def leaf_indices(self) -> List[int]:
        return [i for i, s in enumerate(self.strata) if s.is_leaf]

    def leaves(self) -> Iterator[Stratum]:
        return (s for s in self.strata if s.is_leaf)

    def max_depth(self) -> int:
        return max((s.depth for s in self.strata), default=0)

    def leaf_arrays(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """(indices (L,), corners (L, 3, 3), areas (L,)) of all leaves in arena order."""
        idx = self.leaf_indices()
        if not idx:
            return np.zeros(0, dtype=np.int64), np.zeros((0, 3, 3)), np.zeros(0)
        corners = np.stack([self.strata[i].corners for i in idx])
        areas = np.array([self.strata[i].area for i in idx], dtype=np.float64)
        return np.asarray(idx, dtype=np.int64), corners, areas


def midpoint_children(corners: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """1-to-4 refinement through edge midpoints; all children keep the parent's orientation."""
    a, b, c = corners
    ab = 0.5 * (a + b)
    bc = 0.5 * (b + c)
    ca = 0.5 * (c + a)
    return (
        np.stack([a, ab, ca]),
        np.stack([ab, b, bc]),
        np.stack([ca, bc, c]),
        np.stack([bc, ca, ab]),
    )


class Stratifier:
    """Decides, region by region, whether to split further or sample.

    A stratum is a leaf when it sits at ``level``, or when it is both well
    shaped (quality >= ``bad``) and small enough that its expected sample
    count ``lambda_ * area`` does not exceed ``max_expected_per_stratum``.
    Everything else is split into four midpoint children.
    """
    def __init__(self, level: int, lambda_: float, bad: float, max_expected_per_stratum: float = 32.0) -> None:
        self.level = int(level)
        self.lambda_ = float(lambda_)
        self.bad = float(bad)
        self.max_expected_per_stratum = float(max_expected_per_stratum)

    def is_leaf(self, stratum: Stratum) -> bool:
        if stratum.depth >= self.level:
            return True
        if stratum.quality >= self.bad and self.lambda_ * stratum.area <= self.max_expected_per_stratum:
            return True
        return False

    def split(self, tree: StratumTree, index: int) -> Tuple[int, int, int, int]:
        parent = tree[index]
        child_area = parent.area / 4.0
        ids = []
        for corners in midpoint_children(parent.corners):
            ids.append(tree.append(Stratum(
                corners=corners,
                depth=parent.depth + 1,
                parent=index,
                triangle_id=parent.triangle_id,
                area=child_area,
                # midpoint children are similar to their parent
                quality=parent.quality,
            )))
        parent.children = tuple(ids)
        return ids[0], ids[1], ids[2], ids[3]

    def build(
        self,
        triangle_id: int,
        positions: np.ndarray,
        area: float,
        quality: Optional[float] = None,
    ) -> StratumTree:
        """Stratify one source triangle given its corner positions (3, 3).

        ``quality`` is the precomputed score of the triangle; it is derived
        from ``positions`` when omitted.
        """
        if quality is None:
            quality = triangle_quality(*np.asarray(positions, dtype=np.float64))
        quality = float(quality)
        if not np.isfinite(area) or area <= 0.0:
            raise DegenerateGeometryError(triangle_id, f"area {area!r}")
        if quality <= 0.0:
            raise DegenerateGeometryError(triangle_id, "zero quality")

        tree = StratumTree(triangle_id)
        tree.append(Stratum(
            corners=_ROOT_CORNERS.copy(),
            depth=0,
            parent=-1,
            triangle_id=triangle_id,
            area=float(area),
            quality=quality,
        ))
        stack = [0]
        while stack:
            index = stack.pop()
            if self.is_leaf(tree[index]):
                continue
            children = self.split(tree, index)
            # reversed so the first child is expanded first
            stack.extend(reversed(children))
        return tree

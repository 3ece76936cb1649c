"""stratmesh – hierarchical stratified point sampling of triangle meshes.

Components:
- SurfaceMesh & TriangleRecord (core.scene)
- triangle quality scores (core.quality)
- Stratifier & the index-addressed StratumTree (core.stratifier)
- StratumSampler and the StratifiedSampler orchestrator (core.sampler)
- PointBatch & concatenate_batches (core.pointcloud)
- NPZ / PLY / LAS / VTP writers (core.exporter)

ASCII PLY is read natively; other formats go through VTK when installed, else trimesh.
"""

from .core.errors import ConfigurationError, DegenerateGeometryError, SamplingCancelled
from .core.scene import SurfaceMesh, TriangleRecord
from .core.quality import triangle_quality, triangle_qualities, triangle_area, triangle_areas
from .core.stratifier import Stratifier, Stratum, StratumTree
from .core.pointcloud import PointBatch, concatenate_batches
from .core.exporter import LasWriter, PlyWriter, NpzWriter, VtpWriter
from .core.sampler import (
    SamplerConfig, SamplingResult, StratifiedSampler, StratumSampler, TriangleSamples
)

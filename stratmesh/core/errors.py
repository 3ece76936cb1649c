from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid sampling parameters; raised before any work is done."""


class DegenerateGeometryError(ValueError):
    """A triangle with (near-)zero area or zero quality cannot be stratified."""

    def __init__(self, triangle_id: int, reason: str) -> None:
        super().__init__(f"Triangle {triangle_id} is degenerate: {reason}")
        self.triangle_id = triangle_id


class SamplingCancelled(RuntimeError):
    """The caller asked the run to stop between triangles."""

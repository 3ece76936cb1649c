"""Configuration loading utilities for stratmesh."""

from .schema import (
    RunConfig,
    load_config,
    parse_config,
)

__all__ = ["RunConfig", "load_config", "parse_config"]

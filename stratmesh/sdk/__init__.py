"""Programmatic entry points."""

from .run import ConfigRunResult, sample_from_config

__all__ = ["ConfigRunResult", "sample_from_config"]

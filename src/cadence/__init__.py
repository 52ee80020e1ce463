"""Cadence: adaptive pattern learning for hook and rule runners."""

__version__ = "0.3.0"

"""monetdbctl package bootstrap.

Exposes the package version used by the ``monetdb version`` command and the
packaging metadata.
"""
from __future__ import annotations

__all__ = ["__version__"]

# NOTE: The version is duplicated in ``pyproject.toml`` and managed by Hatch.
__version__ = "0.8.0"

"""Provider interfaces for monetdbctl."""
from __future__ import annotations

from .control import ControlChannel, ControlProvider
from .instance_status_provider import InstanceStatusProvider

__all__ = [
    "ControlChannel",
    "ControlProvider",
    "InstanceStatusProvider",
]

"""
Format handlers. Importing this package registers the bundled handlers
with the global registry.
"""

from . import json as _json  # noqa: F401 - ensure json format is registered
from . import yaml as _yaml  # noqa: F401 - ensure yaml format is registered
from .base import (
    BaseHandler,
    Capabilities,
    FormatHandler,
    FormatMatch,
    FormatRegistry,
    SerializeOptions,
    ValidationResult,
    registry,
)
from .json import JSONHandler
from .yaml import YAMLHandler

__all__ = [
    "BaseHandler",
    "Capabilities",
    "FormatHandler",
    "FormatMatch",
    "FormatRegistry",
    "JSONHandler",
    "SerializeOptions",
    "ValidationResult",
    "YAMLHandler",
    "registry",
]

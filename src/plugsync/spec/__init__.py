"""Plugin specification parsing and validation.

Every string entering the system (declared array entries, ``try``
requests, ``adopt`` arguments) passes through here first.

Usage:
    from plugsync.spec import parse_spec, ValidationError

    spec = parse_spec("ohmyzsh/ohmyzsh@master:plugins/git")
    spec.plugin_name   # "ohmyzsh/ohmyzsh"
"""

from .schema import PluginSpecification
from .parser import SpecParser, parse_spec, plugin_key
from .validator import (
    SpecValidator,
    ValidationError,
    MAX_SPEC_LENGTH,
    FORBIDDEN_CHARACTERS,
)

__all__ = [
    "PluginSpecification",
    "SpecParser",
    "parse_spec",
    "plugin_key",
    "SpecValidator",
    "ValidationError",
    "MAX_SPEC_LENGTH",
    "FORBIDDEN_CHARACTERS",
]

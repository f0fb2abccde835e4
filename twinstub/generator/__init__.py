"""twinstub code generator."""

from .builder import Builder, compile_protos, configure
from .config import GenerationConfig, Transport
from .errors import (
    BuildError,
    ConfigurationDriftError,
    EmissionError,
    MissingOutputDirError,
    ProtoCompileError,
    ProtoSyntaxError,
    TypeResolutionError,
)
from .parser import parse
from .production import ProductionBuilder

__all__ = [
    "Builder",
    "BuildError",
    "ConfigurationDriftError",
    "EmissionError",
    "GenerationConfig",
    "MissingOutputDirError",
    "ProductionBuilder",
    "ProtoCompileError",
    "ProtoSyntaxError",
    "Transport",
    "TypeResolutionError",
    "compile_protos",
    "configure",
    "parse",
]

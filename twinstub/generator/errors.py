"""Errors raised while configuring or running a generation pass.

Every failure surfaces as an ``OSError`` so a build script can treat the
whole generator like any other I/O step and abort on the first error.
"""


class BuildError(OSError):
    """Base class for generation failures."""


class MissingOutputDirError(BuildError):
    """Raised when no output directory was configured or found in the environment."""


class ProtoCompileError(BuildError):
    """Raised when the IDL compiler rejects its input."""


class ProtoSyntaxError(ProtoCompileError):
    """Raised when a .proto file fails to parse."""

    def __init__(self, file_name: str, line: int, column: int, message: str) -> None:
        super().__init__(f"{file_name}:{line}:{column}: {message}")
        self.file_name = file_name
        self.line = line
        self.column = column


class EmissionError(BuildError):
    """Raised when generated source text is not valid Python."""


class TypeResolutionError(EmissionError):
    """Raised when a request/response type cannot be turned into a type path."""


class ConfigurationDriftError(BuildError):
    """Raised when the simulated and production passes would not share settings."""

"""Resolution of request/response types to Python type paths.

Target type names use three spellings:

- ``"pkg.module:Qual.Name"`` is absolute; it renders as ``pkg.module.Qual.Name``
  and needs ``import pkg.module``.
- ``".module:Qual.Name"`` is rooted at the generated package; it renders as
  ``module.Qual.Name`` and needs ``from . import module``.
- anything else is a dotted path relative to the code that uses it and gets
  the configured prefix.
"""

import ast
from dataclasses import dataclass

from .errors import TypeResolutionError

SEPARATOR = "."

# Non-path Python types allowed for request/response types.
NON_PATH_TYPE_ALLOWLIST = frozenset(["None"])

WELL_KNOWN_PACKAGE = ".google.protobuf"


def is_well_known_type(proto_type: str) -> bool:
    """Check if a fully-qualified proto type is a google.protobuf well-known type."""
    return proto_type.startswith(WELL_KNOWN_PACKAGE + ".")


def is_absolute(target_type: str) -> bool:
    return ":" in target_type and not target_type.startswith(".")


def is_root_relative(target_type: str) -> bool:
    return target_type.startswith(".")


@dataclass(frozen=True)
class TypeReference:
    """A type path usable in generated code, plus the import it needs."""

    path: str
    import_: str | None = None

    def __str__(self) -> str:
        return self.path

    @classmethod
    def parse(cls, text: str) -> "TypeReference":
        """Parse a target type name into a reference.

        Raises:
            TypeResolutionError: If the text is not a valid type path.
        """
        if text in NON_PATH_TYPE_ALLOWLIST:
            return cls(text)

        if ":" in text:
            module, _, qualname = text.partition(":")
            relative = module.startswith(".")
            module = module.lstrip(".")
            _check_path(module, text)
            _check_path(qualname, text)
            if not relative:
                return cls(f"{module}.{qualname}", f"import {module}")
            parent, _, leaf = module.rpartition(".")
            return cls(f"{leaf}.{qualname}", f"from .{parent} import {leaf}")

        _check_path(text, text)
        return cls(text)


def _check_path(path: str, original: str) -> None:
    try:
        node = ast.parse(path, mode="eval").body
    except SyntaxError as e:
        raise TypeResolutionError(f"invalid type path {original!r}: {e.msg}") from e

    while isinstance(node, ast.Attribute):
        node = node.value
    if not isinstance(node, ast.Name):
        raise TypeResolutionError(f"invalid type path {original!r}: not a dotted name")


def resolve(
    proto_type: str,
    target_type: str,
    compile_well_known_types: bool,
    proto_path: str,
) -> TypeReference:
    """Resolve the Python type path for a request or response type.

    Well-known types that are not compiled from source, absolute paths and
    allow-listed pseudo-types are used unchanged, as are paths rooted at the
    generated package. Everything else is looked up under `proto_path`.
    """
    if (
        (is_well_known_type(proto_type) and not compile_well_known_types)
        or is_absolute(target_type)
        or target_type in NON_PATH_TYPE_ALLOWLIST
    ):
        return TypeReference.parse(target_type)
    if is_root_relative(target_type):
        return TypeReference.parse(target_type)
    return TypeReference.parse(f"{proto_path}{SEPARATOR}{target_type}")

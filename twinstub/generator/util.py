"""Naming helpers shared by the generators."""

import keyword
import re

_SNAKE_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def to_snake_case(name: str) -> str:
    """Convert an rpc or field name to snake_case ("SayHello" -> "say_hello")."""
    return _SNAKE_BOUNDARY.sub("_", name).lower()


def to_upper_camel(name: str) -> str:
    """Convert a name to UpperCamelCase, keeping existing capitals."""
    return "".join(part[:1].upper() + part[1:] for part in re.split(r"_+", name) if part)


def safe_identifier(name: str, reserved: frozenset[str] = frozenset()) -> str:
    """Append an underscore to names that are keywords or otherwise taken."""
    if keyword.iskeyword(name) or name in reserved:
        return name + "_"
    return name


def module_name(package: str) -> str:
    """Name of the generated module for a proto package."""
    if not package:
        return "_"
    return package.replace(".", "_")

"""Pattern-matched attributes injected into generated code."""

from dataclasses import dataclass


def match_path(pattern: str, path: str) -> bool:
    """Check if a configured path pattern matches a fully-qualified path.

    `path` is fully qualified with a leading dot (".pkg.Msg.field").
    "." matches everything, patterns with a leading dot match the path and
    everything below it, other patterns match the path or a dotted suffix.
    """
    if pattern == ".":
        return True
    if pattern.startswith("."):
        return path == pattern or path.startswith(pattern + ".")
    return path.endswith("." + pattern)


def matching(entries: tuple[tuple[str, str], ...], path: str) -> list[str]:
    """Return the values of all (pattern, value) entries matching `path`, in order."""
    return [value for pattern, value in entries if match_path(pattern, path)]


def fully_qualified(*parts: str) -> str:
    """Join non-empty name parts into a ".a.b.c" path."""
    return "".join("." + part for part in parts if part)


@dataclass(frozen=True)
class Attributes:
    """Module and class level attributes for generated clients or servers.

    Module attributes match on the package name and are inserted as
    statements at the top of the generated section. Class attributes match
    on "package.Service" and are applied as decorators.
    """

    module: tuple[tuple[str, str], ...] = ()
    structure: tuple[tuple[str, str], ...] = ()

    def push_mod(self, pattern: str, attribute: str) -> "Attributes":
        return Attributes(self.module + ((pattern, attribute),), self.structure)

    def push_struct(self, pattern: str, attribute: str) -> "Attributes":
        return Attributes(self.module, self.structure + ((pattern, attribute),))

    def for_mod(self, package: str) -> list[str]:
        return matching(self.module, fully_qualified(package))

    def for_struct(self, name: str) -> list[str]:
        return [_decorator(attr) for attr in matching(self.structure, fully_qualified(name))]


def _decorator(attribute: str) -> str:
    return attribute[1:] if attribute.startswith("@") else attribute

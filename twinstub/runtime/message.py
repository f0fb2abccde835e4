"""Base class and field helper for generated message types."""

import base64
from collections.abc import Callable
from dataclasses import dataclass, field, fields
from typing import Any

from dataclasses_json import DataClassJsonMixin, config

from . import codec


@dataclass(frozen=True)
class FieldInfo:
    """Metadata for a message field."""

    kind: str
    number: int
    shape: str = "single"  # "single", "repeated" or "map"
    ordered: bool = False
    boxed: bool = False


# Sentinel for missing default
_MISSING: Any = object()


def _shaped(fn: Callable[[Any], Any], shape: str) -> Callable[[Any], Any]:
    def apply(value: Any) -> Any:
        if value is None:
            return None
        if shape == "repeated":
            return [fn(v) for v in value]
        if shape == "map":
            return {k: fn(v) for k, v in value.items()}
        return fn(value)

    return apply


def _encode_bytes(value: bytes | memoryview) -> str:
    return base64.b64encode(bytes(value)).decode("ascii")


def _decode_bytes(value: str) -> bytes:
    return base64.b64decode(value)


def _decode_view(value: str) -> memoryview:
    return memoryview(base64.b64decode(value))


def _sorted_map(value: dict) -> dict:
    return dict(sorted(value.items()))


def message_field(
    kind: str,
    *,
    number: int,
    shape: str = "single",
    ordered: bool = False,
    boxed: bool = False,
    zero_copy: bool = False,
    resolve: Callable[[], type] | None = None,
    default: Any = _MISSING,
    default_factory: Any = _MISSING,
    **kwargs: Any,
) -> Any:
    """Define a message field with codec metadata.

    Args:
        kind: The proto type of the field ("int32", "string", "message", ...).
        number: The field number.
        shape: "single", "repeated" or "map".
        ordered: Keep map entries sorted by key.
        boxed: The field is held by reference and defaults to None.
        zero_copy: Decode bytes to a memoryview instead of copying.
        resolve: For message types defined outside generated code, returns the
            class to decode with.
        default: Default value for the field.
        default_factory: Factory function for default value.
        **kwargs: Passed through to `dataclasses.field`.

    Returns:
        A dataclass field with message metadata attached.
    """
    metadata: dict[str, Any] = {"twinstub": FieldInfo(kind, number, shape, ordered, boxed)}

    if kind == "bytes":
        decode = _decode_view if zero_copy else _decode_bytes
        metadata.update(config(encoder=_shaped(_encode_bytes, shape), decoder=_shaped(decode, shape)))
    elif resolve is not None:
        metadata.update(
            config(
                encoder=_shaped(lambda v: _encode_bytes(codec.encode(v)), shape),
                decoder=_shaped(lambda v: codec.decoder(resolve())(_decode_bytes(v)), shape),
            )
        )
    elif ordered:
        metadata.update(config(encoder=_sorted_map))

    if default is not _MISSING:
        return field(default=default, metadata=metadata, **kwargs)
    if default_factory is not _MISSING:
        return field(default_factory=default_factory, metadata=metadata, **kwargs)
    return field(metadata=metadata, **kwargs)


def field_info(message: "Message") -> dict[str, FieldInfo]:
    """Field metadata of a message, by attribute name."""
    return {f.name: f.metadata["twinstub"] for f in fields(message) if "twinstub" in f.metadata}


class Message(DataClassJsonMixin):
    """Base class for generated message types.

    Subclasses are @dataclass decorated and define their fields with
    message_field().

    Example:
        @dataclass
        class HelloRequest(Message):
            name: str = message_field("string", number=1, default="")
    """

    def __post_init__(self) -> None:
        for name, info in field_info(self).items():
            value = getattr(self, name)
            if info.ordered and value:
                setattr(self, name, _sorted_map(value))

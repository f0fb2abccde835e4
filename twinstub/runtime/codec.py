"""Wire codec used by generated clients and servers.

Generated messages travel as JSON produced by dataclasses_json. Classes
that are not generated (protobuf well-known types, for instance) are
accepted if they provide ``SerializeToString``/``FromString``.
"""

import json
from collections.abc import Callable
from typing import Any

from dataclasses_json import DataClassJsonMixin


class CodecError(ValueError):
    """Raised when a value cannot be encoded or decoded."""


def encode(message: Any) -> bytes:
    """Encode a request or response message to bytes."""
    if message is None:
        return b""
    if isinstance(message, DataClassJsonMixin):
        return message.to_json().encode("utf-8")
    serialize = getattr(message, "SerializeToString", None)
    if serialize is not None:
        return serialize()
    raise CodecError(f"cannot encode {type(message).__name__}")


def decoder(cls: type | None) -> Callable[[bytes], Any]:
    """Return a function decoding bytes into an instance of `cls`."""
    if cls is None:
        return lambda data: None

    if isinstance(cls, type) and issubclass(cls, DataClassJsonMixin):

        def decode(data: bytes) -> Any:
            try:
                return cls.from_dict(json.loads(data), infer_missing=True)
            except (ValueError, TypeError, KeyError) as e:
                raise CodecError(f"cannot decode {cls.__name__}: {e}") from e

        return decode

    from_string = getattr(cls, "FromString", None)
    if from_string is not None:
        return from_string
    raise CodecError(f"cannot decode {getattr(cls, '__name__', cls)}")

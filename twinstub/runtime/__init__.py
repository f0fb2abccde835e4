"""Runtime support imported by generated modules."""

from .codec import CodecError, decoder, encode
from .message import Message, message_field

__all__ = ["CodecError", "Message", "decoder", "encode", "message_field"]

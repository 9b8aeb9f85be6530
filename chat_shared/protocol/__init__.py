from .conventions import is_disconnect_request
from .framing import LINE_TERMINATOR, LineDecoder, encode_message

__all__ = [
    "LINE_TERMINATOR",
    "LineDecoder",
    "encode_message",
    "is_disconnect_request",
]

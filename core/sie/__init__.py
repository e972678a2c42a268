"""SIE (Standard Import Export) decoding and parsing."""

from core.sie.encoding import (
    decode_sie_bytes,
    decode_sie_bytes_with_encoding,
    detect_sie_encoding,
)
from core.sie.parser import parse_sie, parse_line, parse_amount

__all__ = [
    "decode_sie_bytes",
    "decode_sie_bytes_with_encoding",
    "detect_sie_encoding",
    "parse_sie",
    "parse_line",
    "parse_amount",
]

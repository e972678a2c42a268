"""Decoding of SIE export bytes.

SIE files arrive in whatever encoding the exporting system prefers: UTF-8
from modern systems, CP437 (the SIE standard's PC8) from Fortnox and older
DOS-era software, Latin-1 or Windows-1252 from Windows tools. Every valid
file contains the #FLAGGA header, which is used to accept a candidate.
"""

from typing import Optional

from core.errors import SIEDecodeError


SIE_MARKER = "#FLAGGA"

# Tried in order; UTF-8 is strict so CP437 bytes fall through to the next codec
CANDIDATE_ENCODINGS = ("utf-8", "cp437", "iso-8859-1", "cp1252")


def _strip_bom(text: str) -> str:
    return text[1:] if text.startswith("\ufeff") else text


def detect_sie_encoding(data: bytes) -> Optional[str]:
    """Return the first candidate encoding that yields a SIE header, or None."""
    for encoding in CANDIDATE_ENCODINGS:
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError:
            continue
        if SIE_MARKER in text:
            return encoding
    return None


def decode_sie_bytes(data: bytes) -> str:
    """Decode SIE bytes with automatic encoding detection.

    Raises:
        SIEDecodeError: If no encoding produces SIE-looking text
    """
    encoding = detect_sie_encoding(data)
    if encoding is not None:
        return _strip_bom(data.decode(encoding))

    fallback = _strip_bom(data.decode("utf-8", errors="replace"))
    if "#" in fallback or "VER" in fallback or "TRANS" in fallback:
        return fallback

    raise SIEDecodeError(
        "Unable to decode SIE file: no valid encoding detected. "
        "File may be corrupted or not a valid SIE file."
    )


def decode_sie_bytes_with_encoding(data: bytes, encoding: Optional[str] = None) -> str:
    """Decode with a known encoding. Defaults to CP437 unless a UTF-8 BOM is present."""
    if data.startswith(b"\xef\xbb\xbf"):
        return data[3:].decode("utf-8")
    if encoding is None:
        encoding = "cp437"
    try:
        return _strip_bom(data.decode(encoding))
    except (UnicodeDecodeError, LookupError) as e:
        raise SIEDecodeError(f"Unable to decode SIE file as {encoding}: {e}")

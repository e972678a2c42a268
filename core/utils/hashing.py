"""Content hashing for change detection.

If the hash of a record's raw payload has not changed since the last sync,
the record can be skipped. The payload is serialized with sorted keys (at
every nesting level) so the hash does not depend on key insertion order.
"""

import hashlib
import json
from typing import Any, Dict


def _json_default(value: Any) -> str:
    # Decimal, datetime and other non-JSON scalars
    return str(value)


def canonical_json(data: Dict[str, Any]) -> str:
    """Serialize to compact JSON with sorted keys."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )


def content_hash(data: Dict[str, Any]) -> str:
    """Compute the SHA-256 hex digest of a raw payload.

    Args:
        data: Raw provider record

    Returns:
        64-character lowercase hex digest
    """
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()

"""
Events pure helpers: reference numbers, QR hashes, QR payload parsing and
slugs.
"""

from __future__ import annotations

import hashlib
import json
import re
import secrets
import string
import time
from datetime import datetime
from uuid import uuid4

_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference_number(prefix: str, now: datetime) -> str:
    """``EVT-2025-K3Q9ZA``"""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"{prefix}-{now:%Y}-{suffix}"


def generate_qr_code_hash() -> str:
    seed = f"{uuid4()}{time.time_ns()}"
    return hashlib.sha256(seed.encode()).hexdigest()


def parse_qr_content(content: str) -> tuple[str | None, str | None]:
    """
    Return ``(reference_no, qr_code_hash)`` from scanned QR content.

    Scanners that lose the JSON wrapper hand over a bare reference or hash;
    that value comes back in both slots so either column can match it.
    """
    text = content.strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text, text
    if not isinstance(data, dict):
        return text, text
    ref, digest = data.get("ref"), data.get("hash")
    if not ref or not digest:
        return None, None
    return str(ref), str(digest)


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return f"{slug or 'event'}-{secrets.token_hex(3)}"

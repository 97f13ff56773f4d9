"""Deterministic slug helpers for filesystem-safe chapter keys.

Responsibilities:
- Normalize free-form chapter identities into stable ASCII slugs.
- Keep distinct identities distinct even when their slugs collide.
"""

from __future__ import annotations

from hashlib import sha256
import re
import unicodedata


def slugify_chapter_id(value: str) -> str:
    """Return a deterministic filesystem-safe ASCII slug for a chapter identity."""

    normalized = unicodedata.normalize("NFKD", value)
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii")
    lowered = ascii_only.lower().strip()
    collapsed = re.sub(r"[^a-z0-9]+", "-", lowered)
    slug = collapsed.strip("-")[:48]
    return slug or "chapter"


def chapter_storage_key(value: str) -> str:
    """Return `<slug>-<hash8>` so that unicode-only or colliding ids stay unique."""

    digest = sha256(value.encode("utf-8")).hexdigest()[:8]
    return f"{slugify_chapter_id(value)}-{digest}"

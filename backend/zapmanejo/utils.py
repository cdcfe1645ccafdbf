# ---------------------------------------------------------------------------
# utils.py
#
# Shared utility helpers.
#
# This module contains small, dependency-light helpers used across the API.
#
# Responsibilities:
# - Cryptographic helpers (SHA-256 hashing for rate-limit keys)
# - Phone number normalization (WhatsApp senders vs stored user phones)
# - Parsing of WhatsApp health commands
# ---------------------------------------------------------------------------

from __future__ import annotations

import hashlib
import unicodedata
from dataclasses import dataclass
from typing import Optional


# ---------------------------------------------------------------------------
# Crypto helpers
# ---------------------------------------------------------------------------


def sha256_hex(value: str) -> str:
    """Return a SHA-256 hex digest of a UTF-8 string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Phone numbers
# ---------------------------------------------------------------------------


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Keep digits only ("+55 (11) 9..." -> "5511 9..."); None if nothing is left."""
    if not value:
        return None
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    return digits or None


# ---------------------------------------------------------------------------
# WhatsApp health commands
# ---------------------------------------------------------------------------

# First word of the message (accent-insensitive) -> HealthRecord.type
HEALTH_COMMANDS: dict[str, str] = {
    "vacina": "Vacina",
    "vermifugo": "Vermífugo",
    "medicamento": "Medicamento",
}


@dataclass(frozen=True)
class HealthCommand:
    type: str
    brinco: str
    product: Optional[str]


def _fold(word: str) -> str:
    return "".join(
        ch for ch in unicodedata.normalize("NFKD", word.casefold()) if not unicodedata.combining(ch)
    )


def parse_health_command(text: Optional[str]) -> Optional[HealthCommand]:
    """Parse `<type> <brinco> [product...]`, e.g. "vacina 123 Aftosa".

    Returns None when the text is not a health command.
    """
    if not text:
        return None
    parts = text.strip().split()
    if len(parts) < 2:
        return None

    record_type = HEALTH_COMMANDS.get(_fold(parts[0]))
    if record_type is None:
        return None

    product = " ".join(parts[2:]) or None
    return HealthCommand(type=record_type, brinco=parts[1], product=product)

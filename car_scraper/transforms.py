"""Output transformations: field encryption, anonymisation, integrity hash, completeness."""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import EncryptionError
from .hashing import canonical_hash
from .models import CarRecord

ALGORITHM = "aes-256-gcm"
KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16

COMPLETENESS_FIELDS = (
    "manufacturer",
    "model",
    "price.starting_msrp",
    "performance.horsepower",
    "performance.engine",
)


def generate_key() -> str:
    return os.urandom(KEY_LENGTH).hex()


def _key_bytes(key: str) -> bytes:
    try:
        raw = bytes.fromhex(key)
    except ValueError as exc:
        raise EncryptionError("encryption key must be hex encoded") from exc
    if len(raw) != KEY_LENGTH:
        raise EncryptionError(f"encryption key must be {KEY_LENGTH} bytes")
    return raw


def encrypt_data(data: Any, key: str) -> Dict[str, str]:
    """Encrypt a JSON-serialisable value into an AES-256-GCM envelope."""
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_key_bytes(key)).encrypt(iv, json.dumps(data).encode("utf-8"), None)
    return {
        "encrypted": sealed[:-TAG_LENGTH].hex(),
        "iv": iv.hex(),
        "auth_tag": sealed[-TAG_LENGTH:].hex(),
        "algorithm": ALGORITHM,
    }


def decrypt_data(envelope: Mapping[str, str], key: str) -> Any:
    sealed = bytes.fromhex(envelope["encrypted"]) + bytes.fromhex(envelope["auth_tag"])
    try:
        plain = AESGCM(_key_bytes(key)).decrypt(bytes.fromhex(envelope["iv"]), sealed, None)
    except InvalidTag as exc:
        raise EncryptionError("authentication tag mismatch") from exc
    return json.loads(plain.decode("utf-8"))


def generate_data_hash(data: Mapping[str, Any]) -> str:
    """Integrity hash over the record content, excluding any previous hash."""
    return canonical_hash({k: v for k, v in data.items() if k != "data_hash"})


def calculate_completeness(record: CarRecord) -> int:
    """20 points for each populated key field."""
    data = record.to_dict()
    score = 0
    for path in COMPLETENESS_FIELDS:
        value: Any = data
        for part in path.split("."):
            value = value.get(part) if isinstance(value, dict) else None
        if value is not None and value != "":
            score += 20
    return min(100, score)


def apply_security_transformations(
    record: CarRecord,
    session_id: str,
    scraped_at: str,
    anonymize: bool,
) -> CarRecord:
    """Stamp session metadata, drop contact fields and score completeness."""
    record.session_id = session_id
    record.scraped_at = scraped_at
    record.security_flags = []
    if anonymize:
        record.dealer_info = None
        record.contact_info = None
        record.security_flags.append("anonymized")
    record.data_quality = calculate_completeness(record)
    return record


def seal_record(record: CarRecord, encryption_key: Optional[str]) -> Dict[str, Any]:
    """Serialise a record for output, encrypting the price and adding the integrity hash."""
    data = record.to_dict()
    if encryption_key and data.get("price"):
        data["price"] = encrypt_data(data["price"], encryption_key)
        data["security_flags"] = list(data.get("security_flags") or []) + ["encrypted_price"]
    data["data_hash"] = generate_data_hash(data)
    return data

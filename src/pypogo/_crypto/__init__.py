"""Cryptographic helpers for token-at-rest protection and change digests."""

from __future__ import annotations

from pypogo._crypto.aes import aes_decrypt_utf8, aes_encrypt_hex
from pypogo._crypto.hashing import md5_hex, payload_digest

__all__ = [
    "aes_decrypt_utf8",
    "aes_encrypt_hex",
    "md5_hex",
    "payload_digest",
]

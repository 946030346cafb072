"""AES-CBC encryption for credentials persisted at rest."""

from __future__ import annotations

import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from pypogo.exceptions import PogoCryptoError

_IV_BYTES = 16


def _parse_hex_bytes(
    value: str,
    *,
    name: str,
    allowed_nbytes: set[int] | None = None,
) -> bytes:
    text = value.strip()
    if text.startswith("0x") or text.startswith("0X"):
        text = text[2:]
    if not text:
        raise PogoCryptoError(f"{name} is empty")
    if len(text) % 2 != 0:
        raise PogoCryptoError(f"{name} hex length must be even (got {len(text)})")
    try:
        data = bytes.fromhex(text)
    except ValueError as exc:
        raise PogoCryptoError(f"{name} must be hex-encoded") from exc

    if allowed_nbytes is not None and len(data) not in allowed_nbytes:
        allowed = ", ".join(str(n) for n in sorted(allowed_nbytes))
        raise PogoCryptoError(f"{name} must be {allowed} bytes (got {len(data)})")
    return data


def aes_encrypt_hex(plaintext: str, key_hex: str) -> str:
    """AES-CBC encrypt with a random IV, returning uppercase hex of ``IV || ciphertext``.

    Parameters
    ----------
    plaintext : str
        UTF-8 string to encrypt.
    key_hex : str
        Hex key of 16, 24 or 32 bytes.

    Raises
    ------
    PogoCryptoError
        If encryption fails.
    """
    try:
        key = _parse_hex_bytes(key_hex, name="AES key", allowed_nbytes={16, 24, 32})
        iv = os.urandom(_IV_BYTES)
        padder = padding.PKCS7(128).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ct = encryptor.update(padded) + encryptor.finalize()
        return (iv + ct).hex().upper()
    except PogoCryptoError:
        raise
    except Exception as exc:
        raise PogoCryptoError(f"AES encryption failed: {exc}") from exc


def aes_decrypt_utf8(cipher_hex: str, key_hex: str) -> str:
    """Reverse :func:`aes_encrypt_hex`.

    Raises
    ------
    PogoCryptoError
        If the input is malformed or the key is wrong.
    """
    try:
        key = _parse_hex_bytes(key_hex, name="AES key", allowed_nbytes={16, 24, 32})
        blob = _parse_hex_bytes(cipher_hex, name="AES ciphertext")
        if len(blob) <= _IV_BYTES or (len(blob) - _IV_BYTES) % 16 != 0:
            raise PogoCryptoError(f"AES ciphertext has invalid length {len(blob)}")
        iv, ct = blob[:_IV_BYTES], blob[_IV_BYTES:]
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ct) + decryptor.finalize()
        unpadder = padding.PKCS7(128).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except PogoCryptoError:
        raise
    except Exception as exc:
        raise PogoCryptoError(f"AES decryption failed: {exc}") from exc

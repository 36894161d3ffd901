"""Reversible protection for email addresses at rest and in URLs."""

from __future__ import annotations

import base64
import binascii
import hashlib

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESSIV

from .exceptions import DecodeError

__all__ = ["CredentialCipher", "decode_from_url", "encode_for_url"]


def _b64_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64_decode(value: str) -> bytes:
    try:
        raw = value.encode("ascii")
    except UnicodeEncodeError as exc:
        raise DecodeError("value is not URL-safe base64") from exc
    raw += b"=" * (-len(raw) % 4)
    try:
        return base64.b64decode(raw, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError("value is not URL-safe base64") from exc


def encode_for_url(value: str) -> str:
    """Encode ``value`` so it can travel inside a single URL path segment."""

    return _b64_encode(value.encode("utf-8"))


def decode_from_url(token: str) -> str:
    """Invert :func:`encode_for_url`, raising :class:`DecodeError` on malformed input."""

    try:
        return _b64_decode(token).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("decoded value is not UTF-8") from exc


class CredentialCipher:
    """Deterministic authenticated encryption (AES-SIV) for stored email addresses.

    The same address always encrypts to the same ciphertext under a given key, so
    ciphertexts stay comparable, while tampering is still detected on decrypt.
    """

    def __init__(self, *, key_material: bytes) -> None:
        if not key_material:
            raise ValueError("Credential cipher requires non-empty key material")
        self._aead = AESSIV(hashlib.sha512(key_material).digest())

    @classmethod
    def from_secret(cls, secret: str | bytes) -> "CredentialCipher":
        material = secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)
        return cls(key_material=material)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` returning URL-safe ciphertext text."""

        if not plaintext:
            raise ValueError("Cannot encrypt an empty value")
        return _b64_encode(self._aead.encrypt(plaintext.encode("utf-8"), None))

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt ``ciphertext`` produced by :meth:`encrypt`."""

        if not ciphertext:
            raise DecodeError("empty ciphertext")
        data = _b64_decode(ciphertext)
        try:
            plaintext = self._aead.decrypt(data, None)
        except (InvalidTag, ValueError) as exc:
            raise DecodeError("ciphertext could not be authenticated") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:  # pragma: no cover - authenticated data is always ours
            raise DecodeError("decrypted value is not UTF-8") from exc

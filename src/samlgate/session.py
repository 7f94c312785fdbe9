"""Stateless session credentials carried in the gate cookie.

A :class:`SessionCredential` is serialized to compact JSON and encrypted with
AES-256-CBC (PKCS7 padding) under a process-wide key and a fixed
initialization vector. The token is the lowercase hex ciphertext.

Encryption is deterministic: identical credentials produce identical tokens.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable

import msgspec
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .exceptions import SessionDecodeError
from .serialization import json_decode, json_encode

logger = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]

_BLOCK_BITS = algorithms.AES.block_size


class SessionCredential(msgspec.Struct, frozen=True, rename="camel"):
    """Authenticated-principal proof. ``valid_until`` is epoch milliseconds."""

    audience: str
    valid_until: int
    domain: str

    def expires_at(self) -> dt.datetime:
        return dt.datetime.fromtimestamp(self.valid_until / 1000, tz=dt.timezone.utc)


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def epoch_millis(moment: dt.datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt.timezone.utc)
    delta = moment - dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)
    return delta // dt.timedelta(milliseconds=1)


class SessionCodec:
    """Encode, decode and validate session tokens."""

    def __init__(
        self,
        *,
        key: bytes,
        init_vector: bytes,
        audience: str,
        clock: Clock | None = None,
    ) -> None:
        if len(key) != 32:
            raise ValueError("AES-256 requires a 32 byte key")
        if len(init_vector) != 16:
            raise ValueError("AES-CBC requires a 16 byte initialization vector")
        self._cipher = Cipher(algorithms.AES(key), modes.CBC(init_vector))
        self.audience = audience
        self._clock = clock or utc_now

    def encode(self, credential: SessionCredential) -> str:
        padder = padding.PKCS7(_BLOCK_BITS).padder()
        plaintext = padder.update(json_encode(credential)) + padder.finalize()
        encryptor = self._cipher.encryptor()
        ciphertext = encryptor.update(plaintext) + encryptor.finalize()
        return ciphertext.hex()

    def decode(self, token: str) -> SessionCredential | None:
        """Return the credential in ``token`` or ``None`` when it cannot be read."""

        try:
            return self._decode(token)
        except SessionDecodeError as exc:
            logger.debug("session token rejected: %s", exc)
            return None

    def validate(self, token: str | None) -> SessionCredential | None:
        """Return the credential when it is decodable, for our audience and unexpired."""

        if not token:
            return None
        credential = self.decode(token)
        if credential is None:
            return None
        if credential.audience != self.audience:
            return None
        if credential.valid_until <= epoch_millis(self._clock()):
            return None
        return credential

    def is_valid(self, token: str | None) -> bool:
        return self.validate(token) is not None

    def _decode(self, token: str) -> SessionCredential:
        try:
            ciphertext = bytes.fromhex(token)
        except (ValueError, TypeError) as exc:
            raise SessionDecodeError("token is not hex") from exc
        if not ciphertext or len(ciphertext) % (_BLOCK_BITS // 8):
            raise SessionDecodeError("token is not a whole number of cipher blocks")
        decryptor = self._cipher.decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            raise SessionDecodeError("invalid padding") from exc
        try:
            credential = json_decode(plaintext, type=SessionCredential)
        except (msgspec.DecodeError, UnicodeDecodeError) as exc:
            raise SessionDecodeError("invalid payload") from exc
        if not credential.audience or not credential.valid_until:
            raise SessionDecodeError("credential is missing audience or expiry")
        return credential


__all__ = ["SessionCodec", "SessionCredential", "epoch_millis", "utc_now"]

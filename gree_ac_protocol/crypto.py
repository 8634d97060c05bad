#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
GreeCipher -- encryption of the inner "pack" payload of Gree messages.

Every request and response other than the scan request carries a JSON object
that is encrypted with AES-128 in ECB mode (PKCS#7 padded) and base64 encoded.
Until a device has been bound, the well-known generic key is used; afterwards
the key handed out by the device in its "bindok" response is used.
"""

from __future__ import annotations

import base64
import binascii
import json

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .internal_types import *
from .constants import GREE_GENERIC_KEY
from .exceptions import GreeError, GreeDecodeError

AES_KEY_SIZE = 16
AES_BLOCK_BITS = 128

class GreeCipher:
    """Encrypts and decrypts Gree "pack" payloads."""

    generic_key: str
    """The key used when no device key is provided."""

    def __init__(self, generic_key: str=GREE_GENERIC_KEY):
        self.generic_key = generic_key

    def _make_cipher(self, key: Optional[str]) -> Cipher:
        key_bytes = (self.generic_key if key is None else key).encode('utf-8')
        if len(key_bytes) != AES_KEY_SIZE:
            raise GreeError(f"AES key must be {AES_KEY_SIZE} bytes, got {len(key_bytes)}")
        return Cipher(algorithms.AES(key_bytes), modes.ECB())

    def encrypt(self, data: Jsonable, key: Optional[str]=None) -> str:
        """Serializes data to JSON and returns it AES encrypted and base64 encoded."""
        plaintext = json.dumps(data, separators=(',', ':')).encode('utf-8')
        padder = padding.PKCS7(AES_BLOCK_BITS).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = self._make_cipher(key).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(ciphertext).decode('ascii')

    def decrypt(self, data: str, key: Optional[str]=None) -> JsonableDict:
        """Decodes a base64 encrypted payload and returns the JSON object it contains.

        Raises GreeDecodeError if the payload is malformed or was encrypted with a different key.
        """
        try:
            ciphertext = base64.b64decode(data, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise GreeDecodeError(f"Payload is not valid base64: {e}") from e
        if len(ciphertext) == 0 or len(ciphertext) % (AES_BLOCK_BITS // 8) != 0:
            raise GreeDecodeError(f"Payload length {len(ciphertext)} is not a multiple of the AES block size")
        decryptor = self._make_cipher(key).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(AES_BLOCK_BITS).unpadder()
        try:
            plaintext = unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise GreeDecodeError("Payload has invalid padding; wrong key?") from e
        try:
            result = json.loads(plaintext.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            raise GreeDecodeError(f"Decrypted payload is not valid JSON: {e}") from e
        if not isinstance(result, dict):
            raise GreeDecodeError(f"Decrypted payload is not a JSON object: {result!r}")
        return result

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Sealing and opening of encrypted payloads exchanged with the television.

A sealed payload is base64(AES-128-CBC(header + plaintext + zero fill) + HMAC-SHA-256(ciphertext)),
where the 16-byte header is 12 random bytes followed by the big-endian plaintext length.
"""

from __future__ import annotations

import os
import hmac
import base64
import binascii
import hashlib
import struct

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .internal_types import *
from .constants import HMAC_KEY_LENGTH
from .exceptions import EncryptError, DecryptError

HEADER_LENGTH = 16
"""Bytes of random salt plus length field that precede the plaintext."""

BLOCK_SIZE = 16

def _to_bytes(data: Union[str, bytes]) -> bytes:
    return data.encode('utf-8') if isinstance(data, str) else data

def seal(plaintext: Union[str, bytes], key: bytes, iv: bytes, hmac_key: bytes) -> str:
    """Encrypts and signs plaintext.

    Parameters:
        plaintext:  The payload; a str is encoded as UTF-8.
        key:        16-byte AES key.
        iv:         16-byte CBC initialization vector.
        hmac_key:   32-byte HMAC-SHA-256 key.

    Returns the base64 text of ciphertext followed by its 32-byte signature.

    Raises EncryptError if random bytes cannot be produced or the cipher rejects its inputs.
    """
    data = _to_bytes(plaintext)
    try:
        salt = os.urandom(HEADER_LENGTH - 4)
    except NotImplementedError as e:
        raise EncryptError("Preparing payload header failed") from e
    message = salt + struct.pack('>I', len(data)) + data
    # always at least one byte of fill; a full block when already aligned
    message += b'\x00' * (BLOCK_SIZE - len(message) % BLOCK_SIZE)
    try:
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(message) + encryptor.finalize()
    except ValueError as e:
        raise EncryptError(f"Payload could not be encrypted: {e}") from e
    signature = hmac.new(hmac_key, ciphertext, hashlib.sha256).digest()
    return base64.b64encode(ciphertext + signature).decode('ascii')

def open_sealed(blob: Union[str, bytes], key: bytes, iv: bytes, hmac_key: bytes) -> bytes:
    """Verifies and decrypts a sealed payload.

    The signature is checked before anything is decrypted. The returned message is the
    decrypted data from offset 16 up to the first zero byte, or to the end of the buffer.
    The embedded length field is not checked.

    Raises DecryptError if the payload is not valid base64, the signature does not match,
    or the ciphertext cannot be decrypted.
    """
    try:
        decoded = base64.b64decode(_to_bytes(blob), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptError("Payload could not be decoded") from e
    if len(decoded) < HMAC_KEY_LENGTH:
        raise DecryptError("Payload is too short to carry a signature")
    ciphertext = decoded[:-HMAC_KEY_LENGTH]
    signature = decoded[-HMAC_KEY_LENGTH:]
    calculated = hmac.new(hmac_key, ciphertext, hashlib.sha256).digest()
    if not hmac.compare_digest(signature, calculated):
        raise DecryptError("Payload could not be decrypted. Signatures are different")
    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        plain = decryptor.update(ciphertext) + decryptor.finalize()
    except ValueError as e:
        raise DecryptError(f"Payload could not be decrypted: {e}") from e
    message = plain[HEADER_LENGTH:]
    end = message.find(b'\x00')
    if end != -1:
        message = message[:end]
    return message

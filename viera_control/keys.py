# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Derivation of AES and HMAC keys from the base64 keys handed out by the television.

Two derivations exist: one from the long-lived pairing key (X_Keyword), used for
session traffic, and one from the one-shot challenge key returned by X_DisplayPinCode,
used only while authorizing a PIN.
"""

from __future__ import annotations

import base64
import binascii

from .internal_types import *
from .constants import HMAC_KEY_LENGTH, HMAC_KEY_MASK, KEY_LENGTH
from .exceptions import InvalidArgument

class DerivedKeys(NamedTuple):
    cipher_key: bytes
    iv: bytes
    hmac_key: bytes

def decode_key(encoded: str) -> bytes:
    """Decodes a base64 key and checks that it is 16 bytes long.

    Raises InvalidArgument if it is not.
    """
    try:
        iv = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidArgument(f"Key is not valid base64: {encoded!r}") from e
    if len(iv) != KEY_LENGTH:
        raise InvalidArgument(f"Key must decode to {KEY_LENGTH} bytes, got {len(iv)}")
    return iv

def derive_session_keys(pairing_key: str) -> DerivedKeys:
    """Derives the session keys from a base64 pairing key."""
    iv = decode_key(pairing_key)
    cipher_key = bytearray(KEY_LENGTH)
    for i in range(0, KEY_LENGTH, 4):
        cipher_key[i] = iv[i + 2]
        cipher_key[i + 1] = iv[i + 3]
        cipher_key[i + 2] = iv[i]
        cipher_key[i + 3] = iv[i + 1]
    return DerivedKeys(bytes(cipher_key), iv, iv + iv)

def derive_challenge_keys(challenge_key: str) -> DerivedKeys:
    """Derives the PIN authorization keys from a base64 challenge key."""
    iv = decode_key(challenge_key)
    cipher_key = bytearray(KEY_LENGTH)
    for i in range(0, KEY_LENGTH, 4):
        cipher_key[i] = ~iv[i + 3] & 0xff
        cipher_key[i + 1] = ~iv[i + 2] & 0xff
        cipher_key[i + 2] = ~iv[i + 1] & 0xff
        cipher_key[i + 3] = ~iv[i] & 0xff
    hmac_key = bytearray(HMAC_KEY_LENGTH)
    for j in range(0, HMAC_KEY_LENGTH, 4):
        hmac_key[j] = HMAC_KEY_MASK[j] ^ iv[(j + 2) & 15]
        hmac_key[j + 1] = HMAC_KEY_MASK[j + 1] ^ iv[(j + 3) & 15]
        hmac_key[j + 2] = HMAC_KEY_MASK[j + 2] ^ iv[j & 15]
        hmac_key[j + 3] = HMAC_KEY_MASK[j + 3] ^ iv[(j + 1) & 15]
    return DerivedKeys(bytes(cipher_key), iv, bytes(hmac_key))

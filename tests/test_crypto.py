# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import base64

import pytest

from viera_control.crypto import seal, open_sealed, HEADER_LENGTH
from viera_control.exceptions import DecryptError, EncryptError, InvalidArgument
from viera_control.keys import decode_key, derive_session_keys, derive_challenge_keys

KEY = "vdj1PiHp9lJ3OhhzSbqNRw=="

def test_session_key_derivation():
    keys = derive_session_keys(KEY)
    assert keys.iv == bytes.fromhex("bdd8f53e21e9f652773a187349ba8d47")
    assert keys.cipher_key == bytes.fromhex("f53ebdd8f65221e91873773a8d4749ba")
    assert keys.hmac_key == keys.iv + keys.iv

def test_challenge_key_derivation():
    keys = derive_challenge_keys(KEY)
    assert keys.iv == bytes.fromhex("bdd8f53e21e9f652773a187349ba8d47")
    assert keys.cipher_key == bytes.fromhex("c10a2742ad0916de8ce7c588b87245b6")
    assert keys.hmac_key == bytes.fromhex("e0f7e71a46d886025651f8bb937399f550751a045aca581392bed4c6a90871ee")

@pytest.mark.parametrize("encoded", [ "not base64!", base64.b64encode(b"short").decode(), "" ])
def test_decode_key_rejects_bad_keys(encoded):
    with pytest.raises(InvalidArgument):
        decode_key(encoded)

def test_seal_and_open():
    keys = derive_challenge_keys(KEY)
    sealed = seal("test_message_content", *keys)
    assert open_sealed(sealed, *keys) == b"test_message_content"

def test_sealed_length_is_block_aligned_plus_signature():
    keys = derive_session_keys(KEY)
    for size in (0, 1, 15, 16, 17, 100):
        raw = base64.b64decode(seal(b"x" * size, *keys))
        ciphertext_length = len(raw) - 32
        assert ciphertext_length % 16 == 0
        # at least one byte of zero fill is always present
        assert ciphertext_length > HEADER_LENGTH + size

def test_seal_is_salted():
    keys = derive_session_keys(KEY)
    assert seal("same", *keys) != seal("same", *keys)

def test_open_rejects_tampered_ciphertext():
    keys = derive_session_keys(KEY)
    raw = bytearray(base64.b64decode(seal("<X_SessionId>1</X_SessionId>", *keys)))
    raw[3] ^= 0x01
    with pytest.raises(DecryptError, match="Signatures are different"):
        open_sealed(base64.b64encode(bytes(raw)), *keys)

@pytest.mark.parametrize("offset", range(1, 33))
def test_open_rejects_flipped_signature_bit(offset):
    keys = derive_session_keys(KEY)
    raw = bytearray(base64.b64decode(seal("<X_SessionId>1</X_SessionId>", *keys)))
    raw[-offset] ^= 0x80
    with pytest.raises(DecryptError, match="Signatures are different"):
        open_sealed(base64.b64encode(bytes(raw)), *keys)

def test_open_rejects_wrong_keys():
    sealed = seal("payload", *derive_session_keys(KEY))
    with pytest.raises(DecryptError):
        open_sealed(sealed, *derive_challenge_keys(KEY))

def test_open_rejects_garbage():
    keys = derive_session_keys(KEY)
    with pytest.raises(DecryptError):
        open_sealed("%%%not-base64%%%", *keys)
    with pytest.raises(DecryptError):
        open_sealed(base64.b64encode(b"too short"), *keys)

def test_seal_rejects_bad_key_length():
    keys = derive_session_keys(KEY)
    with pytest.raises(EncryptError):
        seal("payload", b"short", keys.iv, keys.hmac_key)

def test_errors_are_api_errors():
    from viera_control.exceptions import TelevisionApiError
    assert issubclass(DecryptError, TelevisionApiError)
    assert issubclass(EncryptError, TelevisionApiError)

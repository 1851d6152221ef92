# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Encrypted session state for a paired television, and a registry that owns
one session per device.
"""

from __future__ import annotations

from .internal_types import *
from .pkg_logging import logger
from .keys import derive_session_keys
from .crypto import seal, open_sealed

MAX_SEQUENCE_NUMBER = 0xffffffff

class Session:
    """Keys, session id and sequence counter for one encrypted conversation with a television.

    The sequence number is bumped before every protected command, so the first command
    after a session id is assigned carries 1.
    """

    cipher_key: bytes
    """16-byte AES key"""

    iv: bytes
    """16-byte CBC initialization vector"""

    hmac_key: bytes
    """32-byte HMAC-SHA-256 key"""

    session_id: Optional[str] = None
    """The id assigned by X_GetEncryptSessionId, or None until the handshake completes"""

    sequence_number: int = 0
    """The sequence number of the most recent protected command"""

    def __init__(self, cipher_key: bytes, iv: bytes, hmac_key: bytes):
        self.cipher_key = cipher_key
        self.iv = iv
        self.hmac_key = hmac_key

    @classmethod
    def from_pairing_key(cls, pairing_key: str) -> Session:
        keys = derive_session_keys(pairing_key)
        return cls(keys.cipher_key, keys.iv, keys.hmac_key)

    @property
    def is_usable(self) -> bool:
        """True while all key material is present."""
        return len(self.cipher_key) > 0 and len(self.iv) > 0 and len(self.hmac_key) > 0

    @property
    def has_id(self) -> bool:
        return self.session_id is not None

    def assign_id(self, session_id: str) -> None:
        """Records a newly issued session id and restarts the sequence counter."""
        logger.debug(f"Session id assigned: {session_id}")
        self.session_id = session_id
        self.sequence_number = 0

    def next_sequence_number(self) -> int:
        self.sequence_number = (self.sequence_number + 1) & MAX_SEQUENCE_NUMBER
        return self.sequence_number

    def seal(self, plaintext: Union[str, bytes]) -> str:
        return seal(plaintext, self.cipher_key, self.iv, self.hmac_key)

    def open(self, blob: Union[str, bytes]) -> bytes:
        return open_sealed(blob, self.cipher_key, self.iv, self.hmac_key)

    def discard(self) -> None:
        """Forgets all key material. The session is unusable afterwards."""
        self.cipher_key = b''
        self.iv = b''
        self.hmac_key = b''
        self.session_id = None
        self.sequence_number = 0

    def __str__(self) -> str:
        return f"Session(session_id={self.session_id}, sequence_number={self.sequence_number}, usable={self.is_usable})"

    def __repr__(self) -> str:
        return str(self)

class SessionRegistry:
    """Holds the live session of each device, keyed by device id."""

    _sessions: Dict[str, Session]

    def __init__(self):
        self._sessions = {}

    def get(self, device_id: str) -> Optional[Session]:
        return self._sessions.get(device_id)

    def create(self, device_id: str, pairing_key: str) -> Session:
        """Derives a fresh session for device_id, replacing and discarding any previous one."""
        self.discard(device_id)
        session = Session.from_pairing_key(pairing_key)
        self._sessions[device_id] = session
        return session

    def discard(self, device_id: str) -> None:
        session = self._sessions.pop(device_id, None)
        if session is not None:
            session.discard()

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import pytest

from viera_control.session import Session, SessionRegistry, MAX_SEQUENCE_NUMBER

PAIRING_KEY = "vdj1PiHp9lJ3OhhzSbqNRw=="

def test_sequence_restarts_on_new_session_id():
    session = Session.from_pairing_key(PAIRING_KEY)
    assert not session.has_id
    session.assign_id("17")
    assert [ session.next_sequence_number() for _ in range(3) ] == [ 1, 2, 3 ]
    session.assign_id("18")
    assert session.next_sequence_number() == 1

def test_sequence_wraps():
    session = Session.from_pairing_key(PAIRING_KEY)
    session.assign_id("1")
    session.sequence_number = MAX_SEQUENCE_NUMBER
    assert session.next_sequence_number() == 0

def test_discard_makes_session_unusable():
    session = Session.from_pairing_key(PAIRING_KEY)
    session.assign_id("1")
    assert session.is_usable
    session.discard()
    assert not session.is_usable
    assert not session.has_id

def test_seal_and_open_with_session_keys():
    session = Session.from_pairing_key(PAIRING_KEY)
    assert session.open(session.seal("<X_SessionId>5</X_SessionId>")) == b"<X_SessionId>5</X_SessionId>"

def test_registry_replaces_and_discards():
    registry = SessionRegistry()
    first = registry.create("tv", PAIRING_KEY)
    assert registry.get("tv") is first
    assert "tv" in registry
    second = registry.create("tv", PAIRING_KEY)
    assert registry.get("tv") is second
    assert not first.is_usable
    assert len(registry) == 1
    registry.discard("tv")
    assert registry.get("tv") is None
    assert not second.is_usable
    assert "tv" not in registry
    # discarding an unknown id is harmless
    registry.discard("other")

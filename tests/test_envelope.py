"""Tests for credvault.envelope."""

import struct

import pytest

from credvault.crypto import (
    KEY_SIZE,
    MAX_MEMORY_COST,
    MAX_TIME_COST,
    Argon2Cost,
    decrypt_field,
    encrypt_field,
    generate_vault_key,
)
from credvault.envelope import create_vault, parse, rewrap_vault, unwrap_vault, wrap_vault_key
from credvault.errors import AuthenticationError, ValidationError


def test_create_and_unwrap(cost):
    blob, salt = create_vault("Secret123!", cost)
    key = unwrap_vault("Secret123!", blob, salt)
    assert isinstance(key, bytearray)
    assert len(key) == KEY_SIZE


def test_salt_is_embedded_in_blob(cost):
    blob, salt = create_vault("pw", cost)
    assert parse(blob).salt == salt
    assert parse(blob).cost == cost
    # Salt argument is optional because the blob carries it.
    assert len(unwrap_vault("pw", blob)) == KEY_SIZE


def test_each_vault_gets_fresh_key_and_salt(cost):
    blob1, salt1 = create_vault("pw", cost)
    blob2, salt2 = create_vault("pw", cost)
    assert salt1 != salt2
    assert unwrap_vault("pw", blob1) != unwrap_vault("pw", blob2)


def test_wrong_passphrase_raises_authentication_error(cost):
    blob, salt = create_vault("correct", cost)
    with pytest.raises(AuthenticationError):
        unwrap_vault("wrong", blob, salt)


def test_mismatched_salt_raises_authentication_error(cost):
    blob, _ = create_vault("pw", cost)
    with pytest.raises(AuthenticationError):
        unwrap_vault("pw", blob, b"\x00" * 16)


@pytest.mark.parametrize("offset", [8, 15, -1])
def test_tampered_blob_raises_authentication_error(cost, offset):
    blob, _ = create_vault("pw", cost)
    tampered = bytearray(blob)
    tampered[offset] ^= 0x01
    with pytest.raises(AuthenticationError):
        unwrap_vault("pw", bytes(tampered))


@pytest.mark.parametrize("data", [b"", b"CVKE", b"XXXX" + b"\x00" * 80])
def test_malformed_blob_raises_authentication_error(data):
    with pytest.raises(AuthenticationError):
        unwrap_vault("pw", data)


def test_truncated_blob_raises_authentication_error(cost):
    blob, _ = create_vault("pw", cost)
    with pytest.raises(AuthenticationError):
        unwrap_vault("pw", blob[:-1])


def test_wrap_existing_key_roundtrip(cost):
    key = generate_vault_key()
    blob, _ = wrap_vault_key("pw", key, cost)
    assert unwrap_vault("pw", blob) == key


def test_rewrap_keeps_vault_key(cost):
    blob, _ = create_vault("old", cost)
    key = unwrap_vault("old", blob)
    field = encrypt_field(key, "still readable")

    new_blob, _ = rewrap_vault("old", "new", blob, cost)

    with pytest.raises(AuthenticationError):
        unwrap_vault("old", new_blob)
    assert decrypt_field(unwrap_vault("new", new_blob), field) == "still readable"


def test_rewrap_with_wrong_old_passphrase_fails(cost):
    blob, _ = create_vault("old", cost)
    with pytest.raises(AuthenticationError):
        rewrap_vault("nope", "new", blob, cost)


@pytest.mark.parametrize(
    "offset,value",
    [
        (5, MAX_TIME_COST + 1),  # time cost
        (5, 200_000),
        (5, 0xFFFFFFFF),
        (9, MAX_MEMORY_COST + 1),  # memory cost
    ],
)
def test_oversized_cost_in_header_is_rejected_before_key_derivation(cost, monkeypatch, offset, value):
    blob, _ = create_vault("pw", cost)
    tampered = bytearray(blob)
    tampered[offset : offset + 4] = struct.pack(">I", value)

    def fail(*args, **kwargs):
        raise AssertionError("key derivation must not run")

    monkeypatch.setattr("credvault.envelope.derive_key", fail)
    with pytest.raises(AuthenticationError):
        unwrap_vault("pw", bytes(tampered))


def test_cost_above_cap_cannot_be_written():
    with pytest.raises(ValidationError):
        create_vault("pw", Argon2Cost(time_cost=MAX_TIME_COST + 1, memory_cost=64, parallelism=1))

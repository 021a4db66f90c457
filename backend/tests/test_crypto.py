"""Tests for the AES-GCM credential helpers."""

from __future__ import annotations

import base64

import pytest

from job_ingest.crypto import IV_BYTES, DecryptionError, decrypt, encrypt


def test_decrypts_what_it_encrypts():
    ciphertext, iv = encrypt("app-password", "shared-secret")

    assert len(base64.b64decode(iv)) == IV_BYTES
    assert decrypt(ciphertext, iv, "shared-secret") == "app-password"


def test_fresh_iv_per_encryption():
    first = encrypt("same", "secret")
    second = encrypt("same", "secret")
    assert first[1] != second[1]


def test_long_secret_is_truncated_to_key_size():
    secret = "k" * 32
    ciphertext, iv = encrypt("pw", secret + "ignored-suffix")
    assert decrypt(ciphertext, iv, secret) == "pw"


def test_wrong_secret_raises():
    ciphertext, iv = encrypt("pw", "right")
    with pytest.raises(DecryptionError):
        decrypt(ciphertext, iv, "wrong")


def test_garbage_input_raises():
    with pytest.raises(DecryptionError):
        decrypt("not base64!!", "also not", "secret")

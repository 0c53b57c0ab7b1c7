"""Tests for master key handling and AES-256-GCM tokens."""

import secrets
import stat
from pathlib import Path

import pytest

from rekey.secrets.crypto import (
    TOKEN_PREFIX,
    decrypt,
    decrypt_token,
    encrypt,
    encrypt_token,
    init_master_key,
    is_token,
    load_master_key,
)


class TestEncryptDecrypt:
    def test_roundtrip(self):
        key = secrets.token_bytes(32)
        assert decrypt(encrypt("my-db-password", key), key) == "my-db-password"

    def test_different_nonces(self):
        key = secrets.token_bytes(32)
        assert encrypt("same", key) != encrypt("same", key)

    def test_wrong_key_fails(self):
        encrypted = encrypt("secret", secrets.token_bytes(32))
        with pytest.raises(ValueError, match="authentication"):
            decrypt(encrypted, secrets.token_bytes(32))

    def test_truncated_data_fails(self):
        with pytest.raises(ValueError, match="too short"):
            decrypt(b"short", secrets.token_bytes(32))

    def test_unicode(self):
        key = secrets.token_bytes(32)
        plaintext = "pässwörd \U0001f511"
        assert decrypt(encrypt(plaintext, key), key) == plaintext


class TestTokens:
    def test_roundtrip(self):
        key = secrets.token_bytes(32)
        token = encrypt_token("hunter2", key)
        assert token.startswith(TOKEN_PREFIX)
        assert is_token(token)
        assert decrypt_token(token, key) == "hunter2"

    def test_plaintext_is_not_a_token(self):
        assert not is_token("hunter2")

    def test_decrypt_plaintext_rejected(self):
        with pytest.raises(ValueError, match="Not an encrypted token"):
            decrypt_token("hunter2", secrets.token_bytes(32))

    def test_malformed_token(self):
        with pytest.raises(ValueError):
            decrypt_token(TOKEN_PREFIX + "!!!", secrets.token_bytes(32))

    @pytest.mark.parametrize(
        "value",
        [TOKEN_PREFIX, TOKEN_PREFIX + "hunter2", TOKEN_PREFIX + "aGk=", TOKEN_PREFIX + "not a token at all"],
    )
    def test_prefixed_plaintext_is_not_a_token(self, value):
        assert not is_token(value)


class TestMasterKey:
    def test_init_creates_key(self, tmp_path: Path):
        key_path = init_master_key(tmp_path / ".master-key")
        assert len(key_path.read_bytes()) == 32
        mode = key_path.stat().st_mode
        assert mode & stat.S_IRGRP == 0
        assert mode & stat.S_IROTH == 0

    def test_init_idempotent(self, tmp_path: Path):
        key_path = init_master_key(tmp_path / ".master-key")
        first = key_path.read_bytes()
        init_master_key(key_path)
        assert key_path.read_bytes() == first

    def test_init_creates_parent(self, tmp_path: Path):
        key_path = init_master_key(tmp_path / "nested" / ".master-key")
        assert key_path.exists()

    def test_load(self, tmp_path: Path):
        key_path = init_master_key(tmp_path / ".master-key")
        assert load_master_key(key_path) == key_path.read_bytes()

    def test_load_missing(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError, match="rekey init-key"):
            load_master_key(tmp_path / ".master-key")

    def test_load_wrong_size(self, tmp_path: Path):
        key_path = tmp_path / ".master-key"
        key_path.write_bytes(b"short")
        with pytest.raises(ValueError, match="32 bytes"):
            load_master_key(key_path)

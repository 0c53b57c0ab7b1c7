"""
AES-256-GCM primitives shared by the local and database secrets managers.

The master key is 32 random bytes in a file (chmod 600), by default
$REKEY_WORKSPACE/.master-key. Every encryption uses a fresh 12-byte nonce,
prepended to the ciphertext. String tokens are ``enc:v1:`` followed by the
URL-safe base64 of nonce + ciphertext + tag.
"""

from __future__ import annotations

import base64
import binascii
import re
import secrets
import stat
import threading
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

TOKEN_PREFIX = "enc:v1:"
KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16

_cached_keys: dict[Path, bytes] = {}
_cache_lock = threading.Lock()


def init_master_key(path: Path | str) -> Path:
    """Generate a new master key file. Skips if it already exists."""
    key_path = Path(path)
    if key_path.exists():
        return key_path
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(secrets.token_bytes(KEY_SIZE))
    key_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 600
    return key_path


def load_master_key(path: Path | str) -> bytes:
    """Load a master key from disk (cached per path)."""
    key_path = Path(path)
    with _cache_lock:
        cached = _cached_keys.get(key_path)
        if cached is not None:
            return cached
        if not key_path.exists():
            raise FileNotFoundError(
                f"Master key not found at {key_path}. Run 'rekey init-key' to generate one."
            )
        key = key_path.read_bytes()
        if len(key) != KEY_SIZE:
            raise ValueError(f"Master key must be {KEY_SIZE} bytes, got {len(key)}")
        _cached_keys[key_path] = key
        return key


def reset_key_cache() -> None:
    """Clear cached master keys (for testing)."""
    with _cache_lock:
        _cached_keys.clear()


def encrypt(plaintext: str, master_key: bytes) -> bytes:
    """Encrypt with AES-256-GCM. Returns nonce + ciphertext + tag."""
    nonce = secrets.token_bytes(NONCE_SIZE)
    return nonce + AESGCM(master_key).encrypt(nonce, plaintext.encode("utf-8"), None)


def decrypt(data: bytes, master_key: bytes) -> str:
    """Decrypt nonce + ciphertext + tag back to plaintext."""
    if len(data) < NONCE_SIZE + TAG_SIZE:
        raise ValueError("Encrypted data too short")
    try:
        plaintext = AESGCM(master_key).decrypt(data[:NONCE_SIZE], data[NONCE_SIZE:], None)
    except InvalidTag as e:
        raise ValueError("Encrypted data failed authentication (wrong key or tampered)") from e
    return plaintext.decode("utf-8")


_TOKEN_BODY = re.compile(r"[A-Za-z0-9_\-]+={0,2}")


def _token_bytes(value: str) -> bytes | None:
    """Decoded nonce + ciphertext + tag of a well-formed token, else None."""
    if not value.startswith(TOKEN_PREFIX):
        return None
    body = value[len(TOKEN_PREFIX) :]
    if not _TOKEN_BODY.fullmatch(body):
        return None
    try:
        data = base64.urlsafe_b64decode(body.encode("ascii"))
    except binascii.Error:
        return None
    return data if len(data) >= NONCE_SIZE + TAG_SIZE else None


def is_token(value: str) -> bool:
    """True for a decodable ``enc:v1:`` token long enough to hold nonce and tag."""
    return _token_bytes(value) is not None


def encrypt_token(plaintext: str, master_key: bytes) -> str:
    return TOKEN_PREFIX + base64.urlsafe_b64encode(encrypt(plaintext, master_key)).decode("ascii")


def decrypt_token(token: str, master_key: bytes) -> str:
    data = _token_bytes(token)
    if data is None:
        raise ValueError("Not an encrypted token")
    return decrypt(data, master_key)

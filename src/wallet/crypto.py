"""
Wallet Crypto - Password verification and wallet record encryption.

Industry-standard security:
- Argon2id key derivation (memory-hard)
- AES-256-GCM authenticated encryption
- Constant-time password hash comparison

Decrypted wallet data never touches disk.
"""

import hmac
import secrets
from dataclasses import dataclass, asdict
from typing import Optional

# Cryptography
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from argon2.low_level import hash_secret_raw, Type


# ============================================
# Security Constants
# ============================================

# Argon2id parameters (OWASP recommendations for high-security)
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32  # 256 bits for AES-256

SALT_SIZE = 16

# AES-GCM constants
AES_IV_SIZE = 12  # 96 bits (recommended for GCM)
AES_TAG_SIZE = 16

# Encrypted payload format version
PAYLOAD_VERSION = "v1"


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters."""
    time_cost: int = ARGON2_TIME_COST
    memory_cost: int = ARGON2_MEMORY_COST
    parallelism: int = ARGON2_PARALLELISM

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "KdfParams":
        if not isinstance(data, dict):
            return cls()
        return cls(
            time_cost=int(data.get("time_cost", ARGON2_TIME_COST)),
            memory_cost=int(data.get("memory_cost", ARGON2_MEMORY_COST)),
            parallelism=int(data.get("parallelism", ARGON2_PARALLELISM)),
        )


DEFAULT_KDF = KdfParams()


# ============================================
# Key Derivation
# ============================================

def derive_key(password: str, salt: bytes, params: KdfParams = DEFAULT_KDF) -> bytes:
    """
    Derive a 256-bit key from password using Argon2id.

    Argon2id is memory-hard, making brute-force attacks expensive.
    With the default parameters each guess needs ~64MB RAM.
    """
    return hash_secret_raw(
        secret=password.encode('utf-8'),
        salt=salt,
        time_cost=params.time_cost,
        memory_cost=params.memory_cost,
        parallelism=params.parallelism,
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID
    )


# ============================================
# Password Hashing
# ============================================

def hash_password(password: str, params: KdfParams = DEFAULT_KDF) -> tuple[str, str]:
    """
    Hash a new password.

    Returns: (hash_hex, salt_hex)
    """
    salt = secrets.token_bytes(SALT_SIZE)
    return derive_key(password, salt, params).hex(), salt.hex()


def verify_password(password: str, hash_hex: str, salt_hex: str,
                    params: KdfParams = DEFAULT_KDF) -> bool:
    """Check a password against a stored hash in constant time."""
    try:
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(hash_hex)
    except (TypeError, ValueError):
        return False
    candidate = derive_key(password, salt, params)
    return hmac.compare_digest(candidate, expected)


# ============================================
# Wallet Record Encryption
# ============================================

def encrypt_wallet_data(plaintext: str, password: str,
                        params: KdfParams = DEFAULT_KDF) -> str:
    """
    Encrypt one wallet record with its own salt and IV.

    Returns: "v1:<salt>:<iv>:<ciphertext+tag>" (hex fields)
    """
    salt = secrets.token_bytes(SALT_SIZE)
    key = derive_key(password, salt, params)
    iv = secrets.token_bytes(AES_IV_SIZE)

    aesgcm = AESGCM(key)
    ciphertext_and_tag = aesgcm.encrypt(iv, plaintext.encode('utf-8'), None)

    return ":".join([PAYLOAD_VERSION, salt.hex(), iv.hex(), ciphertext_and_tag.hex()])


def decrypt_wallet_data(payload: str, password: str,
                        params: KdfParams = DEFAULT_KDF) -> str:
    """
    Decrypt one wallet record.

    Raises: ValueError if the payload is malformed, the password is wrong
    or the data was tampered with.
    """
    try:
        version, salt_hex, iv_hex, data_hex = payload.split(":")
        if version != PAYLOAD_VERSION:
            raise ValueError(f"Unsupported payload version: {version}")
        salt = bytes.fromhex(salt_hex)
        iv = bytes.fromhex(iv_hex)
        ciphertext_and_tag = bytes.fromhex(data_hex)
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Malformed encrypted payload: {e}") from e

    key = derive_key(password, salt, params)
    aesgcm = AESGCM(key)
    try:
        plaintext = aesgcm.decrypt(iv, ciphertext_and_tag, None)
    except Exception as e:
        raise ValueError("Wrong password or corrupted wallet record") from e

    return plaintext.decode('utf-8')

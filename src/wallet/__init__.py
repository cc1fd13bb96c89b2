"""
Wallet package - Key handling and the lock gate.

Contains:
- WalletAccessManager: Password gate, unlock/lock, wallet list maintenance
- WalletRecord, UnlockedWallet: At-rest and in-session wallet forms
- Crypto: Argon2id password hashing, AES-256-GCM record encryption
- Keys: eth-account based generation, import and message signing
"""

from .crypto import (
    KdfParams,
    DEFAULT_KDF,
    hash_password,
    verify_password,
    encrypt_wallet_data,
    decrypt_wallet_data,
)
from .keys import (
    UnlockedWallet,
    generate_wallet,
    import_mnemonic,
    import_private_key,
    sign_message,
)
from .manager import (
    WalletAccessManager,
    WalletRecord,
    LOCK_STATE_LOCKED,
    LOCK_STATE_UNLOCKED,
)

__all__ = [
    # Crypto
    "KdfParams",
    "DEFAULT_KDF",
    "hash_password",
    "verify_password",
    "encrypt_wallet_data",
    "decrypt_wallet_data",
    # Keys
    "UnlockedWallet",
    "generate_wallet",
    "import_mnemonic",
    "import_private_key",
    "sign_message",
    # Manager
    "WalletAccessManager",
    "WalletRecord",
    "LOCK_STATE_LOCKED",
    "LOCK_STATE_UNLOCKED",
]

"""
Wallet Access Manager - Password gate over the stored wallets.

Decides whether the user-facing surfaces must show the unlock step, and
owns the only code paths that turn encrypted wallet records into session
wallets and back.

Lock state is derived, never trusted on its own: a surface counts as
unlocked only while the lock flag says so AND a decrypted wallet list is
present in the store. Anything else is locked.
"""

import json
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from models import AuthError, SharedStore
from models.store import (
    KEY_PASSWORD_HASH,
    KEY_PASSWORD_SALT,
    KEY_KDF_PARAMS,
    KEY_ENCRYPTED_WALLETS,
    KEY_WALLETS,
    KEY_ACTIVE_WALLET,
    KEY_IS_LOCKED,
)
from .crypto import (
    KdfParams,
    DEFAULT_KDF,
    hash_password,
    verify_password,
    encrypt_wallet_data,
    decrypt_wallet_data,
)
from .keys import UnlockedWallet

logger = logging.getLogger(__name__)

LOCK_STATE_LOCKED = "locked"
LOCK_STATE_UNLOCKED = "unlocked"


@dataclass
class WalletRecord:
    """At-rest form of a wallet: address plus encrypted payload."""
    address: str
    encrypted_payload: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "WalletRecord":
        return cls(address=data["address"], encrypted_payload=data["encrypted_payload"])


def _session_wallets(snapshot: dict) -> list[UnlockedWallet]:
    """Parse the decrypted list out of a snapshot; anything odd is empty."""
    raw = snapshot.get(KEY_WALLETS)
    if not isinstance(raw, list):
        return []
    wallets = []
    for item in raw:
        try:
            wallets.append(UnlockedWallet.from_dict(item))
        except (TypeError, KeyError) as e:
            logger.warning(f"Skipping malformed session wallet: {e}")
    return wallets


class WalletAccessManager:
    """Two-state lock gate plus wallet list maintenance."""

    def __init__(self, store: SharedStore, kdf: KdfParams = DEFAULT_KDF):
        self.store = store
        self.kdf = kdf

    def _kdf_for(self, snapshot: dict) -> KdfParams:
        """Parameters recorded at setup win over the current settings."""
        recorded = snapshot.get(KEY_KDF_PARAMS)
        return KdfParams.from_dict(recorded) if recorded else self.kdf

    # ============================================
    # Gate
    # ============================================

    def is_setup(self, snapshot: Optional[dict] = None) -> bool:
        """True iff a password hash has ever been recorded."""
        snapshot = snapshot if snapshot is not None else self.store.snapshot()
        return bool(snapshot.get(KEY_PASSWORD_HASH))

    def should_gate(self, snapshot: Optional[dict] = None) -> bool:
        """
        True iff setup is complete and the wallet is not provably unlocked.

        A fresh install (no password) is never gated.
        """
        snapshot = snapshot if snapshot is not None else self.store.snapshot()
        if not self.is_setup(snapshot):
            return False
        explicitly_unlocked = snapshot.get(KEY_IS_LOCKED) is False
        # An empty list still counts: unlock of a wallet-less store leads to onboarding
        has_wallet_list = isinstance(snapshot.get(KEY_WALLETS), list)
        return not explicitly_unlocked or not has_wallet_list

    def lock_state(self, snapshot: Optional[dict] = None) -> str:
        return LOCK_STATE_LOCKED if self.should_gate(snapshot) else LOCK_STATE_UNLOCKED

    # ============================================
    # Unlock / Lock
    # ============================================

    def _verify(self, password: str, snapshot: dict) -> None:
        hash_hex = snapshot.get(KEY_PASSWORD_HASH)
        salt_hex = snapshot.get(KEY_PASSWORD_SALT)
        if not hash_hex or not salt_hex:
            raise AuthError("No password set")
        if not verify_password(password, hash_hex, salt_hex, self._kdf_for(snapshot)):
            raise AuthError("Invalid password")

    def _load_records(self, snapshot: dict) -> list[WalletRecord]:
        """Parse stored encrypted wallets. A corrupted collection yields none."""
        raw = snapshot.get(KEY_ENCRYPTED_WALLETS)
        if raw is None:
            return []
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.error(f"Failed to parse encrypted wallets: {e}")
                return []
        if not isinstance(raw, list):
            logger.error("Encrypted wallets are not a list, ignoring stored wallets")
            return []
        records = []
        for item in raw:
            try:
                records.append(WalletRecord.from_dict(item))
            except (TypeError, KeyError) as e:
                logger.warning(f"Skipping malformed wallet record: {e}")
        return records

    def unlock(self, password: str) -> list[UnlockedWallet]:
        """
        Verify the password and decrypt every stored wallet.

        Raises:
            AuthError: No password recorded, or the password is wrong.
                Nothing in the store changes in that case.
        """
        snapshot = self.store.snapshot()
        self._verify(password, snapshot)

        kdf = self._kdf_for(snapshot)
        wallets: list[UnlockedWallet] = []
        for record in self._load_records(snapshot):
            try:
                plaintext = decrypt_wallet_data(record.encrypted_payload, password, kdf)
                wallets.append(UnlockedWallet.from_dict(json.loads(plaintext)))
            except (ValueError, TypeError, KeyError) as e:
                logger.warning(f"Failed to decrypt wallet {record.address}: {e}")

        # Order matters: readers treat wallets-without-flag as still locked
        self.store.set(KEY_WALLETS, [w.to_dict() for w in wallets])
        self.store.set(KEY_IS_LOCKED, False)
        # The pointer must name a loaded wallet: reset it if absent or stale
        active_id = self.store.get(KEY_ACTIVE_WALLET)
        if not any(w.address == active_id for w in wallets):
            if wallets:
                self.store.set(KEY_ACTIVE_WALLET, wallets[0].address)
            elif active_id is not None:
                self.store.remove(KEY_ACTIVE_WALLET)

        logger.info(f"Unlocked {len(wallets)} wallet(s)")
        return wallets

    def lock(self) -> None:
        """Drop decrypted wallets and the active pointer. Idempotent."""
        self.store.set(KEY_IS_LOCKED, True)
        self.store.remove(KEY_WALLETS)
        self.store.remove(KEY_ACTIVE_WALLET)
        logger.info("Wallets locked")

    # ============================================
    # Onboarding and wallet list maintenance
    # ============================================

    def setup_password(self, password: str) -> None:
        """Record the wallet password (first run only)."""
        if self.is_setup():
            raise AuthError("A password is already set")
        if not password:
            raise AuthError("Password must not be empty")
        hash_hex, salt_hex = hash_password(password, self.kdf)
        self.store.set(KEY_KDF_PARAMS, self.kdf.to_dict())
        self.store.set(KEY_PASSWORD_SALT, salt_hex)
        self.store.set(KEY_PASSWORD_HASH, hash_hex)
        self.store.set(KEY_ENCRYPTED_WALLETS, [])
        # Nothing to decrypt yet, so the session starts unlocked and empty
        self.store.set(KEY_WALLETS, [])
        self.store.set(KEY_IS_LOCKED, False)

    def add_wallet(self, wallet: UnlockedWallet, password: str) -> None:
        """Encrypt and store a wallet, then make it the active one."""
        snapshot = self.store.snapshot()
        self._verify(password, snapshot)

        records = self._load_records(snapshot)
        if any(r.address.lower() == wallet.address.lower() for r in records):
            raise ValueError(f"Wallet {wallet.address} already exists")

        payload = encrypt_wallet_data(json.dumps(wallet.to_dict()), password, self._kdf_for(snapshot))
        records.append(WalletRecord(address=wallet.address, encrypted_payload=payload))
        self.store.set(KEY_ENCRYPTED_WALLETS, [r.to_dict() for r in records])

        wallets = _session_wallets(snapshot)
        wallets.append(wallet)
        self.store.set(KEY_WALLETS, [w.to_dict() for w in wallets])
        self.store.set(KEY_IS_LOCKED, False)
        self.store.set(KEY_ACTIVE_WALLET, wallet.address)

    def remove_wallet(self, address: str) -> None:
        """Remove a wallet from both the encrypted and session lists."""
        snapshot = self.store.snapshot()
        records = [r for r in self._load_records(snapshot) if r.address != address]
        self.store.set(KEY_ENCRYPTED_WALLETS, [r.to_dict() for r in records])

        wallets = [w for w in _session_wallets(snapshot) if w.address != address]
        if KEY_WALLETS in snapshot:
            self.store.set(KEY_WALLETS, [w.to_dict() for w in wallets])
        if snapshot.get(KEY_ACTIVE_WALLET) == address:
            if wallets:
                self.store.set(KEY_ACTIVE_WALLET, wallets[0].address)
            else:
                self.store.remove(KEY_ACTIVE_WALLET)

    def get_wallets(self, snapshot: Optional[dict] = None) -> list[UnlockedWallet]:
        """Decrypted wallets of the current session (empty while locked)."""
        snapshot = snapshot if snapshot is not None else self.store.snapshot()
        return _session_wallets(snapshot)

    def get_active_wallet(self, snapshot: Optional[dict] = None) -> Optional[UnlockedWallet]:
        """The wallet the pointer names, or the first loaded one if it names nothing."""
        snapshot = snapshot if snapshot is not None else self.store.snapshot()
        wallets = _session_wallets(snapshot)
        if not wallets:
            return None
        active_id = snapshot.get(KEY_ACTIVE_WALLET)
        for wallet in wallets:
            if wallet.address == active_id:
                return wallet
        return wallets[0]

    def set_active_wallet(self, address: str) -> None:
        if not any(w.address == address for w in self.get_wallets()):
            raise ValueError(f"Wallet {address} is not loaded")
        self.store.set(KEY_ACTIVE_WALLET, address)

"""
Wallet Keys - Key material for unlocked wallets.

Generation, import and message signing are delegated to eth-account; this
module only shapes the results into UnlockedWallet records.
"""

from dataclasses import dataclass, asdict
from typing import Optional

# Ethereum
from mnemonic import Mnemonic
from eth_account import Account
from eth_account.messages import encode_defunct

# Enable HD wallet features
Account.enable_unaudited_hdwallet_features()

WALLET_TYPE_GENERATED = "generated"
WALLET_TYPE_MNEMONIC = "mnemonic"
WALLET_TYPE_PRIVATE_KEY = "private_key"


@dataclass
class UnlockedWallet:
    """A decrypted wallet. Only ever held in the session area of the store."""
    address: str
    private_key: str                # 0x-prefixed hex
    name: str = ""
    mnemonic: Optional[str] = None
    wallet_type: str = WALLET_TYPE_GENERATED

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UnlockedWallet":
        return cls(**data)


def generate_wallet(name: str = "", word_count: int = 12) -> UnlockedWallet:
    """Create a fresh wallet with a new BIP-39 seed phrase."""
    if word_count not in (12, 24):
        raise ValueError("word_count must be 12 or 24")
    account, phrase = Account.create_with_mnemonic(num_words=word_count)
    return UnlockedWallet(
        address=account.address,
        private_key="0x" + account.key.hex().removeprefix("0x"),
        name=name,
        mnemonic=phrase,
        wallet_type=WALLET_TYPE_GENERATED,
    )


def import_mnemonic(seed_phrase: str, name: str = "") -> UnlockedWallet:
    """Restore the first account of a BIP-39 seed phrase."""
    seed_phrase = " ".join(seed_phrase.split())
    if not Mnemonic("english").check(seed_phrase):
        raise ValueError("Invalid seed phrase")
    account = Account.from_mnemonic(seed_phrase)
    return UnlockedWallet(
        address=account.address,
        private_key="0x" + account.key.hex().removeprefix("0x"),
        name=name,
        mnemonic=seed_phrase,
        wallet_type=WALLET_TYPE_MNEMONIC,
    )


def import_private_key(private_key: str, name: str = "") -> UnlockedWallet:
    """Import a single hex private key (with or without 0x prefix)."""
    pkey = private_key.strip()
    if pkey.startswith("0x") or pkey.startswith("0X"):
        pkey = pkey[2:]
    try:
        account = Account.from_key(bytes.fromhex(pkey))
    except ValueError as e:
        raise ValueError(f"Invalid private key: {e}") from e
    return UnlockedWallet(
        address=account.address,
        private_key="0x" + pkey.lower(),
        name=name,
        wallet_type=WALLET_TYPE_PRIVATE_KEY,
    )


def sign_message(wallet: UnlockedWallet, message: str | bytes) -> str:
    """Sign a personal message. Returns the 65-byte signature as 0x hex."""
    if isinstance(message, str):
        message = message.encode('utf-8')
    signed = Account.sign_message(encode_defunct(primitive=message), private_key=wallet.private_key)
    return "0x" + signed.signature.hex().removeprefix("0x")

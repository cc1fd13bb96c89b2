"""
Wallet Relay Networks - Chain configuration and the chain client.

One network is configured at a time. The chain client reads balances,
runs contract view calls and signs/submits state-changing calls for an
approved request.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from eth_account import Account
from web3 import Web3

from models import ContractRequest, CONTRACT_VIEW, ValidationError, AuthError

logger = logging.getLogger(__name__)

# ============================================
# Network Configurations
# ============================================

@dataclass
class NetworkConfig:
    """Configuration for a blockchain network."""
    chain_id: int
    name: str
    display_name: str
    rpc_url: str
    explorer_url: str
    is_testnet: bool
    native_symbol: str
    native_decimals: int = 18

    def to_dict(self) -> dict:
        """Network info as returned to pages."""
        return {
            "chainId": hex(self.chain_id),
            "networkId": self.name,
            "name": self.display_name,
            "rpcUrl": self.rpc_url,
            "explorerUrl": self.explorer_url,
            "isTestnet": self.is_testnet,
            "nativeSymbol": self.native_symbol,
        }


NETWORKS = {
    # Base Mainnet
    8453: NetworkConfig(
        chain_id=8453,
        name="base",
        display_name="Base",
        rpc_url="https://base.publicnode.com",
        explorer_url="https://basescan.org",
        is_testnet=False,
        native_symbol="ETH",
    ),
    # Base Sepolia Testnet
    84532: NetworkConfig(
        chain_id=84532,
        name="base-sepolia",
        display_name="Base Sepolia",
        rpc_url="https://sepolia.base.org",
        explorer_url="https://sepolia.basescan.org",
        is_testnet=True,
        native_symbol="ETH",
    ),
}

DEFAULT_NETWORK = 84532

# No gas estimation: fixed limits unless the request carries one
DEFAULT_GAS_LIMIT = 100_000
DEFAULT_TRANSFER_GAS_LIMIT = 21_000


# ============================================
# Balances
# ============================================

@dataclass
class Balance:
    """A native balance."""
    symbol: str
    raw: int           # Raw balance in smallest unit
    decimals: int
    formatted: float   # Human-readable balance


# Looks up the ABI entry for (contract_address, method_name); None if unknown
AbiProvider = Callable[[str, str], Optional[dict]]


def _jsonable(value: Any) -> Any:
    """Convert decoded ABI values into JSON-friendly ones."""
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class ChainClient:
    """Talks to the configured network through web3."""

    def __init__(
        self,
        network: NetworkConfig,
        rpc_url: Optional[str] = None,
        abi_provider: Optional[AbiProvider] = None,
        w3: Optional[Web3] = None,
    ):
        """
        Args:
            network: Network configuration
            rpc_url: Custom RPC URL, or None to use network default
            abi_provider: Optional ABI catalog used to decode view results
            w3: Preconfigured Web3 instance (overrides rpc_url)
        """
        self.network = network
        self.abi_provider = abi_provider
        if w3 is None:
            effective_rpc = rpc_url if rpc_url else network.rpc_url
            w3 = Web3(Web3.HTTPProvider(effective_rpc))
        self.w3 = w3

    def network_info(self) -> dict:
        return self.network.to_dict()

    def get_native_balance(self, address: str) -> Balance:
        """Get native token balance."""
        address = Web3.to_checksum_address(address)
        raw_balance = self.w3.eth.get_balance(address)
        return Balance(
            symbol=self.network.native_symbol,
            raw=raw_balance,
            decimals=self.network.native_decimals,
            formatted=raw_balance / (10 ** self.network.native_decimals),
        )

    def get_balance(self, address: str) -> str:
        """Native balance as a decimal string, as pages expect it."""
        balance = self.get_native_balance(address)
        return str(Decimal(balance.raw) / (Decimal(10) ** balance.decimals))

    # ============================================
    # Contract calls
    # ============================================

    def _abi_entry(self, request: ContractRequest) -> Optional[dict]:
        if self.abi_provider is None:
            return None
        return self.abi_provider(request.contract_address, request.method_name)

    def encode_call(self, request: ContractRequest) -> bytes:
        """Selector plus ABI-encoded params, in request order."""
        entry = self._abi_entry(request)
        if entry is not None:
            types = [i["type"] for i in entry.get("inputs", [])]
        else:
            types = [p.type for p in request.params]
        if len(types) != len(request.params):
            raise ValidationError(
                f"{request.method_name} takes {len(types)} params, got {len(request.params)}"
            )
        signature = f"{request.method_name}({','.join(types)})"
        selector = Web3.keccak(text=signature)[:4]
        args = [p.value for p in request.params]
        return bytes(selector) + self.w3.codec.encode(types, args)

    def view(self, request: ContractRequest) -> Any:
        """Run a read-only call; decoded if the ABI is known, raw hex otherwise."""
        raw = self.w3.eth.call({
            "to": Web3.to_checksum_address(request.contract_address),
            "data": Web3.to_hex(self.encode_call(request)),
        })
        entry = self._abi_entry(request)
        if entry is None or not entry.get("outputs"):
            return Web3.to_hex(raw)
        output_types = [o["type"] for o in entry["outputs"]]
        decoded = self.w3.codec.decode(output_types, bytes(raw))
        if len(decoded) == 1:
            return _jsonable(decoded[0])
        return _jsonable(decoded)

    def _to_wei(self, amount: Optional[str]) -> int:
        if not amount:
            return 0
        try:
            return Web3.to_wei(Decimal(str(amount)), "ether")
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Invalid value: {amount}") from e

    def call(self, request: ContractRequest, private_key: str) -> dict:
        """Sign and submit a state-changing call (or native transfer)."""
        account = Account.from_key(private_key)
        tx = {
            "to": Web3.to_checksum_address(request.contract_address),
            "value": self._to_wei(request.value),
            "nonce": self.w3.eth.get_transaction_count(account.address),
            "chainId": self.network.chain_id,
        }
        if request.is_transfer:
            tx["gas"] = request.gas_limit or DEFAULT_TRANSFER_GAS_LIMIT
        else:
            tx["gas"] = request.gas_limit or DEFAULT_GAS_LIMIT
            tx["data"] = Web3.to_hex(self.encode_call(request))
        if request.gas_price is not None:
            tx["gasPrice"] = Web3.to_wei(Decimal(str(request.gas_price)), "gwei")
        else:
            tx["gasPrice"] = self.w3.eth.gas_price

        signed = Account.sign_transaction(tx, private_key)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Submitted {request.method_name} to {request.contract_address}: {tx_hash_hex}")
        return {"txHash": tx_hash_hex}

    def execute(self, request: ContractRequest, wallet) -> Any:
        """Run an approved request with the given unlocked wallet."""
        if request.kind == CONTRACT_VIEW:
            return self.view(request)
        if wallet is None:
            raise AuthError("No unlocked wallet to sign with")
        return self.call(request, wallet.private_key)


# ============================================
# Utility Functions
# ============================================

def format_address(address: str, chars: int = 4) -> str:
    """Format address as 0x1234...5678"""
    if len(address) <= chars * 2 + 2:
        return address
    return f"{address[:chars+2]}...{address[-chars:]}"

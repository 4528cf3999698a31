"""
Chain Gateway Interface
=======================

Abstract base class and models for ledger operations against the income
verifier and the tax payment contract.

Each call is an independent request/response unit with a bounded timeout.
Failures surface as ChainError; the gateway never retries.

Version: 0.1.0
"""

import re
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field
from web3 import Web3

from taxproof.config import ChainMode, Settings
from taxproof.errors import ConfigurationError, ValidationError
from taxproof.logging import get_logger
from taxproof.models.records import TxProvenance
from taxproof.zk.models import ZKProof


logger = get_logger(__name__)

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class TransactionStatus(str, Enum):
    """Ledger transaction status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class TransactionRecord(BaseModel):
    """A transaction as read back from the ledger."""

    hash: str
    from_address: str | None = None
    to_address: str | None = None
    value: int = Field(default=0, description="Value in wei")
    block_number: int | None = None
    gas_used: int | None = None
    status: TransactionStatus = TransactionStatus.PENDING
    timestamp: datetime | None = None
    provenance: TxProvenance = TxProvenance.LEDGER
    payment_amount: int | None = Field(
        default=None,
        description="Amount argument of a processTaxPayment call, in wei",
    )


class VerificationReceipt(BaseModel):
    """Outcome of a state-changing verification transaction."""

    is_valid: bool
    tx_hash: str | None = Field(default=None, description="None when nothing was sent")
    provenance: TxProvenance = TxProvenance.LEDGER
    block_number: int | None = None


class TreasuryBalance(BaseModel):
    """Display-only treasury balance."""

    raw: int = Field(..., description="Balance in wei")
    normalized: Decimal = Field(..., description="Balance in ether")
    fiat_equivalent: Decimal
    currency: str
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC))
    provenance: TxProvenance = TxProvenance.LEDGER


def validate_tx_hash(tx_hash: str) -> str:
    """
    Reject anything that is not a 0x-prefixed 32-byte hash.

    Raises:
        ValidationError: Malformed hash
    """
    if not isinstance(tx_hash, str) or not _TX_HASH_RE.match(tx_hash):
        raise ValidationError("Malformed transaction hash", tx_hash=tx_hash)
    return tx_hash.lower()


def validate_address(address: str, field: str = "address") -> str:
    """
    Reject malformed account addresses.

    Raises:
        ValidationError: Not an EVM address (or bad checksum)
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValidationError("Invalid blockchain address", field=field)
    return Web3.to_checksum_address(address)


def validate_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Amount must be a positive integer", field="amount")
    return amount


def fiat_to_wei(amount: int, rate: int) -> int:
    """Convert a fiat amount to wei at `rate` fiat units per ether."""
    return Web3.to_wei(Decimal(amount) / Decimal(rate), "ether")


def treasury_balance_from_wei(
    raw: int,
    rate: int,
    currency: str,
    provenance: TxProvenance = TxProvenance.LEDGER,
) -> TreasuryBalance:
    normalized = Web3.from_wei(raw, "ether")
    return TreasuryBalance(
        raw=raw,
        normalized=Decimal(normalized),
        fiat_equivalent=Decimal(normalized) * rate,
        currency=currency,
        provenance=provenance,
    )


class ChainGateway(ABC):
    """
    Abstract base class for ledger gateways.

    Implements the Strategy pattern for the different chain modes.
    """

    @property
    @abstractmethod
    def mode(self) -> ChainMode:
        """Get the chain mode."""
        ...

    @property
    @abstractmethod
    def provenance(self) -> TxProvenance:
        """Provenance tag of transactions sent through this gateway."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the ledger."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Release ledger connections."""
        ...

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Check ledger health."""
        ...

    # =========================================================================
    # Verifier Contract
    # =========================================================================

    @abstractmethod
    async def submit_commitment(self, address: str, commitment: str) -> str:
        """
        Store an income commitment for `address`.

        Returns:
            Transaction hash

        Raises:
            ValidationError: Malformed address or commitment
            ChainError: Network, estimation, revert or timeout
        """
        ...

    @abstractmethod
    async def verify_proof_call(self, proof: ZKProof, public_signals: list[str]) -> bool:
        """
        Stateless `verifyProof` view call.

        Raises:
            ChainError: The call itself failed
        """
        ...

    @abstractmethod
    async def submit_verification(
        self,
        address: str,
        proof: ZKProof,
        public_signals: list[str],
    ) -> VerificationReceipt:
        """
        Submit a verification transaction and wait for inclusion.

        `is_valid` is the contract's verdict, not the receipt status.

        Raises:
            ChainError: Network, estimation, revert or timeout
        """
        ...

    # =========================================================================
    # Payment Contract
    # =========================================================================

    @abstractmethod
    async def submit_payment(
        self,
        address: str,
        amount: int,
        a: list[int],
        b: list[list[int]],
        c: list[int],
        public_inputs: list[int],
    ) -> str:
        """
        Submit `processTaxPayment` with already-serialized proof components.

        Args:
            address: Payer address
            amount: Ledger amount in wei (> 0)
            a, b, c: Proof points in verifier order (b already swapped)
            public_inputs: Public signals as integers

        Returns:
            Transaction hash

        Raises:
            ValidationError: amount <= 0 or malformed arguments
            ChainError: Network, estimation, revert or timeout
        """
        ...

    @abstractmethod
    async def get_treasury_balance(self) -> TreasuryBalance:
        ...

    # =========================================================================
    # Transactions
    # =========================================================================

    @abstractmethod
    async def read_transaction(self, tx_hash: str) -> TransactionRecord:
        """
        Read a transaction and its receipt.

        Raises:
            ValidationError: Malformed hash
            NotFoundError: No such transaction
            ChainError: Network or timeout
        """
        ...

    @abstractmethod
    async def verify_receipt(self, tx_hash: str) -> bool:
        """Check that a transaction is confirmed and went to the payment contract."""
        ...


def build_chain_gateway(settings: Settings) -> ChainGateway:
    """
    Build the gateway for the configured chain mode.

    Raises:
        ConfigurationError: Simulated ledger requested in production
    """
    mode = settings.chain.mode

    if mode == ChainMode.MOCK:
        if settings.is_production:
            raise ConfigurationError("CHAIN_MODE=mock is not allowed in production")
        from taxproof.blockchain.mock import SimulatedChainGateway

        gateway: ChainGateway = SimulatedChainGateway(settings)
    elif mode in (ChainMode.TESTNET, ChainMode.MAINNET):
        from taxproof.blockchain.web3_gateway import Web3ChainGateway

        gateway = Web3ChainGateway(settings)
    else:
        raise ConfigurationError(f"Unknown chain mode: {mode}")

    logger.info("chain_gateway_initialized", mode=mode.value)
    return gateway

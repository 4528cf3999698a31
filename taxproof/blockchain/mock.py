"""
Simulated Chain Gateway
=======================

In-memory ledger for development and testing.

Simulates the verifier and payment contracts without any chain
infrastructure. Every transaction it records is tagged
`provenance="simulated_ledger"`. Data is lost on restart.

Version: 0.1.0
"""

import hashlib
import uuid
from datetime import UTC, datetime
from typing import Any

from taxproof.blockchain.client import (
    ChainGateway,
    TransactionRecord,
    TransactionStatus,
    TreasuryBalance,
    VerificationReceipt,
    treasury_balance_from_wei,
    validate_address,
    validate_amount,
    validate_tx_hash,
)
from taxproof.blockchain.serialization import (
    VERIFIER_PUBLIC_INPUTS,
    public_inputs_array,
    to_verifier_calldata,
)
from taxproof.config import ChainMode, Settings
from taxproof.errors import ChainError, NotFoundError, ValidationError
from taxproof.logging import get_logger
from taxproof.models.records import TxProvenance
from taxproof.zk.commitment import is_commitment
from taxproof.zk.models import FIELD_ORDER, ZKProof


logger = get_logger(__name__)

MOCK_VERIFIER_ADDRESS = "0x00000000000000000000000000000000000000a1"
MOCK_TAX_SYSTEM_ADDRESS = "0x00000000000000000000000000000000000000b2"


def _calldata_key(
    a: list[int],
    b: list[list[int]],
    c: list[int],
    public_inputs: list[int],
) -> tuple:
    return (tuple(a), tuple(tuple(row) for row in b), tuple(c), tuple(public_inputs))


class MockVerifierContract:
    """
    Stand-in for the Groth16 verifier contract.

    Checks calldata in verifier ordering. Proofs registered with
    `register_valid_proof` are accepted exactly as registered. With
    `accept_all_well_formed`, any other well-formed calldata whose result
    signal is 1 is accepted too; without it, only registered proofs pass.
    """

    def __init__(self, accept_all_well_formed: bool = True) -> None:
        self.accept_all_well_formed = accept_all_well_formed
        self._valid: set[tuple] = set()

    def register_valid_proof(
        self,
        a: list[int],
        b: list[list[int]],
        c: list[int],
        public_inputs: list[int],
    ) -> None:
        """Register calldata (verifier order) the pairing check would accept."""
        self._valid.add(_calldata_key(a, b, c, public_inputs))

    @staticmethod
    def _well_formed(
        a: list[int],
        b: list[list[int]],
        c: list[int],
        public_inputs: list[int],
    ) -> bool:
        if len(a) != 2 or len(c) != 2 or len(b) != 2 or any(len(row) != 2 for row in b):
            return False
        if len(public_inputs) != VERIFIER_PUBLIC_INPUTS:
            return False
        values = [*a, *c, *b[0], *b[1], *public_inputs]
        if any(v < 0 or v >= FIELD_ORDER for v in public_inputs):
            return False
        if any(v < 0 for v in values):
            return False
        return a != [0, 0] and c != [0, 0] and public_inputs[-1] == 1

    def verify(
        self,
        a: list[int],
        b: list[list[int]],
        c: list[int],
        public_inputs: list[int],
    ) -> bool:
        if _calldata_key(a, b, c, public_inputs) in self._valid:
            return True
        if not self.accept_all_well_formed:
            return False
        return self._well_formed(a, b, c, public_inputs)


class SimulatedChainGateway(ChainGateway):
    """
    In-memory ledger gateway.

    Failure injection:
        gateway.fail_on("verify_proof_call", "submit_verification")
        # both raise ChainError until clear_failures()
    """

    def __init__(
        self,
        settings: Settings,
        verifier: MockVerifierContract | None = None,
    ) -> None:
        self.settings = settings
        self.chain = settings.chain
        self.verifier = verifier or MockVerifierContract()

        self.verifier_address = self.chain.verifier_address or MOCK_VERIFIER_ADDRESS
        self.tax_system_address = self.chain.payment_contract_address or MOCK_TAX_SYSTEM_ADDRESS

        self._connected = False
        self._block_number = 1000
        self._treasury_wei = 0

        self._transactions: dict[str, TransactionRecord] = {}
        self._commitments: dict[str, list[str]] = {}
        self._verified_proofs: dict[str, list[str]] = {}
        self._failing: set[str] = set()
        self._calls: dict[str, int] = {}

        logger.debug("simulated_chain_initialized")

    @property
    def mode(self) -> ChainMode:
        return ChainMode.MOCK

    @property
    def provenance(self) -> TxProvenance:
        return TxProvenance.SIMULATED_LEDGER

    async def connect(self) -> None:
        """Simulate connection."""
        self._connected = True
        logger.info("simulated_chain_connected")

    async def disconnect(self) -> None:
        """Simulate disconnection."""
        self._connected = False
        logger.info("simulated_chain_disconnected")

    async def health_check(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "mode": self.mode.value,
            "connected": self._connected,
            "block_number": self._block_number,
            "transactions": len(self._transactions),
        }

    def _generate_tx_hash(self) -> str:
        """Generate a simulated transaction hash."""
        return "0x" + hashlib.sha256(uuid.uuid4().bytes).hexdigest()

    def _next_block(self) -> int:
        self._block_number += 1
        return self._block_number

    def _enter(self, operation: str) -> None:
        self._calls[operation] = self._calls.get(operation, 0) + 1
        if operation in self._failing:
            logger.warning("simulated_chain_failure", operation=operation)
            raise ChainError(
                f"Simulated {operation} failure",
                operation=operation,
                reason="injected",
            )

    def _record(
        self,
        from_address: str,
        to_address: str,
        status: TransactionStatus = TransactionStatus.CONFIRMED,
        value: int = 0,
        payment_amount: int | None = None,
    ) -> TransactionRecord:
        record = TransactionRecord(
            hash=self._generate_tx_hash(),
            from_address=from_address,
            to_address=to_address,
            value=value,
            payment_amount=payment_amount,
            block_number=self._next_block(),
            gas_used=21_000,
            status=status,
            timestamp=datetime.now(UTC),
            provenance=TxProvenance.SIMULATED_LEDGER,
        )
        self._transactions[record.hash] = record
        return record

    # =========================================================================
    # Verifier Contract
    # =========================================================================

    async def submit_commitment(self, address: str, commitment: str) -> str:
        user = validate_address(address)
        if not is_commitment(commitment):
            raise ValidationError("Malformed commitment", field="commitment")
        self._enter("submit_commitment")

        record = self._record(user, self.verifier_address)
        self._commitments.setdefault(user, []).append(commitment.lower())

        logger.debug("simulated_commitment_stored", tx_hash=record.hash)
        return record.hash

    async def verify_proof_call(self, proof: ZKProof, public_signals: list[str]) -> bool:
        calldata = to_verifier_calldata(proof, public_signals)
        self._enter("verify_proof_call")
        return self.verifier.verify(*calldata.as_args())

    async def submit_verification(
        self,
        address: str,
        proof: ZKProof,
        public_signals: list[str],
    ) -> VerificationReceipt:
        user = validate_address(address)
        calldata = to_verifier_calldata(proof, public_signals)
        self._enter("submit_verification")

        is_valid = self.verifier.verify(*calldata.as_args())
        record = self._record(
            user,
            self.verifier_address,
            status=TransactionStatus.CONFIRMED if is_valid else TransactionStatus.FAILED,
        )
        if is_valid:
            self._verified_proofs.setdefault(user, []).append(record.hash)

        logger.debug("simulated_verification_mined", tx_hash=record.hash, is_valid=is_valid)
        return VerificationReceipt(
            is_valid=is_valid,
            tx_hash=record.hash,
            provenance=TxProvenance.SIMULATED_LEDGER,
            block_number=record.block_number,
        )

    # =========================================================================
    # Payment Contract
    # =========================================================================

    async def submit_payment(
        self,
        address: str,
        amount: int,
        a: list[int],
        b: list[list[int]],
        c: list[int],
        public_inputs: list[int],
    ) -> str:
        validate_amount(amount)
        payer = validate_address(address, field="payer_address")
        inputs = public_inputs_array(public_inputs)
        self._enter("submit_payment")

        if not self.verifier.verify(a, b, c, inputs):
            self._record(payer, self.tax_system_address, status=TransactionStatus.FAILED)
            raise ChainError("processTaxPayment reverted: invalid proof", reason="revert")

        record = self._record(payer, self.tax_system_address, payment_amount=amount)
        self._treasury_wei += amount

        logger.debug("simulated_tax_payment_mined", tx_hash=record.hash, amount_wei=amount)
        return record.hash

    async def get_treasury_balance(self) -> TreasuryBalance:
        self._enter("get_treasury_balance")
        return treasury_balance_from_wei(
            self._treasury_wei,
            self.chain.fiat_rate,
            self.chain.fiat_currency,
            provenance=TxProvenance.SIMULATED_LEDGER,
        )

    # =========================================================================
    # Transactions
    # =========================================================================

    async def read_transaction(self, tx_hash: str) -> TransactionRecord:
        tx_hash = validate_tx_hash(tx_hash)
        self._enter("read_transaction")
        record = self._transactions.get(tx_hash)
        if record is None:
            raise NotFoundError("Transaction not found", tx_hash=tx_hash)
        return record.model_copy()

    async def verify_receipt(self, tx_hash: str) -> bool:
        record = await self.read_transaction(tx_hash)
        return (
            record.status == TransactionStatus.CONFIRMED
            and (record.to_address or "").lower() == self.tax_system_address.lower()
        )

    # =========================================================================
    # Test Utilities
    # =========================================================================

    def fail_on(self, *operations: str) -> None:
        """Make the named operations raise ChainError."""
        self._failing.update(operations)

    def clear_failures(self) -> None:
        self._failing.clear()

    def call_count(self, operation: str) -> int:
        """Number of times an operation reached the ledger."""
        return self._calls.get(operation, 0)

    def clear_all(self) -> None:
        """Clear all simulated ledger data (for testing)."""
        self._transactions.clear()
        self._commitments.clear()
        self._verified_proofs.clear()
        self._failing.clear()
        self._calls.clear()
        self._treasury_wei = 0
        self._block_number = 1000
        logger.debug("simulated_chain_cleared")

    def get_stats(self) -> dict[str, int]:
        """Get ledger statistics."""
        return {
            "transactions": len(self._transactions),
            "commitments": sum(len(v) for v in self._commitments.values()),
            "verified_proofs": sum(len(v) for v in self._verified_proofs.values()),
            "treasury_wei": self._treasury_wei,
            "block_number": self._block_number,
        }

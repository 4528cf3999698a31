"""
Tests for ZK-gated tax payments.
"""

import asyncio
import re
from unittest.mock import AsyncMock

import pytest

from services.income_proof.services.lifecycle import ProofLifecycle
from services.income_proof.services.payments import PaymentCoordinator
from taxproof.blockchain import SimulatedChainGateway, fiat_to_wei, to_verifier_calldata
from taxproof.errors import (
    ChainError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from taxproof.models import IncomeProof, PaymentStatus, TxProvenance
from taxproof.storage import InMemoryRecordStore
from tests.conftest import INCOME, OWNER, SECRET, WALLET


RECEIPT_ID_RE = re.compile(r"^RCPT-\d+-\d+$")
AMOUNT = 120_000


class TestPreparePayment:
    """Tests for prepare_payment."""

    @pytest.mark.asyncio
    async def test_prepare(
        self,
        payments: PaymentCoordinator,
        verified_proof: IncomeProof,
    ) -> None:
        """Test a pending payment with a ready ledger call is created."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)

        payment = await payments.get_payment(OWNER, intent.payment_id)
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount == AMOUNT
        assert payment.fiscal_year == "2024-2025"
        assert intent.call.amount == fiat_to_wei(AMOUNT, 250_000)

    @pytest.mark.asyncio
    async def test_ledger_call_has_swapped_g2(
        self,
        payments: PaymentCoordinator,
        verified_proof: IncomeProof,
    ) -> None:
        """Test the prepared call carries verifier-ordered proof points."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)

        calldata = to_verifier_calldata(verified_proof.proof, verified_proof.public_signals)
        raw_b = [[int(v) for v in row] for row in verified_proof.proof.pi_b[:2]]
        assert intent.call.b == calldata.b
        assert intent.call.b != raw_b
        assert intent.call.input == calldata.input

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -100])
    async def test_non_positive_amount(
        self,
        payments: PaymentCoordinator,
        verified_proof: IncomeProof,
        amount: int,
    ) -> None:
        """Test amounts must be positive."""
        with pytest.raises(ValidationError):
            await payments.prepare_payment(OWNER, verified_proof.id, amount, WALLET)

        assert await payments.list_payments(OWNER) == []

    @pytest.mark.asyncio
    async def test_bad_payer_address(
        self,
        payments: PaymentCoordinator,
        verified_proof: IncomeProof,
    ) -> None:
        """Test the payer address is validated."""
        with pytest.raises(ValidationError):
            await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, "0xnope")

    @pytest.mark.asyncio
    async def test_requires_verified_proof(
        self,
        payments: PaymentCoordinator,
        lifecycle: ProofLifecycle,
    ) -> None:
        """Test a merely generated proof cannot back a payment."""
        record = await lifecycle.create_from_income(OWNER, INCOME, SECRET)
        await lifecycle.generate_proof(record.id, OWNER, INCOME, SECRET, "range3")

        with pytest.raises(StateConflictError):
            await payments.prepare_payment(OWNER, record.id, AMOUNT, WALLET)

    @pytest.mark.asyncio
    async def test_unknown_proof(self, payments: PaymentCoordinator) -> None:
        """Test an unknown proof is not found."""
        with pytest.raises(NotFoundError):
            await payments.prepare_payment(OWNER, "missing", AMOUNT, WALLET)


class TestConfirmPayment:
    """Tests for confirm_payment."""

    @pytest.mark.asyncio
    async def test_confirm(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test confirmation submits the payment and issues a receipt id."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)

        payment = await payments.confirm_payment(OWNER, intent.payment_id)

        assert payment.status == PaymentStatus.COMPLETED
        assert RECEIPT_ID_RE.match(payment.receipt_id)
        assert payment.transaction_provenance == TxProvenance.SIMULATED_LEDGER
        assert payment.transaction_date is not None
        balance = await payments.get_treasury_balance()
        assert balance.raw == fiat_to_wei(AMOUNT, 250_000)
        assert gateway.call_count("submit_payment") == 1

    @pytest.mark.asyncio
    async def test_confirm_is_idempotent(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test confirming a completed payment returns it without paying twice."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        first = await payments.confirm_payment(OWNER, intent.payment_id)

        second = await payments.confirm_payment(OWNER, intent.payment_id)

        assert second.receipt_id == first.receipt_id
        assert gateway.call_count("submit_payment") == 1

    @pytest.mark.asyncio
    async def test_concurrent_confirm_pays_once(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test concurrent confirmations submit one ledger payment."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)

        results = await asyncio.gather(
            *(payments.confirm_payment(OWNER, intent.payment_id) for _ in range(4)),
            return_exceptions=True,
        )

        assert gateway.call_count("submit_payment") == 1
        completed = [r for r in results if not isinstance(r, Exception)]
        assert completed
        assert all(p.status == PaymentStatus.COMPLETED for p in completed)
        assert all(isinstance(r, StateConflictError) for r in results if isinstance(r, Exception))

    @pytest.mark.asyncio
    async def test_ledger_failure_marks_failed(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test a ledger failure leaves a failed payment with its reason."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        gateway.fail_on("submit_payment")

        with pytest.raises(ChainError):
            await payments.confirm_payment(OWNER, intent.payment_id)

        payment = await payments.get_payment(OWNER, intent.payment_id)
        assert payment.status == PaymentStatus.FAILED
        assert "submit_payment" in payment.failure_reason
        assert payment.receipt_id is None

    @pytest.mark.asyncio
    async def test_failed_payment_cannot_be_confirmed(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test failed is terminal."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        gateway.fail_on("submit_payment")
        with pytest.raises(ChainError):
            await payments.confirm_payment(OWNER, intent.payment_id)
        gateway.clear_failures()

        with pytest.raises(StateConflictError):
            await payments.confirm_payment(OWNER, intent.payment_id)

    @pytest.mark.asyncio
    async def test_revoked_proof_fails_payment(
        self,
        payments: PaymentCoordinator,
        lifecycle: ProofLifecycle,
        verified_proof: IncomeProof,
    ) -> None:
        """Test a proof revoked after preparation blocks confirmation."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        await lifecycle.revoke(verified_proof.id, OWNER)

        with pytest.raises(StateConflictError):
            await payments.confirm_payment(OWNER, intent.payment_id)

        payment = await payments.get_payment(OWNER, intent.payment_id)
        assert payment.status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_confirm_with_external_transaction(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test a transaction the payer sent themselves can settle the payment."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        call = intent.call
        tx_hash = await gateway.submit_payment(
            WALLET, call.amount, call.a, call.b, call.c, call.input
        )

        payment = await payments.confirm_payment(OWNER, intent.payment_id, chain_tx_ref=tx_hash)

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.transaction_hash == tx_hash
        assert gateway.call_count("submit_payment") == 1

    @pytest.mark.asyncio
    async def test_unknown_external_transaction(
        self,
        payments: PaymentCoordinator,
        verified_proof: IncomeProof,
    ) -> None:
        """Test an unknown transaction reference fails the payment."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)

        with pytest.raises(NotFoundError):
            await payments.confirm_payment(OWNER, intent.payment_id, chain_tx_ref="0x" + "00" * 32)

        payment = await payments.get_payment(OWNER, intent.payment_id)
        assert payment.status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_malformed_external_transaction(
        self,
        payments: PaymentCoordinator,
        verified_proof: IncomeProof,
    ) -> None:
        """Test a malformed reference is rejected before the payment is claimed."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)

        with pytest.raises(ValidationError):
            await payments.confirm_payment(OWNER, intent.payment_id, chain_tx_ref="0x12")

        payment = await payments.get_payment(OWNER, intent.payment_id)
        assert payment.status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_external_transaction_settles_one_payment(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test a ledger transaction cannot complete a second payment."""
        first = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        second = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        call = first.call
        tx_hash = await gateway.submit_payment(
            WALLET, call.amount, call.a, call.b, call.c, call.input
        )
        await payments.confirm_payment(OWNER, first.payment_id, chain_tx_ref=tx_hash)

        with pytest.raises(StateConflictError):
            await payments.confirm_payment(OWNER, second.payment_id, chain_tx_ref=tx_hash)

        payment = await payments.get_payment(OWNER, second.payment_id)
        assert payment.status == PaymentStatus.FAILED
        assert payment.transaction_hash is None
        assert payment.receipt_id is None

    @pytest.mark.asyncio
    async def test_external_transaction_amount_must_match(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test a smaller ledger payment cannot settle a larger tax payment."""
        small = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        large = await payments.prepare_payment(OWNER, verified_proof.id, 900_000, WALLET)
        call = small.call
        tx_hash = await gateway.submit_payment(
            WALLET, call.amount, call.a, call.b, call.c, call.input
        )

        with pytest.raises(ValidationError):
            await payments.confirm_payment(OWNER, large.payment_id, chain_tx_ref=tx_hash)

        payment = await payments.get_payment(OWNER, large.payment_id)
        assert payment.status == PaymentStatus.FAILED
        assert "amount" in payment.failure_reason

    @pytest.mark.asyncio
    async def test_external_transaction_from_another_payer(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test the referenced transaction must come from the payer address."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        call = intent.call
        tx_hash = await gateway.submit_payment(
            "0x" + "cd" * 20, call.amount, call.a, call.b, call.c, call.input
        )

        with pytest.raises(ValidationError):
            await payments.confirm_payment(OWNER, intent.payment_id, chain_tx_ref=tx_hash)

        payment = await payments.get_payment(OWNER, intent.payment_id)
        assert payment.status == PaymentStatus.FAILED
        assert "payer" in payment.failure_reason

    @pytest.mark.asyncio
    async def test_commitment_transaction_cannot_settle(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test a confirmed transaction to the verifier is not a payment."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        tx_hash = await gateway.submit_commitment(WALLET, verified_proof.commitment)

        with pytest.raises(ValidationError):
            await payments.confirm_payment(OWNER, intent.payment_id, chain_tx_ref=tx_hash)

        payment = await payments.get_payment(OWNER, intent.payment_id)
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "Transaction is not a confirmed payment contract call"

    @pytest.mark.asyncio
    async def test_cancelled_confirm_marks_failed(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a confirmation cancelled mid-submission does not stay processing."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        submitting = asyncio.Event()

        async def stalled_submit(*args: object) -> str:
            submitting.set()
            await asyncio.sleep(3600)
            return "0x" + "00" * 32

        monkeypatch.setattr(gateway, "submit_payment", stalled_submit)
        task = asyncio.create_task(payments.confirm_payment(OWNER, intent.payment_id))
        await submitting.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        payment = await payments.get_payment(OWNER, intent.payment_id)
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "CancelledError"

    @pytest.mark.asyncio
    async def test_receipt_id_collision_marks_failed(
        self,
        payments: PaymentCoordinator,
        store: InMemoryRecordStore,
        verified_proof: IncomeProof,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test a failure while recording completion leaves the payment failed."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        store._receipt_ids.add("RCPT-1-1")
        monkeypatch.setattr(store, "receipt_exists", AsyncMock(return_value=False))
        monkeypatch.setattr(
            "services.income_proof.services.payments.generate_receipt_id",
            lambda: "RCPT-1-1",
        )

        with pytest.raises(ValidationError):
            await payments.confirm_payment(OWNER, intent.payment_id)

        payment = await payments.get_payment(OWNER, intent.payment_id)
        assert payment.status == PaymentStatus.FAILED
        assert payment.receipt_id is None

    @pytest.mark.asyncio
    async def test_installments(
        self,
        payments: PaymentCoordinator,
        verified_proof: IncomeProof,
    ) -> None:
        """Test one proof can back several payments with distinct receipts."""
        receipts = set()
        for amount in (50_000, 70_000):
            intent = await payments.prepare_payment(OWNER, verified_proof.id, amount, WALLET)
            payment = await payments.confirm_payment(OWNER, intent.payment_id)
            receipts.add(payment.receipt_id)

        history = await payments.list_payments(OWNER, verified_proof.id)
        assert len(history) == 2
        assert len(receipts) == 2
        balance = await payments.get_treasury_balance()
        assert balance.raw == fiat_to_wei(50_000, 250_000) + fiat_to_wei(70_000, 250_000)

    @pytest.mark.asyncio
    async def test_other_owner(
        self,
        payments: PaymentCoordinator,
        verified_proof: IncomeProof,
    ) -> None:
        """Test payments are owner scoped."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)

        with pytest.raises(NotFoundError):
            await payments.confirm_payment("user-2", intent.payment_id)


class TestReceipts:
    """Tests for generate_receipt."""

    @pytest.mark.asyncio
    async def test_receipt(
        self,
        payments: PaymentCoordinator,
        verified_proof: IncomeProof,
    ) -> None:
        """Test a completed payment's receipt verifies against the ledger."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        payment = await payments.confirm_payment(OWNER, intent.payment_id)

        receipt = await payments.generate_receipt(OWNER, payment.id)

        assert receipt.receipt_id == payment.receipt_id
        assert RECEIPT_ID_RE.match(receipt.receipt_id)
        assert receipt.amount == AMOUNT
        assert receipt.fiscal_year == "2024-2025"
        assert receipt.proof_id == verified_proof.id
        assert receipt.blockchain_verified
        assert receipt.verification_error is None

    @pytest.mark.asyncio
    async def test_receipt_for_pending_payment(
        self,
        payments: PaymentCoordinator,
        verified_proof: IncomeProof,
    ) -> None:
        """Test receipts require a completed payment."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)

        with pytest.raises(StateConflictError):
            await payments.generate_receipt(OWNER, intent.payment_id)

    @pytest.mark.asyncio
    async def test_receipt_when_ledger_unavailable(
        self,
        payments: PaymentCoordinator,
        gateway: SimulatedChainGateway,
        verified_proof: IncomeProof,
    ) -> None:
        """Test ledger problems are reported on the receipt, not raised."""
        intent = await payments.prepare_payment(OWNER, verified_proof.id, AMOUNT, WALLET)
        payment = await payments.confirm_payment(OWNER, intent.payment_id)
        gateway.fail_on("read_transaction")

        receipt = await payments.generate_receipt(OWNER, payment.id)

        assert not receipt.blockchain_verified
        assert "read_transaction" in receipt.verification_error

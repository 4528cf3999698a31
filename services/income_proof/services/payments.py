"""
Payment Coordinator
===================

Turns a verified income proof and an amount into a ledger payment and a
tax payment record.

    prepare_payment  -> pending
    confirm_payment  -> processing -> completed | failed

Payment records are never deleted; a failed payment keeps its
`failure_reason`. One proof may back several payments (installments).

Version: 0.1.0
"""

from collections.abc import Callable
from datetime import UTC, datetime

from services.income_proof.services.lifecycle import ProofLifecycle
from taxproof.blockchain import (
    ChainGateway,
    TransactionRecord,
    TransactionStatus,
    TreasuryBalance,
    fiat_to_wei,
    to_verifier_calldata,
    validate_address,
    validate_amount,
    validate_tx_hash,
)
from taxproof.config import Settings
from taxproof.errors import ChainError, StateConflictError, TaxProofError, ValidationError
from taxproof.logging import get_logger
from taxproof.models import (
    VERIFIED_STATES,
    IncomeProof,
    PaymentCall,
    PaymentIntent,
    PaymentStatus,
    Receipt,
    TaxPayment,
    TxProvenance,
    fiscal_year_for,
    generate_receipt_id,
)
from taxproof.storage import RecordStore


logger = get_logger(__name__)

RECEIPT_ID_ATTEMPTS = 5


class PaymentCoordinator:
    """
    Prepares, confirms and receipts ZK-gated tax payments.

    Usage:
        intent = await payments.prepare_payment("user-1", proof_id, 120000, wallet)
        payment = await payments.confirm_payment("user-1", intent.payment_id)
        receipt = await payments.generate_receipt("user-1", payment.id)
    """

    def __init__(
        self,
        store: RecordStore,
        lifecycle: ProofLifecycle,
        gateway: ChainGateway,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.lifecycle = lifecycle
        self.gateway = gateway
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _require_verified_proof(self, proof_id: str, owner: str) -> IncomeProof:
        proof = await self.lifecycle.ensure_live(proof_id, owner)
        if proof.status not in VERIFIED_STATES:
            raise StateConflictError(
                "Proof must be verified before it can back a payment",
                current_state=proof.status.value,
                proof_id=proof_id,
            )
        return proof

    # =========================================================================
    # Prepare
    # =========================================================================

    async def prepare_payment(
        self,
        owner: str,
        proof_id: str,
        amount: int,
        payer_address: str,
    ) -> PaymentIntent:
        """
        Create a pending payment and its ledger call.

        Raises:
            ValidationError: amount <= 0 or malformed payer address
            NotFoundError: Unknown proof
            StateConflictError: Proof not verified, expired or revoked
        """
        validate_amount(amount)
        payer = validate_address(payer_address, field="payer_address")

        proof = await self._require_verified_proof(proof_id, owner)

        calldata = to_verifier_calldata(proof.proof, proof.public_signals)
        call = PaymentCall(
            amount=fiat_to_wei(amount, self.settings.chain.fiat_rate),
            a=calldata.a,
            b=calldata.b,
            c=calldata.c,
            input=calldata.input,
        )

        now = self._clock()
        payment = TaxPayment(
            owner=owner,
            proof_id=proof_id,
            amount=amount,
            wallet_address=payer,
            fiscal_year=fiscal_year_for(now),
            created_at=now,
            updated_at=now,
            metadata={
                "ledger_call": call.model_dump(),
                "proof_provenance": proof.proof.provenance.value,
            },
        )
        payment = await self.store.insert_payment(payment)

        logger.info(
            "tax_payment_prepared",
            payment_id=payment.id,
            proof_id=proof_id,
            amount=amount,
            fiscal_year=payment.fiscal_year,
        )
        return PaymentIntent(
            payment_id=payment.id,
            proof_id=proof_id,
            owner=owner,
            amount=amount,
            payer_address=payer,
            call=call,
        )

    # =========================================================================
    # Confirm
    # =========================================================================

    async def _new_receipt_id(self) -> str:
        for _ in range(RECEIPT_ID_ATTEMPTS):
            receipt_id = generate_receipt_id()
            if not await self.store.receipt_exists(receipt_id):
                return receipt_id
        raise TaxProofError("Could not allocate a unique receipt id")

    async def _settle(
        self,
        payment: TaxPayment,
        chain_tx_ref: str | None,
    ) -> tuple[str, TxProvenance]:
        await self._require_verified_proof(payment.proof_id, payment.owner)

        if chain_tx_ref is None:
            call = PaymentCall.model_validate(payment.metadata["ledger_call"])
            tx_hash = await self.gateway.submit_payment(
                payment.wallet_address,
                call.amount,
                call.a,
                call.b,
                call.c,
                call.input,
            )
            return tx_hash, self.gateway.provenance

        record = await self.gateway.read_transaction(chain_tx_ref)
        if record.status != TransactionStatus.CONFIRMED:
            raise ChainError(
                f"Transaction is {record.status.value}",
                tx_hash=chain_tx_ref,
            )
        await self._check_payment_transaction(payment, record)
        return record.hash, record.provenance

    async def _check_payment_transaction(
        self,
        payment: TaxPayment,
        record: TransactionRecord,
    ) -> None:
        """
        Match a referenced transaction against the payment it should settle.

        Raises:
            ValidationError: Not a payment contract call, another payer,
                or another amount
        """
        if not await self.gateway.verify_receipt(record.hash):
            raise ValidationError(
                "Transaction is not a confirmed payment contract call",
                tx_hash=record.hash,
            )
        if (record.from_address or "").lower() != payment.wallet_address.lower():
            raise ValidationError(
                "Transaction was not sent by the payer",
                tx_hash=record.hash,
                payer_address=payment.wallet_address,
            )
        call = PaymentCall.model_validate(payment.metadata["ledger_call"])
        if record.payment_amount != call.amount:
            raise ValidationError(
                "Transaction amount does not match the payment",
                tx_hash=record.hash,
                expected_wei=call.amount,
                actual_wei=record.payment_amount,
            )

    async def _mark_failed(
        self,
        payment: TaxPayment,
        reason: str,
        tx_hash: str | None = None,
    ) -> None:
        await self.store.compare_and_set_payment(
            payment.id,
            payment.owner,
            expected={"status": PaymentStatus.PROCESSING},
            changes={"status": PaymentStatus.FAILED, "failure_reason": reason},
        )
        logger.warning(
            "tax_payment_failed",
            payment_id=payment.id,
            reason=reason,
            tx_hash=tx_hash,
        )

    async def confirm_payment(
        self,
        owner: str,
        payment_id: str,
        chain_tx_ref: str | None = None,
    ) -> TaxPayment:
        """
        Settle a pending payment.

        Without `chain_tx_ref` the payment is submitted through the
        gateway; with it, the referenced transaction must be a confirmed
        payment contract call from the payer for this amount that settles
        no other payment. Any failure leaves the payment `failed` and re-raises.

        Raises:
            ValidationError: Malformed transaction reference, or a referenced
                transaction that does not match this payment
            NotFoundError: Unknown payment or transaction
            StateConflictError: Payment not pending, proof no longer usable, or
                the transaction already settles another payment
            ChainError: Ledger submission or lookup failed
        """
        if chain_tx_ref is not None:
            chain_tx_ref = validate_tx_hash(chain_tx_ref)

        payment = await self.store.get_payment(payment_id, owner)
        if payment.status == PaymentStatus.COMPLETED and chain_tx_ref in (
            None,
            payment.transaction_hash,
        ):
            return payment
        if payment.status != PaymentStatus.PENDING:
            raise StateConflictError(
                f"Payment is {payment.status.value}",
                current_state=payment.status.value,
                payment_id=payment_id,
            )

        claimed = await self.store.compare_and_set_payment(
            payment_id,
            owner,
            expected={"status": PaymentStatus.PENDING},
            changes={"status": PaymentStatus.PROCESSING},
        )
        if claimed is None:
            raise StateConflictError(
                "Payment is already being processed",
                current_state=PaymentStatus.PROCESSING.value,
                payment_id=payment_id,
            )

        tx_hash = None
        try:
            tx_hash, provenance = await self._settle(claimed, chain_tx_ref)
            receipt_id = await self._new_receipt_id()
            completed = await self.store.compare_and_set_payment(
                payment_id,
                owner,
                expected={"status": PaymentStatus.PROCESSING},
                changes={
                    "status": PaymentStatus.COMPLETED,
                    "transaction_hash": tx_hash,
                    "transaction_date": self._clock(),
                    "transaction_provenance": provenance,
                    "receipt_id": receipt_id,
                },
            )
            if completed is None:
                raise StateConflictError(
                    "Payment changed while being processed",
                    payment_id=payment_id,
                    tx_hash=tx_hash,
                )
        except BaseException as e:
            if isinstance(e, TaxProofError):
                reason = e.message
            else:
                reason = str(e) or type(e).__name__
            await self._mark_failed(claimed, reason, tx_hash)
            raise

        logger.info(
            "tax_payment_completed",
            payment_id=payment_id,
            tx_hash=tx_hash,
            receipt_id=receipt_id,
            provenance=provenance.value,
        )
        return completed

    # =========================================================================
    # Receipts & History
    # =========================================================================

    async def generate_receipt(self, owner: str, payment_id: str) -> Receipt:
        """
        Build the receipt of a completed payment.

        Ledger verification problems are reported on the receipt
        (`blockchain_verified`, `verification_error`), never raised.

        Raises:
            NotFoundError: Unknown payment
            StateConflictError: Payment has not completed
        """
        payment = await self.store.get_payment(payment_id, owner)
        if payment.status != PaymentStatus.COMPLETED or not payment.receipt_id:
            raise StateConflictError(
                "Receipt is only available for completed payments",
                current_state=payment.status.value,
                payment_id=payment_id,
            )

        blockchain_verified = False
        verification_error = None
        if payment.transaction_hash:
            try:
                blockchain_verified = await self.gateway.verify_receipt(payment.transaction_hash)
                if not blockchain_verified:
                    verification_error = "Transaction is not a confirmed payment contract call"
            except TaxProofError as e:
                verification_error = e.message
                logger.warning(
                    "receipt_verification_failed",
                    payment_id=payment_id,
                    error=e.message,
                )
        else:
            verification_error = "Payment has no transaction hash"

        return Receipt(
            payment_id=payment.id,
            receipt_id=payment.receipt_id,
            owner=payment.owner,
            amount=payment.amount,
            fiscal_year=payment.fiscal_year,
            date=payment.transaction_date,
            transaction_hash=payment.transaction_hash,
            transaction_provenance=payment.transaction_provenance,
            proof_id=payment.proof_id,
            blockchain_verified=blockchain_verified,
            verification_error=verification_error,
        )

    async def get_payment(self, owner: str, payment_id: str) -> TaxPayment:
        return await self.store.get_payment(payment_id, owner)

    async def list_payments(self, owner: str, proof_id: str | None = None) -> list[TaxPayment]:
        return await self.store.list_payments(owner, proof_id)

    async def get_treasury_balance(self) -> TreasuryBalance:
        return await self.gateway.get_treasury_balance()

"""
In-Memory Record Store
======================

Process-local implementation of `RecordStore` for development and tests.
Records are copied on the way in and out so callers never hold a live
reference to stored state.

Version: 0.1.0
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

from taxproof.errors import NotFoundError, StateConflictError, ValidationError
from taxproof.logging import get_logger
from taxproof.models.records import IncomeProof, TaxPayment, check_proof_changes
from taxproof.storage.base import RecordStore


logger = get_logger(__name__)

_PAYMENT_IMMUTABLE_FIELDS = frozenset({"id", "owner", "proof_id", "created_at"})


def _matches(record: Any, expected: dict[str, Any]) -> bool:
    return all(getattr(record, key) == value for key, value in expected.items())


class InMemoryRecordStore(RecordStore):
    """
    Dict-backed record store.

    A single asyncio.Lock guards every mutation, which makes each
    compare-and-set atomic within the event loop.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._proofs: dict[str, IncomeProof] = {}
        self._payments: dict[str, TaxPayment] = {}
        self._receipt_ids: set[str] = set()
        self._settling_tx: dict[str, str] = {}

    async def health_check(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "backend": "memory",
            "proofs": len(self._proofs),
            "payments": len(self._payments),
        }

    # =========================================================================
    # Income Proofs
    # =========================================================================

    async def insert_proof(self, proof: IncomeProof) -> IncomeProof:
        async with self._lock:
            if proof.id in self._proofs:
                raise StateConflictError(f"Proof {proof.id} already exists")
            self._proofs[proof.id] = proof.model_copy(deep=True)
        logger.debug("proof_record_inserted", proof_id=proof.id, owner=proof.owner)
        return proof.model_copy(deep=True)

    def _owned_proof(self, proof_id: str, owner: str) -> IncomeProof:
        record = self._proofs.get(proof_id)
        if record is None or record.owner != owner:
            raise NotFoundError(f"Proof {proof_id} not found", proof_id=proof_id)
        return record

    async def get_proof(self, proof_id: str, owner: str) -> IncomeProof:
        return self._owned_proof(proof_id, owner).model_copy(deep=True)

    async def list_proofs(self, owner: str) -> list[IncomeProof]:
        records = [p for p in self._proofs.values() if p.owner == owner]
        records.sort(key=lambda p: p.created_at, reverse=True)
        return [p.model_copy(deep=True) for p in records]

    async def compare_and_set_proof(
        self,
        proof_id: str,
        owner: str,
        expected: dict[str, Any],
        changes: dict[str, Any],
    ) -> IncomeProof | None:
        async with self._lock:
            current = self._owned_proof(proof_id, owner)
            if not _matches(current, expected):
                return None

            check_proof_changes(current, changes)
            updated = IncomeProof.model_validate(
                {**current.model_dump(), **changes, "updated_at": datetime.now(UTC)}
            )
            self._proofs[proof_id] = updated
            return updated.model_copy(deep=True)

    # =========================================================================
    # Tax Payments
    # =========================================================================

    async def insert_payment(self, payment: TaxPayment) -> TaxPayment:
        async with self._lock:
            if payment.id in self._payments:
                raise StateConflictError(f"Payment {payment.id} already exists")
            self._payments[payment.id] = payment.model_copy(deep=True)
        logger.debug("payment_record_inserted", payment_id=payment.id, owner=payment.owner)
        return payment.model_copy(deep=True)

    def _owned_payment(self, payment_id: str, owner: str) -> TaxPayment:
        record = self._payments.get(payment_id)
        if record is None or record.owner != owner:
            raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)
        return record

    async def get_payment(self, payment_id: str, owner: str) -> TaxPayment:
        return self._owned_payment(payment_id, owner).model_copy(deep=True)

    async def list_payments(self, owner: str, proof_id: str | None = None) -> list[TaxPayment]:
        records = [
            p
            for p in self._payments.values()
            if p.owner == owner and (proof_id is None or p.proof_id == proof_id)
        ]
        records.sort(key=lambda p: p.created_at, reverse=True)
        return [p.model_copy(deep=True) for p in records]

    async def compare_and_set_payment(
        self,
        payment_id: str,
        owner: str,
        expected: dict[str, Any],
        changes: dict[str, Any],
    ) -> TaxPayment | None:
        async with self._lock:
            current = self._owned_payment(payment_id, owner)
            if not _matches(current, expected):
                return None

            touched = _PAYMENT_IMMUTABLE_FIELDS & changes.keys()
            if touched:
                raise StateConflictError(
                    f"Fields are immutable: {', '.join(sorted(touched))}",
                    current_state=current.status.value,
                )

            receipt_id = changes.get("receipt_id")
            new_receipt = bool(receipt_id) and receipt_id != current.receipt_id
            if new_receipt and receipt_id in self._receipt_ids:
                raise ValidationError("Receipt id already issued", receipt_id=receipt_id)

            tx_hash = (changes.get("transaction_hash") or "").lower()
            settled_by = self._settling_tx.get(tx_hash)
            if settled_by is not None and settled_by != payment_id:
                raise StateConflictError(
                    "Transaction already settles another payment",
                    current_state=current.status.value,
                    tx_hash=tx_hash,
                )

            if new_receipt:
                self._receipt_ids.add(receipt_id)
            if tx_hash:
                self._settling_tx[tx_hash] = payment_id

            updated = TaxPayment.model_validate(
                {**current.model_dump(), **changes, "updated_at": datetime.now(UTC)}
            )
            self._payments[payment_id] = updated
            return updated.model_copy(deep=True)

    async def receipt_exists(self, receipt_id: str) -> bool:
        return receipt_id in self._receipt_ids

    # =========================================================================
    # Test Utilities
    # =========================================================================

    def clear_all(self) -> None:
        """Clear all records (for testing)."""
        self._proofs.clear()
        self._payments.clear()
        self._receipt_ids.clear()
        self._settling_tx.clear()

    def get_stats(self) -> dict[str, int]:
        """Get storage statistics."""
        return {
            "proofs": len(self._proofs),
            "payments": len(self._payments),
            "receipts": len(self._receipt_ids),
        }

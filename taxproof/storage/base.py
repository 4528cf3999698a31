"""
Record Store Interface
======================

Keyed persistence for income proofs and tax payments. Every lookup is by
(id, owner); a record owned by someone else is reported as not found.

Updates go through compare-and-set so a transition only lands if the
record still looks the way the caller last saw it.

Version: 0.1.0
"""

from abc import ABC, abstractmethod
from typing import Any

from taxproof.models.records import IncomeProof, TaxPayment


class RecordStore(ABC):
    """Abstract keyed store for proof and payment records."""

    @abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Check store health."""
        ...

    # =========================================================================
    # Income Proofs
    # =========================================================================

    @abstractmethod
    async def insert_proof(self, proof: IncomeProof) -> IncomeProof:
        """
        Insert a new proof record.

        Raises:
            StateConflictError: A record with the same id exists
        """
        ...

    @abstractmethod
    async def get_proof(self, proof_id: str, owner: str) -> IncomeProof:
        """
        Fetch a proof owned by `owner`.

        Raises:
            NotFoundError: Unknown id, or owned by another principal
        """
        ...

    @abstractmethod
    async def list_proofs(self, owner: str) -> list[IncomeProof]:
        """All proofs of an owner, newest first."""
        ...

    @abstractmethod
    async def compare_and_set_proof(
        self,
        proof_id: str,
        owner: str,
        expected: dict[str, Any],
        changes: dict[str, Any],
    ) -> IncomeProof | None:
        """
        Apply `changes` only if every field in `expected` still matches.

        Returns:
            The updated record, or None when the record moved on

        Raises:
            NotFoundError: Unknown id, or owned by another principal
            StateConflictError: The changes break a field invariant
        """
        ...

    # =========================================================================
    # Tax Payments
    # =========================================================================

    @abstractmethod
    async def insert_payment(self, payment: TaxPayment) -> TaxPayment:
        ...

    @abstractmethod
    async def get_payment(self, payment_id: str, owner: str) -> TaxPayment:
        """
        Fetch a payment owned by `owner`.

        Raises:
            NotFoundError: Unknown id, or owned by another principal
        """
        ...

    @abstractmethod
    async def list_payments(self, owner: str, proof_id: str | None = None) -> list[TaxPayment]:
        """Payments of an owner, newest first, optionally for one proof."""
        ...

    @abstractmethod
    async def compare_and_set_payment(
        self,
        payment_id: str,
        owner: str,
        expected: dict[str, Any],
        changes: dict[str, Any],
    ) -> TaxPayment | None:
        """
        Apply `changes` when every `expected` field still matches.

        Receipt ids are unique across payments, and a transaction hash
        settles at most one payment.

        Returns:
            The updated payment, or None when `expected` no longer matches

        Raises:
            NotFoundError: Unknown id, or owned by another principal
            ValidationError: Receipt id already issued
            StateConflictError: Immutable field touched, or the transaction
                already settles another payment
        """
        ...

    @abstractmethod
    async def receipt_exists(self, receipt_id: str) -> bool:
        """Check whether a receipt id has already been issued."""
        ...

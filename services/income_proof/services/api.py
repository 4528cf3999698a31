"""
Income Proof API
================

Exposed operations. Every method returns an `OperationResult`: domain
errors become tagged error results and unexpected exceptions become
`internal_error` results. Nothing raises past this layer.

Version: 0.1.0
"""

from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any

from services.income_proof.services.lifecycle import ProofLifecycle
from services.income_proof.services.payments import PaymentCoordinator
from taxproof.blockchain import ChainGateway
from taxproof.errors import ErrorKind, TaxProofError
from taxproof.logging import get_logger
from taxproof.models import IncomeProof, OperationResult, TxProvenance
from taxproof.zk import CommitmentScheme, ProofBackend, VerificationGuarantee


logger = get_logger(__name__)

_SIMULATED_TX = frozenset({TxProvenance.SIMULATED_LEDGER, TxProvenance.LIVENESS_FALLBACK})


@dataclass
class _Outcome:
    """Operation data plus non-fatal warning kinds."""

    data: Any
    warnings: list[str] = field(default_factory=list)


def _proof_warnings(record: IncomeProof) -> list[str]:
    warnings = []
    if record.proof is not None and record.proof.is_simulated:
        warnings.append(ErrorKind.SIMULATED_ARTIFACT.value)
    if record.verification_provenance in _SIMULATED_TX:
        if ErrorKind.SIMULATED_ARTIFACT.value not in warnings:
            warnings.append(ErrorKind.SIMULATED_ARTIFACT.value)
    if record.verification_guarantee == VerificationGuarantee.STRUCTURAL:
        warnings.append(ErrorKind.WEAK_VERIFICATION.value)
    return warnings


class IncomeProofAPI:
    """
    Facade over the proof lifecycle and payment coordinator.

    Usage:
        result = await api.generate_commitment(owner="user-1", income=800000)
        if result.success:
            proof_id = result.data["proof_id"]
    """

    def __init__(
        self,
        lifecycle: ProofLifecycle,
        payments: PaymentCoordinator,
        backend: ProofBackend,
        gateway: ChainGateway,
        commitments: CommitmentScheme | None = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.payments = payments
        self.backend = backend
        self.gateway = gateway
        self.commitments = commitments or CommitmentScheme()

    async def _run(self, operation: str, call: Awaitable[Any]) -> OperationResult:
        try:
            outcome = await call
        except TaxProofError as e:
            logger.info(
                "operation_rejected",
                operation=operation,
                kind=e.kind.value,
                error=e.message,
            )
            return OperationResult.fail(e)
        except Exception:
            logger.exception("operation_failed", operation=operation)
            return OperationResult.fail(TaxProofError("Internal error"))

        if isinstance(outcome, _Outcome):
            return OperationResult.ok(outcome.data, warnings=outcome.warnings)
        return OperationResult.ok(outcome)

    # =========================================================================
    # Proofs
    # =========================================================================

    async def generate_commitment(
        self,
        owner: str,
        income: int,
        secret: str | None = None,
    ) -> OperationResult:
        """
        Commit to an income and open a proof record.

        When no secret is supplied one is generated and returned once; it
        is needed again for `generate_proof`.
        """

        async def call() -> dict[str, Any]:
            chosen = secret if secret is not None else self.commitments.generate_secret()
            record = await self.lifecycle.create_from_income(owner, income, chosen)
            data = {
                "proof_id": record.id,
                "commitment": record.commitment,
                "status": record.status.value,
                "expires_at": record.expires_at,
            }
            if secret is None:
                data["secret"] = chosen
            return data

        return await self._run("generate_commitment", call())

    async def generate_proof(
        self,
        owner: str,
        proof_id: str,
        income: int,
        secret: str,
        income_range: str,
    ) -> OperationResult:
        async def call() -> _Outcome:
            record = await self.lifecycle.generate_proof(
                proof_id, owner, income, secret, income_range
            )
            return _Outcome(record, _proof_warnings(record))

        return await self._run("generate_proof", call())

    async def verify_proof(self, owner: str, proof_id: str) -> OperationResult:
        """Local (off-chain) verification."""

        async def call() -> _Outcome:
            record, result = await self.lifecycle.verify_locally(proof_id, owner)
            warnings = list(result.warnings)
            if record.proof is not None and record.proof.is_simulated:
                warnings.append(ErrorKind.SIMULATED_ARTIFACT.value)
            return _Outcome({"proof": record, "verification": result}, warnings)

        return await self._run("verify_proof", call())

    async def verify_proof_on_chain(
        self,
        owner: str,
        proof_id: str,
        address: str,
    ) -> OperationResult:
        async def call() -> _Outcome:
            record = await self.lifecycle.verify_on_chain(proof_id, owner, address)
            return _Outcome(record, _proof_warnings(record))

        return await self._run("verify_proof_on_chain", call())

    async def anchor_commitment(self, owner: str, proof_id: str, address: str) -> OperationResult:
        return await self._run(
            "anchor_commitment",
            self.lifecycle.anchor_commitment(proof_id, owner, address),
        )

    async def get_proof(self, owner: str, proof_id: str) -> OperationResult:
        return await self._run("get_proof", self.lifecycle.get(proof_id, owner))

    async def list_proofs(self, owner: str) -> OperationResult:
        return await self._run("list_proofs", self.lifecycle.list_proofs(owner))

    async def revoke_proof(
        self,
        owner: str,
        proof_id: str,
        reason: str | None = None,
        revoked_by: str | None = None,
    ) -> OperationResult:
        """Administrative revocation of `owner`'s proof; callers check the role."""
        return await self._run(
            "revoke_proof", self.lifecycle.revoke(proof_id, owner, reason, revoked_by)
        )

    async def expire_proof(self, owner: str, proof_id: str) -> OperationResult:
        return await self._run("expire_proof", self.lifecycle.expire(proof_id, owner))

    async def get_public_parameters(self) -> OperationResult:
        async def call() -> _Outcome:
            parameters = self.backend.get_public_parameters()
            warnings = []
            if parameters["verification_key_source"] == "placeholder":
                warnings.append(ErrorKind.SIMULATED_ARTIFACT.value)
            return _Outcome(parameters, warnings)

        return await self._run("get_public_parameters", call())

    # =========================================================================
    # Payments
    # =========================================================================

    async def prepare_payment(
        self,
        owner: str,
        proof_id: str,
        amount: int,
        payer_address: str,
    ) -> OperationResult:
        return await self._run(
            "prepare_payment",
            self.payments.prepare_payment(owner, proof_id, amount, payer_address),
        )

    async def confirm_payment(
        self,
        owner: str,
        payment_id: str,
        chain_tx_ref: str | None = None,
    ) -> OperationResult:
        async def call() -> _Outcome:
            payment = await self.payments.confirm_payment(owner, payment_id, chain_tx_ref)
            warnings = []
            if payment.transaction_provenance in _SIMULATED_TX:
                warnings.append(ErrorKind.SIMULATED_ARTIFACT.value)
            return _Outcome(payment, warnings)

        return await self._run("confirm_payment", call())

    async def get_receipt(self, owner: str, payment_id: str) -> OperationResult:
        return await self._run("get_receipt", self.payments.generate_receipt(owner, payment_id))

    async def get_payment(self, owner: str, payment_id: str) -> OperationResult:
        return await self._run("get_payment", self.payments.get_payment(owner, payment_id))

    async def list_payments(self, owner: str, proof_id: str | None = None) -> OperationResult:
        return await self._run("list_payments", self.payments.list_payments(owner, proof_id))

    # =========================================================================
    # Ledger
    # =========================================================================

    async def get_treasury_balance(self) -> OperationResult:
        return await self._run("get_treasury_balance", self.payments.get_treasury_balance())

    async def get_transaction(self, tx_hash: str) -> OperationResult:
        return await self._run("get_transaction", self.gateway.read_transaction(tx_hash))

    async def health_check(self) -> dict[str, Any]:
        return await self.gateway.health_check()

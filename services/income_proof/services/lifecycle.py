"""
Proof Lifecycle Service
=======================

State machine for income proofs:

    commitment_generated -> proof_generated -> proof_verified
        -> proof_verified_on_chain

`expired` and `revoked` are absorbing and reachable from every other
state. A proof past `expires_at` is moved to `expired` by whichever
transition touches it first, and that transition fails.

Transitions on one proof are serialized by a per-proof lock and land
through compare-and-set on the record store. On-chain verification
also takes a claim token on the record before talking to the ledger,
so only one caller submits a verification transaction.

Version: 0.1.0
"""

import asyncio
import uuid
import weakref
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from web3 import Web3

from taxproof.blockchain import ChainGateway, validate_address
from taxproof.config import Settings
from taxproof.errors import (
    ChainError,
    CryptoVerificationFailure,
    ErrorKind,
    StateConflictError,
    ValidationError,
)
from taxproof.logging import get_logger
from taxproof.models import IncomeProof, ProofStatus, TxProvenance
from taxproof.storage import RecordStore
from taxproof.zk import (
    CommitmentScheme,
    ProofBackend,
    VerificationGuarantee,
    VerificationResult,
    check_threshold_predicate,
    is_commitment,
    resolve_income_range,
)


logger = get_logger(__name__)


class ProofLifecycle:
    """
    Orchestrates income proof transitions.

    Usage:
        lifecycle = ProofLifecycle(store, backend, gateway, settings)
        record = await lifecycle.create_from_income("user-1", 800000, secret)
        record = await lifecycle.generate_proof(record.id, "user-1", 800000, secret, "range3")
        record, result = await lifecycle.verify_locally(record.id, "user-1")
        record = await lifecycle.verify_on_chain(record.id, "user-1", wallet_address)
    """

    def __init__(
        self,
        store: RecordStore,
        backend: ProofBackend,
        gateway: ChainGateway,
        settings: Settings,
        commitments: CommitmentScheme | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self.gateway = gateway
        self.settings = settings
        self.commitments = commitments or CommitmentScheme()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, proof_id: str) -> asyncio.Lock:
        lock = self._locks.get(proof_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[proof_id] = lock
        return lock

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # Creation & Reads
    # =========================================================================

    async def create(
        self,
        owner: str,
        commitment: str,
        metadata: dict[str, Any] | None = None,
    ) -> IncomeProof:
        """Register a commitment. The new record starts in commitment_generated."""
        if not isinstance(owner, str) or not owner.strip():
            raise ValidationError("Owner is required", field="owner")
        if not is_commitment(commitment):
            raise ValidationError(
                "Commitment must be a 0x-prefixed 32-byte hex digest",
                field="commitment",
            )

        created_at = self.now()
        record = IncomeProof(
            owner=owner,
            commitment=commitment.lower(),
            created_at=created_at,
            updated_at=created_at,
            expires_at=created_at + timedelta(days=self.settings.zk.proof_validity_days),
            metadata=metadata or {},
        )
        record = await self.store.insert_proof(record)

        logger.info("proof_commitment_created", proof_id=record.id, owner=owner)
        return record

    async def create_from_income(
        self,
        owner: str,
        income: int,
        secret: str,
        metadata: dict[str, Any] | None = None,
    ) -> IncomeProof:
        commitment = self.commitments.commit(income, secret)
        return await self.create(owner, commitment, metadata)

    async def get(self, proof_id: str, owner: str) -> IncomeProof:
        return await self.store.get_proof(proof_id, owner)

    async def list_proofs(self, owner: str) -> list[IncomeProof]:
        return await self.store.list_proofs(owner)

    async def ensure_live(self, proof_id: str, owner: str) -> IncomeProof:
        """
        Load a proof that may still change state.

        Raises:
            NotFoundError: Unknown proof
            StateConflictError: Proof is expired or revoked (a due proof
                is moved to expired first)
        """
        record = await self.store.get_proof(proof_id, owner)

        if record.is_absorbing:
            raise StateConflictError(
                f"Proof is {record.status.value}",
                current_state=record.status.value,
                proof_id=proof_id,
            )

        if record.is_due(self.now()):
            await self.store.compare_and_set_proof(
                proof_id,
                owner,
                expected={"status": record.status},
                changes={"status": ProofStatus.EXPIRED},
            )
            logger.info("proof_expired", proof_id=proof_id, previous_status=record.status.value)
            raise StateConflictError(
                "Proof has expired",
                current_state=ProofStatus.EXPIRED.value,
                proof_id=proof_id,
            )

        return record

    async def _transition(
        self,
        record: IncomeProof,
        changes: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> IncomeProof:
        updated = await self.store.compare_and_set_proof(
            record.id,
            record.owner,
            expected=expected or {"status": record.status},
            changes=changes,
        )
        if updated is None:
            current = await self.store.get_proof(record.id, record.owner)
            raise StateConflictError(
                "Proof changed concurrently",
                current_state=current.status.value,
                proof_id=record.id,
            )
        return updated

    # =========================================================================
    # Proof Generation
    # =========================================================================

    async def generate_proof(
        self,
        proof_id: str,
        owner: str,
        income: int,
        secret: str,
        income_range: str,
    ) -> IncomeProof:
        """
        Generate the threshold proof for a committed income.

        Raises:
            StateConflictError: Not in commitment_generated
            ValidationError: Bad range, or income does not exceed it
            CommitmentMismatchError: (income, secret) does not open the commitment
            ProofGenerationError: The prover failed
        """
        async with self._lock_for(proof_id):
            record = await self.ensure_live(proof_id, owner)
            if record.status != ProofStatus.COMMITMENT_GENERATED:
                raise StateConflictError(
                    "Proof has already been generated",
                    current_state=record.status.value,
                    proof_id=proof_id,
                )

            selected = resolve_income_range(income_range)
            check_threshold_predicate(income, secret, selected.threshold)
            self.commitments.open(income, secret, record.commitment)

            generated = await self.backend.generate_proof(income, secret, selected.threshold)

            updated = await self._transition(
                record,
                {
                    "status": ProofStatus.PROOF_GENERATED,
                    "proof": generated.proof,
                    "public_signals": generated.public_signals,
                    "income_range": selected.label,
                    "threshold": selected.threshold,
                    "metadata": {
                        **record.metadata,
                        "proving_time_ms": generated.proving_time_ms,
                        "proof_provenance": generated.provenance.value,
                    },
                },
            )

        logger.info(
            "income_proof_generated",
            proof_id=proof_id,
            income_range=selected.label,
            provenance=generated.provenance.value,
        )
        return updated

    # =========================================================================
    # Verification
    # =========================================================================

    @staticmethod
    def _cached_result(record: IncomeProof) -> VerificationResult:
        warnings = []
        if record.verification_guarantee == VerificationGuarantee.STRUCTURAL:
            warnings.append(ErrorKind.WEAK_VERIFICATION.value)
        return VerificationResult(
            valid=True,
            guarantee=record.verification_guarantee,
            commitment=record.commitment,
            verified_at=record.verified_at or record.updated_at,
            warnings=warnings,
        )

    async def verify_locally(
        self,
        proof_id: str,
        owner: str,
    ) -> tuple[IncomeProof, VerificationResult]:
        """
        Verify the stored proof off chain.

        Already-verified proofs return their cached result.

        Raises:
            StateConflictError: No proof generated yet, or absorbing state
            CryptoVerificationFailure: The verifier rejected the proof
        """
        async with self._lock_for(proof_id):
            record = await self.ensure_live(proof_id, owner)
            if record.is_verified:
                return record, self._cached_result(record)

            if record.status != ProofStatus.PROOF_GENERATED or not record.has_proof:
                raise StateConflictError(
                    "Proof has not been generated",
                    current_state=record.status.value,
                    proof_id=proof_id,
                )

            result = await self.backend.verify_proof_data(record.proof, record.public_signals)
            if not result.valid:
                logger.warning(
                    "proof_verification_rejected", proof_id=proof_id, reason=result.error
                )
                raise CryptoVerificationFailure(
                    result.error or "Proof rejected by verifier",
                    proof_id=proof_id,
                )

            updated = await self._transition(
                record,
                {
                    "status": ProofStatus.PROOF_VERIFIED,
                    "verified_at": result.verified_at,
                    "verification_guarantee": result.guarantee,
                },
            )

        logger.info(
            "proof_verified_locally",
            proof_id=proof_id,
            guarantee=result.guarantee.value if result.guarantee else None,
        )
        return updated, result

    def _synthetic_marker(self, kind: str, record: IncomeProof) -> str:
        """Locally derived 32-byte marker standing in for a transaction hash."""
        seed = f"{kind}:{record.id}:{record.commitment}:{self.now().isoformat()}"
        return Web3.to_hex(Web3.keccak(text=seed))

    async def _verify_through_ledger(
        self,
        record: IncomeProof,
        address: str,
    ) -> tuple[str, TxProvenance, str]:
        """
        Run the verification tiers.

        Returns:
            (tx_hash_or_marker, provenance, method)
        """
        # Tier 1: read-only verifyProof
        try:
            accepted = await self.gateway.verify_proof_call(record.proof, record.public_signals)
        except ChainError as e:
            logger.warning("on_chain_view_call_failed", proof_id=record.id, error=e.message)
        else:
            if not accepted:
                raise CryptoVerificationFailure(
                    "Verifier contract rejected the proof",
                    proof_id=record.id,
                )
            provenance = (
                TxProvenance.READ_ONLY_CALL
                if self.gateway.provenance == TxProvenance.LEDGER
                else self.gateway.provenance
            )
            return self._synthetic_marker("read-only", record), provenance, "read_only_call"

        # Tier 2: state-changing verification transaction
        try:
            receipt = await self.gateway.submit_verification(
                address, record.proof, record.public_signals
            )
        except ChainError as e:
            if not self.settings.liveness_fallback_enabled:
                raise
            # Tier 3: liveness marker, never in production
            logger.warning(
                "on_chain_liveness_fallback",
                proof_id=record.id,
                error=e.message,
            )
            return (
                self._synthetic_marker("liveness", record),
                TxProvenance.LIVENESS_FALLBACK,
                "liveness_fallback",
            )

        if not receipt.is_valid:
            raise CryptoVerificationFailure(
                "Verifier contract rejected the proof",
                proof_id=record.id,
                tx_hash=receipt.tx_hash,
            )
        return receipt.tx_hash, receipt.provenance, "transaction"

    async def verify_on_chain(self, proof_id: str, owner: str, address: str) -> IncomeProof:
        """
        Verify the proof against the ledger verifier.

        Tries a read-only call, then a verification transaction, then
        (outside production, when enabled) a liveness marker.

        Raises:
            ValidationError: Malformed address
            StateConflictError: No proof, absorbing state, or another
                caller holds the verification claim
            CryptoVerificationFailure: The verifier contract rejected the proof
            ChainError: Ledger failed and no fallback applies
        """
        address = validate_address(address)

        async with self._lock_for(proof_id):
            record = await self.ensure_live(proof_id, owner)
            if record.status == ProofStatus.PROOF_VERIFIED_ON_CHAIN:
                return record
            if not record.has_proof:
                raise StateConflictError(
                    "Proof has not been generated",
                    current_state=record.status.value,
                    proof_id=proof_id,
                )

            claim = uuid.uuid4().hex
            claimed = await self.store.compare_and_set_proof(
                proof_id,
                owner,
                expected={"status": record.status, "verification_claim": None},
                changes={"verification_claim": claim},
            )
            if claimed is None:
                current = await self.store.get_proof(proof_id, owner)
                if current.status == ProofStatus.PROOF_VERIFIED_ON_CHAIN:
                    return current
                raise StateConflictError(
                    "On-chain verification already in progress",
                    current_state=current.status.value,
                    proof_id=proof_id,
                )

            try:
                tx_hash, provenance, method = await self._verify_through_ledger(claimed, address)
            except BaseException:
                await self.store.compare_and_set_proof(
                    proof_id,
                    owner,
                    expected={"verification_claim": claim},
                    changes={"verification_claim": None},
                )
                raise

            guarantee = (
                VerificationGuarantee.PAIRING
                if provenance in (TxProvenance.READ_ONLY_CALL, TxProvenance.LEDGER)
                else VerificationGuarantee.STRUCTURAL
            )
            updated = await self._transition(
                claimed,
                {
                    "status": ProofStatus.PROOF_VERIFIED_ON_CHAIN,
                    "verification_tx_hash": tx_hash,
                    "verification_provenance": provenance,
                    "verification_guarantee": guarantee,
                    "verification_claim": None,
                    "verified_at": self.now(),
                    "metadata": {**claimed.metadata, "verification_method": method},
                },
                expected={"status": claimed.status, "verification_claim": claim},
            )

        logger.info(
            "proof_verified_on_chain",
            proof_id=proof_id,
            tx_hash=tx_hash,
            provenance=provenance.value,
        )
        return updated

    # =========================================================================
    # Commitment Anchoring
    # =========================================================================

    async def anchor_commitment(self, proof_id: str, owner: str, address: str) -> IncomeProof:
        """
        Store the commitment on the verifier contract.

        Status does not change. Chain errors propagate.
        """
        address = validate_address(address)

        async with self._lock_for(proof_id):
            record = await self.ensure_live(proof_id, owner)
            if record.commitment_tx_hash:
                return record

            tx_hash = await self.gateway.submit_commitment(address, record.commitment)
            updated = await self._transition(
                record,
                {
                    "commitment_tx_hash": tx_hash,
                    "metadata": {
                        **record.metadata,
                        "commitment_provenance": self.gateway.provenance.value,
                    },
                },
            )

        logger.info("commitment_anchored", proof_id=proof_id, tx_hash=tx_hash)
        return updated

    # =========================================================================
    # Expiry & Revocation
    # =========================================================================

    async def expire(self, proof_id: str, owner: str) -> IncomeProof:
        """
        Move a due proof to expired.

        Raises:
            StateConflictError: Absorbing state, or not yet past expires_at
        """
        async with self._lock_for(proof_id):
            record = await self.store.get_proof(proof_id, owner)
            if record.is_absorbing:
                raise StateConflictError(
                    f"Proof is {record.status.value}",
                    current_state=record.status.value,
                    proof_id=proof_id,
                )
            if not record.is_due(self.now()):
                raise StateConflictError(
                    "Proof has not reached its expiry time",
                    current_state=record.status.value,
                    proof_id=proof_id,
                    expires_at=record.expires_at.isoformat() if record.expires_at else None,
                )
            updated = await self._transition(record, {"status": ProofStatus.EXPIRED})

        logger.info("proof_expired", proof_id=proof_id, previous_status=record.status.value)
        return updated

    async def revoke(
        self,
        proof_id: str,
        owner: str,
        reason: str | None = None,
        revoked_by: str | None = None,
    ) -> IncomeProof:
        """
        Administratively revoke a proof.

        Raises:
            StateConflictError: Already expired or revoked
        """
        async with self._lock_for(proof_id):
            record = await self.ensure_live(proof_id, owner)
            changes: dict[str, Any] = {"status": ProofStatus.REVOKED, "revocation_reason": reason}
            if revoked_by is not None:
                changes["metadata"] = {**record.metadata, "revoked_by": revoked_by}
            updated = await self._transition(record, changes)

        logger.info("proof_revoked", proof_id=proof_id, reason=reason, revoked_by=revoked_by)
        return updated

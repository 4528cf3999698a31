"""
Income Proof Services
=====================

Business logic for the proof lifecycle and ZK-gated tax payments.
"""

from services.income_proof.services.api import IncomeProofAPI
from services.income_proof.services.lifecycle import ProofLifecycle
from services.income_proof.services.payments import PaymentCoordinator


__all__ = ["IncomeProofAPI", "PaymentCoordinator", "ProofLifecycle"]

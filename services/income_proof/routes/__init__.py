"""
Income Proof Service Routes
===========================

API route handlers for the income proof service.
"""

from services.income_proof.routes import chain, payments, proofs


__all__ = ["chain", "payments", "proofs"]

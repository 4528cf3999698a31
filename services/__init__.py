"""
TaxProof Services
=================

Deployable FastAPI services.

Services:
- income_proof: ZK income proofs and proof-gated tax payments
"""

__all__ = [
    "income_proof",
]

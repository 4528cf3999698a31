"""
Income Proof Service
====================

Zero-knowledge income threshold proofs and proof-gated tax payments.

This service provides:
- Income commitments and Groth16 threshold proofs
- Local and on-chain proof verification
- Proof lifecycle (expiry, revocation)
- Tax payments backed by a verified proof, with receipts

Version: 0.1.0
"""

__version__ = "0.1.0"

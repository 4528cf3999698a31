"""
TaxProof Test Suite
===================

Test organization:
- tests/unit/                    - Library tests (commitments, proofs, ledger, store)
- tests/services/income_proof/   - Lifecycle, payments, API facade and HTTP routes

Run tests:
    pytest                          # All tests
    pytest tests/unit               # Unit tests only
    pytest -k payments              # Payment coordinator only
"""

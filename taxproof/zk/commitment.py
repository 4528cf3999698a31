"""
Income Commitments
==================

commitment = keccak256(utf8("<income>:<secret>"))

The digest is byte-for-byte what Solidity's `keccak256(bytes(...))` yields
for the same string, so the verifier contract can store and compare it.
Hiding rests on the secret having high entropy and never being reused;
binding rests on keccak's collision resistance.

Version: 0.1.0
"""

import hmac
import re
import secrets

from web3 import Web3

from taxproof.errors import CommitmentMismatchError, ValidationError
from taxproof.logging import get_logger
from taxproof.zk.models import FIELD_ORDER


logger = get_logger(__name__)

_DIGEST_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def validate_witness(income: int, secret: str) -> None:
    """Reject inputs that cannot form a commitment."""
    if isinstance(income, bool) or not isinstance(income, int):
        raise ValidationError("Income must be an integer", field="income")
    if income <= 0:
        raise ValidationError("Income must be positive", field="income")
    if not isinstance(secret, str) or not secret:
        raise ValidationError("Random secret is required", field="secret")


def is_commitment(value: str) -> bool:
    """Check that a value is a 0x-prefixed 32-byte hex digest."""
    return isinstance(value, str) and bool(_DIGEST_RE.match(value))


class CommitmentScheme:
    """Deterministic hiding/binding commitment over (income, secret)."""

    def commit(self, income: int, secret: str) -> str:
        validate_witness(income, secret)
        digest = Web3.keccak(text=f"{income}:{secret}")
        return Web3.to_hex(digest)

    def matches(self, income: int, secret: str, stored: str) -> bool:
        """Recompute and compare against a stored commitment."""
        recomputed = self.commit(income, secret)
        return hmac.compare_digest(recomputed.lower(), stored.lower())

    def open(self, income: int, secret: str, stored: str) -> None:
        """
        Check a claimed opening of a stored commitment.

        Raises:
            CommitmentMismatchError: The pair does not open the commitment.
        """
        if not self.matches(income, secret, stored):
            logger.warning("commitment_mismatch", stored=stored)
            raise CommitmentMismatchError(
                "Income and random secret do not match the stored commitment"
            )

    @staticmethod
    def generate_secret() -> str:
        """Fresh 256-bit secret, hex encoded."""
        return secrets.token_hex(32)

    @staticmethod
    def to_field_element(commitment: str) -> int:
        """Reduce a digest into the BN254 scalar field for circuit input."""
        return int(commitment, 16) % FIELD_ORDER

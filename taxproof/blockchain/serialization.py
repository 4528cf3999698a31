"""
Verifier Calldata Serialization
===============================

Converts snarkjs proofs into the argument layout of a Solidity Groth16
verifier.

snarkjs emits each G2 coordinate of `pi_b` as [c0, c1]; the verifier's
pairing precompile expects [c1, c0]. The two inner pairs of `pi_b` are
therefore swapped. G1 points only lose their projective z coordinate.
Submitting `pi_b` unswapped makes every valid proof fail on chain.

Version: 0.1.0
"""

from pydantic import BaseModel

from taxproof.errors import ValidationError
from taxproof.zk.models import FIELD_ORDER, ZKProof, field_element_to_int


VERIFIER_PUBLIC_INPUTS = 3


class VerifierCalldata(BaseModel):
    """Groth16 verifier arguments (a, b, c, input)."""

    a: list[int]
    b: list[list[int]]
    c: list[int]
    input: list[int]

    def as_args(self) -> tuple[list[int], list[list[int]], list[int], list[int]]:
        return self.a, self.b, self.c, self.input


def _to_int(value: str | int, component: str) -> int:
    try:
        number = field_element_to_int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{component} is not a field element", component=component) from e
    if number < 0:
        raise ValidationError(f"{component} is negative", component=component)
    return number


def _g1(point: list[str], component: str) -> list[int]:
    if len(point) < 2:
        raise ValidationError(f"{component} must have at least 2 coordinates", component=component)
    return [_to_int(point[0], component), _to_int(point[1], component)]


def swap_g2(pi_b: list[list[str]]) -> list[list[int]]:
    """
    Reorder a snarkjs G2 point for the verifier.

    [[x0, x1], [y0, y1], ...] -> [[x1, x0], [y1, y0]]
    """
    if len(pi_b) < 2 or any(len(row) != 2 for row in pi_b[:2]):
        raise ValidationError("pi_b must have two coordinate pairs", component="pi_b")
    return [
        [_to_int(pi_b[0][1], "pi_b"), _to_int(pi_b[0][0], "pi_b")],
        [_to_int(pi_b[1][1], "pi_b"), _to_int(pi_b[1][0], "pi_b")],
    ]


def public_inputs_array(public_signals: list[str | int]) -> list[int]:
    """
    Public signals as the verifier's fixed-size uint256 array.

    Values are reduced into the scalar field, since the verifier rejects
    inputs at or above the field order. Short lists are zero padded.
    """
    if not public_signals:
        raise ValidationError("Public signals are empty", component="input")
    if len(public_signals) > VERIFIER_PUBLIC_INPUTS:
        raise ValidationError(
            f"Verifier accepts at most {VERIFIER_PUBLIC_INPUTS} public inputs",
            component="input",
            count=len(public_signals),
        )
    values = [_to_int(s, "input") % FIELD_ORDER for s in public_signals]
    return values + [0] * (VERIFIER_PUBLIC_INPUTS - len(values))


def to_verifier_calldata(proof: ZKProof, public_signals: list[str]) -> VerifierCalldata:
    """
    Serialize a proof for `verifyProof` and friends.

    Raises:
        ValidationError: A component is missing or not a field element
    """
    return VerifierCalldata(
        a=_g1(proof.pi_a, "pi_a"),
        b=swap_g2(proof.pi_b),
        c=_g1(proof.pi_c, "pi_c"),
        input=public_inputs_array(public_signals),
    )

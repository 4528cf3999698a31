"""
Contract ABIs
=============

Minimal ABIs for the income verifier and the tax payment contract.

`verifyProof` is the snarkjs-exported Groth16 view. `verifyAndStoreProof`
returns `false` for a rejected proof without reverting; the gateway reads
the verdict with a call before sending the transaction.

Version: 0.1.0
"""

from typing import Any


_PROOF_INPUTS: list[dict[str, Any]] = [
    {"internalType": "uint256[2]", "name": "a", "type": "uint256[2]"},
    {"internalType": "uint256[2][2]", "name": "b", "type": "uint256[2][2]"},
    {"internalType": "uint256[2]", "name": "c", "type": "uint256[2]"},
    {"internalType": "uint256[3]", "name": "input", "type": "uint256[3]"},
]


VERIFIER_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "address", "name": "userAddress", "type": "address"},
            {"internalType": "bytes32", "name": "commitment", "type": "bytes32"},
        ],
        "name": "storeCommitment",
        "outputs": [{"internalType": "bool", "name": "success", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": _PROOF_INPUTS,
        "name": "verifyProof",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "userAddress", "type": "address"},
            *_PROOF_INPUTS,
        ],
        "name": "verifyAndStoreProof",
        "outputs": [{"internalType": "bool", "name": "isValid", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


TAX_SYSTEM_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
            *_PROOF_INPUTS,
        ],
        "name": "processTaxPayment",
        "outputs": [{"internalType": "bool", "name": "success", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getTreasuryBalance",
        "outputs": [{"internalType": "uint256", "name": "balance", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

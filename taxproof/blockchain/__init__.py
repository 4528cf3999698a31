"""
Blockchain Module
=================

Ledger gateway for the income verifier and tax payment contracts.

Supports:
- Simulated in-memory ledger (CHAIN_MODE=mock)
- EVM JSON-RPC via web3 (CHAIN_MODE=testnet / mainnet)

Usage:
    from taxproof.blockchain import build_chain_gateway

    gateway = build_chain_gateway(settings)
    await gateway.connect()
    receipt = await gateway.submit_verification(address, proof, public_signals)
"""

from taxproof.blockchain.client import (
    ChainGateway,
    TransactionRecord,
    TransactionStatus,
    TreasuryBalance,
    VerificationReceipt,
    build_chain_gateway,
    fiat_to_wei,
    validate_address,
    validate_amount,
    validate_tx_hash,
)
from taxproof.blockchain.mock import MockVerifierContract, SimulatedChainGateway
from taxproof.blockchain.serialization import (
    VERIFIER_PUBLIC_INPUTS,
    VerifierCalldata,
    public_inputs_array,
    swap_g2,
    to_verifier_calldata,
)
from taxproof.blockchain.web3_gateway import Web3ChainGateway


__all__ = [
    # Gateways
    "ChainGateway",
    "SimulatedChainGateway",
    "Web3ChainGateway",
    "MockVerifierContract",
    "build_chain_gateway",
    # Models
    "TransactionRecord",
    "TransactionStatus",
    "TreasuryBalance",
    "VerificationReceipt",
    # Serialization
    "VerifierCalldata",
    "VERIFIER_PUBLIC_INPUTS",
    "swap_g2",
    "public_inputs_array",
    "to_verifier_calldata",
    # Helpers
    "fiat_to_wei",
    "validate_address",
    "validate_amount",
    "validate_tx_hash",
]

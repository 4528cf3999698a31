"""
TaxProof Library
================

Income threshold proofs and ZK-gated tax payments.

Modules:
    - config: Configuration management with Pydantic Settings
    - logging: Structured logging with structlog
    - zk: Income commitments and Groth16 proof backends
    - blockchain: Ledger gateway (simulated / web3)
    - storage: Record store interface and in-memory implementation
    - models: Proof and payment records, tagged results

Version: 0.1.0
"""

__version__ = "0.1.0"

from taxproof.config import get_settings
from taxproof.logging import get_logger, setup_logging


__all__ = [
    "get_settings",
    "get_logger",
    "setup_logging",
    "__version__",
]

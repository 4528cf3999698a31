"""
Web3 Chain Gateway
==================

Testnet/mainnet gateway over JSON-RPC using `web3.AsyncWeb3`.
Transactions are signed locally with the configured key.

Every RPC is bounded by `CHAIN_REQUEST_TIMEOUT_SECONDS` and inclusion by
`CHAIN_RECEIPT_TIMEOUT_SECONDS`. A timed-out state-changing transaction
may still be mined later; its hash is logged so the outcome can be
checked with `read_transaction`.

Version: 0.1.0
"""

import asyncio
from collections.abc import Awaitable
from datetime import UTC, datetime
from typing import Any, TypeVar

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from taxproof.blockchain.abi import TAX_SYSTEM_ABI, VERIFIER_ABI
from taxproof.blockchain.client import (
    ChainGateway,
    TransactionRecord,
    TransactionStatus,
    TreasuryBalance,
    VerificationReceipt,
    treasury_balance_from_wei,
    validate_address,
    validate_amount,
    validate_tx_hash,
)
from taxproof.blockchain.serialization import public_inputs_array, to_verifier_calldata
from taxproof.config import ChainMode, Settings
from taxproof.errors import ChainError, ConfigurationError, NotFoundError, ValidationError
from taxproof.logging import get_logger
from taxproof.models.records import TxProvenance
from taxproof.zk.commitment import is_commitment
from taxproof.zk.models import ZKProof


logger = get_logger(__name__)

T = TypeVar("T")


class Web3ChainGateway(ChainGateway):
    """
    JSON-RPC ledger gateway.

    Usage:
        gateway = Web3ChainGateway(settings)
        await gateway.connect()
        tx_hash = await gateway.submit_commitment(address, commitment)
    """

    def __init__(self, settings: Settings, w3: AsyncWeb3 | None = None) -> None:
        self.settings = settings
        self.chain = settings.chain
        self._w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(
                self.chain.rpc_url,
                request_kwargs={"timeout": self.chain.request_timeout_seconds},
            )
        )

        private_key = self.chain.private_key.get_secret_value()
        self._account: LocalAccount | None = Account.from_key(private_key) if private_key else None

        self._verifier = None
        self._tax_system = None
        self._connected = False

    @property
    def mode(self) -> ChainMode:
        return self.chain.mode

    @property
    def provenance(self) -> TxProvenance:
        return TxProvenance.LEDGER

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> None:
        """Check the RPC endpoint. An unreachable node is logged, not fatal."""
        try:
            self._connected = bool(
                await asyncio.wait_for(self._w3.is_connected(), self.chain.request_timeout_seconds)
            )
        except (asyncio.TimeoutError, Web3Exception, OSError) as e:
            logger.warning("chain_connect_failed", rpc_url=self.chain.rpc_url, error=str(e))
            self._connected = False
            return

        logger.info(
            "chain_connected",
            mode=self.mode.value,
            connected=self._connected,
            signer=self._account.address if self._account else None,
        )

    async def disconnect(self) -> None:
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
        self._connected = False
        logger.info("chain_disconnected")

    async def health_check(self) -> dict[str, Any]:
        try:
            block_number = await self._bounded("get_block_number", self._w3.eth.get_block_number())
        except ChainError as e:
            return {"status": "unhealthy", "mode": self.mode.value, "error": e.message}

        return {
            "status": "healthy",
            "mode": self.mode.value,
            "connected": True,
            "block_number": block_number,
            "chain_id": self.chain.chain_id,
        }

    # =========================================================================
    # Internals
    # =========================================================================

    async def _bounded(
        self,
        operation: str,
        awaitable: Awaitable[T],
        timeout: float | None = None,
    ) -> T:
        """Await a ledger call under a timeout, translating failures to ChainError."""
        try:
            return await asyncio.wait_for(awaitable, timeout or self.chain.request_timeout_seconds)
        except TransactionNotFound:
            raise
        except asyncio.TimeoutError as e:
            logger.warning("chain_call_timeout", operation=operation)
            raise ChainError(f"{operation} timed out", operation=operation, reason="timeout") from e
        except ContractLogicError as e:
            logger.warning("chain_call_reverted", operation=operation, error=str(e))
            raise ChainError(
                f"{operation} reverted: {e}", operation=operation, reason="revert"
            ) from e
        except (Web3Exception, OSError, ValueError) as e:
            logger.warning("chain_call_failed", operation=operation, error=str(e))
            raise ChainError(f"{operation} failed: {e}", operation=operation, reason="rpc") from e

    def _require_account(self) -> LocalAccount:
        if self._account is None:
            raise ConfigurationError("CHAIN_PRIVATE_KEY is required to send transactions")
        return self._account

    def _contract(self, address: str, abi: list[dict[str, Any]], setting: str):
        if not address:
            raise ConfigurationError(f"{setting} is not configured")
        return self._w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    @property
    def verifier(self):
        if self._verifier is None:
            self._verifier = self._contract(
                self.chain.verifier_address, VERIFIER_ABI, "CHAIN_VERIFIER_ADDRESS"
            )
        return self._verifier

    @property
    def tax_system(self):
        if self._tax_system is None:
            self._tax_system = self._contract(
                self.chain.payment_contract_address,
                TAX_SYSTEM_ABI,
                "CHAIN_PAYMENT_CONTRACT_ADDRESS",
            )
        return self._tax_system

    async def _send(self, operation: str, function_call: Any) -> tuple[str, dict[str, Any]]:
        """
        Sign, send and wait for a contract transaction.

        Returns:
            (tx_hash, receipt)
        """
        account = self._require_account()

        nonce = await self._bounded(
            operation, self._w3.eth.get_transaction_count(account.address, "pending")
        )
        tx = await self._bounded(
            operation,
            function_call.build_transaction(
                {
                    "from": account.address,
                    "nonce": nonce,
                    "gas": self.chain.gas_limit,
                    "chainId": self.chain.chain_id,
                }
            ),
        )
        signed = account.sign_transaction(tx)
        raw_hash = await self._bounded(
            operation, self._w3.eth.send_raw_transaction(signed.raw_transaction)
        )
        tx_hash = Web3.to_hex(raw_hash)
        logger.info("chain_transaction_sent", operation=operation, tx_hash=tx_hash)

        receipt_timeout = self.chain.receipt_timeout_seconds
        receipt = await self._bounded(
            operation,
            self._w3.eth.wait_for_transaction_receipt(raw_hash, timeout=receipt_timeout),
            timeout=receipt_timeout + self.chain.request_timeout_seconds,
        )
        return tx_hash, receipt

    # =========================================================================
    # Verifier Contract
    # =========================================================================

    async def submit_commitment(self, address: str, commitment: str) -> str:
        user = validate_address(address)
        if not is_commitment(commitment):
            raise ValidationError("Malformed commitment", field="commitment")

        tx_hash, receipt = await self._send(
            "store_commitment",
            self.verifier.functions.storeCommitment(user, Web3.to_bytes(hexstr=commitment)),
        )
        if receipt["status"] != 1:
            raise ChainError("storeCommitment reverted", tx_hash=tx_hash, reason="revert")

        logger.info("commitment_stored_on_chain", tx_hash=tx_hash)
        return tx_hash

    async def verify_proof_call(self, proof: ZKProof, public_signals: list[str]) -> bool:
        calldata = to_verifier_calldata(proof, public_signals)
        result = await self._bounded(
            "verify_proof_call",
            self.verifier.functions.verifyProof(*calldata.as_args()).call(),
        )
        return bool(result)

    async def submit_verification(
        self,
        address: str,
        proof: ZKProof,
        public_signals: list[str],
    ) -> VerificationReceipt:
        user = validate_address(address)
        calldata = to_verifier_calldata(proof, public_signals)
        account = self._require_account()
        function_call = self.verifier.functions.verifyAndStoreProof(user, *calldata.as_args())

        # verifyAndStoreProof returns false for a rejected proof instead of reverting
        verdict = await self._bounded(
            "verify_and_store_proof",
            function_call.call({"from": account.address}),
        )
        if not verdict:
            logger.info("proof_verification_rejected", address=user)
            return VerificationReceipt(is_valid=False, provenance=TxProvenance.LEDGER)

        tx_hash, receipt = await self._send("verify_and_store_proof", function_call)
        if receipt["status"] != 1:
            raise ChainError("verifyAndStoreProof reverted", tx_hash=tx_hash, reason="revert")

        logger.info("proof_verification_mined", tx_hash=tx_hash)
        return VerificationReceipt(
            is_valid=True,
            tx_hash=tx_hash,
            provenance=TxProvenance.LEDGER,
            block_number=receipt.get("blockNumber"),
        )

    # =========================================================================
    # Payment Contract
    # =========================================================================

    async def submit_payment(
        self,
        address: str,
        amount: int,
        a: list[int],
        b: list[list[int]],
        c: list[int],
        public_inputs: list[int],
    ) -> str:
        validate_amount(amount)
        validate_address(address, field="payer_address")
        inputs = public_inputs_array(public_inputs)

        tx_hash, receipt = await self._send(
            "process_tax_payment",
            self.tax_system.functions.processTaxPayment(amount, a, b, c, inputs),
        )
        if receipt["status"] != 1:
            raise ChainError("processTaxPayment reverted", tx_hash=tx_hash, reason="revert")

        logger.info("tax_payment_mined", tx_hash=tx_hash, amount_wei=amount)
        return tx_hash

    async def get_treasury_balance(self) -> TreasuryBalance:
        if self.chain.payment_contract_address:
            raw = await self._bounded(
                "get_treasury_balance",
                self.tax_system.functions.getTreasuryBalance().call(),
            )
        elif self.chain.treasury_address:
            raw = await self._bounded(
                "get_treasury_balance",
                self._w3.eth.get_balance(Web3.to_checksum_address(self.chain.treasury_address)),
            )
        else:
            raise ConfigurationError("No treasury or payment contract address configured")

        return treasury_balance_from_wei(int(raw), self.chain.fiat_rate, self.chain.fiat_currency)

    # =========================================================================
    # Transactions
    # =========================================================================

    async def read_transaction(self, tx_hash: str) -> TransactionRecord:
        tx_hash = validate_tx_hash(tx_hash)

        try:
            tx = await self._bounded("get_transaction", self._w3.eth.get_transaction(tx_hash))
        except TransactionNotFound as e:
            raise NotFoundError("Transaction not found", tx_hash=tx_hash) from e

        try:
            receipt = await self._bounded(
                "get_transaction_receipt", self._w3.eth.get_transaction_receipt(tx_hash)
            )
        except TransactionNotFound:
            receipt = None

        record = TransactionRecord(
            hash=tx_hash,
            from_address=tx.get("from"),
            to_address=tx.get("to"),
            value=int(tx.get("value", 0)),
            block_number=tx.get("blockNumber"),
            provenance=TxProvenance.LEDGER,
        )
        if self._is_payment_contract(record.to_address) and tx.get("input"):
            record.payment_amount = self._decode_payment_amount(tx["input"])

        if receipt is not None:
            record.status = (
                TransactionStatus.CONFIRMED if receipt["status"] == 1 else TransactionStatus.FAILED
            )
            record.gas_used = receipt.get("gasUsed")
            block = await self._bounded(
                "get_block", self._w3.eth.get_block(receipt["blockNumber"])
            )
            record.timestamp = datetime.fromtimestamp(block["timestamp"], UTC)

        return record

    def _is_payment_contract(self, address: str | None) -> bool:
        payment_contract = self.chain.payment_contract_address.lower()
        return bool(payment_contract) and (address or "").lower() == payment_contract

    def _decode_payment_amount(self, data: Any) -> int | None:
        """Amount argument of processTaxPayment calldata, None for any other call."""
        try:
            function, params = self.tax_system.decode_function_input(data)
        except (ValueError, Web3Exception):
            return None
        if function.fn_name != "processTaxPayment":
            return None
        return int(params["amount"])

    async def verify_receipt(self, tx_hash: str) -> bool:
        record = await self.read_transaction(tx_hash)
        return record.status == TransactionStatus.CONFIRMED and self._is_payment_contract(
            record.to_address
        )

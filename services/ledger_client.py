"""Async-friendly wrapper around a synchronous web3 connection."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from exceptions import (
    EstimationError,
    LedgerError,
    LedgerTransportError,
    RevertError,
    SubmissionError,
)
from services.signer import LocalSigner

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


@dataclass(slots=True)
class TxReceipt:
    tx_hash: str
    status: int
    block_number: Optional[int]
    gas_used: int
    effective_gas_price: Optional[int] = None
    revert_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


def _revert_reason(exc: ContractLogicError) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return message.replace("execution reverted: ", "").replace("execution reverted", "").strip() or "execution reverted"


class LedgerClient:
    """
    Reads and writes through one HTTP RPC endpoint.

    Every blocking web3 call is pushed onto a worker thread so the event loop
    keeps scheduling while requests are in flight.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        signer: Optional[LocalSigner] = None,
        *,
        web3: Optional[Web3] = None,
        receipt_timeout: float = 180,
        request_timeout: float = 30,
    ) -> None:
        if web3 is None:
            if not rpc_url:
                raise ValueError("rpc_url is required when no web3 instance is supplied")
            web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        self.web3 = web3
        self.signer = signer
        self.receipt_timeout = receipt_timeout

    @property
    def address(self) -> Optional[str]:
        return self.signer.address if self.signer else None

    def checksum(self, address: str) -> str:
        return Web3.to_checksum_address(address)

    def contract(self, address: str, abi: list[dict]):
        return self.web3.eth.contract(address=self.checksum(address), abi=abi)

    # --- Reads -----------------------------------------------------------------

    async def call(self, contract_function, block_identifier: Any = "latest") -> Any:
        return await asyncio.to_thread(self._call_sync, contract_function, block_identifier)

    def _call_sync(self, contract_function, block_identifier: Any) -> Any:
        tx = {"from": self.address} if self.address else {}
        try:
            return contract_function.call(tx, block_identifier=block_identifier)
        except ContractLogicError as exc:
            reason = _revert_reason(exc)
            raise RevertError(f"Call reverted: {reason}", reason=reason) from exc
        except LedgerError:
            raise
        except Exception as exc:
            raise LedgerTransportError(f"Call failed: {exc}") from exc

    async def block_number(self) -> int:
        return await asyncio.to_thread(self._read_sync, lambda: self.web3.eth.block_number)

    async def chain_id(self) -> int:
        return await asyncio.to_thread(self._read_sync, lambda: self.web3.eth.chain_id)

    async def native_balance(self, owner: str) -> int:
        checksum = self.checksum(owner)
        return await asyncio.to_thread(self._read_sync, lambda: self.web3.eth.get_balance(checksum))

    async def gas_price(self) -> int:
        return await asyncio.to_thread(self._read_sync, lambda: self.web3.eth.gas_price)

    async def token_balance(self, token: str, owner: str) -> int:
        erc20 = self.contract(token, ERC20_ABI)
        return await self.call(erc20.functions.balanceOf(self.checksum(owner)))

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        erc20 = self.contract(token, ERC20_ABI)
        return await self.call(erc20.functions.allowance(self.checksum(owner), self.checksum(spender)))

    def approve_call(self, token: str, spender: str, amount: int):
        erc20 = self.contract(token, ERC20_ABI)
        return erc20.functions.approve(self.checksum(spender), amount)

    @staticmethod
    def _read_sync(reader) -> Any:
        try:
            return reader()
        except Exception as exc:
            raise LedgerTransportError(f"RPC read failed: {exc}") from exc

    # --- Writes ----------------------------------------------------------------

    async def estimate_gas(self, contract_function) -> int:
        return await asyncio.to_thread(self._estimate_gas_sync, contract_function)

    def _estimate_gas_sync(self, contract_function) -> int:
        try:
            return int(contract_function.estimate_gas({"from": self._require_signer().address}))
        except ContractLogicError as exc:
            raise EstimationError(f"Gas estimation reverted: {_revert_reason(exc)}") from exc
        except Exception as exc:
            raise EstimationError(f"Gas estimation failed: {exc}") from exc

    async def submit(self, contract_function, *, gas_limit: int, gas_price: Optional[int] = None) -> str:
        """Signs and broadcasts; raises SubmissionError only when nothing reached the mempool."""
        return await asyncio.to_thread(self._submit_sync, contract_function, gas_limit, gas_price)

    def _submit_sync(self, contract_function, gas_limit: int, gas_price: Optional[int]) -> str:
        signer = self._require_signer()
        try:
            params: dict[str, Any] = {
                "from": signer.address,
                "nonce": self.web3.eth.get_transaction_count(signer.address, "pending"),
                "gas": gas_limit,
                "chainId": self.web3.eth.chain_id,
            }
            if gas_price is not None:
                params["gasPrice"] = gas_price
            transaction = contract_function.build_transaction(params)
            raw = signer.sign_transaction(transaction)
            tx_hash = self.web3.eth.send_raw_transaction(raw)
        except Exception as exc:
            raise SubmissionError(f"Transaction rejected before broadcast: {exc}") from exc
        return Web3.to_hex(tx_hash)

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        return await asyncio.to_thread(self._wait_for_receipt_sync, tx_hash)

    def _wait_for_receipt_sync(self, tx_hash: str) -> TxReceipt:
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except TimeExhausted as exc:
            raise LedgerTransportError(f"No receipt for {tx_hash} after {self.receipt_timeout}s") from exc
        except Exception as exc:
            raise LedgerTransportError(f"Receipt lookup failed for {tx_hash}: {exc}") from exc

        result = TxReceipt(
            tx_hash=tx_hash,
            status=int(receipt["status"]),
            block_number=receipt.get("blockNumber"),
            gas_used=int(receipt.get("gasUsed", 0)),
            effective_gas_price=receipt.get("effectiveGasPrice"),
        )
        if not result.succeeded:
            result.revert_reason = self._replay_for_reason(tx_hash, result.block_number)
        return result

    def _replay_for_reason(self, tx_hash: str, block_number: Optional[int]) -> Optional[str]:
        try:
            tx = self.web3.eth.get_transaction(tx_hash)
            replay = {"from": tx["from"], "to": tx["to"], "data": tx["input"], "value": tx.get("value", 0)}
            self.web3.eth.call(replay, block_number)
        except ContractLogicError as exc:
            return _revert_reason(exc)
        except Exception as exc:
            logger.debug("Could not replay %s for revert reason: %s", tx_hash, exc)
        return None

    def _require_signer(self) -> LocalSigner:
        if self.signer is None:
            raise SubmissionError("No signer configured for ledger writes")
        return self.signer

"""Binding for the deployed flash-loan arbitrage receiver contract."""
from __future__ import annotations

from analysis.swap_instructions import SwapInstruction

SWAP_PARAMS_COMPONENTS = [
    {"name": "dex", "type": "uint8"},
    {"name": "tokenIn", "type": "address"},
    {"name": "tokenOut", "type": "address"},
    {"name": "amountIn", "type": "uint256"},
    {"name": "amountOutMin", "type": "uint256"},
    {"name": "poolId", "type": "bytes32"},
    {"name": "fee", "type": "uint24"},
    {"name": "i", "type": "int128"},
    {"name": "j", "type": "int128"},
    {"name": "extraData", "type": "bytes"},
]

ARBITRAGE_ABI = [
    {
        "inputs": [
            {"name": "asset", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "swap1", "type": "tuple", "components": SWAP_PARAMS_COMPONENTS},
            {"name": "swap2", "type": "tuple", "components": SWAP_PARAMS_COMPONENTS},
            {"name": "recipient", "type": "address"},
        ],
        "name": "executeArbitrage",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "profitRecipient",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "recipient", "type": "address"}],
        "name": "setProfitRecipient",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "owner",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class ArbitrageContract:
    """Builds contract calls; submission is left to the ledger client."""

    def __init__(self, ledger, address: str) -> None:
        self.ledger = ledger
        self.address = ledger.checksum(address)
        self._contract = ledger.contract(self.address, ARBITRAGE_ABI)

    def execute_arbitrage(
        self,
        asset: str,
        amount: int,
        leg1: SwapInstruction,
        leg2: SwapInstruction,
        recipient: str,
    ):
        return self._contract.functions.executeArbitrage(
            self.ledger.checksum(asset),
            amount,
            _checksummed(self.ledger, leg1),
            _checksummed(self.ledger, leg2),
            self.ledger.checksum(recipient),
        )

    async def profit_recipient(self) -> str:
        return await self.ledger.call(self._contract.functions.profitRecipient())

    async def owner(self) -> str:
        return await self.ledger.call(self._contract.functions.owner())

    def set_profit_recipient(self, recipient: str):
        return self._contract.functions.setProfitRecipient(self.ledger.checksum(recipient))


def _checksummed(ledger, instruction: SwapInstruction) -> tuple:
    params = list(instruction.as_contract_tuple())
    params[1] = ledger.checksum(params[1])
    params[2] = ledger.checksum(params[2])
    return tuple(params)

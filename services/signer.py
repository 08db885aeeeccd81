"""Transaction signing with a locally held key."""
from __future__ import annotations

from typing import Any, Mapping

from eth_account import Account


class LocalSigner:
    """Holds the private key and never exposes it; callers only get signed bytes."""

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_transaction(self, transaction: Mapping[str, Any]) -> bytes:
        signed = self._account.sign_transaction(dict(transaction))
        return bytes(signed.raw_transaction)

    def __repr__(self) -> str:
        return f"LocalSigner(address={self.address})"

"""Custodial signer for the bundler account.

Owns the private key and the account's next nonce. Nonces are issued inside a
single ``asyncio.Lock`` so concurrent requests broadcast strictly increasing
nonces with no gaps and no repeats.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3.types import TxParams

from .exceptions import SubmissionRejected, TransportFailure
from .models import PendingTransaction, SignedTransaction

if TYPE_CHECKING:
    from .chain import ChainConnection

logger = logging.getLogger(__name__)


class Signer:
    """Signs and hands off transactions for the bundler account."""

    def __init__(self, private_key: str) -> None:
        """
        Load the signing key.

        Args:
            private_key: Hex private key, with or without 0x prefix

        Raises:
            ValueError: If the key is missing or malformed
        """
        if not private_key:
            raise ValueError("Private key is required for signing transactions")

        self._account: LocalAccount = Account.from_key(private_key)
        self._next_nonce: int | None = None
        self._lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def next_nonce(self) -> int | None:
        """Nonce the next broadcast will use, or None until synced with the node."""
        return self._next_nonce

    def sign(self, tx_params: TxParams, nonce: int) -> SignedTransaction:
        """Sign ``tx_params`` with ``nonce`` without touching the counter."""
        tx = dict(tx_params)
        tx["nonce"] = nonce
        tx.setdefault("from", self.address)
        signed = self._account.sign_transaction(tx)
        return SignedTransaction(
            raw_transaction=bytes(signed.raw_transaction),
            tx_hash=HexBytes(signed.hash).to_0x_hex(),
            nonce=nonce,
        )

    async def reconcile(self, chain: "ChainConnection") -> int:
        """Re-read the next nonce from the node's pending transaction count."""
        async with self._lock:
            return await self._sync_nonce(chain)

    async def _sync_nonce(self, chain: "ChainConnection") -> int:
        previous = self._next_nonce
        self._next_nonce = await chain.pending_nonce(self.address)
        if previous is not None and previous != self._next_nonce:
            logger.warning(f"Nonce reconciled with node: {previous} -> {self._next_nonce}")
        else:
            logger.info(f"Nonce synced with node: {self._next_nonce}")
        return self._next_nonce

    async def acquire_and_sign(self, tx_params: TxParams, chain: "ChainConnection") -> PendingTransaction:
        """
        Take the next nonce, sign, and broadcast through ``chain``.

        The counter advances only once the node accepted the broadcast. A
        rejected broadcast leaves the nonce for the next caller; a nonce
        conflict or an unreachable node drops the counter so it is re-read
        from the node on next use.

        Args:
            tx_params: Unsigned transaction without a nonce
            chain: Connection used for the broadcast

        Returns:
            PendingTransaction for the broadcast transaction

        Raises:
            SubmissionRejected: If the node refused the transaction
            TransportFailure: If the node could not be reached
        """
        async with self._lock:
            nonce = self._next_nonce
            if nonce is None:
                nonce = await self._sync_nonce(chain)

            signed = self.sign(tx_params, nonce)
            try:
                pending = await chain.submit(signed, tx_params)
            except SubmissionRejected as exc:
                if exc.nonce_conflict:
                    logger.warning(f"Nonce {nonce} conflicts with node state, will resync")
                    self._next_nonce = None
                else:
                    logger.info(f"Releasing nonce {nonce} after rejected broadcast")
                raise
            except TransportFailure:
                logger.warning(f"Broadcast of nonce {nonce} is ambiguous, will resync")
                self._next_nonce = None
                raise

            self._next_nonce = nonce + 1
            return pending

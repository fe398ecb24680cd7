"""WalletSigner — local-key signing agent for delegation requests.

Supports the two standards relayers commonly offer:

- ``eth_signTypedData``: EIP-712 structured data (full ``types`` /
  ``primaryType`` / ``domain`` / ``message`` payload).
- ``eth_personalSign``: EIP-191 personal message.

Signing is CPU-bound (elliptic-curve math), so it runs in a
``ProcessPoolExecutor`` to keep the event loop responsive.
"""

from __future__ import annotations

import asyncio
import json
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Optional

import structlog
from eth_account import Account
from eth_account.messages import SignableMessage, encode_defunct, encode_typed_data

from core.errors import SignerNotStartedError, SigningError
from models.state import DelegationState

logger = structlog.get_logger("web3_infra.signer")

ETH_SIGN_TYPED_DATA = "eth_signTypedData"
ETH_PERSONAL_SIGN = "eth_personalSign"

SUPPORTED_STANDARDS = frozenset({ETH_SIGN_TYPED_DATA, ETH_PERSONAL_SIGN})


# ── Module-level signing functions (must be picklable for multiprocessing) ──


def _typed_data_message(data_to_sign: Any) -> SignableMessage:
    if isinstance(data_to_sign, str):
        data_to_sign = json.loads(data_to_sign)
    if isinstance(data_to_sign, list):
        # Pre-EIP-712 typed data ([{type, name, value}, ...])
        raise ValueError("legacy typed data arrays are not supported")
    if not isinstance(data_to_sign, dict):
        raise ValueError(f"typed data must be an object, got {type(data_to_sign).__name__}")
    return encode_typed_data(full_message=data_to_sign)


def _personal_message(data_to_sign: Any) -> SignableMessage:
    if isinstance(data_to_sign, bytes):
        return encode_defunct(primitive=data_to_sign)
    if isinstance(data_to_sign, str):
        if data_to_sign.startswith("0x"):
            return encode_defunct(hexstr=data_to_sign)
        return encode_defunct(text=data_to_sign)
    raise ValueError(f"personal message must be text or hex, got {type(data_to_sign).__name__}")


def _sign_sync(private_key: str, standard: str, data_to_sign: Any) -> str:
    """Synchronous signing executed in a worker process.

    Raises ``ValueError`` (never a project exception, which would not
    survive pickling back to the parent) on malformed payloads.
    """
    if standard == ETH_SIGN_TYPED_DATA:
        signable = _typed_data_message(data_to_sign)
    elif standard == ETH_PERSONAL_SIGN:
        signable = _personal_message(data_to_sign)
    else:
        raise ValueError(f"unsupported standard {standard}")

    signed = Account.sign_message(signable, private_key=private_key)
    return "0x" + bytes(signed.signature).hex()


# ── Async signer ────────────────────────────────────────────────────


class WalletSigner:
    """Async signing agent holding one private key.

    Returns ``None`` (declines) for standards it does not implement and
    when the store's ``current_ethereum_account`` is a different address,
    so the negotiator moves on to the next candidate.

    Parameters
    ----------
    private_key:
        Hex-encoded private key.
    max_workers:
        Number of processes in the signing pool.  Defaults to 1.
    """

    def __init__(self, private_key: str, max_workers: int = 1) -> None:
        self._private_key = private_key
        self._address: str = Account.from_key(private_key).address
        self._max_workers = max_workers
        self._pool: ProcessPoolExecutor | None = None

    @property
    def address(self) -> str:
        return self._address

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        """Start the process pool.  Idempotent."""
        if self._pool is None:
            self._pool = ProcessPoolExecutor(max_workers=self._max_workers)
            logger.info("signer.started", address=self._address, max_workers=self._max_workers)

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the process pool.  Idempotent."""
        if self._pool is not None:
            self._pool.shutdown(wait=wait)
            self._pool = None
            logger.info("signer.shutdown")

    # ── Signing ──────────────────────────────────────────────────

    async def sign(
        self,
        state: DelegationState,
        standard: str,
        data_to_sign: Any,
    ) -> Optional[str]:
        """Sign *data_to_sign* under *standard*.

        Returns
        -------
        str or None
            ``0x``-prefixed 65-byte signature, or ``None`` when declined.

        Raises
        ------
        SignerNotStartedError
            If :meth:`start` has not been called.
        SigningError
            If the payload is malformed for the standard.
        """
        if self._pool is None:
            raise SignerNotStartedError("WalletSigner not started — call start() first")

        if standard not in SUPPORTED_STANDARDS:
            logger.info("signer.standard_unsupported", standard=standard)
            return None

        account = state.current_ethereum_account
        if account and account.lower() != self._address.lower():
            logger.warning(
                "signer.account_mismatch",
                expected=account,
                signer=self._address,
            )
            return None

        loop = asyncio.get_running_loop()
        try:
            signature = await loop.run_in_executor(
                self._pool, _sign_sync, self._private_key, standard, data_to_sign,
            )
        except (ValueError, TypeError, KeyError) as exc:
            raise SigningError(standard, str(exc)) from exc

        logger.debug("signer.signed", standard=standard)
        return signature

    # ── Context manager ──────────────────────────────────────────

    async def __aenter__(self) -> WalletSigner:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.shutdown(wait=True)

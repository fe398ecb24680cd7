"""metatx-client — web3_infra package.

- WalletSigner: process-pool signing agent (EIP-712 / EIP-191).
"""

from .signer import ETH_PERSONAL_SIGN, ETH_SIGN_TYPED_DATA, WalletSigner

__all__ = [
    "ETH_PERSONAL_SIGN",
    "ETH_SIGN_TYPED_DATA",
    "WalletSigner",
]

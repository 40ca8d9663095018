"""
Foresight Relayer package.

Pays gas for client-signed ERC-4337 user operations and submits them to the
entry point named in each request.
"""

from .config import RelayerConfig
from .entry_point import EntryPointBinding
from .models import PackedUserOperation, RelayRequest, UserOperation
from .relayer import RelayHandler
from .signer import Signer

__all__ = [
    "RelayerConfig",
    "RelayHandler",
    "EntryPointBinding",
    "Signer",
    "UserOperation",
    "PackedUserOperation",
    "RelayRequest",
]
__version__ = "0.1.0"

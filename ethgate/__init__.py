"""
ethgate

JSON-RPC gateway that makes a non-standard upstream RPC endpoint look like a
regular Ethereum node to wallets, explorers and IDEs.
"""

from .constants import GATEWAY_VERSION

__version__ = GATEWAY_VERSION

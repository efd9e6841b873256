# ============================================================================
# Capledger v1.0.0
# Capability-Gated Token Ledger Client
# ============================================================================

__version__ = "1.0.0"

from capledger.config import NetworkConfig
from capledger.context import LedgerContext
from capledger.errors import LedgerError

__all__ = ["__version__", "NetworkConfig", "LedgerContext", "LedgerError"]

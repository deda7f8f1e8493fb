"""
Ledger system assembly and request dependencies
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException

from ..config import LedgerConfig, get_config
from ..events import EventDispatcher
from ..executor import Custodian
from ..ledger import Ledger
from ..payout import HttpPayoutClient, RecordingPayout

logger = logging.getLogger("custody_ledger.api")


class LedgerSystem:
    """Ledger, payout, dispatcher and custodian wired together from configuration"""

    def __init__(self, config: Optional[LedgerConfig] = None):
        config = config or get_config()
        self.config = config
        self.ledger = Ledger(
            capacity_limit=config.capacity_limit,
            withdraw_limit=config.withdraw_limit,
            owner=config.owner
        )
        self.payout = self._create_payout(config)
        self.dispatcher = EventDispatcher()
        self.custodian = Custodian(self.ledger, self.payout, self.dispatcher)

    def _create_payout(self, config: LedgerConfig):
        """Create the outbound transfer based on configuration"""
        if not config.payout_url:
            logger.warning("No payout URL configured; withdrawals are recorded in-process only")
            return RecordingPayout()

        return HttpPayoutClient(
            base_url=config.payout_url,
            timeout=config.payout_timeout,
            api_key=config.payout_api_key or None
        )


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """Dependency returning the process-wide ledger system, built on first use"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem()
    return _ledger_system


def set_ledger_system(system: Optional[LedgerSystem]) -> None:
    """Replace the process-wide ledger system (None rebuilds from config on next use)"""
    global _ledger_system
    _ledger_system = system


def get_caller(x_principal: Optional[str] = Header(None)) -> str:
    """Dependency resolving the calling principal from the X-Principal header"""
    if not x_principal:
        raise HTTPException(status_code=401, detail="X-Principal header required")
    return x_principal

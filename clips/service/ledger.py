"""
Usage ledger boundary.

The ledger (users, download counters, premium expiry) lives with the front
end. The pipeline only asks it whether a user may download and tells it when
a download was delivered. Point STORECLIP_LEDGER_CLASS at a subclass of
UsageLedger to plug a real store in.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class LedgerDecision:
    allowed: bool
    remaining: Optional[int] = None
    reason: str = ''


class UsageLedger:
    """Interface consumed by the delivery service"""

    def can_download(self, user_id) -> LedgerDecision:
        raise NotImplementedError

    def record_download(self, user_id, source_link):
        raise NotImplementedError


class UnlimitedLedger(UsageLedger):
    """Lets everyone through and records nothing"""

    def can_download(self, user_id):
        return LedgerDecision(allowed=True, reason='unlimited')

    def record_download(self, user_id, source_link):
        pass

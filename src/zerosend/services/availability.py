"""Recipient-side availability checks shared by download and TOTP flows.

The order is fixed: a deleted transfer must never reveal that it was also
expired or locked, and an expired one must never reveal its download budget.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from zerosend.core.errors import GoneError, NotFoundError
from zerosend.db.models import SessionStatus

if TYPE_CHECKING:
    from datetime import datetime

    from zerosend.db.models import TransferSession


def ensure_transfer_available(transfer: TransferSession | None, now: datetime) -> TransferSession:
    """Apply the existence, expiry and budget checks, in that order.

    Raises:
        NotFoundError: Unknown or logically deleted transfer.
        GoneError: Expired transfer, or download budget used up.
    """
    if transfer is None or transfer.is_deleted:
        raise NotFoundError("Transfer not found")
    if transfer.status is SessionStatus.EXPIRED or transfer.is_expired(now):
        raise GoneError("Transfer has expired", reason="expired")
    if transfer.download_count >= transfer.max_downloads:
        raise GoneError("Download limit reached", reason="budget_exhausted")
    return transfer


def ensure_finalized(transfer: TransferSession) -> TransferSession:
    """Reject transfers whose share URL has not been issued yet.

    Raises:
        NotFoundError: Transfer still in ``initiated``.
    """
    if transfer.status is SessionStatus.INITIATED:
        raise NotFoundError("Transfer not found")
    return transfer

"""Authenticated, paginated read of one account's calculation history."""

from __future__ import annotations

from typing import List, Optional, Tuple

from .authorizer import PermitAuthorizer
from .ledger import CalculationRecord, KeyedLedgerStore
from .permits import Permit, PermitPermission


class QueryGateway:
    def __init__(self, authorizer: PermitAuthorizer, ledger: KeyedLedgerStore):
        self.authorizer = authorizer
        self.ledger = ledger

    def calculation_history(
        self,
        permit: Permit,
        page: Optional[int],
        page_size: int,
    ) -> Tuple[List[CalculationRecord], int]:
        # Authorization failures propagate before any ledger read.
        account = self.authorizer.authorize(permit, PermitPermission.CALCULATION_HISTORY)
        return self.ledger.read_page(account, page if page is not None else 0, page_size)

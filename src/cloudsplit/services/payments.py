from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Protocol

from cloudsplit.db.models import PaymentRecord
from cloudsplit.errors import ValidationError
from cloudsplit.logging import get_logger
from cloudsplit.services.aggregate import ParticipantSummary
from cloudsplit.services.authz import Viewer, assert_authenticated
from cloudsplit.services.split import ONE, ZERO, quantize_money

PAID_AMOUNT_RE = re.compile(r"\d*(\.\d{0,2})?", re.ASCII)
FULLY_PAID_TOLERANCE = Decimal("0.01")

log = get_logger(__name__)


class PaymentRepository(Protocol):
    async def upsert_payment(self, participant_name: str, paid_amount: Decimal) -> PaymentRecord: ...


@dataclass(slots=True)
class PaymentStatus:
    participant_name: str
    total_amount: Decimal
    paid_amount: Decimal = ZERO

    @property
    def remaining(self) -> Decimal:
        return max(self.total_amount - self.paid_amount, ZERO)

    @property
    def paid_ratio(self) -> Decimal:
        if self.total_amount <= 0:
            return ZERO
        return min(max(self.paid_amount / self.total_amount, ZERO), ONE)

    @property
    def is_fully_paid(self) -> bool:
        return self.remaining <= FULLY_PAID_TOLERANCE or self.paid_ratio >= ONE


def is_valid_paid_input(text: str) -> bool:
    return PAID_AMOUNT_RE.fullmatch(text) is not None


def parse_paid_amount(text: str) -> Decimal:
    """Parse what was typed into a paid-amount field; an empty field means zero."""
    value = text.strip()
    if not is_valid_paid_input(value) or value == ".":
        raise ValidationError("Paid amount must be a non-negative number with at most two decimals.")
    if value == "":
        return ZERO
    return Decimal(value)


def reconcile(
    summaries: Iterable[ParticipantSummary],
    paid_amounts: Mapping[str, Decimal],
) -> list[PaymentStatus]:
    return [
        PaymentStatus(
            participant_name=summary.participant_name,
            total_amount=summary.total_amount,
            paid_amount=paid_amounts.get(summary.participant_name, ZERO),
        )
        for summary in summaries
    ]


class PaidAmountEditor:
    """Per-name paid amounts being edited by one viewer.

    ``edit`` only touches the draft. ``commit`` and ``fill_to_total`` settle
    the value that has to be written back, so intermediate keystrokes never
    reach storage.
    """

    def __init__(self, viewer: Viewer, committed: Optional[Mapping[str, Decimal]] = None) -> None:
        self.viewer = viewer
        self._committed: dict[str, Decimal] = dict(committed or {})
        self._drafts: dict[str, str] = {}

    def paid(self, name: str) -> Decimal:
        return self._committed.get(name, ZERO)

    @property
    def paid_amounts(self) -> dict[str, Decimal]:
        return dict(self._committed)

    def draft(self, name: str) -> str:
        if name in self._drafts:
            return self._drafts[name]
        committed = self._committed.get(name)
        return "" if committed is None else str(committed)

    def edit(self, name: str, text: str) -> None:
        assert_authenticated(self.viewer)
        if not is_valid_paid_input(text):
            raise ValidationError("Paid amount must be a non-negative number with at most two decimals.")
        self._drafts[name] = text

    def commit(self, name: str) -> Decimal:
        assert_authenticated(self.viewer)
        amount = parse_paid_amount(self.draft(name))
        self._drafts.pop(name, None)
        self._committed[name] = amount
        return amount

    def fill_to_total(self, name: str, total: Decimal) -> Decimal:
        assert_authenticated(self.viewer)
        amount = max(quantize_money(total), ZERO)
        self._drafts.pop(name, None)
        self._committed[name] = amount
        return amount

    def discard(self, name: str) -> None:
        self._drafts.pop(name, None)


async def save_paid_amount(
    repo: PaymentRepository,
    viewer: Viewer,
    participant_name: str,
    amount: Decimal,
) -> PaymentRecord:
    assert_authenticated(viewer)
    name = participant_name.strip()
    if not name:
        raise ValidationError("Participant name is required.")
    if amount < 0:
        raise ValidationError("Paid amount cannot be negative.")
    record = await repo.upsert_payment(name, quantize_money(amount))
    log.info("payment.save", participant=name, paid=str(record.paid_amount), user_id=viewer.user_id)
    return record

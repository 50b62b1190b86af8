"""
Invoice and bill arithmetic.

Responsibility:
    Turns requested document items into stored item values and document
    totals: line amounts, per-item tax from the rate in force, subtotal,
    total and balance due.  Tax rates are looked up by code and date.

Architecture position:
    Services layer.  Used by the invoice and bill workflow services
    whenever items are set or replaced.

Invariants enforced:
    - line_total = quantity x unit_price, rounded to cents half-up.
    - item tax = line_total x rate / 100, rounded to cents half-up.
    - subtotal = sum of line totals; tax_amount = sum of item taxes.
    - total = subtotal + tax_amount - discount, never negative.
    - balance_due = total - paid_amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import RATE_DECIMAL_PLACES, ZERO, round_money, to_decimal
from ledger_kernel.exceptions import InvalidDocumentError, TaxCodeNotFoundError
from ledger_kernel.models.tax import TaxCode, TaxRate

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class ItemSpec:
    """One requested invoice or bill line."""

    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_code: str | None = None


@dataclass(frozen=True)
class ComputedItem:
    line_no: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_code_id: UUID | None
    tax_rate: Decimal
    tax_amount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    items: tuple[ComputedItem, ...]
    subtotal: Decimal
    tax_amount: Decimal
    discount: Decimal
    total: Decimal


class TaxRateResolver:
    """Finds the tax rate in force for a tax code on a given day."""

    def __init__(self, session: Session):
        self.session = session

    def tax_code(self, code: str) -> TaxCode:
        tax_code = self.session.execute(
            select(TaxCode).where(TaxCode.code == code)
        ).scalar_one_or_none()
        if tax_code is None or not tax_code.is_active:
            raise TaxCodeNotFoundError(code)
        return tax_code

    def rate_on(self, tax_code: TaxCode, on_date: date) -> Decimal:
        """
        Most recent rate with ``effective_from <= on_date`` and
        ``effective_to`` open or ``>= on_date``.  Zero when none applies.
        """
        rate = self.session.execute(
            select(TaxRate.rate)
            .where(TaxRate.tax_code_id == tax_code.id)
            .where(TaxRate.effective_from <= on_date)
            .where(or_(TaxRate.effective_to.is_(None), TaxRate.effective_to >= on_date))
            .order_by(TaxRate.effective_from.desc())
            .limit(1)
        ).scalar_one_or_none()
        return rate if rate is not None else ZERO


def compute_document(
    resolver: TaxRateResolver,
    items: list[ItemSpec],
    on_date: date,
    discount: Decimal = ZERO,
    document_type: str = "invoice",
) -> DocumentTotals:
    """
    Price every item and total the document.

    Raises:
        InvalidDocumentError: no items, a non-positive quantity, a
            negative price or discount, or a total that is not positive.
        TaxCodeNotFoundError: an item names an unknown tax code.
    """
    if not items:
        raise InvalidDocumentError(document_type, "at least one item is required")
    discount = round_money(discount)
    if discount < 0:
        raise InvalidDocumentError(document_type, "discount cannot be negative")

    computed: list[ComputedItem] = []
    subtotal = ZERO
    tax_total = ZERO
    for line_no, item in enumerate(items, start=1):
        quantity = round_money(item.quantity, RATE_DECIMAL_PLACES)
        unit_price = round_money(item.unit_price)
        if quantity <= 0:
            raise InvalidDocumentError(document_type, f"item {line_no}: quantity must be positive")
        if unit_price < 0:
            raise InvalidDocumentError(document_type, f"item {line_no}: unit price cannot be negative")

        line_total = round_money(quantity * unit_price)
        tax_code_id = None
        rate = ZERO
        if item.tax_code:
            tax_code = resolver.tax_code(item.tax_code)
            tax_code_id = tax_code.id
            rate = to_decimal(resolver.rate_on(tax_code, on_date))
        tax_amount = round_money(line_total * rate / _HUNDRED)

        computed.append(
            ComputedItem(
                line_no=line_no,
                description=item.description,
                quantity=quantity,
                unit_price=unit_price,
                tax_code_id=tax_code_id,
                tax_rate=rate,
                tax_amount=tax_amount,
                line_total=line_total,
            )
        )
        subtotal += line_total
        tax_total += tax_amount

    total = subtotal + tax_total - discount
    if total <= 0:
        raise InvalidDocumentError(document_type, "total must be greater than zero")

    return DocumentTotals(
        items=tuple(computed),
        subtotal=subtotal,
        tax_amount=tax_total,
        discount=discount,
        total=total,
    )

"""
Master data needed by the posting core: customers, vendors, tax codes.

Plain create and lookup only.  Full CRUD belongs to the master-data
application; the posting core reads these rows and moves the customer
and vendor balances.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import RATE_DECIMAL_PLACES, round_money
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    CustomerNotFoundError,
    DuplicateCodeError,
    InvalidDocumentError,
    VendorNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.party import Customer, Vendor
from ledger_kernel.models.tax import TaxCode, TaxRate
from ledger_kernel.services.auditor_service import AuditorService

logger = get_logger("services.master_data")


class MasterDataService:
    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._auditor = AuditorService(session, clock or SystemClock())

    def create_customer(self, code: str, name: str, actor_id: UUID, email: str | None = None) -> Customer:
        if self.session.execute(select(Customer.id).where(Customer.code == code)).first():
            raise DuplicateCodeError("Customer", code)
        customer = Customer(code=code, name=name, email=email, created_by_id=actor_id)
        self.session.add(customer)
        self.session.flush()
        self._auditor.record(actor_id, "customer_created", "Customer", customer.id, after={"code": code, "name": name})
        logger.info("customer_created", extra={"customer_code": code})
        return customer

    def create_vendor(self, code: str, name: str, actor_id: UUID, email: str | None = None) -> Vendor:
        if self.session.execute(select(Vendor.id).where(Vendor.code == code)).first():
            raise DuplicateCodeError("Vendor", code)
        vendor = Vendor(code=code, name=name, email=email, created_by_id=actor_id)
        self.session.add(vendor)
        self.session.flush()
        self._auditor.record(actor_id, "vendor_created", "Vendor", vendor.id, after={"code": code, "name": name})
        logger.info("vendor_created", extra={"vendor_code": code})
        return vendor

    def customer(self, customer_id: UUID, for_update: bool = False) -> Customer:
        query = select(Customer).where(Customer.id == customer_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        customer = self.session.execute(query).scalar_one_or_none()
        if customer is None:
            raise CustomerNotFoundError(str(customer_id))
        return customer

    def vendor(self, vendor_id: UUID, for_update: bool = False) -> Vendor:
        query = select(Vendor).where(Vendor.id == vendor_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        vendor = self.session.execute(query).scalar_one_or_none()
        if vendor is None:
            raise VendorNotFoundError(str(vendor_id))
        return vendor

    def adjust_customer_balance(self, customer_id: UUID, delta: Decimal, actor_id: UUID) -> Customer:
        """Move the customer's outstanding receivable by ``delta``."""
        customer = self.customer(customer_id, for_update=True)
        if delta:
            customer.current_balance = customer.current_balance + delta
            customer.updated_by_id = actor_id
            self.session.flush()
            logger.debug(
                "customer_balance_adjusted",
                extra={"customer_code": customer.code, "delta": delta, "balance": customer.current_balance},
            )
        return customer

    def adjust_vendor_balance(self, vendor_id: UUID, delta: Decimal, actor_id: UUID) -> Vendor:
        """Move the vendor's outstanding payable by ``delta``."""
        vendor = self.vendor(vendor_id, for_update=True)
        if delta:
            vendor.current_balance = vendor.current_balance + delta
            vendor.updated_by_id = actor_id
            self.session.flush()
            logger.debug(
                "vendor_balance_adjusted",
                extra={"vendor_code": vendor.code, "delta": delta, "balance": vendor.current_balance},
            )
        return vendor

    def create_tax_code(
        self,
        code: str,
        name: str,
        rate: Decimal,
        effective_from: date,
        actor_id: UUID,
        effective_to: date | None = None,
    ) -> TaxCode:
        """Create a tax code with its first rate (percent)."""
        if self.session.execute(select(TaxCode.id).where(TaxCode.code == code)).first():
            raise DuplicateCodeError("TaxCode", code)
        tax_code = TaxCode(code=code, name=name, created_by_id=actor_id)
        self.session.add(tax_code)
        self.session.flush()
        self.add_tax_rate(tax_code, rate, effective_from, actor_id, effective_to)
        return tax_code

    def add_tax_rate(
        self,
        tax_code: TaxCode,
        rate: Decimal,
        effective_from: date,
        actor_id: UUID,
        effective_to: date | None = None,
    ) -> TaxRate:
        rate = round_money(rate, RATE_DECIMAL_PLACES)
        if rate < 0:
            raise InvalidDocumentError("tax rate", "rate cannot be negative")
        if effective_to is not None and effective_to < effective_from:
            raise InvalidDocumentError("tax rate", "effective_to precedes effective_from")
        tax_rate = TaxRate(
            tax_code_id=tax_code.id,
            rate=rate,
            effective_from=effective_from,
            effective_to=effective_to,
            created_by_id=actor_id,
        )
        self.session.add(tax_rate)
        self.session.flush()
        self._auditor.record(
            actor_id, "tax_rate_added", "TaxCode", tax_code.id,
            after={"code": tax_code.code, "rate": str(rate), "effective_from": effective_from.isoformat()},
        )
        logger.info(
            "tax_rate_added",
            extra={"tax_code": tax_code.code, "rate": rate, "effective_from": effective_from},
        )
        return tax_rate

"""
Module: ledger_kernel.models.fiscal_year
Responsibility: ORM persistence for fiscal years and their lock state.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - No journal entry may be posted with an entry_date inside a locked
      fiscal year (FiscalYearService.validate_posting_date).
    - Fiscal years do not overlap (FiscalYearService.create_year).
    - Closing sets is_closed and is_locked together and is never undone.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class FiscalYear(TrackedBase):
    """A fiscal year with an inclusive date range."""

    __tablename__ = "fiscal_years"

    __table_args__ = (
        UniqueConstraint("name", name="uq_fiscal_year_name"),
        Index("idx_fiscal_year_dates", "start_date", "end_date"),
    )

    name: Mapped[str] = mapped_column(String(50), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    closing_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    def contains(self, value: date) -> bool:
        return self.start_date <= value <= self.end_date

    def __repr__(self) -> str:
        return f"<FiscalYear {self.name} {self.start_date}..{self.end_date}>"

"""
Explicit query type for listing bookings.

Listing endpoints accept only the filters declared here (status set,
booking-date range, free-text search) plus sorting and pagination. Anything
else in the query string is ignored by FastAPI rather than forwarded to the
database.
"""
from datetime import datetime
from typing import Optional
import enum
import math

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import Select, func, or_
from sqlalchemy.orm import Session

from servicehub.lib.dates import as_utc
from servicehub.models.bookings import Booking, BookingStatus


class BookingSortField(str, enum.Enum):
    CREATED_AT = "created_at"
    BOOKING_DATE = "booking_date"
    TOTAL_AMOUNT = "total_amount"


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


_SORT_COLUMNS = {
    BookingSortField.CREATED_AT: Booking.created_at,
    BookingSortField.BOOKING_DATE: Booking.booking_date,
    BookingSortField.TOTAL_AMOUNT: Booking.total_amount,
}


class BookingQuery(BaseModel):
    """Supported booking filters, sorting and pagination."""

    statuses: list[BookingStatus] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = Field(default=None, max_length=100)
    sort_by: BookingSortField = BookingSortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    @field_validator("statuses", mode="before")
    @classmethod
    def _split_statuses(cls, value):
        # Accept "pending,confirmed", "all" or a list
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        parsed = []
        for item in value:
            for part in str(item).split(","):
                part = part.strip().lower()
                if part and part != "all":
                    parsed.append(part)
        return parsed

    @field_validator("start_date", "end_date")
    @classmethod
    def _dates_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @field_validator("search")
    @classmethod
    def _blank_search_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value.strip() if value else value

    @model_validator(mode="after")
    def _check_date_range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def apply(self, stmt: Select) -> Select:
        """Add the WHERE clauses for this query to a select over Booking."""
        if self.statuses:
            stmt = stmt.where(Booking.status.in_(self.statuses))
        if self.start_date:
            stmt = stmt.where(Booking.booking_date >= self.start_date)
        if self.end_date:
            stmt = stmt.where(Booking.booking_date <= self.end_date)
        if self.search:
            pattern = f"%{self.search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Booking.time_slot).like(pattern),
                    func.lower(Booking.address_city).like(pattern),
                    func.lower(Booking.customer_notes).like(pattern),
                )
            )
        return stmt

    def order(self, stmt: Select) -> Select:
        column = _SORT_COLUMNS[self.sort_by]
        ordering = column.asc() if self.sort_order == SortOrder.ASC else column.desc()
        return stmt.order_by(ordering, Booking.id)

    def execute(self, session: Session, base: Select) -> dict:
        """
        Run the query against a scoped base select (e.g. one customer's bookings).

        Returns:
            {"bookings": [...], "pagination": {"current", "total", "count", "limit"}}
        """
        filtered = self.apply(base)

        count = session.execute(
            filtered.with_only_columns(func.count(Booking.id)).order_by(None)
        ).scalar_one()

        bookings = session.execute(
            self.order(filtered).offset(self.offset).limit(self.limit)
        ).unique().scalars().all()

        return {
            "bookings": list(bookings),
            "pagination": {
                "current": self.page,
                "total": math.ceil(count / self.limit),
                "count": count,
                "limit": self.limit,
            },
        }

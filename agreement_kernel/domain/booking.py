"""
Booking snapshots (``agreement_kernel.domain.booking``).

Bookings are owned by the booking service.  The agreement kernel only ever
reads them, through a ``BookingProvider``, as frozen snapshots: the tenancy
terms printed on the final document and the two party ids the API layer
authorizes against.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from agreement_kernel.domain.agreement import Role
from agreement_kernel.exceptions import BookingNotFoundError


@dataclass(frozen=True)
class PropertySnapshot:
    property_id: str
    title: str
    address: str = ""


@dataclass(frozen=True)
class BookingSnapshot:
    """Immutable view of one tenancy: one tenant, one landlord, one property."""

    booking_id: str
    tenant_id: str
    landlord_id: str
    property: PropertySnapshot
    start_date: date
    end_date: date
    rent_amount: Decimal
    currency: str

    def party_id(self, role: Role) -> str:
        return self.tenant_id if role is Role.TENANT else self.landlord_id

    def role_of(self, user_id: str | None) -> Role | None:
        """Role held by ``user_id`` on this booking, if any."""
        if user_id is None:
            return None
        if user_id == self.tenant_id:
            return Role.TENANT
        if user_id == self.landlord_id:
            return Role.LANDLORD
        return None


class BookingProvider(Protocol):
    """Read-only source of booking snapshots."""

    def get_booking(self, booking_id: str) -> BookingSnapshot:
        """Return the booking; raise BookingNotFoundError if unknown."""
        ...


class InMemoryBookingProvider:
    """Dictionary-backed provider for development and tests."""

    def __init__(self, bookings: list[BookingSnapshot] | None = None):
        self._lock = threading.Lock()
        self._bookings: dict[str, BookingSnapshot] = {}
        for booking in bookings or ():
            self.add(booking)

    def add(self, booking: BookingSnapshot) -> None:
        with self._lock:
            self._bookings[booking.booking_id] = booking

    def get_booking(self, booking_id: str) -> BookingSnapshot:
        with self._lock:
            booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

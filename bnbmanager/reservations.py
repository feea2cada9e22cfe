"""
Reservation interval engine.

Pure date-range logic for stays: validating a requested interval, finding
an existing reservation that blocks it, and pricing it. Stays are half-open
``[check_in, check_out)`` ranges, so a guest checking out on day D never
blocks a guest checking in on day D.

Persistence, property lookup and the clock are passed in by the caller.
"""
import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Callable, Iterable, List, Optional, Protocol, Union

logger = logging.getLogger("booking_service")

CENTS = Decimal("0.01")

Clock = Callable[[], Union[datetime.date, datetime.datetime]]
Rate = Union[Decimal, int, float, str]


# --- Types ---

@dataclass(frozen=True)
class DateInterval:
    start: datetime.date
    end: datetime.date

    def overlaps(self, other: "DateInterval") -> bool:
        return self.start < other.end and other.start < self.end

    @property
    def nights(self) -> int:
        return (self.end - self.start).days

    def __str__(self) -> str:
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"


@dataclass(frozen=True)
class RateQuote:
    nightly_rate: Decimal
    nights: int
    total: Decimal


@dataclass(frozen=True)
class ResourceInfo:
    nightly_rate: Decimal
    is_available: bool = True


# --- Errors ---

class BookingError(Exception):
    """Base class for every way an admission can be refused."""

    kind = "BookingError"


class InvalidRange(BookingError):
    kind = "InvalidRange"

    def __init__(self, interval: DateInterval):
        self.interval = interval
        super().__init__("Check-out date must be after check-in date.")


class PastCheckIn(BookingError):
    kind = "PastCheckIn"

    def __init__(self, interval: DateInterval, today: datetime.date):
        self.interval = interval
        self.today = today
        super().__init__("Check-in date cannot be in the past.")


class InvalidRate(BookingError):
    kind = "InvalidRate"

    def __init__(self, rate):
        self.rate = rate
        super().__init__(f"Nightly rate must be a non-negative amount, got {rate!r}.")


class Conflict(BookingError):
    kind = "Conflict"

    def __init__(self, blocking: DateInterval):
        self.blocking = blocking
        super().__init__(
            f"Booking conflict: The property is already booked for these dates "
            f"(existing stay {blocking})."
        )


class ResourceNotFound(BookingError):
    kind = "ResourceNotFound"

    def __init__(self, resource_id):
        self.resource_id = resource_id
        super().__init__("Property not found")


class ResourceNotAvailable(BookingError):
    kind = "ResourceNotAvailable"

    def __init__(self, resource_id):
        self.resource_id = resource_id
        super().__init__("Property is not available")


class Unavailable(BookingError):
    kind = "Unavailable"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Booking backend unavailable: {reason}")


# --- Collaborators ---

class PropertyLookup(Protocol):
    def get_property(self, resource_id: int) -> ResourceInfo:
        """Raises ResourceNotFound or Unavailable."""


class ReservationStore(Protocol):
    def list_intervals(self, resource_id: int, exclude_booking_id: Optional[int] = None) -> List[DateInterval]:
        """Raises Unavailable."""

    def add(self, resource_id: int, interval: DateInterval, user_id: str, total_price: Decimal):
        """Persists an admitted stay and returns it. Raises Conflict or Unavailable."""


# --- Interval Validator ---

def _as_date(value: Union[datetime.date, datetime.datetime]) -> datetime.date:
    # datetime is a subclass of date, so check it first
    if isinstance(value, datetime.datetime):
        return value.date()
    return value


def validate_interval(interval: DateInterval, reference_now,
                      started_on: Optional[datetime.date] = None) -> DateInterval:
    """
    Returns the interval if it is a bookable stay as of ``reference_now``.

    Raises InvalidRange for empty or inverted ranges, PastCheckIn when the
    check-in day is before today. The range is checked first.
    ``started_on`` is the check-in of a stay already under way; an interval
    that keeps that check-in is not rejected for starting in the past.
    """
    if interval.start >= interval.end:
        raise InvalidRange(interval)

    today = _as_date(reference_now)
    if interval.start < today and interval.start != started_on:
        raise PastCheckIn(interval, today)

    return interval


# --- Overlap Detector ---

def find_overlap(candidate: DateInterval, existing: Iterable[DateInterval]) -> Optional[DateInterval]:
    """
    Returns the first interval in ``existing`` that overlaps ``candidate``,
    or None if the candidate can be admitted.
    """
    for interval in existing:
        if candidate.overlaps(interval):
            return interval
    return None


# --- Price Calculator ---

def _to_decimal(rate: Rate) -> Decimal:
    if isinstance(rate, bool):
        raise InvalidRate(rate)
    try:
        # Through str() so 0.1 stays 0.1 instead of its binary expansion
        value = rate if isinstance(rate, Decimal) else Decimal(str(rate))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidRate(rate)
    if not value.is_finite() or value < 0:
        raise InvalidRate(rate)
    return value


def quote(interval: DateInterval, nightly_rate: Rate) -> RateQuote:
    rate = _to_decimal(nightly_rate)
    nights = interval.nights
    if nights < 1:
        raise InvalidRange(interval)

    try:
        total = (rate * nights).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Rate too large to be expressed in cents
        raise InvalidRate(nightly_rate)
    return RateQuote(nightly_rate=rate, nights=nights, total=total)


# --- Booking Admission ---

def _lookup_bookable(resource_id, properties: PropertyLookup) -> ResourceInfo:
    resource = properties.get_property(resource_id)
    if not resource.is_available:
        raise ResourceNotAvailable(resource_id)
    return resource


def admit_booking(
        resource_id: int,
        interval: DateInterval,
        *,
        properties: PropertyLookup,
        reservations: ReservationStore,
        clock: Clock,
        exclude_booking_id: Optional[int] = None,
        keep_check_in: Optional[datetime.date] = None,
) -> RateQuote:
    """
    Decides whether a stay can be booked and prices it.

    Steps run in order and the first failure aborts:
    validate, fetch existing stays, check overlap, look up the property,
    price. Nothing is written; persisting the booking is up to the caller.
    ``exclude_booking_id`` leaves a booking's own stay out of the overlap
    check when its dates are being changed, and ``keep_check_in`` lets that
    booking keep a check-in day that has already passed.
    """
    validate_interval(interval, clock(), started_on=keep_check_in)

    existing = reservations.list_intervals(resource_id, exclude_booking_id=exclude_booking_id)
    blocking = find_overlap(interval, existing)
    if blocking is not None:
        logger.info(f"Property {resource_id}: {interval} blocked by existing stay {blocking}")
        raise Conflict(blocking)

    resource = _lookup_bookable(resource_id, properties)
    result = quote(interval, resource.nightly_rate)
    logger.info(f"Property {resource_id}: admitted {interval}, {result.nights} nights, total {result.total}")
    return result


def quote_stay(resource_id: int, interval: DateInterval, *, properties: PropertyLookup, clock: Clock) -> RateQuote:
    """Price preview for a stay; does not check existing bookings."""
    validate_interval(interval, clock())
    resource = _lookup_bookable(resource_id, properties)
    return quote(interval, resource.nightly_rate)

import datetime
import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi_limiter.depends import RateLimiter
from sqlalchemy.orm import Session

from .. import crud, reservations, schemas
from ..auth import CurrentUser, get_current_user, get_key_by_user_id_or_ip
from ..config import settings
from ..database import get_db
from ..property_client import HttpPropertyLookup
from ..reservations import DateInterval

logger = logging.getLogger("booking_service")

router = APIRouter(prefix="/bookings", tags=["Bookings"])

write_rate_limit = RateLimiter(times=30, minutes=1, identifier=get_key_by_user_id_or_ip)
read_rate_limit = RateLimiter(times=60, minutes=1, identifier=get_key_by_user_id_or_ip)

ERROR_STATUS = {
    reservations.InvalidRange: status.HTTP_400_BAD_REQUEST,
    reservations.PastCheckIn: status.HTTP_400_BAD_REQUEST,
    reservations.InvalidRate: status.HTTP_400_BAD_REQUEST,
    reservations.ResourceNotAvailable: status.HTTP_400_BAD_REQUEST,
    reservations.ResourceNotFound: status.HTTP_404_NOT_FOUND,
    reservations.Conflict: status.HTTP_409_CONFLICT,
    reservations.Unavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_error(error: reservations.BookingError) -> HTTPException:
    logger.info(f"Booking refused ({error.kind}): {error}")
    return HTTPException(status_code=ERROR_STATUS[type(error)], detail=str(error))


def get_clock() -> reservations.Clock:
    return datetime.date.today


def get_property_lookup(db: Session = Depends(get_db)):
    if settings.PROPERTY_SERVICE_URL:
        lookup = HttpPropertyLookup(settings.PROPERTY_SERVICE_URL, timeout=settings.PROPERTY_SERVICE_TIMEOUT)
        try:
            yield lookup
        finally:
            lookup.close()
    else:
        yield crud.SqlPropertyLookup(db)


def get_reservation_store(db: Session = Depends(get_db)) -> crud.SqlReservationStore:
    return crud.SqlReservationStore(db)


Properties = Annotated[reservations.PropertyLookup, Depends(get_property_lookup)]
Reservations = Annotated[reservations.ReservationStore, Depends(get_reservation_store)]
Clock = Annotated[reservations.Clock, Depends(get_clock)]
User = Annotated[CurrentUser, Depends(get_current_user)]


@router.post("/", response_model=schemas.BookingRead, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(write_rate_limit)])
def create_booking(
        booking: schemas.BookingCreate,
        user: User,
        properties: Properties,
        store: Reservations,
        clock: Clock,
):
    """
    Create a new booking for the authenticated user.
    """
    interval = DateInterval(booking.check_in, booking.check_out)
    try:
        quote = reservations.admit_booking(
            booking.property_id,
            interval,
            properties=properties,
            reservations=store,
            clock=clock,
        )
        db_booking = store.add(booking.property_id, interval, user_id=user.id, total_price=quote.total)
    except reservations.BookingError as e:
        raise to_http_error(e)

    logger.info(f"User {user.id} booked property {booking.property_id} {interval} (booking {db_booking.id})")
    return db_booking


@router.post("/quote", response_model=schemas.QuoteRead, dependencies=[Depends(read_rate_limit)])
def quote_booking(
        booking: schemas.BookingCreate,
        user: User,
        properties: Properties,
        clock: Clock,
):
    """
    Price a stay without booking it.
    """
    interval = DateInterval(booking.check_in, booking.check_out)
    try:
        quote = reservations.quote_stay(booking.property_id, interval, properties=properties, clock=clock)
    except reservations.BookingError as e:
        raise to_http_error(e)

    return schemas.QuoteRead(
        property_id=booking.property_id,
        check_in=interval.start,
        check_out=interval.end,
        nightly_rate=quote.nightly_rate,
        nights=quote.nights,
        total=quote.total,
    )


@router.get("/", response_model=List[schemas.BookingRead], dependencies=[Depends(read_rate_limit)])
def read_user_bookings(
        user: User,
        db: Session = Depends(get_db),
        skip: int = 0,
        limit: int = 100,
):
    """
    Get all bookings for the authenticated user, newest first.
    """
    return crud.get_bookings_by_user(db=db, user_id=user.id, skip=skip, limit=limit)


def _get_own_booking(db: Session, booking_id: int, user: CurrentUser):
    db_booking = crud.get_user_booking(db, booking_id=booking_id, user_id=user.id)
    if db_booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return db_booking


@router.get("/{booking_id}", response_model=schemas.BookingRead, dependencies=[Depends(read_rate_limit)])
def read_booking(booking_id: int, user: User, db: Session = Depends(get_db)):
    return _get_own_booking(db, booking_id, user)


@router.put("/{booking_id}", response_model=schemas.BookingRead, dependencies=[Depends(write_rate_limit)])
def update_booking(
        booking_id: int,
        changes: schemas.BookingUpdate,
        user: User,
        properties: Properties,
        store: Reservations,
        clock: Clock,
        db: Session = Depends(get_db),
):
    """
    Move a booking to new dates. The new stay is re-admitted against every
    other booking of the property and re-priced at the current rate. A stay that has already started may keep
    its check-in day.
    """
    db_booking = _get_own_booking(db, booking_id, user)
    interval = DateInterval(
        changes.check_in or db_booking.check_in,
        changes.check_out or db_booking.check_out,
    )
    try:
        quote = reservations.admit_booking(
            db_booking.property_id,
            interval,
            properties=properties,
            reservations=store,
            clock=clock,
            exclude_booking_id=db_booking.id,
            keep_check_in=db_booking.check_in,
        )
        db_booking = crud.reschedule_booking(db, db_booking, interval, quote.total)
    except reservations.BookingError as e:
        raise to_http_error(e)

    logger.info(f"User {user.id} moved booking {booking_id} to {interval}")
    return db_booking


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(write_rate_limit)])
def cancel_booking(booking_id: int, user: User, db: Session = Depends(get_db)):
    db_booking = _get_own_booking(db, booking_id, user)
    crud.delete_booking(db, db_booking)
    logger.info(f"User {user.id} cancelled booking {booking_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

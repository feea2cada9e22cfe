import datetime
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from . import models, schemas
from .reservations import Conflict, DateInterval, ResourceInfo, ResourceNotFound, Unavailable

logger = logging.getLogger("booking_service")


# --- Properties ---

def get_properties(db: Session, skip: int = 0, limit: int = 100, available_only: bool = False):
    query = db.query(models.Property)
    if available_only:
        query = query.filter(models.Property.is_available.is_(True))
    return query.order_by(models.Property.created_at.desc(), models.Property.id.desc()).offset(skip).limit(limit).all()


def get_properties_by_owner(db: Session, owner_id: str, skip: int = 0, limit: int = 100):
    return (
        db.query(models.Property)
        .filter(models.Property.owner_id == owner_id)
        .order_by(models.Property.created_at.desc(), models.Property.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_property(db: Session, property_id: int) -> Optional[models.Property]:
    return db.query(models.Property).filter(models.Property.id == property_id).first()


def create_property(db: Session, property: schemas.PropertyCreate, owner_id: str) -> models.Property:
    db_property = models.Property(**property.model_dump(), owner_id=owner_id)
    db.add(db_property)
    db.commit()
    db.refresh(db_property)
    return db_property


def update_property(db: Session, db_property: models.Property, changes: schemas.PropertyUpdate) -> models.Property:
    for field, value in changes.model_dump(exclude_unset=True).items():
        setattr(db_property, field, value)
    db.commit()
    db.refresh(db_property)
    return db_property


def delete_property(db: Session, db_property: models.Property) -> None:
    db.query(models.Booking).filter(models.Booking.property_id == db_property.id).delete()
    db.delete(db_property)
    db.commit()


# --- Bookings ---

def find_overlapping_booking(
        db: Session,
        property_id: int,
        start_date: datetime.date,
        end_date: datetime.date,
        exclude_booking_id: Optional[int] = None,
) -> Optional[models.Booking]:
    # (Existing Start Date < New End Date) AND (Existing End Date > New Start Date)
    query = db.query(models.Booking).filter(
        models.Booking.property_id == property_id,
        models.Booking.check_in < end_date,
        models.Booking.check_out > start_date,
    )
    if exclude_booking_id is not None:
        query = query.filter(models.Booking.id != exclude_booking_id)
    return query.first()


def _commit_stay(db: Session, db_booking: models.Booking) -> models.Booking:
    """
    Commits a new or changed booking. A concurrent overlapping insert that
    the database rejects is reported as a Conflict.
    """
    # Rollback expires the instance, so keep what the overlap lookup needs
    property_id, booking_id = db_booking.property_id, db_booking.id
    start_date, end_date = db_booking.check_in, db_booking.check_out
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        blocking = find_overlapping_booking(
            db,
            property_id=property_id,
            start_date=start_date,
            end_date=end_date,
            exclude_booking_id=booking_id,
        )
        if blocking is None:
            raise
        logger.warning(f"Property {property_id}: overlapping booking rejected by the database")
        raise Conflict(DateInterval(blocking.check_in, blocking.check_out))
    except OperationalError as e:
        db.rollback()
        raise Unavailable(str(e.orig))

    db.refresh(db_booking)
    return db_booking


def create_booking(db: Session, booking: schemas.BookingCreate, user_id: str, total_price: Decimal) -> models.Booking:
    db_booking = models.Booking(
        property_id=booking.property_id,
        user_id=user_id,
        check_in=booking.check_in,
        check_out=booking.check_out,
        total_price=total_price,
    )
    db.add(db_booking)
    return _commit_stay(db, db_booking)


def reschedule_booking(
        db: Session,
        db_booking: models.Booking,
        interval: DateInterval,
        total_price: Decimal,
) -> models.Booking:
    db_booking.check_in = interval.start
    db_booking.check_out = interval.end
    db_booking.total_price = total_price
    return _commit_stay(db, db_booking)


def get_bookings_by_user(db: Session, user_id: str, skip: int = 0, limit: int = 100):
    return (
        db.query(models.Booking)
        .filter(models.Booking.user_id == user_id)
        .order_by(models.Booking.created_at.desc(), models.Booking.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_user_booking(db: Session, booking_id: int, user_id: str) -> Optional[models.Booking]:
    return db.query(models.Booking).filter(
        models.Booking.id == booking_id,
        models.Booking.user_id == user_id,
    ).first()


def delete_booking(db: Session, db_booking: models.Booking) -> None:
    db.delete(db_booking)
    db.commit()


# --- Engine collaborators ---

class SqlReservationStore:
    """Existing stays for a property, read from the bookings table."""

    def __init__(self, db: Session):
        self.db = db

    def list_intervals(self, resource_id: int, exclude_booking_id: Optional[int] = None) -> List[DateInterval]:
        query = self.db.query(models.Booking.check_in, models.Booking.check_out).filter(
            models.Booking.property_id == resource_id
        )
        if exclude_booking_id is not None:
            query = query.filter(models.Booking.id != exclude_booking_id)
        try:
            rows = query.all()
        except OperationalError as e:
            logger.error(f"Failed to read bookings for property {resource_id}: {e}")
            raise Unavailable(str(e.orig))
        return [DateInterval(check_in, check_out) for check_in, check_out in rows]

    def add(self, resource_id: int, interval: DateInterval, user_id: str, total_price: Decimal) -> models.Booking:
        booking = schemas.BookingCreate(property_id=resource_id, check_in=interval.start, check_out=interval.end)
        return create_booking(self.db, booking, user_id=user_id, total_price=total_price)


class SqlPropertyLookup:
    """Nightly rate and availability from the properties table."""

    def __init__(self, db: Session):
        self.db = db

    def get_property(self, resource_id: int) -> ResourceInfo:
        try:
            db_property = get_property(self.db, resource_id)
        except OperationalError as e:
            logger.error(f"Failed to read property {resource_id}: {e}")
            raise Unavailable(str(e.orig))
        if db_property is None:
            raise ResourceNotFound(resource_id)
        return ResourceInfo(
            nightly_rate=Decimal(str(db_property.price_per_night)),
            is_available=db_property.is_available,
        )

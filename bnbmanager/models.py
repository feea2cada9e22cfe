import datetime

from sqlalchemy import Boolean, Column, Date, Index, Integer, Numeric, String, Text, TIMESTAMP, CheckConstraint

from .database import Base


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    location = Column(String(255), index=True, nullable=False)
    price_per_night = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    image_url = Column(String(1024), nullable=True)

    # Subject claim of the identity provider; users are not stored here
    owner_id = Column(String(64), index=True, nullable=False)

    created_at = Column(TIMESTAMP(timezone=True), default=_utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint("price_per_night >= 0", name="ck_properties_price_non_negative"),
    )


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    # No direct DB relationship is enforced: with a remote property service
    # the property row lives in another database
    property_id = Column(Integer, index=True, nullable=False)
    user_id = Column(String(64), index=True, nullable=False)

    # Half-open stay: the guest leaves on check_out, which is free for the next guest
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)

    total_price = Column(Numeric(10, 2), nullable=False)

    created_at = Column(TIMESTAMP(timezone=True), default=_utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint("check_in < check_out", name="ck_bookings_range"),
        Index("ix_bookings_property_dates", "property_id", "check_in", "check_out"),
    )

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

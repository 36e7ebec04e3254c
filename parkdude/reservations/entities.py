# Entities used by the reservation engine.
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


class UserRole(Enum):
    VERIFIED = 'verified'
    ADMIN = 'admin'


@dataclass(frozen=True)
class User:
    name: str
    email: str
    role: UserRole = UserRole.VERIFIED
    id: UUID = field(default_factory=uuid4)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_user_data(self):
        return {"id": str(self.id), "name": self.name, "email": self.email, "role": self.role.value}


@dataclass(frozen=True)
class ParkingSpot:
    """
    A parking spot. Without an owner the spot belongs to the pool, with an owner it is
    the owner's permanent spot and only becomes reservable for others on released days.

    sequence is the creation order of the spot and is used wherever spots are listed or
    tie-broken, so ordering never depends on storage order.
    """
    name: str
    sequence: int
    owner: Optional[User] = None
    id: UUID = field(default_factory=uuid4)
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def owner_id(self) -> Optional[UUID]:
        return self.owner.id if self.owner else None

    def is_owned_by(self, user: Optional[User]) -> bool:
        return self.owner is not None and user is not None and self.owner.id == user.id

    def to_basic_parking_spot_data(self):
        return {"id": str(self.id), "name": self.name}

    def to_parking_spot_data(self):
        return {
            "id": str(self.id),
            "name": self.name,
            "created": self.created.isoformat(),
            "updated": self.updated.isoformat(),
            "owner": self.owner.to_user_data() if self.owner else None,
        }


@dataclass(frozen=True)
class DayReservation:
    # At most one reservation exists per (spot, date)
    date: date
    spot: ParkingSpot
    user: User

    @property
    def key(self):
        return (self.spot.id, self.date)


@dataclass(frozen=True)
class DayRelease:
    # At most one release exists per (spot, date). It is kept when a reservation consumes it.
    date: date
    spot: ParkingSpot

    @property
    def key(self):
        return (self.spot.id, self.date)

# Administration of parking spots: listing, creating, renaming, assigning owners and removing.
from typing import List, Optional
import logging
from .entities import ParkingSpot, User
from .error_utils import SpotNotFound, SpotValidationError, UserNotFound

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200


def validate_spot_name(name) -> List[str]:
    """
    Returns the list of validation errors for a spot name, empty if the name is fine.
    """
    if not isinstance(name, str) or not name:
        return ['Name is required.']
    if len(name) > MAX_NAME_LENGTH:
        return [f'Name {name} is too long ({len(name)} characters). Maximum length is {MAX_NAME_LENGTH}.']
    return []


class ParkingSpotService:

    def __init__(self, repository):
        self.repository = repository

    def list_spots(self) -> List[ParkingSpot]:
        return self.repository.list_spots()

    def get_spot(self, spot_id) -> ParkingSpot:
        spot = self.repository.get_spot(spot_id)
        if spot is None:
            raise SpotNotFound()
        return spot

    def create_spot(self, name, owner_id=None) -> ParkingSpot:
        errors = validate_spot_name(name)
        if errors:
            raise SpotValidationError(errors)
        with self.repository.transaction():
            owner = self._find_owner(owner_id)
            spot = self.repository.create_spot(name, owner)
        logger.info("Parking spot %s created", spot.name)
        return spot

    def update_spot(self, spot_id, name, owner_id=None) -> ParkingSpot:
        """
        Renames the spot and sets its owner. Leaving owner_id out turns the spot into a pool spot.
        """
        errors = validate_spot_name(name)
        if errors:
            raise SpotValidationError(errors)
        with self.repository.transaction():
            owner = self._find_owner(owner_id)
            spot = self.repository.update_spot(spot_id, name, owner)
            if spot is None:
                raise SpotNotFound()
        logger.info("Parking spot %s updated, owner %s", spot.name, owner.email if owner else None)
        return spot

    def delete_spot(self, spot_id):
        if not self.repository.delete_spot(spot_id):
            raise SpotNotFound()
        logger.info("Parking spot %s deleted", spot_id)

    def _find_owner(self, owner_id) -> Optional[User]:
        if owner_id is None:
            return None
        owner = self.repository.get_user(owner_id)
        if owner is None:
            raise UserNotFound()
        return owner

# Shared set-up for the reservation tests: three pool spots and three users in an in-memory store.
import os
import sys
import unittest
from datetime import date
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from parkdude.reservations.availability import load_spot_state
from parkdude.reservations.entities import User, UserRole
from parkdude.reservations.memory_store import InMemoryPersistence


def d(value: str) -> date:
    return date.fromisoformat(value)


class ParkingTestCase(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryPersistence()
        self.user = self.store.add_user(User(name='Tester', email='tester@example.com'))
        self.user2 = self.store.add_user(User(name='Tester 2', email='tester2@example.com'))
        self.admin = self.store.add_user(User(name='Admin Tester', email='admin@example.com', role=UserRole.ADMIN))
        self.spots = [self.store.create_spot(f'test space {i}') for i in range(3)]

    def own(self, index, user):
        spot = self.spots[index]
        self.spots[index] = self.store.update_spot(spot.id, spot.name, user)
        return self.spots[index]

    def state(self):
        return load_spot_state(self.store)

    def reserve_row(self, index, day, user=None):
        return self.store.add_reservation(d(day), self.spots[index], user or self.user)

    def release_row(self, index, day):
        return self.store.add_release(d(day), self.spots[index])

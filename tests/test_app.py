import base64
import unittest
import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from werkzeug.security import generate_password_hash
from tests.fixtures import ParkingTestCase
from parkdude.app import app
from parkdude.reservations.gmail import LogNotifier

PASSWORD = 'secret'


def basic_auth(email, password=PASSWORD):
    token = base64.b64encode(f'{email}:{password}'.encode()).decode()
    return {'Authorization': f'Basic {token}'}


class AppTest(ParkingTestCase):

    def setUp(self):
        super().setUp()
        self.notifier = LogNotifier()
        app.config['TESTING'] = True
        app.config['REPOSITORY_FACTORY'] = lambda: self.store
        app.config['NOTIFIER_FACTORY'] = lambda: self.notifier
        password_hash = generate_password_hash(PASSWORD)
        app.config['USER_PASSWORDS'] = {email: password_hash for email in
                                        ('tester@example.com', 'tester2@example.com', 'admin@example.com',
                                         'stranger@example.com')}
        self.client = app.test_client()
        self.as_user = basic_auth('tester@example.com')
        self.as_user2 = basic_auth('tester2@example.com')
        self.as_admin = basic_auth('admin@example.com')

    # Authentication

    def test_requires_credentials(self):
        with self.client.get('/api/parking-spots') as response:
            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.get_json(), {"message": "Unauthorized."})
        with self.client.get('/api/parking-spots', headers=basic_auth('tester@example.com', 'wrong')) as response:
            self.assertEqual(response.status_code, 401)

    def test_unknown_user_is_denied(self):
        with self.client.get('/api/parking-spots', headers=basic_auth('stranger@example.com')) as response:
            self.assertEqual(response.status_code, 403)
            self.assertEqual(response.get_json(), {"message": "Permission denied."})

    def test_unknown_route(self):
        with self.client.get('/api/nothing-here', headers=self.as_user) as response:
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.get_json(), {"message": "Not found."})

    # Parking spots

    def test_list_and_get_spots(self):
        with self.client.get('/api/parking-spots', headers=self.as_user) as response:
            self.assertEqual(response.status_code, 200)
            self.assertEqual([spot['name'] for spot in response.get_json()['data']],
                             ['test space 0', 'test space 1', 'test space 2'])
        with self.client.get(f'/api/parking-spots/{self.spots[1].id}', headers=self.as_user) as response:
            self.assertEqual(response.get_json()['data']['name'], 'test space 1')
            self.assertIsNone(response.get_json()['data']['owner'])
        with self.client.get('/api/parking-spots/not-a-spot', headers=self.as_user) as response:
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.get_json(),
                             {"message": "Parking spot does not exist. It might have been removed."})

    def test_spot_administration_requires_admin(self):
        with self.client.post('/api/parking-spots', json={"name": "A1"}, headers=self.as_user) as response:
            self.assertEqual(response.status_code, 403)
        with self.client.delete(f'/api/parking-spots/{self.spots[0].id}', headers=self.as_user) as response:
            self.assertEqual(response.status_code, 403)
        self.assertEqual(len(self.store.list_spots()), 3)

    def test_create_update_delete_spot(self):
        with self.client.post('/api/parking-spots', json={"name": "A1", "ownerId": str(self.user.id)},
                              headers=self.as_admin) as response:
            self.assertEqual(response.status_code, 201)
            data = response.get_json()
            self.assertEqual(data['message'], 'Parking spot successfully created.')
            self.assertEqual(data['data']['owner'], self.user.to_user_data())
            spot_id = data['data']['id']

        with self.client.put(f'/api/parking-spots/{spot_id}', json={"name": "A2"}, headers=self.as_admin) as response:
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.get_json()['message'], 'Parking spot successfully updated.')
            self.assertEqual(response.get_json()['data']['name'], 'A2')
            self.assertIsNone(response.get_json()['data']['owner'])

        with self.client.delete(f'/api/parking-spots/{spot_id}', headers=self.as_admin) as response:
            self.assertEqual(response.get_json(), {"message": "Parking spot successfully deleted."})
        self.assertIsNone(self.store.get_spot(spot_id))

    def test_create_spot_validation(self):
        with self.client.post('/api/parking-spots', json={"name": ""}, headers=self.as_admin) as response:
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.get_json()['errorMessages'], ['Name is required.'])

    # Calendar

    def test_calendar(self):
        self.reserve_row(0, '2019-11-01')
        with self.client.get('/api/parking-reservations/calendar?startDate=2019-11-01&endDate=2019-11-02',
                             headers=self.as_user) as response:
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.get_json(), {
                "calendar": [
                    {"date": "2019-11-01", "spacesReservedByUser": [self.spots[0].to_basic_parking_spot_data()],
                     "availableSpaces": 2},
                    {"date": "2019-11-02", "spacesReservedByUser": [], "availableSpaces": 3},
                ],
                "ownedSpots": [],
            })

    def test_spot_calendar(self):
        self.reserve_row(0, '2019-11-01', self.user2)
        with self.client.get(f'/api/parking-reservations/parking-spot/{self.spots[0].id}/calendar'
                             '?startDate=2019-11-01&endDate=2019-11-01', headers=self.as_user) as response:
            self.assertEqual(response.get_json()['calendar'][0]['availableSpaces'], 0)

    def test_calendar_errors(self):
        cases = [
            ('', "startDate and endDate are required."),
            ('?startDate=2019-11-01', "startDate and endDate are required."),
            ('?startDate=2019-13-01&endDate=2019-11-01', "Date must be valid."),
            ('?startDate=2019-11-02&endDate=2019-11-01', "Start date must be after end date."),
            ('?startDate=2019-01-01&endDate=2021-01-01', "Date range is too long (over 500 days)."),
        ]
        for query, message in cases:
            with self.client.get(f'/api/parking-reservations/calendar{query}', headers=self.as_user) as response:
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.get_json(), {"message": message})

    # Reserving and releasing

    def test_reserve(self):
        with self.client.post('/api/parking-reservations',
                              json={"dates": ["2019-11-01", "2019-11-02"], "parkingSpotId": str(self.spots[2].id)},
                              headers=self.as_user) as response:
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.get_json(), {
                "reservations": [
                    {"date": "2019-11-01", "parkingSpot": self.spots[2].to_basic_parking_spot_data()},
                    {"date": "2019-11-02", "parkingSpot": self.spots[2].to_basic_parking_spot_data()},
                ],
                "message": "Spots successfully reserved",
            })
        self.assertEqual(self.notifier.messages,
                         ['Reservations made by Tester:\n• Parking spot test space 2: 01.11.2019 - 02.11.2019'])

    def test_reserve_failure_lists_dates(self):
        self.reserve_row(2, '2019-11-02', self.user2)
        with self.client.post('/api/parking-reservations',
                              json={"dates": ["2019-11-01", "2019-11-02"], "parkingSpotId": str(self.spots[2].id)},
                              headers=self.as_user) as response:
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.get_json(), {
                "message": "Reservation failed. There weren't available spots for some of the days.",
                "errorDates": ["2019-11-02"],
            })
        self.assertEqual(len(self.store.list_reservations()), 1)

    def test_reserve_input_errors(self):
        for body, message in (({}, "dates is required."),
                              ({"dates": "2019-11-01"}, "dates is required."),
                              ({"dates": []}, "dates is required."),
                              ({"dates": ["01.11.2019"]}, "Dates must be in format YYYY-MM-DD.")):
            with self.client.post('/api/parking-reservations', json=body, headers=self.as_user) as response:
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.get_json(), {"message": message})

    def test_reserve_for_other_user(self):
        body = {"dates": ["2019-11-01"], "userId": str(self.user2.id)}
        with self.client.post('/api/parking-reservations', json=body, headers=self.as_user) as response:
            self.assertEqual(response.status_code, 403)
        with self.client.post('/api/parking-reservations', json=body, headers=self.as_admin) as response:
            self.assertEqual(response.status_code, 200)
        self.assertEqual(self.store.list_reservations()[0].user, self.user2)

    def test_release(self):
        self.reserve_row(1, '2019-11-01')
        self.reserve_row(1, '2019-11-02')
        with self.client.delete(f'/api/parking-reservations/parking-spot/{self.spots[1].id}'
                                '?dates=2019-11-01,2019-11-02', headers=self.as_user) as response:
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.get_json(), {"message": "Parking reservations successfully released."})
        self.assertEqual(self.store.list_reservations(), [])
        self.assertEqual(self.notifier.messages,
                         ['Parking spot test space 1 released for reservation:\n• 01.11.2019 - 02.11.2019'])

    def test_release_failure(self):
        self.reserve_row(1, '2019-11-01', self.user2)
        with self.client.delete(f'/api/parking-reservations/parking-spot/{self.spots[1].id}?dates=2019-11-01',
                                headers=self.as_user) as response:
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.get_json(), {
                "message": "Parking spot does not have reservation, and cannot be released.",
                "errorDates": ["2019-11-01"],
            })
        with self.client.delete(f'/api/parking-reservations/parking-spot/{self.spots[1].id}',
                                headers=self.as_user) as response:
            self.assertEqual(response.get_json(), {"message": "dates is required."})

    # Listings

    def test_my_reservations(self):
        spot = self.own(0, self.user)
        self.release_row(0, '2019-11-02')
        self.reserve_row(0, '2019-11-02', self.user2)
        self.reserve_row(1, '2019-11-03')
        with self.client.get('/api/parking-reservations/my-reservations?startDate=2019-11-01',
                             headers=self.as_user) as response:
            self.assertEqual(response.get_json(), {
                "reservations": [{"date": "2019-11-03", "parkingSpot": self.spots[1].to_basic_parking_spot_data()}],
                "releases": [{"date": "2019-11-02", "parkingSpot": spot.to_basic_parking_spot_data(),
                              "reservation": {"user": self.user2.to_user_data()}}],
                "ownedSpots": [spot.to_basic_parking_spot_data()],
            })

    def test_admin_listings(self):
        self.reserve_row(0, '2019-11-01')
        self.reserve_row(1, '2019-11-01', self.user2)
        with self.client.get('/api/parking-reservations?startDate=2019-11-01', headers=self.as_user) as response:
            self.assertEqual(response.status_code, 403)

        with self.client.get('/api/parking-reservations?startDate=2019-11-01', headers=self.as_admin) as response:
            self.assertEqual([row['user']['email'] for row in response.get_json()['reservations']],
                             ['tester@example.com', 'tester2@example.com'])

        with self.client.get(f'/api/users/{self.user2.id}/reservations?startDate=2019-11-01',
                             headers=self.as_admin) as response:
            data = response.get_json()
            self.assertEqual(data['reservations'],
                             [{"date": "2019-11-01", "parkingSpot": self.spots[1].to_basic_parking_spot_data()}])
            self.assertEqual(data['ownedSpots'], [])

        with self.client.get(f'/api/parking-spots/{self.spots[0].id}/reservations?startDate=2019-11-01',
                             headers=self.as_admin) as response:
            self.assertEqual([row['user']['id'] for row in response.get_json()['reservations']], [str(self.user.id)])


if __name__ == '__main__':
    unittest.main()

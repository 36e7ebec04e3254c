from contextlib import contextmanager
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID, uuid4
import logging
import os
import psycopg2
import psycopg2.errors
from psycopg2.extras import DictCursor, register_uuid
from .allocator import MutationSet, verify_mutations
from .availability import load_spot_state
from .entities import DayRelease, DayReservation, ParkingSpot, User, UserRole
from .error_utils import ConflictError

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# Pass uuid.UUID values straight through as query parameters
register_uuid()

SPOT_COLUMNS = """parking_spot.id, parking_spot.sequence, parking_spot.name, parking_spot.created, parking_spot.updated,
                  owner.id AS owner_id, owner.name AS owner_name, owner.email AS owner_email, owner.role AS owner_role"""


class DatabasePersistence:
    """
    Postgres repository for spots, users, reservations and releases.

    One instance is meant to live for one request. Inside transaction() every call shares the same
    connection, otherwise each call opens its own.
    """

    def __init__(self):
        self._connection = None
        self._setup_schema()

    @contextmanager
    def _database_connect(self):
        """
        Internal function to manage the Postgres database connections.
        Must include environment variable for database url path when deploying to production.
        """
        if os.environ.get('FLASK_ENV') == 'production':
            connection = psycopg2.connect(os.environ['DATABASE_URL'])
        else:
            connection = psycopg2.connect(dbname=os.environ.get('DATABASE_NAME', 'parkdude'))
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    @contextmanager
    def transaction(self):
        """
        Commits when the block exits normally and rolls back on any exception, ConflictError included.
        Nested calls join the outer transaction.
        """
        if self._connection is not None:
            yield self
            return
        with self._database_connect() as conn:
            self._connection = conn
            try:
                yield self
            finally:
                self._connection = None

    @contextmanager
    def _cursor(self):
        with self.transaction():
            with self._connection.cursor(cursor_factory=DictCursor) as cursor:
                yield cursor

    # Users

    def add_user(self, user: User) -> User:
        query = """INSERT INTO users (id, name, email, role) VALUES (%s, %s, %s, %s)
                   ON CONFLICT (id) DO UPDATE SET name = EXCLUDED.name, email = EXCLUDED.email, role = EXCLUDED.role"""
        logger.info("Executing query: %s", query)
        with self._cursor() as cursor:
            cursor.execute(query, (user.id, user.name, user.email, user.role.value))
        return user

    def get_user(self, user_id) -> Optional[User]:
        user_id = _as_uuid(user_id)
        if user_id is None:
            return None
        query = "SELECT id, name, email, role FROM users WHERE id = %s"
        logger.info("Executing query: %s", query)
        with self._cursor() as cursor:
            cursor.execute(query, (user_id,))
            row = cursor.fetchone()
        return _row_to_user(row) if row else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        query = "SELECT id, name, email, role FROM users WHERE email = %s"
        logger.info("Executing query: %s", query)
        with self._cursor() as cursor:
            cursor.execute(query, (email,))
            row = cursor.fetchone()
        return _row_to_user(row) if row else None

    # Parking spots

    def list_spots(self) -> List[ParkingSpot]:
        query = f"SELECT {SPOT_COLUMNS} FROM parking_spot LEFT JOIN users AS owner ON owner.id = parking_spot.owner_id ORDER BY parking_spot.sequence"
        logger.info("Executing query: %s", query)
        with self._cursor() as cursor:
            cursor.execute(query)
            rows = cursor.fetchall()
        return [_row_to_spot(row) for row in rows]

    def get_spot(self, spot_id) -> Optional[ParkingSpot]:
        spot_id = _as_uuid(spot_id)
        if spot_id is None:
            return None
        query = f"SELECT {SPOT_COLUMNS} FROM parking_spot LEFT JOIN users AS owner ON owner.id = parking_spot.owner_id WHERE parking_spot.id = %s"
        logger.info("Executing query: %s", query)
        with self._cursor() as cursor:
            cursor.execute(query, (spot_id,))
            row = cursor.fetchone()
        return _row_to_spot(row) if row else None

    def create_spot(self, name: str, owner: Optional[User] = None) -> ParkingSpot:
        query = "INSERT INTO parking_spot (id, name, owner_id) VALUES (%s, %s, %s)"
        logger.info("Executing query: %s", query)
        with self.transaction():
            with self._cursor() as cursor:
                spot_id = uuid4()
                cursor.execute(query, (spot_id, name, owner.id if owner else None))
            return self.get_spot(spot_id)

    def update_spot(self, spot_id, name: str, owner: Optional[User]) -> Optional[ParkingSpot]:
        spot_id = _as_uuid(spot_id)
        if spot_id is None:
            return None
        query = "UPDATE parking_spot SET name = %s, owner_id = %s, updated = CURRENT_TIMESTAMP WHERE id = %s"
        logger.info("Executing query: %s", query)
        with self.transaction():
            with self._cursor() as cursor:
                cursor.execute(query, (name, owner.id if owner else None, spot_id))
                if cursor.rowcount == 0:
                    return None
            return self.get_spot(spot_id)

    def delete_spot(self, spot_id) -> bool:
        spot_id = _as_uuid(spot_id)
        if spot_id is None:
            return False
        # Reservations and releases go with the spot through ON DELETE CASCADE
        query = "DELETE FROM parking_spot WHERE id = %s"
        logger.info("Executing query: %s", query)
        with self._cursor() as cursor:
            cursor.execute(query, (spot_id,))
            return cursor.rowcount > 0

    # Reservations and releases

    def list_reservations(self, start=None, end=None, spot_id=None, user_id=None) -> List[DayReservation]:
        conditions, params = _range_conditions('day_reservation', start, end)
        if spot_id is not None:
            conditions.append("day_reservation.spot_id = %s")
            params.append(_as_uuid(spot_id))
        if user_id is not None:
            conditions.append("day_reservation.user_id = %s")
            params.append(_as_uuid(user_id))
        query = f"""SELECT day_reservation.date, day_reservation.spot_id,
                           users.id, users.name, users.email, users.role
                    FROM day_reservation JOIN users ON users.id = day_reservation.user_id
                    {_where(conditions)} ORDER BY day_reservation.date"""
        logger.info("Executing query: %s", query)
        with self.transaction():
            spots = {spot.id: spot for spot in self.list_spots()}
            with self._cursor() as cursor:
                cursor.execute(query, params)
                rows = cursor.fetchall()
        reservations = [DayReservation(date=row['date'], spot=spots[row['spot_id']], user=_row_to_user(row)) for row in rows]
        return sorted(reservations, key=lambda row: (row.date, row.spot.sequence))

    def list_releases(self, start=None, end=None, spot_id=None, owner_id=None) -> List[DayRelease]:
        conditions, params = _range_conditions('day_release', start, end)
        if spot_id is not None:
            conditions.append("day_release.spot_id = %s")
            params.append(_as_uuid(spot_id))
        if owner_id is not None:
            conditions.append("parking_spot.owner_id = %s")
            params.append(_as_uuid(owner_id))
        query = f"""SELECT day_release.date, day_release.spot_id
                    FROM day_release JOIN parking_spot ON parking_spot.id = day_release.spot_id
                    {_where(conditions)} ORDER BY day_release.date"""
        logger.info("Executing query: %s", query)
        with self.transaction():
            spots = {spot.id: spot for spot in self.list_spots()}
            with self._cursor() as cursor:
                cursor.execute(query, params)
                rows = cursor.fetchall()
        releases = [DayRelease(date=row['date'], spot=spots[row['spot_id']]) for row in rows]
        return sorted(releases, key=lambda row: (row.date, row.spot.sequence))

    def count_reservations_by_spot(self) -> Dict[UUID, int]:
        query = "SELECT spot_id, COUNT(*) AS reservation_count FROM day_reservation GROUP BY spot_id"
        logger.info("Executing query: %s", query)
        with self._cursor() as cursor:
            cursor.execute(query)
            rows = cursor.fetchall()
        return {row['spot_id']: row['reservation_count'] for row in rows}

    def apply_mutations(self, mutations: MutationSet):
        """
        Writes a mutation set in one transaction.

        The affected spots are locked first so concurrent writers for the same spots queue up, then the
        set is re-checked against the rows as they are now. The unique constraints on (spot_id, date)
        are the last line: a violation rolls everything back.

        Raises ConflictError with the affected dates. Nothing is written in that case.
        """
        if mutations.is_empty():
            return
        dates = mutations.dates
        with self.transaction():
            with self._cursor() as cursor:
                cursor.execute("SELECT id FROM parking_spot WHERE id = ANY(%s) ORDER BY id FOR UPDATE",
                               (mutations.spot_ids,))
            state = load_spot_state(self, dates[0], dates[-1])
            conflicts = verify_mutations(mutations, state)
            if conflicts:
                logger.error("Mutation conflicts on dates %s", conflicts)
                raise ConflictError(conflicts)
            with self._cursor() as cursor:
                # Only inserts can hit the (spot_id, date) constraints
                inserting = None
                try:
                    for reservation in mutations.reservations_to_delete:
                        cursor.execute("DELETE FROM day_reservation WHERE spot_id = %s AND date = %s",
                                       (reservation.spot.id, reservation.date))
                    for day_release in mutations.releases_to_delete:
                        cursor.execute("DELETE FROM day_release WHERE spot_id = %s AND date = %s",
                                       (day_release.spot.id, day_release.date))
                    for reservation in mutations.reservations_to_create:
                        inserting = reservation.date
                        cursor.execute("INSERT INTO day_reservation (spot_id, user_id, date) VALUES (%s, %s, %s)",
                                       (reservation.spot.id, reservation.user.id, reservation.date))
                    for day_release in mutations.releases_to_create:
                        inserting = day_release.date
                        cursor.execute("INSERT INTO day_release (spot_id, date) VALUES (%s, %s)",
                                       (day_release.spot.id, day_release.date))
                except psycopg2.errors.UniqueViolation as e:
                    logger.error("Mutation insert for %s failed with error: %s", inserting, e.args)
                    raise ConflictError([inserting])

    # Need to run testing to ensure database created from this matches local environment
    def _setup_schema(self):
        """
        Internal function to set-up the database schema if the tables do not exist. Primarily used when being deployed in production.
        """
        with self._cursor() as cursor:
            cursor.execute("""
                SELECT COUNT(*)
                FROM information_schema.tables
                WHERE table_schema = 'public' AND table_name = 'users';
            """)
            if cursor.fetchone()[0] == 0:
                logger.info("Setting up the schema.")
                cursor.execute("""
                    CREATE TABLE users (
                    id UUID PRIMARY KEY,
                    name text NOT NULL,
                    email text UNIQUE NOT NULL,
                    role text NOT NULL DEFAULT 'verified' CHECK (role IN ('verified', 'admin')));
                """)
            cursor.execute("""
                SELECT COUNT(*)
                FROM information_schema.tables
                WHERE table_schema = 'public' AND table_name = 'parking_spot';
            """)
            if cursor.fetchone()[0] == 0:
                cursor.execute("""
                    CREATE TABLE parking_spot (
                    id UUID PRIMARY KEY,
                    sequence serial UNIQUE NOT NULL,
                    name varchar(200) NOT NULL,
                    owner_id UUID REFERENCES users (id) ON DELETE SET NULL,
                    created timestamp with time zone DEFAULT CURRENT_TIMESTAMP NOT NULL,
                    updated timestamp with time zone DEFAULT CURRENT_TIMESTAMP NOT NULL);
                """)
            cursor.execute("""
                SELECT COUNT(*)
                FROM information_schema.tables
                WHERE table_schema = 'public' AND table_name = 'day_reservation';
            """)
            if cursor.fetchone()[0] == 0:
                # The unique constraint is what stops two concurrent reservations of the same day
                cursor.execute("""
                    CREATE TABLE day_reservation (
                    id serial PRIMARY KEY,
                    spot_id UUID NOT NULL REFERENCES parking_spot (id) ON DELETE CASCADE,
                    user_id UUID NOT NULL REFERENCES users (id) ON DELETE CASCADE,
                    date date NOT NULL,
                    UNIQUE (spot_id, date));
                """)
            cursor.execute("""
                SELECT COUNT(*)
                FROM information_schema.tables
                WHERE table_schema = 'public' AND table_name = 'day_release';
            """)
            if cursor.fetchone()[0] == 0:
                cursor.execute("""
                    CREATE TABLE day_release (
                    id serial PRIMARY KEY,
                    spot_id UUID NOT NULL REFERENCES parking_spot (id) ON DELETE CASCADE,
                    date date NOT NULL,
                    UNIQUE (spot_id, date));
                """)


def _range_conditions(table: str, start: Optional[date], end: Optional[date]):
    conditions, params = [], []
    if start is not None:
        conditions.append(f"{table}.date >= %s")
        params.append(start)
    if end is not None:
        conditions.append(f"{table}.date <= %s")
        params.append(end)
    return conditions, params


def _where(conditions) -> str:
    return f"WHERE {' AND '.join(conditions)}" if conditions else ""


def _row_to_user(row) -> User:
    return User(id=row['id'], name=row['name'], email=row['email'], role=UserRole(row['role']))


def _row_to_spot(row) -> ParkingSpot:
    owner = None
    if row['owner_id'] is not None:
        owner = User(id=row['owner_id'], name=row['owner_name'], email=row['owner_email'], role=UserRole(row['owner_role']))
    return ParkingSpot(id=row['id'], sequence=row['sequence'], name=row['name'], owner=owner,
                       created=row['created'], updated=row['updated'])


def _as_uuid(value) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None

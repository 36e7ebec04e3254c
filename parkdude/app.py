import json
import logging
import os
import secrets
from functools import wraps
from flask import Flask, request, g, jsonify
from flask_httpauth import HTTPBasicAuth
from werkzeug.security import generate_password_hash, check_password_hash
from parkdude.reservations import database, error_utils, gmail
from parkdude.reservations.parking_spot_service import ParkingSpotService
from parkdude.reservations.reservation_service import ReservationService
logger = logging.getLogger(__name__)


def _load_user_passwords():
    """
    HTTP Basic identities as {email: password hash}.
    Must set PARKDUDE_USERS in prod as a JSON object of {email: password}.
    """
    raw_users = os.getenv('PARKDUDE_USERS')
    if raw_users:
        users = json.loads(raw_users)
    else:  # For dev
        users = {"admin@example.com": "secret"}
    return {email: generate_password_hash(password) for email, password in users.items()}


def create_app():
    app = Flask(__name__)
    app.secret_key = secrets.token_hex(32) #256 bit
    app.config['SECRET_KEY'] = app.secret_key
    app.config['USER_PASSWORDS'] = _load_user_passwords()
    # Both are called once per request
    app.config['REPOSITORY_FACTORY'] = database.DatabasePersistence
    if os.environ.get('FLASK_ENV') == 'production':
        app.config['NOTIFIER_FACTORY'] = gmail.GmailNotifier
    else:
        app.config['NOTIFIER_FACTORY'] = gmail.LogNotifier
        app.config["DEBUG_TB_INTERCEPT_REDIRECTS"] = False
    return app

app = create_app()
auth = HTTPBasicAuth()


@auth.verify_password
def verify_password(username, password):
    users = app.config['USER_PASSWORDS']
    if username in users and check_password_hash(users.get(username), password):
        return username


@auth.error_handler
def auth_error(status):
    return jsonify({"message": "Unauthorized."}), status


# Use decorator to create the repository and services within the request context window, and resolve the signed in user
def instantiate_services(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.db = app.config['REPOSITORY_FACTORY']()
        g.reservations = ReservationService(g.db, app.config['NOTIFIER_FACTORY']())
        g.spots = ParkingSpotService(g.db)
        g.user = g.db.find_user_by_email(auth.current_user())
        if g.user is None:
            raise error_utils.PermissionDeniedError()
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not g.user.is_admin:
            raise error_utils.PermissionDeniedError()
        return f(*args, **kwargs)
    return decorated_function


def _json_body():
    return request.get_json(silent=True) or {}


# Parking spots

@app.route("/api/parking-spots", methods=["GET"])
@auth.login_required
@instantiate_services
def get_parking_spots():
    return jsonify({"data": [spot.to_parking_spot_data() for spot in g.spots.list_spots()]})


@app.route("/api/parking-spots/<spot_id>", methods=["GET"])
@auth.login_required
@instantiate_services
def get_parking_spot(spot_id):
    return jsonify({"data": g.spots.get_spot(spot_id).to_parking_spot_data()})


@app.route("/api/parking-spots", methods=["POST"])
@auth.login_required
@instantiate_services
@admin_required
def post_parking_spot():
    body = _json_body()
    spot = g.spots.create_spot(body.get('name'), body.get('ownerId'))
    return jsonify({"message": "Parking spot successfully created.", "data": spot.to_parking_spot_data()}), 201


@app.route("/api/parking-spots/<spot_id>", methods=["PUT"])
@auth.login_required
@instantiate_services
@admin_required
def put_parking_spot(spot_id):
    body = _json_body()
    spot = g.spots.update_spot(spot_id, body.get('name'), body.get('ownerId'))
    return jsonify({"message": "Parking spot successfully updated.", "data": spot.to_parking_spot_data()})


@app.route("/api/parking-spots/<spot_id>", methods=["DELETE"])
@auth.login_required
@instantiate_services
@admin_required
def delete_parking_spot(spot_id):
    g.spots.delete_spot(spot_id)
    return jsonify({"message": "Parking spot successfully deleted."})


# Calendar and listings

@app.route("/api/parking-reservations/calendar", methods=["GET"])
@auth.login_required
@instantiate_services
def get_calendar():
    calendar = g.reservations.get_calendar(request.args.get('startDate'), request.args.get('endDate'), g.user)
    return jsonify(calendar.to_data())


@app.route("/api/parking-reservations/parking-spot/<spot_id>/calendar", methods=["GET"])
@auth.login_required
@instantiate_services
def get_spot_calendar(spot_id):
    calendar = g.reservations.get_calendar(request.args.get('startDate'), request.args.get('endDate'), g.user, spot_id=spot_id)
    return jsonify(calendar.to_data())


@app.route("/api/parking-reservations/my-reservations", methods=["GET"])
@auth.login_required
@instantiate_services
def get_my_reservations():
    listing = g.reservations.get_my_reservations(request.args.get('startDate'), request.args.get('endDate'), g.user)
    return jsonify(listing.to_data())


@app.route("/api/parking-reservations", methods=["GET"])
@auth.login_required
@instantiate_services
@admin_required
def get_all_reservations():
    listing = g.reservations.get_all_reservations(request.args.get('startDate'), request.args.get('endDate'))
    return jsonify(listing.to_data())


@app.route("/api/users/<user_id>/reservations", methods=["GET"])
@auth.login_required
@instantiate_services
@admin_required
def get_user_reservations(user_id):
    listing = g.reservations.get_all_reservations(request.args.get('startDate'), request.args.get('endDate'), user_id=user_id)
    return jsonify(listing.to_data())


@app.route("/api/parking-spots/<spot_id>/reservations", methods=["GET"])
@auth.login_required
@instantiate_services
@admin_required
def get_spot_reservations(spot_id):
    listing = g.reservations.get_all_reservations(request.args.get('startDate'), request.args.get('endDate'), spot_id=spot_id)
    return jsonify(listing.to_data())


# Reserving and releasing

@app.route("/api/parking-reservations", methods=["POST"])
@auth.login_required
@instantiate_services
def post_reservations():
    body = _json_body()
    dates = body.get('dates')
    # A bare string is not accepted here, only the DELETE query parameter is comma separated
    if not isinstance(dates, list):
        raise error_utils.MissingDates()
    result = g.reservations.reserve_spots(dates, g.user, spot_id=body.get('parkingSpotId'), user_id=body.get('userId'))
    return jsonify({"reservations": result.to_data(), "message": "Spots successfully reserved"})


@app.route("/api/parking-reservations/parking-spot/<spot_id>", methods=["DELETE"])
@auth.login_required
@instantiate_services
def delete_reservations(spot_id):
    g.reservations.release_spots(spot_id, request.args.get('dates'), g.user)
    return jsonify({"message": "Parking reservations successfully released."})


@app.errorhandler(error_utils.ParkdudeError)
def handle_reservation_error(error):
    logger.info(f"Request failed with {type(error).__name__}: {error.message}")
    return jsonify(error.to_data()), error.status_code


@app.errorhandler(404)
def error_handler(error):
    return jsonify({"message": "Not found."}), 404


if __name__ == '__main__':
    # production
    if os.environ.get('FLASK_ENV') == 'production':
       app.run(debug=False)
    else:
       from flask_debugtoolbar import DebugToolbarExtension
       app.debug = True
       toolbar = DebugToolbarExtension(app)
       app.run(debug=True, port=5003)

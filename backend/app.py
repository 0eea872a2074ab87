import os
from flask import Flask, request, jsonify
from models import db, User
from flask_bcrypt import Bcrypt
from flask_jwt_extended import JWTManager, create_access_token, jwt_required, get_jwt_identity

import store
import sync
from errors import PlantLogError, ProviderRejected, ValidationError
from thingspeak import DEFAULT_URL, ThingSpeakClient


def _flag(name, default):
    return os.getenv(name, default).lower() == "true"


app = Flask(__name__)

app.config.update(
    SQLALCHEMY_DATABASE_URI=os.getenv("DATABASE_URL", "sqlite:///fallback.db"),
    SQLALCHEMY_TRACK_MODIFICATIONS=False,
    JWT_SECRET_KEY=os.getenv("JWT_SECRET", "super-secret-key-please-change"),
    THINGSPEAK_URL=os.getenv("THINGSPEAK_URL", DEFAULT_URL),
    THINGSPEAK_TIMEOUT=float(os.getenv("THINGSPEAK_TIMEOUT", "10")),
    SYNC_RESULTS=int(os.getenv("SYNC_RESULTS", "100")),
    LOG_RETENTION=int(os.getenv("LOG_RETENTION", "5")),
    TRIM_AFTER_MANUAL=_flag("TRIM_AFTER_MANUAL", "False"),
    MANUAL_SENDS_COMMAND=_flag("MANUAL_SENDS_COMMAND", "True"),
    ALLOW_TEST_LOGS=_flag("ALLOW_TEST_LOGS", "False"),
)
db.init_app(app)
bcrypt = Bcrypt(app)
jwt = JWTManager(app)


def thingspeak_client():
    return ThingSpeakClient(app.config["THINGSPEAK_URL"], timeout=app.config["THINGSPEAK_TIMEOUT"])


def current_owner():
    return int(get_jwt_identity())


@app.errorhandler(PlantLogError)
def handle_plant_log_error(e):
    body = {"msg": e.message}
    if isinstance(e, ProviderRejected) and e.entry is not None:
        body["log"] = e.entry.to_dict()
    if e.status_code >= 500:
        app.logger.error(f"{type(e).__name__} on {request.path}: {e.message}")
    return jsonify(body), e.status_code

# --- Auth Endpoints -------------------------------------------------

@app.route("/auth/register", methods=["POST"])
def register():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return jsonify({"msg": "Email and password required"}), 400

    user_exists = User.query.filter_by(email=email).first()
    if user_exists:
        return jsonify({"msg": "Email already registered"}), 409

    pw_hash = bcrypt.generate_password_hash(password).decode('utf-8')
    new_user = User(email=email, password_hash=pw_hash)
    try:
        db.session.add(new_user)
        db.session.commit()
        return jsonify({"msg": "User registered successfully"}), 201
    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Error during registration: {e}")
        return jsonify({"msg": "Registration failed"}), 500


@app.route("/auth/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return jsonify({"msg": "Email and password required"}), 400

    user = User.query.filter_by(email=email).first()
    if user and bcrypt.check_password_hash(user.password_hash, password):
        access_token = create_access_token(identity=str(user.id))
        return jsonify(access_token=access_token)
    else:
        return jsonify({"msg": "Bad email or password"}), 401

# --- Watering logs --------------------------------------------------

@app.route("/api/logs", methods=["GET"])
@jwt_required()
def get_logs():
    logs = sync.get_recent_logs(current_owner(), app.config["LOG_RETENTION"])
    return jsonify([log.to_dict() for log in logs])

@app.route("/api/logs", methods=["DELETE"])
@jwt_required()
def clear_logs():
    cutoff = sync.clear_logs(current_owner())
    return jsonify({"msg": "All watering logs cleared.", "logClearCutoff": cutoff})

@app.route("/api/logs/test", methods=["POST"])
@jwt_required()
def add_test_log():
    if not app.config["ALLOW_TEST_LOGS"]:
        return jsonify({"msg": "Test logs are disabled"}), 404
    entry = sync.add_test_log(current_owner(), request.get_json(silent=True))
    return jsonify(entry.to_dict()), 201

# --- ThingSpeak -----------------------------------------------------

@app.route("/api/thingspeak/sync", methods=["POST"])
@jwt_required()
def sync_feed():
    with thingspeak_client() as client:
        result = sync.refresh(
            current_owner(), client,
            results=app.config["SYNC_RESULTS"],
            keep=app.config["LOG_RETENTION"],
        )
    return jsonify(result)

@app.route("/api/thingspeak/latest", methods=["GET"])
@jwt_required()
def latest_reading():
    settings = store.get_or_create_settings(current_owner())
    with thingspeak_client() as client:
        reading = client.latest_reading(settings.channel_id, settings.read_key)
    if reading is None:
        return jsonify({"msg": "No ThingSpeak data found."}), 404
    return jsonify(reading.to_dict())

@app.route("/api/water/manual", methods=["POST"])
@jwt_required()
def manual_water():
    data = request.get_json(silent=True)
    if data is not None and not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    override = (data or {}).get("reading")

    owner_id = current_owner()
    keep = app.config["LOG_RETENTION"] if app.config["TRIM_AFTER_MANUAL"] else None
    with thingspeak_client() as client:
        entry = sync.log_manual_watering(
            owner_id, client,
            override=override,
            send_command=app.config["MANUAL_SENDS_COMMAND"],
            trim_keep=keep,
        )
    app.logger.info(f"Manual watering by user {owner_id}")
    return jsonify({"msg": "Manual watering logged.", "log": entry.to_dict()}), 201

# --- Settings -------------------------------------------------------

@app.route("/api/settings", methods=["GET"])
@jwt_required()
def get_settings():
    return jsonify(store.get_or_create_settings(current_owner()).to_dict())

@app.route("/api/settings", methods=["PUT"])
@jwt_required()
def update_settings():
    settings = store.update_settings(current_owner(), request.get_json(silent=True))
    return jsonify(settings.to_dict())

# -------------------------------------------------------------------

if __name__ == "__main__":
    with app.app_context():
        db.create_all()
        app.logger.info("Database tables created (if they didn't exist).")
    app.run(host="0.0.0.0", port=8000, debug=os.getenv("FLASK_DEBUG", "False").lower() == "true")

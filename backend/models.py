from flask_sqlalchemy import SQLAlchemy
db = SQLAlchemy()

SOURCES = ("automatic", "manual", "test")

# Defaults applied when a settings row is created for an owner.
SETTINGS_DEFAULTS = {
    "moisture_threshold": 30,
    "light_threshold": 400,
    "channel_id": None,
    "read_key": None,
    "write_key": None,
    "log_clear_cutoff": None,
}


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(128), nullable=False)
    logs = db.relationship('WaterLog', backref='owner', lazy=True)
    settings = db.relationship('Settings', backref='owner', uselist=False, lazy=True)


class WaterLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    ts = db.Column(db.Integer, nullable=False, index=True)  # epoch seconds, UTC
    soil_moisture = db.Column(db.Float, nullable=False)
    light_intensity = db.Column(db.Float, nullable=False)
    temperature = db.Column(db.Float, nullable=False)
    humidity = db.Column(db.Float, nullable=False)
    source = db.Column(db.String(16), nullable=False, default="automatic")
    condition = db.Column(db.String(8))

    def to_dict(self):
        return {
            "id": self.id,
            "ts": self.ts,
            "soilMoisture": self.soil_moisture,
            "lightIntensity": self.light_intensity,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "source": self.source,
            "condition": self.condition,
        }


class Settings(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), unique=True, nullable=False)
    moisture_threshold = db.Column(db.Float, nullable=False, default=30)
    light_threshold = db.Column(db.Float, nullable=False, default=400)
    channel_id = db.Column(db.String(32))
    read_key = db.Column(db.String(64))
    write_key = db.Column(db.String(64))
    log_clear_cutoff = db.Column(db.Integer)  # epoch seconds of the last full clear

    def to_dict(self):
        return {
            "moistureThreshold": self.moisture_threshold,
            "lightThreshold": self.light_threshold,
            "thingSpeakChannelId": self.channel_id,
            "thingSpeakReadApiKey": self.read_key,
            "thingSpeakWriteApiKey": self.write_key,
            "logClearCutoff": self.log_clear_cutoff,
        }

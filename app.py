import logging
import os

from flask import Flask, jsonify, send_from_directory
from werkzeug.exceptions import HTTPException

import admin
import applications
import auth
import jobs
import notifications
import users
from models import db
from sockets import socketio

# ================= LOGGING =================
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ================= APP =================
app = Flask(__name__)
app.config["PREFERRED_URL_SCHEME"] = "https"


# ================= SECRET KEY =================
app.secret_key = os.environ.get("SECRET_KEY", "dev-secret-key")

# ================= SESSION CONFIG =================

app.config.update(
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_SECURE=os.environ.get("RENDER") == "true"
)

# ================= AUTH CONFIG =================
app.config.update(
    JWT_SECRET=os.environ.get("JWT_SECRET", app.secret_key),
    JWT_EXPIRES_DAYS=int(os.environ.get("JWT_EXPIRES_DAYS", "30")),
    OTP_SECRET=os.environ.get("OTP_SECRET") or auth.DEFAULT_OTP_SECRET,
    ADMIN_CODE=os.environ.get("ADMIN_CODE", "ADMIN123"),
)


# ================= DATABASE CONFIG =================
DATABASE_URL = os.environ.get("DATABASE_URL")

# LOCAL FALLBACK
if not DATABASE_URL:
    DATABASE_URL = "sqlite:///job_board.db"

# Fix postgres:// issue
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

db.init_app(app)

with app.app_context():
    db.create_all()

# ================= NOTIFICATIONS =================
app.config["NOTIFICATION_BACKEND"] = os.environ.get("NOTIFICATION_BACKEND", "memory")
app.extensions["notification_store"] = notifications.make_store(app.config["NOTIFICATION_BACKEND"])

# ================= SOCKETS =================
CORS_ORIGINS = os.environ.get(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001,http://localhost:3002,http://localhost:3003",
).split(",")
socketio.init_app(app, cors_allowed_origins=CORS_ORIGINS)

# ================= RESUME UPLOAD =================
UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads")
app.config["UPLOAD_FOLDER"] = UPLOAD_FOLDER

os.makedirs(UPLOAD_FOLDER, exist_ok=True)


@app.route("/uploads/<path:filename>")
def uploaded_file(filename):
    return send_from_directory(os.path.abspath(app.config["UPLOAD_FOLDER"]), filename)


# ================= ROUTES =================
for blueprint in (auth.bp, jobs.bp, applications.bp, notifications.bp, admin.bp, users.bp):
    app.register_blueprint(blueprint)


@app.route("/api/health")
def health():
    return jsonify({"status": "OK", "message": "Job board API is running"})


# ================= ERRORS =================
@app.errorhandler(HTTPException)
def http_error(error):
    return jsonify({"message": error.description}), error.code


@app.errorhandler(Exception)
def unhandled_error(error):
    db.session.rollback()
    logger.exception("Unhandled error")
    return jsonify({"message": str(error)}), 500


# ================= RUN =================
if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5002))
    socketio.run(app, host="0.0.0.0", port=port, allow_unsafe_werkzeug=True)

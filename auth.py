"""Identity endpoints, bearer tokens and per-route role requirements."""
import base64
import logging
from datetime import datetime, timedelta
from functools import wraps

import jwt
import pyotp
from flask import Blueprint, abort, current_app, g, jsonify, request
from werkzeug.security import check_password_hash, generate_password_hash

from forms import FederatedLoginForm, LoginForm, SignupForm
from models import User, db

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/api/auth")

DEFAULT_OTP_SECRET = base64.b32encode(b"jobportal-secret-key").decode()
OTP_DIGITS = 6
OTP_INTERVAL = 300
OTP_VALID_WINDOW = 2


# ================= TOKENS =================
def issue_token(user):
    expires = datetime.utcnow() + timedelta(days=current_app.config["JWT_EXPIRES_DAYS"])
    return jwt.encode(
        {"id": user.id, "exp": expires},
        current_app.config["JWT_SECRET"],
        algorithm="HS256",
    )


def user_from_token(token):
    """Return the active account a token belongs to, or None."""
    try:
        payload = jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=["HS256"])
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected bearer token: %s", exc)
        return None
    user = db.session.get(User, payload.get("id"))
    if user is None or not user.is_active:
        return None
    return user


def token_required(*roles):
    """Require a valid bearer token and, when given, one of ``roles``.

    The account is available as ``g.user`` inside the view.
    """

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            header = request.headers.get("Authorization", "")
            if not header.startswith("Bearer"):
                abort(401, description="Not authorized, no token")
            parts = header.split(" ", 1)
            user = user_from_token(parts[1].strip()) if len(parts) == 2 else None
            if user is None:
                abort(401, description="Not authorized, token failed")
            if roles and user.role not in roles:
                article = "an" if roles[0][0] in "aeiou" else "a"
                abort(401, description=f"Not authorized as {article} {' or '.join(roles)}")
            g.user = user
            return view(*args, **kwargs)

        return wrapped

    return decorator


def token_payload(user, *extra):
    data = {
        "_id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "token": issue_token(user),
    }
    for field in extra:
        data[field] = user.to_dict()[field]
    return data


# ================= OTP =================
def _totp():
    return pyotp.TOTP(
        current_app.config["OTP_SECRET"], digits=OTP_DIGITS, interval=OTP_INTERVAL
    )


def generate_otp():
    return _totp().now()


def verify_otp(code):
    return _totp().verify(code, valid_window=OTP_VALID_WINDOW)


# ================= SIGNUP =================
@bp.route("/signup", methods=["POST"])
def signup():
    payload = request.get_json(silent=True) or {}
    form = SignupForm.from_payload(payload, drop_empty=True).validate_or_abort()

    if User.query.filter_by(email=form.email.data).first():
        abort(400, description="User already exists")

    if form.role.data == "admin" and form.admin_code.data != current_app.config["ADMIN_CODE"]:
        abort(400, description="Invalid admin code")

    user = User(
        name=form.name.data,
        email=form.email.data,
        password=generate_password_hash(form.password.data),
        role=form.role.data,
        business_name=form.business_name.data if form.role.data == "owner" else None,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("Registered %s account %s", user.role, user.id)

    return jsonify(token_payload(user)), 201


# ================= LOGIN =================
@bp.route("/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    form = LoginForm.from_payload(payload)
    if not form.validate():
        abort(401, description="Invalid email or password")

    user = User.query.filter_by(email=form.email.data).first()
    if user and check_password_hash(user.password, form.password.data):
        user.log_login("email", user.is_active, request.remote_addr)
        db.session.commit()
        if not user.is_active:
            abort(401, description="Account is deactivated")
        return jsonify(token_payload(user))

    if user:
        user.log_login("email", False, request.remote_addr)
        db.session.commit()
    abort(401, description="Invalid email or password")


# ================= FEDERATED LOGIN =================
def _federated_login(provider, form):
    """Find or create the account behind an identity verified upstream."""
    user = User.query.filter_by(email=form.email.data).first()

    if user is None:
        role = form.role.data
        user = User(
            name=form.name.data or form.email.data.split("@")[0],
            email=form.email.data,
            # never matches a real password hash check
            password=generate_password_hash(f"{provider}:{form.uid.data}"),
            role=role,
            business_name=form.business_name.data if role == "owner" else None,
            profile_picture=form.photo_url.data,
            is_active=True,
        )
        db.session.add(user)
        logger.info("Created account for %s login %s", provider, form.email.data)

    if provider == "firebase":
        user.is_firebase_auth = True
        if not user.firebase_uid:
            user.firebase_uid = form.uid.data
            user.profile_picture = form.photo_url.data or user.profile_picture
    else:
        user.is_google_auth = True
        if not user.google_id:
            user.google_id = form.uid.data

    user.log_login(provider, user.is_active, request.remote_addr)
    db.session.commit()
    if not user.is_active:
        abort(401, description="Account is deactivated")
    return jsonify(token_payload(user, "profilePicture"))


@bp.route("/firebase-login", methods=["POST"])
def firebase_login():
    payload = request.get_json(silent=True) or {}
    # firebase users always start as jobseekers
    payload.pop("role", None)
    form = FederatedLoginForm.from_payload(payload, drop_empty=True).validate_or_abort()
    return _federated_login("firebase", form)


@bp.route("/google-login", methods=["POST"])
def google_login():
    payload = request.get_json(silent=True) or {}
    if "googleId" in payload and "uid" not in payload:
        payload["uid"] = payload.pop("googleId")
    form = FederatedLoginForm.from_payload(payload, drop_empty=True).validate_or_abort()
    return _federated_login("google", form)


# ================= PROFILE =================
@bp.route("/me")
@token_required()
def me():
    user = g.user
    return jsonify(
        {
            "_id": user.id,
            "name": user.name,
            "email": user.email,
            "role": user.role,
            "phone": user.phone,
            "profilePicture": user.profile_picture,
        }
    )


# ================= PHONE OTP =================
@bp.route("/send-otp", methods=["POST"])
def send_otp():
    phone = ((request.get_json(silent=True) or {}).get("phone") or "").strip()
    if not phone:
        abort(400, description="Phone number is required")

    otp = generate_otp()
    if current_app.debug:
        logger.info("OTP for %s: %s", phone, otp)

    user = User.query.filter_by(phone=phone).first()
    if user is None:
        user = User(
            name=f"User {phone}",
            email=f"{phone}@jobportal.com",
            password=generate_password_hash(phone),
            phone=phone,
            role="jobseeker",
        )
        db.session.add(user)

    user.otp = otp
    user.otp_expiry = datetime.utcnow() + timedelta(seconds=OTP_INTERVAL)
    # requested, not yet verified
    user.log_login("otp", False, request.remote_addr)
    db.session.commit()

    return jsonify({"message": "OTP sent successfully", "userId": user.id})


@bp.route("/verify-otp", methods=["POST"])
def verify_otp_login():
    payload = request.get_json(silent=True) or {}
    phone, otp, user_id = payload.get("phone"), payload.get("otp"), payload.get("userId")
    if not phone or not otp or not user_id:
        abort(400, description="Phone number, OTP, and user ID are required")

    try:
        user = db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        user = None
    if user is None:
        abort(404, description="User not found")

    if not user.otp_expiry or user.otp_expiry < datetime.utcnow():
        user.log_login("otp", False, request.remote_addr)
        db.session.commit()
        abort(400, description="OTP has expired. Please request a new one.")

    if not verify_otp(str(otp)):
        user.log_login("otp", False, request.remote_addr)
        db.session.commit()
        abort(400, description="Invalid OTP. Please try again.")

    # single use
    user.otp = None
    user.otp_expiry = None
    user.log_login("otp", True, request.remote_addr)
    db.session.commit()

    return jsonify(token_payload(user, "phone"))


# ================= LOGIN HISTORY =================
@bp.route("/login-history/<int:user_id>")
@token_required("admin")
def login_history(user_id):
    user = User.query.get_or_404(user_id, description="User not found")
    return jsonify(
        {
            "userId": user.id,
            "name": user.name,
            "email": user.email,
            "loginLogs": [log.to_dict() for log in user.login_logs],
        }
    )

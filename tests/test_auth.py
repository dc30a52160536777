import unittest
from datetime import datetime, timedelta

import pyotp

from app import app
from models import User, db
from tests.support import ApiTestCase


class SignupTests(ApiTestCase):
    def signup(self, **fields):
        payload = {"name": "Asha Rao", "email": "asha@acme.io", "password": "secret123"}
        payload.update(fields)
        return self.client.post("/api/auth/signup", json=payload)

    def test_signup_returns_token_and_defaults_to_jobseeker(self):
        response = self.signup()
        self.assertEqual(response.status_code, 201)
        data = response.get_json()
        self.assertEqual(data["role"], "jobseeker")
        self.assertTrue(data["token"])

        me = self.client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["email"], "asha@acme.io")

    def test_duplicate_email_is_rejected(self):
        self.signup()
        response = self.signup(name="Someone Else")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["message"], "User already exists")

    def test_admin_signup_requires_enrollment_code(self):
        response = self.signup(role="admin", adminCode="nope")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["message"], "Invalid admin code")

        response = self.signup(role="admin", adminCode=app.config["ADMIN_CODE"])
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.get_json()["role"], "admin")

    def test_business_name_only_kept_for_owners(self):
        self.signup(businessName="Rao Foods")
        self.signup(email="owner@acme.io", role="owner", businessName="Rao Foods")
        with app.app_context():
            self.assertIsNone(User.query.filter_by(email="asha@acme.io").one().business_name)
            self.assertEqual(User.query.filter_by(email="owner@acme.io").one().business_name, "Rao Foods")

    def test_invalid_payload_is_a_validation_error(self):
        response = self.signup(email="not-an-email")
        self.assertEqual(response.status_code, 400)
        self.assertIn("Email", response.get_json()["message"])


class LoginTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.user = self.create_user(email="ravi@acme.io", password="hunter22")

    def logs(self):
        with app.app_context():
            return [(log.login_type, log.success) for log in db.session.get(User, self.user.id).login_logs]

    def test_login_issues_token_and_logs_success(self):
        response = self.client.post("/api/auth/login", json={"email": "ravi@acme.io", "password": "hunter22"})
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.get_json()["token"])
        self.assertEqual(self.logs(), [("email", True)])

    def test_bad_password_is_generic_and_logged(self):
        response = self.client.post("/api/auth/login", json={"email": "ravi@acme.io", "password": "wrong"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["message"], "Invalid email or password")
        self.assertEqual(self.logs(), [("email", False)])

    def test_unknown_email_gets_the_same_answer(self):
        response = self.client.post("/api/auth/login", json={"email": "ghost@acme.io", "password": "hunter22"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["message"], "Invalid email or password")

    def test_protected_route_needs_a_token(self):
        self.assertEqual(self.client.get("/api/auth/me").status_code, 401)
        response = self.client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["message"], "Not authorized, token failed")

    def test_deactivated_account_cannot_use_its_token(self):
        with app.app_context():
            db.session.get(User, self.user.id).is_active = False
            db.session.commit()
        self.assertEqual(self.client.get("/api/auth/me", headers=self.user.headers).status_code, 401)

    def test_login_history_is_admin_only(self):
        self.client.post("/api/auth/login", json={"email": "ravi@acme.io", "password": "hunter22"})
        url = f"/api/auth/login-history/{self.user.id}"

        self.assertEqual(self.client.get(url, headers=self.user.headers).status_code, 401)

        admin = self.create_user(role="admin")
        response = self.client.get(url, headers=admin.headers)
        self.assertEqual(response.status_code, 200)
        logs = response.get_json()["loginLogs"]
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0]["loginType"], "email")
        self.assertTrue(logs[0]["success"])


class OtpLoginTests(ApiTestCase):
    phone = "+919800000001"

    def current_code(self):
        return pyotp.TOTP(app.config["OTP_SECRET"], digits=6, interval=300).now()

    def send(self):
        response = self.client.post("/api/auth/send-otp", json={"phone": self.phone})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["message"], "OTP sent successfully")
        return response.get_json()["userId"]

    def verify(self, user_id, code):
        return self.client.post(
            "/api/auth/verify-otp", json={"phone": self.phone, "otp": code, "userId": user_id}
        )

    def test_send_creates_placeholder_account(self):
        user_id = self.send()
        with app.app_context():
            user = db.session.get(User, user_id)
            self.assertEqual(user.email, f"{self.phone}@jobportal.com")
            self.assertEqual(user.role, "jobseeker")
            self.assertIsNotNone(user.otp_expiry)

    def test_send_reuses_account_with_same_phone(self):
        self.assertEqual(self.send(), self.send())

    def test_code_is_single_use(self):
        user_id = self.send()

        response = self.verify(user_id, self.current_code())
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.get_json()["token"])
        self.assertEqual(response.get_json()["phone"], self.phone)

        again = self.verify(user_id, self.current_code())
        self.assertEqual(again.status_code, 400)
        self.assertIn("expired", again.get_json()["message"])

    def test_wrong_code_is_rejected(self):
        user_id = self.send()
        wrong = "000000" if self.current_code() != "000000" else "111111"
        response = self.verify(user_id, wrong)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["message"], "Invalid OTP. Please try again.")

    def test_expired_code_is_rejected_without_clearing(self):
        user_id = self.send()
        with app.app_context():
            user = db.session.get(User, user_id)
            user.otp_expiry = datetime.utcnow() - timedelta(minutes=1)
            db.session.commit()

        response = self.verify(user_id, self.current_code())
        self.assertEqual(response.status_code, 400)
        with app.app_context():
            self.assertIsNotNone(db.session.get(User, user_id).otp)

    def test_missing_fields_and_unknown_user(self):
        response = self.client.post("/api/auth/verify-otp", json={"phone": self.phone})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.verify(9999, "123456").status_code, 404)


class FederatedLoginTests(ApiTestCase):
    def test_firebase_login_creates_then_reuses_account(self):
        payload = {"uid": "fb-123", "email": "meera@acme.io", "name": "Meera"}
        first = self.client.post("/api/auth/firebase-login", json=payload)
        self.assertEqual(first.status_code, 200)
        second = self.client.post("/api/auth/firebase-login", json=payload)
        self.assertEqual(first.get_json()["_id"], second.get_json()["_id"])

        with app.app_context():
            user = User.query.filter_by(email="meera@acme.io").one()
            self.assertEqual(user.firebase_uid, "fb-123")
            self.assertEqual(user.role, "jobseeker")
            self.assertTrue(user.is_active)
            self.assertEqual(
                [(log.login_type, log.success) for log in user.login_logs],
                [("firebase", True), ("firebase", True)],
            )

    def test_first_firebase_login_keeps_the_photo(self):
        payload = {"uid": "fb-9", "email": "dev@acme.io", "photoURL": "https://cdn.acme.io/dev.png"}
        response = self.client.post("/api/auth/firebase-login", json=payload)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["profilePicture"], "https://cdn.acme.io/dev.png")

    def test_firebase_link_fills_in_the_photo(self):
        existing = self.create_user(email="lata@acme.io")
        payload = {"uid": "fb-5", "email": "lata@acme.io", "photoURL": "https://cdn.acme.io/lata.png"}
        self.client.post("/api/auth/firebase-login", json=payload)
        with app.app_context():
            self.assertEqual(db.session.get(User, existing.id).profile_picture, "https://cdn.acme.io/lata.png")

    def test_first_login_is_refused_once_deactivated(self):
        payload = {"uid": "fb-77", "email": "temp@acme.io"}
        self.assertEqual(self.client.post("/api/auth/firebase-login", json=payload).status_code, 200)
        with app.app_context():
            User.query.filter_by(email="temp@acme.io").one().is_active = False
            db.session.commit()
        response = self.client.post("/api/auth/firebase-login", json=payload)
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["message"], "Account is deactivated")

    def test_google_login_links_existing_account(self):
        existing = self.create_user(email="kiran@acme.io")
        response = self.client.post(
            "/api/auth/google-login", json={"googleId": "g-42", "email": "kiran@acme.io"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["_id"], existing.id)
        with app.app_context():
            user = db.session.get(User, existing.id)
            self.assertEqual(user.google_id, "g-42")
            self.assertTrue(user.is_google_auth)

    def test_google_login_can_create_an_owner(self):
        response = self.client.post(
            "/api/auth/google-login",
            json={"googleId": "g-7", "email": "shop@acme.io", "role": "owner", "businessName": "Shop"},
        )
        self.assertEqual(response.get_json()["role"], "owner")


if __name__ == "__main__":
    unittest.main()

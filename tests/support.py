import itertools
import unittest
from types import SimpleNamespace

from werkzeug.security import generate_password_hash

from app import app
from auth import issue_token
from models import User, db
from notifications import InMemoryNotificationStore

_emails = itertools.count(1)

JOB = {
    "title": "Backend Engineer",
    "location": {"city": "Pune", "state": "MH", "country": "India"},
    "salary": 900000,
}


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        app.config["TESTING"] = True
        with app.app_context():
            db.drop_all()
            db.create_all()
        self.store = InMemoryNotificationStore()
        app.extensions["notification_store"] = self.store
        self.client = app.test_client()

    def tearDown(self):
        with app.app_context():
            db.session.remove()
            db.drop_all()

    def create_user(self, role="jobseeker", name=None, password="secret123", **fields):
        with app.app_context():
            user = User(
                name=name or f"{role.title()} {next(_emails)}",
                email=fields.pop("email", None) or f"{role}{next(_emails)}@acme.io",
                password=generate_password_hash(password),
                role=role,
                **fields,
            )
            db.session.add(user)
            db.session.commit()
            return SimpleNamespace(
                id=user.id,
                name=user.name,
                email=user.email,
                role=role,
                password=password,
                token=issue_token(user),
                headers={"Authorization": f"Bearer {issue_token(user)}"},
            )

    def create_job(self, owner, **fields):
        payload = dict(JOB, **fields)
        response = self.client.post("/api/jobs", json=payload, headers=owner.headers)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()["_id"]

    def apply(self, seeker, job_id, **form):
        return self.client.post(f"/api/jobs/{job_id}/apply", data=form, headers=seeker.headers)

    def apply_ok(self, seeker, job_id, **form):
        response = self.apply(seeker, job_id, **form)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()["_id"]

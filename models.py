from datetime import datetime

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import or_, update

db = SQLAlchemy()

ROLES = ("jobseeker", "owner", "admin")
WORK_TYPES = ("onsite", "remote", "hybrid", "workFromHome")
JOB_TYPES = ("intern", "fulltime", "parttime", "contract")
SALARY_TYPES = ("monthly", "annum")
JOB_STATUSES = ("active", "inactive", "closed")
APPLICATION_STATUSES = ("pending", "reviewed", "interview", "accepted", "rejected")


def _iso(value):
    return value.isoformat() if value else None


saved_jobs = db.Table(
    "saved_job",
    db.Column("user_id", db.Integer, db.ForeignKey("user.id"), primary_key=True),
    db.Column("job_id", db.Integer, db.ForeignKey("job.id"), primary_key=True),
)


class User(db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(20), nullable=False, default="jobseeker")
    business_name = db.Column(db.String(200))
    phone = db.Column(db.String(30), index=True)
    address = db.Column(db.JSON)
    bio = db.Column(db.Text)
    profile_picture = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_google_auth = db.Column(db.Boolean, nullable=False, default=False)
    is_firebase_auth = db.Column(db.Boolean, nullable=False, default=False)
    google_id = db.Column(db.String(200))
    firebase_uid = db.Column(db.String(200))
    otp = db.Column(db.String(10))
    otp_expiry = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationship: an owner posts many jobs; they go with the account
    jobs_posted = db.relationship(
        "Job", backref="owner", lazy=True, cascade="all, delete-orphan"
    )
    # Relationship: a jobseeker submits many applications
    applications = db.relationship(
        "Application", backref="user", lazy=True, cascade="all, delete-orphan"
    )
    reviews = db.relationship(
        "Review", backref="user", lazy=True, cascade="all, delete-orphan"
    )
    login_logs = db.relationship(
        "LoginLog",
        backref="user",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="LoginLog.timestamp",
    )
    saved_jobs = db.relationship(
        "Job", secondary=saved_jobs, lazy="subquery", backref=db.backref("saved_by", lazy=True)
    )

    def log_login(self, login_type, success, ip_address=None):
        self.login_logs.append(
            LoginLog(login_type=login_type, success=success, ip_address=ip_address)
        )

    def contact_snapshot(self):
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
        }

    def to_public_dict(self):
        return {"_id": self.id, "name": self.name, "email": self.email, "role": self.role}

    def to_dict(self):
        data = self.to_public_dict()
        data.update(
            {
                "businessName": self.business_name,
                "phone": self.phone,
                "address": self.address,
                "bio": self.bio,
                "profilePicture": self.profile_picture,
                "isActive": self.is_active,
                "isGoogleAuth": self.is_google_auth,
                "isFirebaseAuth": self.is_firebase_auth,
                "savedJobs": [job.id for job in self.saved_jobs],
                "createdAt": _iso(self.created_at),
                "updatedAt": _iso(self.updated_at),
            }
        )
        return data


class LoginLog(db.Model):
    __tablename__ = "login_log"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    login_type = db.Column(db.String(20), nullable=False)
    success = db.Column(db.Boolean, nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)
    ip_address = db.Column(db.String(64))

    def to_dict(self):
        return {
            "loginType": self.login_type,
            "success": self.success,
            "timestamp": _iso(self.timestamp),
            "ipAddress": self.ip_address,
        }


class Job(db.Model):
    __tablename__ = "job"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    salary = db.Column(db.Float, nullable=False)
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100), nullable=False)
    country = db.Column(db.String(100), nullable=False)
    work_type = db.Column(db.String(20), nullable=False, default="onsite")
    job_type = db.Column(db.String(20), nullable=False, default="fulltime")
    salary_type = db.Column(db.String(20), nullable=False, default="annum")
    required_skills = db.Column(db.JSON, nullable=False, default=list)
    owner_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="active")
    # 0 means no limit
    member_limit = db.Column(db.Integer, nullable=False, default=0)
    current_applicants = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationship: a job can have many applications
    applications = db.relationship(
        "Application", backref="job", lazy=True, cascade="all, delete-orphan"
    )
    reviews = db.relationship(
        "Review", backref="job", lazy=True, cascade="all, delete-orphan"
    )

    @property
    def is_full(self):
        return self.member_limit > 0 and self.current_applicants >= self.member_limit

    @classmethod
    def increment_if_below_limit(cls, job_id):
        """Bump the applicant counter unless the job is at its cap.

        The check and the increment run as one conditional UPDATE, so two
        concurrent applies cannot both take the last slot. Returns True when
        the row was updated.
        """
        stmt = (
            update(cls)
            .where(cls.id == job_id)
            .where(or_(cls.member_limit == 0, cls.current_applicants < cls.member_limit))
            .values(current_applicants=cls.current_applicants + 1)
            .execution_options(synchronize_session=False)
        )
        return db.session.execute(stmt).rowcount == 1

    @classmethod
    def decrement_applicants(cls, job_id):
        stmt = (
            update(cls)
            .where(cls.id == job_id)
            .where(cls.current_applicants > 0)
            .values(current_applicants=cls.current_applicants - 1)
            .execution_options(synchronize_session=False)
        )
        db.session.execute(stmt)

    def to_dict(self, owner_fields=None):
        if owner_fields and self.owner is not None:
            owner = {"_id": self.owner.id}
            owner.update({field: getattr(self.owner, field) for field in owner_fields})
        else:
            owner = self.owner_id
        return {
            "_id": self.id,
            "title": self.title,
            "description": self.description,
            "salary": self.salary,
            "location": {"city": self.city, "state": self.state, "country": self.country},
            "workType": self.work_type,
            "jobType": self.job_type,
            "salaryType": self.salary_type,
            "requiredSkills": list(self.required_skills or []),
            "ownerId": owner,
            "status": self.status,
            "memberLimit": self.member_limit,
            "currentApplicants": self.current_applicants,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class Application(db.Model):
    __tablename__ = "application"
    __table_args__ = (db.UniqueConstraint("user_id", "job_id", name="uq_application_user_job"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    job_id = db.Column(db.Integer, db.ForeignKey("job.id"), nullable=False)
    cover_letter = db.Column(db.Text)
    resume = db.Column(db.String(255))
    # Applicant contact details as they were when the application was sent
    user_info = db.Column(db.JSON)
    status = db.Column(db.String(20), nullable=False, default="pending")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self, user_fields=None, job_fields=None):
        user = self.user_id
        if user_fields and self.user is not None:
            user = {"_id": self.user.id}
            user.update({field: getattr(self.user, field) for field in user_fields})
        job = self.job_id
        if job_fields and self.job is not None:
            full = self.job.to_dict(owner_fields=("name", "phone"))
            job = {"_id": self.job.id}
            job.update({field: full[field] for field in job_fields})
        return {
            "_id": self.id,
            "userId": user,
            "jobId": job,
            "coverLetter": self.cover_letter,
            "resumeFile": self.resume,
            "userInfo": self.user_info,
            "status": self.status,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class Review(db.Model):
    __tablename__ = "review"
    __table_args__ = (db.UniqueConstraint("user_id", "job_id", name="uq_review_user_job"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    job_id = db.Column(db.Integer, db.ForeignKey("job.id"), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self, with_user=False):
        user = {"_id": self.user.id, "name": self.user.name} if with_user else self.user_id
        return {
            "_id": self.id,
            "userId": user,
            "jobId": self.job_id,
            "rating": self.rating,
            "comment": self.comment,
            "createdAt": _iso(self.created_at),
        }


class NotificationRecord(db.Model):
    """Row behind the database notification store."""

    __tablename__ = "notification"

    id = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.Integer, index=True)
    recipient_role = db.Column(db.String(20), index=True)
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(200))
    message = db.Column(db.Text)
    job_id = db.Column(db.Integer)
    application_id = db.Column(db.Integer)
    extra = db.Column(db.JSON)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)
    read = db.Column(db.Boolean, nullable=False, default=False)

"""Notification records, their stores, and the notification endpoints.

Every notification is appended to the configured store (so it can be pulled
through the REST endpoints) and pushed once over the socket layer. A push
with no live subscriber is dropped; the stored copy is all that remains.
"""
import abc
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from flask import Blueprint, abort, current_app, g, jsonify, request
from sqlalchemy import and_, false, or_
from sqlalchemy.exc import SQLAlchemyError

from auth import token_required
from forms import NotificationForm
from models import Application, Job, NotificationRecord, db
from sockets import publish

logger = logging.getLogger(__name__)

bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")

ADMIN_MESSAGE = "admin_message"

# applicant-facing phrases, shown verbatim in the UI
STATUS_MESSAGES = {
    "pending": "is under review",
    "reviewed": "has been reviewed",
    "interview": "has been shortlisted for interview",
    "accepted": "has been accepted",
    "rejected": "has been rejected",
}

EMPLOYER_STATUS_MESSAGES = {
    "pending": "marked as pending",
    "reviewed": "marked as reviewed",
    "interview": "shortlisted for interview",
    "accepted": "accepted",
    "rejected": "rejected",
}


@dataclass
class Notification:
    type: str
    title: str
    message: str
    user_id: Optional[int] = None
    recipient_role: Optional[str] = None
    job_id: Optional[int] = None
    application_id: Optional[int] = None
    extra: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.utcnow)
    read: bool = False

    def is_visible_to(self, viewer):
        return (
            self.user_id == viewer.id
            or self.recipient_role == viewer.role
            or (self.type == ADMIN_MESSAGE and viewer.role == "admin")
        )

    def to_dict(self):
        data = {
            "id": self.id,
            "userId": self.user_id,
            "recipientRole": self.recipient_role,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "jobId": self.job_id,
            "applicationId": self.application_id,
            "timestamp": self.timestamp.isoformat(),
            "read": self.read,
        }
        data.update(self.extra)
        return data


class NotificationStore(abc.ABC):
    @abc.abstractmethod
    def append(self, notification):
        """Keep ``notification``."""

    @abc.abstractmethod
    def list_for(self, viewer):
        """Notifications ``viewer`` may see, oldest first."""

    @abc.abstractmethod
    def mark_read(self, notification_id, viewer):
        """Mark one notification read. Returns whether anything matched."""

    @abc.abstractmethod
    def mark_all_read(self, viewer):
        """Mark everything addressed to ``viewer`` read. Returns the count."""


class InMemoryNotificationStore(NotificationStore):
    """Process-lifetime list; everything is lost on restart."""

    def __init__(self):
        self._items = []
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._items)

    def __iter__(self):
        with self._lock:
            return iter(list(self._items))

    def clear(self):
        with self._lock:
            self._items.clear()

    def append(self, notification):
        with self._lock:
            self._items.append(notification)

    def list_for(self, viewer):
        with self._lock:
            return [n for n in self._items if n.is_visible_to(viewer)]

    def mark_read(self, notification_id, viewer):
        with self._lock:
            for n in self._items:
                if n.id == notification_id and (
                    n.user_id == viewer.id or n.recipient_role == viewer.role or n.user_id is None
                ):
                    n.read = True
                    return True
        return False

    def mark_all_read(self, viewer):
        count = 0
        with self._lock:
            for n in self._items:
                if (
                    n.user_id == viewer.id
                    or n.recipient_role == viewer.role
                    or (n.user_id is None and n.type == ADMIN_MESSAGE and viewer.role == "admin")
                ):
                    n.read = True
                    count += 1
        return count


class DatabaseNotificationStore(NotificationStore):
    """Notifications kept in the ``notification`` table."""

    @staticmethod
    def _commit():
        # leave the request session usable for the caller
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

    @staticmethod
    def _from_record(record):
        return Notification(
            id=record.id,
            user_id=record.user_id,
            recipient_role=record.recipient_role,
            type=record.type,
            title=record.title,
            message=record.message,
            job_id=record.job_id,
            application_id=record.application_id,
            extra=dict(record.extra or {}),
            timestamp=record.timestamp,
            read=record.read,
        )

    def append(self, notification):
        db.session.add(
            NotificationRecord(
                id=notification.id,
                user_id=notification.user_id,
                recipient_role=notification.recipient_role,
                type=notification.type,
                title=notification.title,
                message=notification.message,
                job_id=notification.job_id,
                application_id=notification.application_id,
                extra=notification.extra,
                timestamp=notification.timestamp,
                read=notification.read,
            )
        )
        self._commit()

    def list_for(self, viewer):
        admin_clause = NotificationRecord.type == ADMIN_MESSAGE if viewer.role == "admin" else false()
        records = (
            NotificationRecord.query.filter(
                or_(
                    NotificationRecord.user_id == viewer.id,
                    NotificationRecord.recipient_role == viewer.role,
                    admin_clause,
                )
            )
            .order_by(NotificationRecord.timestamp)
            .all()
        )
        return [self._from_record(record) for record in records]

    def mark_read(self, notification_id, viewer):
        updated = (
            NotificationRecord.query.filter(
                NotificationRecord.id == notification_id,
                or_(
                    NotificationRecord.user_id == viewer.id,
                    NotificationRecord.recipient_role == viewer.role,
                    NotificationRecord.user_id.is_(None),
                ),
            )
            .update({"read": True}, synchronize_session=False)
        )
        self._commit()
        return updated > 0

    def mark_all_read(self, viewer):
        admin_clause = false()
        if viewer.role == "admin":
            admin_clause = and_(
                NotificationRecord.user_id.is_(None), NotificationRecord.type == ADMIN_MESSAGE
            )
        updated = (
            NotificationRecord.query.filter(
                or_(
                    NotificationRecord.user_id == viewer.id,
                    NotificationRecord.recipient_role == viewer.role,
                    admin_clause,
                )
            )
            .update({"read": True}, synchronize_session=False)
        )
        self._commit()
        return updated


def make_store(backend):
    if backend == "database":
        return DatabaseNotificationStore()
    if backend == "memory":
        return InMemoryNotificationStore()
    raise ValueError(f"Unknown notification backend: {backend!r}")


def get_store():
    return current_app.extensions["notification_store"]


def notify(**fields):
    """Store a notification and push it to its channel."""
    notification = Notification(**fields)
    get_store().append(notification)
    if not publish(notification):
        logger.debug("No live subscriber for notification %s", notification.id)
    return notification


# ================= WORKFLOW NOTIFICATIONS =================
def notify_new_application(application):
    job, applicant = application.job, application.user
    message = f'{applicant.name} has applied for "{job.title}"'
    return [
        notify(
            user_id=job.owner_id,
            type="new_application",
            title="New Job Application",
            message=message,
            job_id=job.id,
            application_id=application.id,
        ),
        notify(
            recipient_role="admin",
            type="new_application_admin",
            title="New Job Application Submitted",
            message=message,
            job_id=job.id,
            application_id=application.id,
        ),
    ]


def notify_job_posted(job):
    company = job.owner.business_name or job.owner.name
    return [
        notify(
            recipient_role="jobseeker",
            type="new_job",
            title="New Job Posted",
            message=f'A new job "{job.title}" has been posted by {company}',
            job_id=job.id,
            extra={"jobTitle": job.title, "companyName": company},
        ),
        notify(
            recipient_role="admin",
            type="new_job_admin",
            title="New Job Posted by Employer",
            message=f'Employer has posted a new job: "{job.title}"',
            job_id=job.id,
        ),
        notify(
            user_id=job.owner_id,
            type="job_posted",
            title="Job Posted Successfully",
            message=f'Your job "{job.title}" has been posted successfully',
            job_id=job.id,
        ),
    ]


def notify_applicant_status(application, status):
    job = application.job
    phrase = STATUS_MESSAGES.get(status, "status has been updated")
    return notify(
        user_id=application.user_id,
        type="application_status",
        title="Application Status Updated",
        message=f'Your application for "{job.title}" at {job.owner.name} {phrase}',
        job_id=job.id,
        application_id=application.id,
    )


def notify_employer_status(application, status):
    job = application.job
    phrase = EMPLOYER_STATUS_MESSAGES.get(status, "updated the status of")
    return notify(
        user_id=job.owner_id,
        type="employer_status_update",
        title="Application Status Updated",
        message=f'You have {phrase} an application for "{job.title}"',
        application_id=application.id,
    )


# ================= ROUTES =================
@bp.route("", methods=["GET"])
@token_required()
def list_notifications():
    return jsonify([n.to_dict() for n in get_store().list_for(g.user)])


@bp.route("/<notification_id>/read", methods=["PUT"])
@token_required()
def mark_read(notification_id):
    # Unknown ids still report success so the client never shows an error
    # state for a notification it already dropped.
    if not get_store().mark_read(notification_id, g.user):
        logger.info("Notification %s not found for user %s", notification_id, g.user.id)
    return jsonify({"message": "Notification marked as read"})


@bp.route("/read-all", methods=["PUT"])
@token_required()
def mark_all_read():
    count = get_store().mark_all_read(g.user)
    logger.debug("Marked %d notifications read for user %s", count, g.user.id)
    return jsonify({"message": "All notifications marked as read"})


@bp.route("/send", methods=["POST"])
@token_required()
def send_notification():
    payload = request.get_json(silent=True) or {}
    form = NotificationForm.from_payload(payload, drop_empty=True).validate_or_abort()
    notification = notify(
        user_id=form.user_id.data,
        recipient_role=form.recipient_role.data or None,
        type=form.type.data,
        title=form.title.data,
        message=form.message.data,
        job_id=form.job_id.data,
        application_id=form.application_id.data,
    )
    return jsonify({"message": "Notification sent successfully", "notification": notification.to_dict()}), 201


@bp.route("/job-posted", methods=["POST"])
@token_required("owner")
def job_posted():
    job_id = (request.get_json(silent=True) or {}).get("jobId")
    if not job_id:
        abort(400, description="jobId is required")
    job = Job.query.get_or_404(job_id, description="Job not found")
    if job.owner_id != g.user.id:
        abort(401, description="Not authorized")
    sent = notify_job_posted(job)
    return jsonify(
        {"message": "Job posted notifications sent successfully", "notifications": [n.to_dict() for n in sent]}
    ), 201


@bp.route("/new-application", methods=["POST"])
@token_required("jobseeker")
def new_application():
    application_id = (request.get_json(silent=True) or {}).get("applicationId")
    if not application_id:
        abort(400, description="applicationId is required")
    application = Application.query.get_or_404(application_id, description="Application not found")
    if application.user_id != g.user.id:
        abort(401, description="Not authorized")
    sent = notify_new_application(application)
    return jsonify(
        {"message": "Application notifications sent successfully", "notifications": [n.to_dict() for n in sent]}
    ), 201

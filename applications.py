import logging

from flask import Blueprint, abort, g, jsonify, request

from auth import token_required
from forms import StatusForm
from models import Application, User, db
from notifications import notify_applicant_status, notify_employer_status

logger = logging.getLogger(__name__)

bp = Blueprint("applications", __name__, url_prefix="/api/applications")

APPLICANT_FIELDS = ("name", "email", "role", "phone", "address", "bio")
JOB_FIELDS = ("title", "ownerId", "workType", "jobType", "salary", "salaryType", "location", "status")


def can_manage(user, job):
    return user.role == "admin" or (job is not None and job.owner_id == user.id)


def change_status(application_id):
    """Move an application to the status in the request body.

    Only an admin or the job's owner may do this. The applicant and the
    owner are notified afterwards; a failed notification is logged and
    does not undo the update.
    """
    application = Application.query.get_or_404(application_id, description="Application not found")

    if not can_manage(g.user, application.job):
        abort(401, description="Not authorized to update this application")

    form = StatusForm.from_payload(request.get_json(silent=True)).validate_or_abort()

    status = form.status.data
    application.status = status
    db.session.commit()
    logger.info("Application %s moved to %s by user %s", application.id, status, g.user.id)

    try:
        notify_applicant_status(application, status)
    except Exception:
        logger.exception("Failed to send application status notification for %s", application.id)

    try:
        notify_employer_status(application, status)
    except Exception:
        logger.exception("Failed to send employer status notification for %s", application.id)

    return jsonify(application.to_dict())


# ================= ROUTES =================
@bp.route("/<int:application_id>")
@token_required()
def get_application(application_id):
    application = Application.query.get_or_404(application_id, description="Application not found")

    if not (can_manage(g.user, application.job) or application.user_id == g.user.id):
        abort(401, description="Not authorized to view this application")

    return jsonify(application.to_dict(user_fields=APPLICANT_FIELDS, job_fields=JOB_FIELDS))


@bp.route("/<int:application_id>/status", methods=["PUT"])
@token_required()
def update_status(application_id):
    return change_status(application_id)


@bp.route("/user/<int:user_id>")
@token_required()
def user_applications(user_id):
    if g.user.role != "admin" and g.user.id != user_id:
        abort(401, description="Not authorized to view these applications")

    applications = (
        Application.query.filter_by(user_id=user_id)
        .order_by(Application.created_at.desc(), Application.id.desc())
        .all()
    )
    return jsonify([a.to_dict(job_fields=JOB_FIELDS) for a in applications])


@bp.route("/users/<int:user_id>")
@token_required()
def get_user(user_id):
    user = User.query.get_or_404(user_id, description="User not found")
    if g.user.role == "admin" or g.user.id == user.id:
        return jsonify(user.to_dict())
    return jsonify(user.to_public_dict())


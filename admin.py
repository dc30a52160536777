import logging

from flask import Blueprint, abort, g, jsonify, request

from auth import token_required
from forms import UserModerationForm
from models import Application, Job, User, db

logger = logging.getLogger(__name__)

bp = Blueprint("admin", __name__, url_prefix="/api/admin")

ACTIVITY_LIMIT = 10
JOB_ACTIONS = {"flag": "inactive", "remove": "closed"}


@bp.route("/stats")
@token_required("admin")
def stats():
    def users(role=None):
        query = User.query
        return query.filter_by(role=role).count() if role else query.count()

    def jobs(status=None):
        query = Job.query
        return query.filter_by(status=status).count() if status else query.count()

    return jsonify(
        {
            "users": {
                "total": users(),
                "jobSeekers": users("jobseeker"),
                "owners": users("owner"),
                "admins": users("admin"),
            },
            "jobs": {
                "total": jobs(),
                "active": jobs("active"),
                "inactive": jobs("inactive"),
                "closed": jobs("closed"),
            },
            "applications": {"total": Application.query.count()},
        }
    )


@bp.route("/activity")
@token_required("admin")
def activity():
    """Latest registrations, postings and applications, newest first."""
    events = []
    for user in User.query.order_by(User.created_at.desc()).limit(ACTIVITY_LIMIT):
        events.append({"action": "User registered", "user": user.name, "timestamp": user.created_at})
    for job in Job.query.order_by(Job.created_at.desc()).limit(ACTIVITY_LIMIT):
        events.append(
            {
                "action": "Job posted",
                "job": job.title,
                "company": job.owner.business_name or job.owner.name,
                "timestamp": job.created_at,
            }
        )
    for application in Application.query.order_by(Application.created_at.desc()).limit(ACTIVITY_LIMIT):
        events.append(
            {
                "action": "Application submitted",
                "user": application.user.name,
                "job": application.job.title,
                "timestamp": application.created_at,
            }
        )

    events.sort(key=lambda event: event["timestamp"], reverse=True)
    events = events[:ACTIVITY_LIMIT]
    for number, event in enumerate(events, start=1):
        event["id"] = number
        event["timestamp"] = event["timestamp"].isoformat()
    return jsonify(events)


@bp.route("/users")
@token_required("admin")
def all_users():
    return jsonify([user.to_dict() for user in User.query.order_by(User.id).all()])


@bp.route("/users/<int:user_id>", methods=["PUT"])
@token_required("admin")
def update_user(user_id):
    user = User.query.get_or_404(user_id, description="User not found")
    payload = request.get_json(silent=True) or {}
    form = UserModerationForm.from_payload(payload).validate_or_abort()

    if user.id == g.user.id and ("isActive" in payload or form.role.data):
        abort(400, description="You cannot change your own account status")

    if "isActive" in payload:
        user.is_active = form.is_active.data
    if form.role.data:
        user.role = form.role.data
    db.session.commit()
    logger.info("Admin %s updated user %s", g.user.id, user.id)

    return jsonify(user.to_dict())


@bp.route("/users/<int:user_id>", methods=["DELETE"])
@token_required("admin")
def delete_user(user_id):
    user = User.query.get_or_404(user_id, description="User not found")

    if user.id == g.user.id:
        abort(400, description="You cannot delete yourself as an admin")

    # free the slots this user held on other owners' jobs
    for application in user.applications:
        if application.job.owner_id != user.id:
            Job.decrement_applicants(application.job_id)

    # owned jobs, their applications and the user's own applications go too
    db.session.delete(user)
    db.session.commit()
    logger.info("Admin %s removed user %s", g.user.id, user_id)

    return jsonify({"message": "User removed successfully"})


@bp.route("/jobs/<int:job_id>", methods=["PUT"])
@token_required("admin")
def moderate_job(job_id):
    job = Job.query.get_or_404(job_id, description="Job not found")
    action = (request.get_json(silent=True) or {}).get("action")

    if action not in JOB_ACTIONS:
        abort(400, description="Action must be 'flag' or 'remove'")

    job.status = JOB_ACTIONS[action]
    db.session.commit()
    return jsonify(job.to_dict())


@bp.route("/companies/<int:company_id>", methods=["DELETE"])
@token_required("admin")
def delete_company(company_id):
    company = db.session.get(User, company_id)
    if company is None or company.role != "owner":
        abort(404, description="Company not found")

    logger.info("Removing company %s with %d jobs", company.id, len(company.jobs_posted))

    # cascades to the company's jobs and every application on them
    db.session.delete(company)
    db.session.commit()

    return jsonify({"message": "Company removed successfully"})

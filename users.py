from flask import Blueprint, g, jsonify, request

from auth import token_required
from forms import ProfileForm
from models import Application, Job, db

bp = Blueprint("users", __name__, url_prefix="/api/users")

RECENT_APPLICATIONS = 5
ADDRESS_FIELDS = ("street", "city", "state", "zipCode", "country")


@bp.route("/dashboard")
@token_required("jobseeker")
def dashboard():
    user = g.user
    applications = (
        Application.query.filter_by(user_id=user.id)
        .order_by(Application.created_at.desc(), Application.id.desc())
        .all()
    )
    return jsonify(
        {
            "user": user.to_dict(),
            "appliedJobs": [a.to_dict(job_fields=("title", "ownerId")) for a in applications],
            "savedJobs": [job.to_dict(owner_fields=("name",)) for job in user.saved_jobs],
        }
    )


@bp.route("/owner-dashboard")
@token_required("owner")
def owner_dashboard():
    owner = g.user
    jobs = Job.query.filter_by(owner_id=owner.id).order_by(Job.id).all()
    job_ids = [job.id for job in jobs]

    applications = Application.query.filter(Application.job_id.in_(job_ids))
    recent = (
        applications.order_by(Application.created_at.desc(), Application.id.desc())
        .limit(RECENT_APPLICATIONS)
        .all()
    )

    return jsonify(
        {
            "owner": owner.to_dict(),
            "jobs": [job.to_dict() for job in jobs],
            "recentApplications": [
                a.to_dict(user_fields=("name", "email", "phone"), job_fields=("title",)) for a in recent
            ],
            "stats": {
                "totalJobs": len(jobs),
                "activeJobs": sum(1 for job in jobs if job.status == "active"),
                "totalApplicants": applications.count(),
            },
        }
    )


@bp.route("/profile", methods=["PUT"])
@token_required()
def update_profile():
    user = g.user
    payload = request.get_json(silent=True) or {}
    form = ProfileForm.from_payload(payload).validate_or_abort()

    user.name = form.name.data or user.name
    user.phone = form.phone.data or user.phone
    user.bio = form.bio.data or user.bio
    address = payload.get("address")
    if isinstance(address, dict) and address:
        user.address = {field: address.get(field) for field in ADDRESS_FIELDS}
    db.session.commit()

    data = user.to_dict()
    return jsonify({key: data[key] for key in (
        "_id", "name", "email", "role", "phone", "address", "bio", "profilePicture",
    )})

import logging
import os
import time

from flask import Blueprint, abort, current_app, g, jsonify, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.utils import secure_filename

from applications import can_manage, change_status
from auth import token_required
from forms import JobForm, JobUpdateForm, ReviewForm
from models import Application, Job, Review, db
from notifications import notify_new_application

logger = logging.getLogger(__name__)

bp = Blueprint("jobs", __name__, url_prefix="/api/jobs")

ALLOWED_EXTENSIONS = {"pdf", "doc", "docx"}
LIMIT_REACHED = "This job has reached its application limit"
ALREADY_APPLIED = "Already applied for this job"


def allowed_file(filename):
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def _skills(value):
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(skill, str) for skill in value):
        abort(400, description="requiredSkills must be a list of strings")
    return [skill.strip() for skill in value if skill.strip()]


def _managed_job(job_id):
    job = Job.query.get_or_404(job_id, description="Job not found")
    if not can_manage(g.user, job):
        abort(401, description="Not authorized")
    return job


# ================= JOB DIRECTORY =================
@bp.route("", methods=["POST"])
@token_required("owner")
def create_job():
    payload = request.get_json(silent=True) or {}
    location = payload.get("location")
    if not isinstance(location, dict) or not all(location.get(k) for k in ("city", "state", "country")):
        abort(400, description="City, state, and country are required in location")

    form = JobForm.from_payload(payload, drop_empty=True).validate_or_abort()

    job = Job(
        title=form.title.data,
        description=form.description.data or "",
        salary=form.salary.data,
        city=location["city"],
        state=location["state"],
        country=location["country"],
        work_type=form.work_type.data,
        job_type=form.job_type.data,
        salary_type=form.salary_type.data,
        required_skills=_skills(payload.get("requiredSkills")) or [],
        member_limit=form.member_limit.data or 0,
        owner_id=g.user.id,
    )
    db.session.add(job)
    db.session.commit()
    logger.info("Job %s posted by owner %s", job.id, g.user.id)

    return jsonify(job.to_dict()), 201


@bp.route("", methods=["GET"])
def list_jobs():
    jobs = Job.query.filter_by(status="active").order_by(Job.created_at.desc(), Job.id.desc()).all()
    return jsonify([job.to_dict(owner_fields=("name",)) for job in jobs])


@bp.route("/<int:job_id>", methods=["GET"])
def get_job(job_id):
    job = Job.query.get_or_404(job_id, description="Job not found")
    return jsonify(job.to_dict(owner_fields=("name", "phone")))


@bp.route("/<int:job_id>", methods=["PUT"])
@token_required()
def update_job(job_id):
    job = _managed_job(job_id)
    payload = request.get_json(silent=True) or {}
    form = JobUpdateForm.from_payload(payload).validate_or_abort()

    # unset or empty values keep what the job already has
    job.title = form.title.data or job.title
    job.description = form.description.data or job.description
    job.salary = form.salary.data or job.salary
    location = payload.get("location")
    if isinstance(location, dict):
        job.city = location.get("city") or job.city
        job.state = location.get("state") or job.state
        job.country = location.get("country") or job.country
    job.work_type = form.work_type.data or job.work_type
    job.job_type = form.job_type.data or job.job_type
    job.salary_type = form.salary_type.data or job.salary_type
    job.required_skills = _skills(payload.get("requiredSkills")) or job.required_skills
    job.status = form.status.data or job.status
    # an explicit 0 lifts the cap
    if form.member_limit.data is not None:
        job.member_limit = form.member_limit.data

    db.session.commit()
    return jsonify(job.to_dict())


@bp.route("/<int:job_id>", methods=["DELETE"])
@token_required()
def delete_job(job_id):
    job = _managed_job(job_id)
    db.session.delete(job)
    db.session.commit()
    logger.info("Job %s removed by user %s", job_id, g.user.id)
    return jsonify({"message": "Job removed"})


@bp.route("/<int:job_id>/applications")
@token_required()
def job_applications(job_id):
    job = _managed_job(job_id)
    applications = Application.query.filter_by(job_id=job.id).order_by(Application.id).all()
    return jsonify([a.to_dict(user_fields=("name", "email", "phone")) for a in applications])


# ================= APPLY =================
@bp.route("/<int:job_id>/apply", methods=["POST"])
@token_required("jobseeker")
def apply_job(job_id):
    job = Job.query.get_or_404(job_id, description="Job not found")

    if job.is_full:
        abort(400, description=LIMIT_REACHED)

    if Application.query.filter_by(job_id=job.id, user_id=g.user.id).first():
        abort(400, description=ALREADY_APPLIED)

    resume = request.files.get("resume")
    filename = None
    if resume and resume.filename:
        if not allowed_file(resume.filename):
            abort(400, description="Upload valid resume")
        filename = f"{int(time.time() * 1000)}_{secure_filename(resume.filename)}"

    form = request.form if request.form else (request.get_json(silent=True) or {})
    application = Application(
        job_id=job.id,
        user_id=g.user.id,
        cover_letter=form.get("coverLetter", ""),
        resume=f"uploads/{filename}" if filename else "",
        user_info=g.user.contact_snapshot(),
        status="pending",
    )
    db.session.add(application)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        abort(400, description=ALREADY_APPLIED)

    if not Job.increment_if_below_limit(job.id):
        db.session.rollback()
        abort(400, description=LIMIT_REACHED)

    # the file is on disk before the row is, and removed if the row never lands
    path = os.path.join(current_app.config["UPLOAD_FOLDER"], filename) if filename else None
    if path:
        resume.save(path)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        if path and os.path.exists(path):
            os.remove(path)
        raise

    try:
        notify_new_application(application)
    except Exception:
        logger.exception("Failed to send application notifications for %s", application.id)

    return jsonify(application.to_dict()), 201


@bp.route("/applications/<int:application_id>/status", methods=["PUT"])
@token_required()
def update_application_status(application_id):
    return change_status(application_id)


@bp.route("/applications/<int:application_id>", methods=["DELETE"])
@token_required()
def delete_application(application_id):
    application = Application.query.get_or_404(application_id, description="Application not found")

    if application.user_id != g.user.id and not can_manage(g.user, application.job):
        abort(401, description="Not authorized")

    job_id = application.job_id
    db.session.delete(application)
    Job.decrement_applicants(job_id)
    db.session.commit()
    logger.info("Application %s removed by user %s", application_id, g.user.id)
    return jsonify({"message": "Application removed"})


# ================= SAVED JOBS =================
@bp.route("/<int:job_id>/save", methods=["POST"])
@token_required("jobseeker")
def save_job(job_id):
    job = Job.query.get_or_404(job_id, description="Job not found")
    user = g.user

    if job in user.saved_jobs:
        user.saved_jobs.remove(job)
        db.session.commit()
        return jsonify({"message": "Job removed from saved jobs", "saved": False})

    user.saved_jobs.append(job)
    db.session.commit()
    return jsonify({"message": "Job saved successfully", "saved": True})


# ================= REVIEWS =================
@bp.route("/<int:job_id>/review", methods=["POST"])
@token_required()
def add_review(job_id):
    job = Job.query.get_or_404(job_id, description="Job not found")
    form = ReviewForm.from_payload(request.get_json(silent=True)).validate_or_abort()

    if Review.query.filter_by(user_id=g.user.id, job_id=job.id).first():
        abort(400, description="Already reviewed this job")

    review = Review(user_id=g.user.id, job_id=job.id, rating=form.rating.data, comment=form.comment.data)
    db.session.add(review)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        abort(400, description="Already reviewed this job")

    return jsonify(review.to_dict()), 201


@bp.route("/<int:job_id>/reviews")
def job_reviews(job_id):
    reviews = (
        Review.query.filter_by(job_id=job_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .all()
    )
    return jsonify([review.to_dict(with_user=True) for review in reviews])

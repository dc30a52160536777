import re

from flask import abort
from flask_wtf import FlaskForm
from wtforms import (
    BooleanField, FloatField, IntegerField, PasswordField, SelectField,
    StringField, TextAreaField,
)
from wtforms.validators import AnyOf, DataRequired, Email, Length, NumberRange, ValidationError

from models import (
    APPLICATION_STATUSES, JOB_STATUSES, JOB_TYPES, ROLES, SALARY_TYPES, WORK_TYPES,
)


def _choices(values):
    return [(value, value) for value in values]


def _snake(key):
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", key).lower()


class AnyOfOrEmpty(AnyOf):
    """AnyOf that lets an unset value through."""

    def __call__(self, form, field):
        if field.data:
            super().__call__(form, field)


class JsonFloatField(FloatField):
    """FloatField that also coerces values handed in through ``data=``."""

    def process_data(self, value):
        if value is None or value == "":
            self.data = None
            return
        try:
            self.data = float(value)
        except (ValueError, TypeError) as exc:
            self.data = None
            raise ValueError(self.gettext("Not a valid float value.")) from exc


class ApiForm(FlaskForm):
    """FlaskForm fed from a decoded JSON body instead of request.form."""

    class Meta:
        csrf = False

    @classmethod
    def from_payload(cls, payload, drop_empty=False):
        data = {_snake(key): value for key, value in (payload or {}).items()}
        if drop_empty:
            # unset, null and empty values fall back to the field defaults
            data = {key: value for key, value in data.items() if value not in (None, "", [])}
        return cls(formdata=None, data=data)

    def validate_or_abort(self):
        if not self.validate():
            name, errors = next(iter(self.errors.items()))
            abort(400, description=f"{self[name].label.text}: {errors[0]}")
        return self


class SignupForm(ApiForm):
    name = StringField("Name", validators=[DataRequired(), Length(min=2, max=100)])
    email = StringField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=6)])
    role = SelectField("Role", choices=_choices(ROLES), default="jobseeker")
    business_name = StringField("Business name", validators=[Length(max=200)])
    admin_code = StringField("Admin code")


class LoginForm(ApiForm):
    email = StringField("Email", validators=[DataRequired(), Email()])
    password = PasswordField("Password", validators=[DataRequired()])


class FederatedLoginForm(ApiForm):
    uid = StringField("Provider id", validators=[DataRequired()])
    email = StringField("Email", validators=[DataRequired(), Email()])
    name = StringField("Name", validators=[Length(max=100)])
    photo_url = StringField("Photo URL", validators=[Length(max=500)])
    role = SelectField("Role", choices=_choices(("jobseeker", "owner")), default="jobseeker")
    business_name = StringField("Business name", validators=[Length(max=200)])


class JobForm(ApiForm):
    title = StringField("Job Title", validators=[DataRequired(), Length(max=200)])
    description = TextAreaField("Job Description")
    salary = JsonFloatField(
        "Salary", validators=[NumberRange(min=0, message="A salary of 0 or more is required.")]
    )
    work_type = SelectField("Work type", choices=_choices(WORK_TYPES), default="onsite")
    job_type = SelectField("Job type", choices=_choices(JOB_TYPES), default="fulltime")
    salary_type = SelectField("Salary type", choices=_choices(SALARY_TYPES), default="annum")
    member_limit = IntegerField("Member limit", default=0)

    def validate_member_limit(form, field):
        if field.data is not None and field.data < 0:
            raise ValidationError("Must be 0 (no limit) or more.")


class JobUpdateForm(ApiForm):
    title = StringField("Job Title", validators=[Length(max=200)])
    description = TextAreaField("Job Description")
    salary = JsonFloatField("Salary")
    work_type = StringField("Work type", validators=[AnyOfOrEmpty(WORK_TYPES)])
    job_type = StringField("Job type", validators=[AnyOfOrEmpty(JOB_TYPES)])
    salary_type = StringField("Salary type", validators=[AnyOfOrEmpty(SALARY_TYPES)])
    status = StringField("Status", validators=[AnyOfOrEmpty(JOB_STATUSES)])
    member_limit = IntegerField("Member limit")

    def validate_member_limit(form, field):
        if field.data is not None and field.data < 0:
            raise ValidationError("Must be 0 (no limit) or more.")


class StatusForm(ApiForm):
    status = SelectField("Status", choices=_choices(APPLICATION_STATUSES), validators=[DataRequired()])


class ReviewForm(ApiForm):
    rating = IntegerField("Rating", validators=[DataRequired(), NumberRange(min=1, max=5)])
    comment = TextAreaField("Comment")


class NotificationForm(ApiForm):
    user_id = IntegerField("User")
    recipient_role = StringField("Recipient role", validators=[AnyOfOrEmpty(ROLES)])
    type = StringField("Type", validators=[DataRequired(), Length(max=50)])
    title = StringField("Title", validators=[DataRequired(), Length(max=200)])
    message = TextAreaField("Message", validators=[DataRequired()])
    job_id = IntegerField("Job")
    application_id = IntegerField("Application")


class ProfileForm(ApiForm):
    name = StringField("Name", validators=[Length(max=100)])
    phone = StringField("Phone", validators=[Length(max=30)])
    bio = TextAreaField("Bio")


class UserModerationForm(ApiForm):
    # only applied when the key is present in the request body
    is_active = BooleanField("Active")
    role = StringField("Role", validators=[AnyOfOrEmpty(ROLES)])

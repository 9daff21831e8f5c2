from marshmallow import Schema, fields, pre_load, validate, validates

from models.schemas.common import PASSWORD_MAX_LENGTH, normalize_email, validate_password


class _EmailNormalizingSchema(Schema):
    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data)
            data["email"] = normalize_email(data["email"])
        return data


class RegisterSchema(_EmailNormalizingSchema):
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)

    @validates("password")
    def _validate_password(self, value, **kwargs):
        validate_password(value)


class LoginSchema(_EmailNormalizingSchema):
    # Presence only: a malformed email is just bad credentials.
    email = fields.String(required=True, validate=validate.Length(min=1))
    password = fields.String(
        required=True, load_only=True, validate=validate.Length(min=1, max=PASSWORD_MAX_LENGTH)
    )


class UserOutSchema(Schema):
    """Public user view. Never includes the password hash."""

    id = fields.String()
    email = fields.String()
    created_at = fields.DateTime(data_key="createdAt")


class PasswordResetRequestSchema(_EmailNormalizingSchema):
    email = fields.Email(required=True)


class PasswordResetConfirmSchema(Schema):
    token = fields.String(required=True)
    password = fields.String(required=True, load_only=True)

    @validates("password")
    def _validate_password(self, value, **kwargs):
        validate_password(value)


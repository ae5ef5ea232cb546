import logging
from datetime import datetime, timedelta, timezone as dt_timezone

import jwt
from django.conf import settings
from django.contrib.auth.hashers import make_password
from django.core.validators import validate_email
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from ..models import User, Branch
from .base_service import ValidationError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)


class AuthService:
    """Token issuance and verification; login itself lives outside this service."""

    JWT_ALGORITHM = 'HS256'

    @classmethod
    def _secret(cls):
        return getattr(settings, 'JWT_SECRET_KEY', settings.SECRET_KEY)

    @classmethod
    def _algorithm(cls):
        return getattr(settings, 'JWT_ALGORITHM', cls.JWT_ALGORITHM)

    @classmethod
    def generate_token(cls, user):
        now = datetime.now(dt_timezone.utc)
        payload = {
            'user_id': user.id,
            'role': user.role,
            'branch_id': user.branch_id,
            'exp': now + timedelta(days=getattr(settings, 'JWT_EXPIRY_DAYS', 7)),
            'iat': now,
        }
        return jwt.encode(payload, cls._secret(), algorithm=cls._algorithm())

    @classmethod
    def verify_token(cls, token):
        try:
            payload = jwt.decode(token, cls._secret(), algorithms=[cls._algorithm()])
            return User.objects.select_related('branch').get(id=payload['user_id'])
        except (jwt.ExpiredSignatureError, jwt.InvalidTokenError, KeyError, User.DoesNotExist):
            return None

    @classmethod
    @transaction.atomic
    def create_user(cls, first_name, email, password, role=User.RoleChoices.CASHIER,
                    branch_id=None, last_name=''):
        try:
            validate_email(email)
        except DjangoValidationError:
            raise ValidationError("Invalid email", "email")

        if len(password or '') < 4:
            raise ValidationError("Password must be at least 4 characters", "password")

        if role not in User.RoleChoices.values:
            raise ValidationError(f"Invalid role: {role}", "role")

        branch = None
        if role != User.RoleChoices.ADMIN:
            if branch_id is None:
                raise ValidationError("Branch is required for non-admin users", "branch_id")
            branch = Branch.objects.filter(id=branch_id).first()
            if not branch:
                raise NotFoundError("Branch", branch_id)

        if User.objects.filter(email=email).exists():
            raise ConflictError("Email already registered", details={"email": email})

        user = User.objects.create(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=make_password(password),
            role=role,
            branch=branch,
        )
        logger.info("User created: %s role=%s branch=%s", user.email, user.role, branch_id)
        return user

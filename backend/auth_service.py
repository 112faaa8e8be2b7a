"""
User accounts: registration, login and the password reset flow.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from sqlalchemy import or_
from sqlalchemy.orm import Session

import auth
import config
import mailer
import models
from constants import DEFAULT_ROLE
from errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

PASSWORD_RESET_SUBJECT = "Password reset - Restaurant management system"


def register_user(db: Session, data: Dict[str, Any]):
    username = data["username"].strip()
    email = data["email"].strip().lower()

    existing = db.query(models.User).filter(
        or_(models.User.email == email, models.User.name == username)
    ).first()
    if existing:
        raise ConflictError("Email or username is already registered")

    user = models.User(
        name=username,
        email=email,
        password=auth.get_password_hash(data["password"]),
        role=data.get("role") or DEFAULT_ROLE,
    )
    db.add(user)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(user)
    logger.info(f"Registered user {user.id} ({user.name}, role={user.role})")
    return user, auth.create_user_token(user)


def login_user(db: Session, data: Dict[str, Any]):
    user = auth.authenticate_user(db, data["username"].strip(), data["password"])
    if not user:
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        raise PermissionDeniedError("User is inactive. Contact the administrator")
    return user, auth.create_user_token(user)


def initiate_password_reset(db: Session, email: str) -> None:
    """
    Store a reset token for the account behind ``email`` and mail it.

    Unknown addresses and delivery failures are not reported back so the
    caller can answer every request the same way.
    """
    user = db.query(models.User).filter(models.User.email == email.strip().lower()).first()
    if not user:
        logger.info("Password reset requested for an unknown email")
        return

    token = secrets.token_hex(32)
    user.reset_password_token = token
    user.reset_password_expires = datetime.now(timezone.utc) + timedelta(
        minutes=config.PASSWORD_RESET_EXPIRE_MINUTES
    )
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    try:
        mailer.send_email(user.email, PASSWORD_RESET_SUBJECT, mailer.password_reset_email(token))
    except mailer.MailerError as e:
        logger.error(f"Could not send password reset email to user {user.id}: {e}")


def reset_password(db: Session, token: str, password: str) -> None:
    user = db.query(models.User).filter(
        models.User.reset_password_token == token,
        models.User.reset_password_expires > datetime.now(timezone.utc),
    ).first()
    if not user:
        raise ValidationError("Invalid or expired token")

    user.password = auth.get_password_hash(password)
    user.reset_password_token = None
    user.reset_password_expires = None
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Password reset for user {user.id}")


def get_profile(db: Session, user_id: int):
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user

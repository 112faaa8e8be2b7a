"""
Password hashing and JWT access tokens.
"""
import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

import config
from models import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SECRET_KEY_FILE = Path(".secret_key")


def _build_pwd_context() -> CryptContext:
    # some bcrypt releases fail passlib's backend check on first use
    try:
        context = CryptContext(schemes=["bcrypt"], deprecated="auto")
        context.hash("self-test")
        return context
    except Exception as e:
        logger.warning(f"bcrypt backend unusable ({e}), hashing with pbkdf2_sha256")
        return CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _load_secret_key() -> str:
    """SECRET_KEY from the environment, else a key persisted next to the process."""
    if config.SECRET_KEY:
        return config.SECRET_KEY

    if SECRET_KEY_FILE.exists():
        try:
            stored = SECRET_KEY_FILE.read_text(encoding="utf-8").strip()
            if stored:
                return stored
        except UnicodeDecodeError:
            logger.warning(f"{SECRET_KEY_FILE} is unreadable, replacing it")

    generated = secrets.token_urlsafe(32)
    SECRET_KEY_FILE.write_text(generated, encoding="utf-8")
    if os.name != "nt":
        SECRET_KEY_FILE.chmod(0o600)
    logger.warning(f"SECRET_KEY is not set; generated one in {SECRET_KEY_FILE}")
    return generated


pwd_context = _build_pwd_context()
SECRET_KEY = _load_secret_key()


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # hash in a format this context does not know
        return False


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.name == username).first()
    if user is None or not verify_password(password, user.password):
        return None
    return user


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {**data, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def create_user_token(user: User) -> str:
    return create_access_token({"sub": str(user.id), "role": user.role})


def verify_token(token: str) -> Optional[dict]:
    """Decoded claims, or None for expired, tampered or malformed tokens."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError:
        return None


def user_id_from_token(token: str) -> Optional[int]:
    payload = verify_token(token)
    if not payload:
        return None
    sub = str(payload.get("sub", ""))
    return int(sub) if sub.isdigit() else None

import hashlib
import hmac

import repositories
from loggers import setup_server_logger
from models import User

logger = setup_server_logger()

MIN_PASSWORD_LENGTH = 6


class AuthError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def hash_password(password: str) -> str:
    # Plain SHA-256 hex, the format already stored in the credentials table.
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def verify_password(password: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_password(password), stored_hash or "")


def _find_user(db, email: str) -> User:
    user = repositories.find_user_by_email(db, email)
    if not user:
        raise AuthError(404, "E-mail not registered. Ask an administrator to add it to the team.")
    if not user.active:
        raise AuthError(403, "This user is inactive.")
    return user


def login(db, email: str, password: str = None) -> dict:
    """Returns ``{"status": "ok", "user": ...}`` or ``{"status": "set_password_required", ...}`` on first access."""
    user = _find_user(db, email)
    stored = repositories.get_password_hash(db, user.id)

    if stored is None:
        return {"status": "set_password_required", "message": "First access: create a password.", "user": user}

    if not password:
        raise AuthError(400, "Password is required.")
    if not verify_password(password, stored):
        logger.info(f"Failed login for user {user.id}")
        raise AuthError(401, "Wrong password.")

    return {"status": "ok", "user": user}


def set_password(db, email: str, new_password: str, confirm_password: str) -> dict:
    user = _find_user(db, email)
    if not new_password or not confirm_password:
        raise AuthError(400, "Fill in and confirm the new password.")
    if new_password != confirm_password:
        raise AuthError(400, "Passwords do not match.")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise AuthError(400, f"Use a password with at least {MIN_PASSWORD_LENGTH} characters.")
    if repositories.get_password_hash(db, user.id) is not None:
        raise AuthError(409, "A password already exists for this user.")

    repositories.save_password_hash(db, user.id, hash_password(new_password))
    return {"status": "ok", "user": user}

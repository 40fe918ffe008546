import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.errors import DuplicateKeyError

import config
from database import USERS, create_document, get_db, parse_object_id
from errors import ConflictError, ForbiddenError, UnauthorizedError
from policy import Action, authorize, has_role
from schemas import Role

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# Helper functions for auth

def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(user_id, expires_delta: Optional[timedelta] = None):
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=config.ACCESS_TOKEN_EXPIRE_DAYS)
    )
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def sanitize_user(user: dict) -> dict:
    """Strip the password hash and expose the id as a string."""
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "role": user.get("role", Role.user.value),
        "created_at": user.get("created_at"),
        "updated_at": user.get("updated_at"),
    }


def normalize_email(email: str) -> str:
    return email.strip().lower()


def register(db, name: str, email: str, password: str):
    email = normalize_email(email)
    if db[USERS].find_one({"email": email}):
        raise ConflictError("Email already registered")

    user_doc = {
        "name": name.strip(),
        "email": email,
        "password_hash": get_password_hash(password),
        "role": Role.user.value,
    }
    try:
        user_id = create_document(db, USERS, user_doc)
    except DuplicateKeyError:
        # Lost a race with a concurrent registration for the same email.
        raise ConflictError("Email already registered")

    user = db[USERS].find_one({"_id": user_id})
    logger.info("Registered user %s", user_id)
    return sanitize_user(user), create_access_token(user_id)


def login(db, email: str, password: str):
    user = db[USERS].find_one({"email": normalize_email(email)})
    if not user or not verify_password(password, user["password_hash"]):
        logger.info("Failed login attempt")
        raise UnauthorizedError(INVALID_CREDENTIALS)
    return sanitize_user(user), create_access_token(user["_id"])


def authenticate(db, token: str) -> dict:
    """Resolve a bearer token to its user document."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Not authorized, token failed")

    user_id = parse_object_id(payload.get("sub"))
    if user_id is None:
        raise UnauthorizedError("Not authorized, token failed")

    user = db[USERS].find_one({"_id": user_id})
    if not user:
        raise UnauthorizedError("Not authorized, user not found")
    return user


def get_current_user(token: str = Depends(oauth2_scheme), db=Depends(get_db)):
    return authenticate(db, token)


def require_role(role: Role):
    """Build a dependency that admits only users holding ``role``."""

    def _require_role(user=Depends(get_current_user)):
        if not has_role(user, role):
            raise ForbiddenError(f"Access denied. {role.value.capitalize()} role required.")
        return user

    return _require_role


def require_capability(action: Action):
    """Build a dependency that admits only users the policy allows ``action``."""

    def _require_capability(user=Depends(get_current_user)):
        authorize(user, action)
        return user

    return _require_capability


can_manage_products = require_capability(Action.manage_products)
can_manage_orders = require_capability(Action.manage_orders)


def ensure_admin(db) -> bool:
    """Create the configured bootstrap admin if it does not exist yet."""
    email = normalize_email(config.ADMIN_EMAIL)
    if db[USERS].find_one({"email": email}):
        return False
    try:
        create_document(
            db,
            USERS,
            {
                "name": config.ADMIN_NAME,
                "email": email,
                "password_hash": get_password_hash(config.ADMIN_PASSWORD),
                "role": Role.admin.value,
            },
        )
    except DuplicateKeyError:
        return False
    logger.info("Created bootstrap admin account %s", email)
    return True

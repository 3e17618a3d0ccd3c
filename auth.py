"""
Authentication & authorization.

Password hashing, signed session tokens, the user (credential) store and the
per-request session checks. There is no server-side session table: every
protected request re-verifies the token and re-loads the user, so
deactivating an account cuts off its outstanding tokens on the next call.
"""
import logging
from datetime import timedelta
from typing import Optional

from bson import ObjectId
from fastapi import Depends, Request
from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

import config
from database import get_db, parse_object_id, serialize, utcnow
from errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)

ROLES = ("admin", "user")
MIN_PASSWORD_LENGTH = 6
HIDE_PASSWORD = {"password": 0}


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id, username: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    issued_at = utcnow()
    expire = issued_at + (expires_delta or timedelta(days=config.TOKEN_EXPIRE_DAYS))
    to_encode = {
        "userId": str(user_id),
        "username": username,
        "role": role,
        "iat": issued_at,
        "exp": expire,
    }
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry; raises InvalidTokenError on any failure."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError as exc:
        raise InvalidTokenError() from exc
    if not payload.get("userId"):
        raise InvalidTokenError()
    return payload


def public_user(doc: dict) -> dict:
    user = serialize(doc)
    user.pop("password", None)
    return user


class UserStore:
    def __init__(self, db):
        self.collection = db["user"]

    def create(self, username: str, email: str, password: str, role: str = "user") -> dict:
        if not username or not email or not password:
            raise ValidationError("Username, email, and password are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")

        username = username.strip()
        email = email.strip().lower()
        if self.collection.find_one({"$or": [{"username": username}, {"email": email}]}):
            raise ConflictError("User with this username or email already exists")

        now = utcnow()
        doc = {
            "username": username,
            "email": email,
            "password": hash_password(password),
            "role": role,
            "active": True,
            "last_login": None,
            "created_at": now,
            "updated_at": now,
        }
        try:
            doc["_id"] = self.collection.insert_one(doc).inserted_id
        except DuplicateKeyError as exc:
            # lost a race against a concurrent insert; the unique index decided
            raise ConflictError("User with this username or email already exists") from exc
        return public_user(doc)

    def authenticate(self, identifier: str, password: str) -> Optional[dict]:
        """Match username or email among active users and stamp last_login."""
        user = self.collection.find_one(
            {"$or": [{"username": identifier}, {"email": identifier.strip().lower()}], "active": True}
        )
        if not user or not verify_password(password, user["password"]):
            return None
        user = self.collection.find_one_and_update(
            {"_id": user["_id"]},
            {"$set": {"last_login": utcnow()}},
            projection=HIDE_PASSWORD,
            return_document=ReturnDocument.AFTER,
        )
        return public_user(user)

    def get(self, user_id) -> Optional[dict]:
        if not user_id or not ObjectId.is_valid(str(user_id)):
            return None
        doc = self.collection.find_one({"_id": ObjectId(str(user_id))}, HIDE_PASSWORD)
        return public_user(doc) if doc else None

    def list(self) -> list:
        cursor = self.collection.find({}, HIDE_PASSWORD).sort([("created_at", DESCENDING)])
        return [public_user(doc) for doc in cursor]

    def delete(self, user_id) -> None:
        result = self.collection.delete_one({"_id": parse_object_id(user_id, "user")})
        if result.deleted_count == 0:
            raise NotFoundError("User not found")

    def change_password(self, user_id, current_password: str, new_password: str) -> None:
        doc = self.collection.find_one({"_id": parse_object_id(user_id, "user")})
        if not doc:
            raise NotFoundError("User not found")
        if not verify_password(current_password, doc["password"]):
            raise AuthenticationError("Current password is incorrect")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
        self.collection.update_one(
            {"_id": doc["_id"]},
            {"$set": {"password": hash_password(new_password), "updated_at": utcnow()}},
        )


def ensure_default_admin(db) -> bool:
    """Create the configured admin when no admin exists. Returns True if one was created.

    Two processes booting at once can both see "no admin"; the unique indexes on
    username/email let only one insert through and the loser lands here as a
    ConflictError, which just means the admin is already there.
    """
    if db["user"].find_one({"role": "admin"}):
        return False
    try:
        UserStore(db).create(config.ADMIN_USERNAME, config.ADMIN_EMAIL, config.ADMIN_PASSWORD, role="admin")
    except ConflictError:
        logger.warning(f"Default admin '{config.ADMIN_USERNAME}' already exists, skipping bootstrap")
        return False
    logger.info(f"Default admin user '{config.ADMIN_USERNAME}' created")
    return True


# --------------- Session checks -------------------------------------------

def extract_token(request: Request) -> Optional[str]:
    """Bearer header first, then the auth cookie."""
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer "):].strip()
        if token:
            return token
    return request.cookies.get(config.AUTH_COOKIE_NAME) or None


def resolve_token(token: str, db) -> Optional[dict]:
    """Verified, still-active user for a token, or None."""
    try:
        payload = decode_access_token(token)
    except InvalidTokenError:
        return None
    user = UserStore(db).get(payload["userId"])
    if not user or not user.get("active"):
        return None
    return user


def authenticate_request(request: Request, db) -> Optional[dict]:
    token = extract_token(request)
    if not token:
        return None
    return resolve_token(token, db)


def is_admin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == "admin"


def current_user(request: Request, db=Depends(get_db)) -> Optional[dict]:
    return authenticate_request(request, db)


def require_user(user: Optional[dict] = Depends(current_user)) -> dict:
    if user is None:
        raise AuthenticationError("Unauthorized")
    return user


def require_admin(user: Optional[dict] = Depends(current_user)) -> dict:
    if user is None:
        raise AuthenticationError("Unauthorized")
    if not is_admin(user):
        raise AuthorizationError("Admin access required")
    return user

"""
User accounts: password login, bearer tokens and OTP activation.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from pymongo.errors import DuplicateKeyError

from auth.mailer import Mailer
from engine.errors import (
    AlreadyExists, AuthenticationFailed, InvalidRequest, NotFound, store_errors,
)

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, hashed: str) -> bool:
    if not isinstance(password, str) or not isinstance(hashed, str):
        return False
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def _require_email(email) -> str:
    # Must be a plain string; a dict would act as a query operator.
    if not isinstance(email, str) or not email:
        raise InvalidRequest("A valid email is required")
    return email


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class AuthService:
    def __init__(
        self,
        collection,
        mailer: Mailer,
        secret: str,
        token_hours: int = 24,
        otp_minutes: int = 10,
        clock=None,
    ) -> None:
        self._col = collection
        self._mailer = mailer
        self._secret = secret
        self._token_ttl = timedelta(hours=token_hours)
        self._otp_ttl = timedelta(minutes=otp_minutes)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── Tokens ────────────────────────────────────────────────────

    def issue_token(self, user_id) -> str:
        payload = {"userId": str(user_id), "exp": self._clock() + self._token_ttl}
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)

    def verify_token(self, token: str) -> dict:
        """Decoded payload; raises jwt.InvalidTokenError for bad or expired tokens."""
        return jwt.decode(token, self._secret, algorithms=[JWT_ALGORITHM])

    # ── Accounts ──────────────────────────────────────────────────

    def create_user(self, email, password, first_name, last_name) -> str:
        _require_email(email)
        if not isinstance(password, str) or not password:
            raise InvalidRequest("email and password are required")
        doc = {
            "email": email,
            "password": hash_password(password),
            "firstName": first_name,
            "lastName": last_name,
            "authenticated": False,
            "otp": None,
            "otpExpiry": None,
        }
        with store_errors("user creation"):
            try:
                result = self._col.insert_one(doc)
            except DuplicateKeyError as exc:
                raise AlreadyExists(f"User {email} already exists") from exc
        logger.info("Created user %s", email)
        return str(result.inserted_id)

    def login(self, email, password) -> str:
        _require_email(email)
        with store_errors("login"):
            user = self._col.find_one({"email": email})
        if user is None or not check_password(password, user.get("password")):
            raise AuthenticationFailed("Invalid email or password")
        return self.issue_token(user["_id"])

    def reset_password(self, email, old_password, new_password) -> str:
        _require_email(email)
        if not isinstance(new_password, str) or not new_password:
            raise InvalidRequest("newPassword is required")
        with store_errors("password reset"):
            user = self._col.find_one({"email": email})
            if user is None:
                raise AuthenticationFailed("Invalid email")
            if not check_password(old_password, user.get("password")):
                raise AuthenticationFailed("Invalid email or password")
            self._col.update_one(
                {"_id": user["_id"]},
                {"$set": {"password": hash_password(new_password)}},
            )
        logger.info("Password reset for %s", email)
        return self.issue_token(user["_id"])

    # ── OTP activation ────────────────────────────────────────────

    def generate_otp(self, email) -> None:
        _require_email(email)
        otp = f"{secrets.randbelow(900000) + 100000}"
        with store_errors("otp generation"):
            result = self._col.update_one(
                {"email": email},
                {"$set": {
                    "otp": otp,
                    "otpExpiry": self._clock() + self._otp_ttl,
                    "authenticated": False,
                }},
            )
        if result.matched_count == 0:
            raise NotFound("No user with that email")
        if not self._mailer.send_otp(email, otp):
            logger.warning("OTP for %s stored but the mail was not delivered", email)

    def verify_otp(self, email, otp) -> None:
        _require_email(email)
        if not otp:
            raise InvalidRequest("otp is required")
        with store_errors("otp verification"):
            user = self._col.find_one({"email": email, "otp": str(otp)})
            if user is None:
                raise NotFound("User not found or wrong OTP")
            expiry = user.get("otpExpiry")
            if expiry is None or _as_utc(expiry) < self._clock():
                raise InvalidRequest("OTP has expired")
            self._col.update_one(
                {"_id": user["_id"]},
                {"$set": {"authenticated": True, "otp": None, "otpExpiry": None}},
            )
        logger.info("Account %s activated", email)

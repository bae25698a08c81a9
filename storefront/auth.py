import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from storefront.config import DEFAULT_JWT_SECRET, JWT_ALGORITHM, JWT_SECRET, TOKEN_TTL_HOURS
from storefront.database import Database
from storefront.errors import Conflict, NotFound, Unauthorized, ValidationError
from storefront.models import Cart, User
from storefront.schemas import UserOut

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 4


class AuthService:
    """Username/password accounts with signed, expiring bearer tokens."""

    def __init__(
        self,
        database: Database,
        secret: str = JWT_SECRET,
        token_ttl: timedelta = timedelta(hours=TOKEN_TTL_HOURS),
    ):
        self.database = database
        self.secret = secret
        self.token_ttl = token_ttl
        if secret == DEFAULT_JWT_SECRET:
            logger.warning("JWT_SECRET not set, signing tokens with the default secret")

    def register(self, username: Optional[str], password: Optional[str]) -> UserOut:
        username = (username or "").strip()
        password = password or ""
        if not username or not password:
            raise ValidationError("Username and password are required")
        if len(username) < MIN_USERNAME_LENGTH:
            raise ValidationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        try:
            with self.database.session() as session:
                taken = session.scalar(select(User.id).where(User.username == username))
                if taken:
                    raise Conflict("Username already exists")
                user = User(username=username, password=password)
                user.cart = Cart(total=0.0)
                session.add(user)
                session.flush()
                logger.info(f"Registered user {username}")
                return UserOut.model_validate(user)
        except IntegrityError as e:
            # lost a race with a concurrent registration
            raise Conflict("Username already exists") from e

    def login(self, username: Optional[str], password: Optional[str]) -> Tuple[UserOut, str]:
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError("Username and password are required")
        with self.database.session() as session:
            user = session.scalar(select(User).where(User.username == username))
            if user is None:
                raise NotFound("User not found")
            if not hmac.compare_digest(user.password.encode(), password.encode()):
                logger.info(f"Failed login for {username}")
                raise Unauthorized("Invalid password")
            account = UserOut.model_validate(user)
        logger.info(f"User {username} logged in")
        return account, self.issue_token(account)

    def issue_token(self, user: UserOut) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "id": user.id,
            "username": user.username,
            "iat": now,
            "exp": now + self.token_ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)

    def decode_token(self, token: str) -> UserOut:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError as e:
            raise Unauthorized("Token expired") from e
        except jwt.InvalidTokenError as e:
            raise Unauthorized("Invalid token") from e
        if not payload.get("id") or not payload.get("username"):
            raise Unauthorized("Invalid token")
        return UserOut(id=payload["id"], username=payload["username"])

    def user_from_header(self, authorization: Optional[str]) -> Optional[UserOut]:
        """Resolve ``Authorization: Bearer <token>``; None when no bearer token is sent."""
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return self.decode_token(token.strip())

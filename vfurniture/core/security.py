"""
VFurniture — core/security.py
─────────────────────────────────────────────────────────────────
All JWT, cookie and password helpers in one place.

Two stateless tokens per session:
    vf_access   15 min   signed with JWT_SECRET
    vf_refresh  7 days   signed with JWT_REFRESH_SECRET

Nothing is stored server-side; a token is valid until it expires.
There is no revocation list, so verify() can only ever say
"ok", "bad signature" or "expired".

Usage:
    from vfurniture.core.security import get_current_user, set_auth_cookies

    # In a route:
    async def handler(user: AuthenticatedUser = Depends(get_current_user)):
        ...

    # After login:
    access, refresh = tokens.issue_pair(user)
    set_auth_cookies(response, access, refresh, config)
─────────────────────────────────────────────────────────────────
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple

import bcrypt
from fastapi import Request
from jose import ExpiredSignatureError, JWTError, jwt

from vfurniture.core.config import Config, cfg
from vfurniture.core.errors import Unauthorized

logger = logging.getLogger("vfurniture.security")


# ─────────────────────────────────────────────
# Token errors
# ─────────────────────────────────────────────
class TokenError(Exception):
    """Base token exception — callers treat every subclass as 401."""

class InvalidSignature(TokenError):
    """Signature mismatch, malformed token, or wrong token kind."""

class TokenExpired(TokenError):
    """Signature fine, but past exp."""


class TokenKind(str, Enum):
    ACCESS  = "access"
    REFRESH = "refresh"


@dataclass
class TokenClaims:
    user_id:    str
    email:      Optional[str]
    expires_at: datetime


@dataclass
class AuthenticatedUser:
    user_id: str
    email:   Optional[str]


# ─────────────────────────────────────────────
# Token Service
# ─────────────────────────────────────────────
class TokenService:
    """
    Issues and verifies the access / refresh pair.
    Each kind has its own secret, so one can never pass as the other.
    """

    def __init__(
        self,
        access_secret:  str,
        refresh_secret: str,
        algorithm:      str = "HS256",
        access_ttl:     timedelta = timedelta(minutes=15),
        refresh_ttl:    timedelta = timedelta(days=7),
    ):
        self.algorithm = algorithm
        self._secrets  = {TokenKind.ACCESS: access_secret, TokenKind.REFRESH: refresh_secret}
        self._ttls     = {TokenKind.ACCESS: access_ttl, TokenKind.REFRESH: refresh_ttl}

    @classmethod
    def from_config(cls, config: Config) -> "TokenService":
        return cls(
            access_secret  = config.JWT_SECRET,
            refresh_secret = config.JWT_REFRESH_SECRET,
            algorithm      = config.ALGORITHM,
            access_ttl     = timedelta(minutes=config.ACCESS_TOKEN_MINUTES),
            refresh_ttl    = timedelta(days=config.REFRESH_TOKEN_DAYS),
        )

    def ttl(self, kind: TokenKind) -> timedelta:
        return self._ttls[kind]

    # ─── Issue ────────────────────────────────

    def _issue(self, user, kind: TokenKind) -> str:
        data = {
            "sub":    user.id,
            "userId": user.id,
            "email":  user.email,
            "type":   kind.value,
            "exp":    datetime.now(timezone.utc) + self._ttls[kind],
        }
        return jwt.encode(data, self._secrets[kind], algorithm=self.algorithm)

    def issue_access_token(self, user) -> str:
        return self._issue(user, TokenKind.ACCESS)

    def issue_refresh_token(self, user) -> str:
        return self._issue(user, TokenKind.REFRESH)

    def issue_pair(self, user) -> Tuple[str, str]:
        return self.issue_access_token(user), self.issue_refresh_token(user)

    # ─── Verify ───────────────────────────────

    def verify(self, token: str, kind: TokenKind) -> TokenClaims:
        """
        Decode and check a token of the given kind.

        Raises:
            TokenExpired:     past exp
            InvalidSignature: anything else
        """
        try:
            payload = jwt.decode(token, self._secrets[kind], algorithms=[self.algorithm])
        except ExpiredSignatureError:
            logger.warning(f"{kind.value} token rejected: Expired")
            raise TokenExpired(f"{kind.value} token expired")
        except JWTError as e:
            logger.warning(f"{kind.value} token rejected: InvalidSignature ({e})")
            raise InvalidSignature(str(e))

        user_id = payload.get("sub") or payload.get("userId")
        if not user_id or payload.get("type") != kind.value:
            logger.warning(f"{kind.value} token rejected: InvalidSignature (bad claims)")
            raise InvalidSignature("Invalid token payload")

        return TokenClaims(
            user_id    = user_id,
            email      = payload.get("email"),
            expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


# ─────────────────────────────────────────────
# Passwords & reset codes
# ─────────────────────────────────────────────
def hash_password(password: str, rounds: int = None) -> str:
    # bcrypt only reads the first 72 bytes
    raw = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds or cfg.BCRYPT_ROUNDS)
    return bcrypt.hashpw(raw, salt).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a bcrypt hash")
        return False


def hash_code(code: str) -> str:
    """One-way digest for reset codes (sha256 hex)."""
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def codes_match(submitted: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_code(submitted), stored_hash)


# ─────────────────────────────────────────────
# Cookie Session Adapter
# ─────────────────────────────────────────────
def set_auth_cookies(response, access_token: str, refresh_token: str, config: Config = cfg):
    """Attach both tokens as HTTP-only, host-only cookies."""
    response.set_cookie(
        key      = config.ACCESS_COOKIE,
        value    = access_token,
        httponly = True,
        secure   = config.is_production,   # HTTPS only in prod
        samesite = "lax",                  # survives the OAuth redirect hop
        path     = "/",
        max_age  = config.ACCESS_TOKEN_MINUTES * 60,
    )
    response.set_cookie(
        key      = config.REFRESH_COOKIE,
        value    = refresh_token,
        httponly = True,
        secure   = config.is_production,
        samesite = "lax",
        path     = "/",
        max_age  = config.REFRESH_TOKEN_DAYS * 86400,
    )


def clear_auth_cookies(response, config: Config = cfg):
    """Overwrite both cookies with an already-expired value."""
    for key in (config.ACCESS_COOKIE, config.REFRESH_COOKIE):
        response.delete_cookie(
            key      = key,
            path     = "/",
            httponly = True,
            secure   = config.is_production,
            samesite = "lax",
        )


def read_access_token(request: Request, config: Config = cfg) -> Optional[str]:
    return request.cookies.get(config.ACCESS_COOKIE) or None


def read_refresh_token(request: Request, config: Config = cfg) -> Optional[str]:
    return request.cookies.get(config.REFRESH_COOKIE) or None


# ─────────────────────────────────────────────
# Dependencies
# ─────────────────────────────────────────────
def get_config(request: Request) -> Config:
    return getattr(request.app.state, "config", cfg)


def get_token_service(request: Request) -> TokenService:
    tokens = getattr(request.app.state, "tokens", None)
    if tokens is None:
        tokens = TokenService.from_config(get_config(request))
        request.app.state.tokens = tokens
    return tokens


async def get_current_user(request: Request) -> AuthenticatedUser:
    """
    FastAPI dependency — identity from the vf_access cookie.

    Raises 401 if:
        - No access cookie
        - Token is invalid or expired
    """
    token = read_access_token(request, get_config(request))
    if not token:
        raise Unauthorized("Unauthorized - No access token")

    try:
        claims = get_token_service(request).verify(token, TokenKind.ACCESS)
    except TokenExpired:
        raise Unauthorized("Unauthorized - Token expired")
    except TokenError:
        raise Unauthorized("Unauthorized - Invalid access token")

    return AuthenticatedUser(user_id=claims.user_id, email=claims.email)


async def get_optional_user(request: Request) -> Optional[AuthenticatedUser]:
    """
    Same as get_current_user but returns None instead of raising 401.
    Use for routes that work for both logged-in and anonymous users.
    """
    try:
        return await get_current_user(request)
    except Unauthorized:
        return None

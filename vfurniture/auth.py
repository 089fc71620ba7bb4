"""
VFurniture — auth.py
─────────────────────────────────────────────────────────────────
Authentication backend: email + password, Google passthrough,
password reset codes.

Endpoints (mounted at /api/auth):
  POST /register             → create account, set cookies (201)
  POST /login                → email + password, set cookies
  POST /google               → upsert from a verified Google identity
  POST /logout               → clear cookies (never fails)
  GET  /me                   → public profile from vf_access
  POST /refresh              → rotate both cookies from vf_refresh
  POST /check-email-exists   → {exists, hasOAuth}
  POST /send-reset-code      → email a 6-digit code (10 min)
  POST /verify-reset-code    → check the code, issue nothing
  POST /reset-password       → code + new password

Trust boundary for /google: the browser already completed the
Google sign-in; this service only receives name/email/photo/uid.
─────────────────────────────────────────────────────────────────
"""

import logging
import re
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from vfurniture.core.config import Config
from vfurniture.core.database import Database, get_db, new_id, now_utc, parse_ts
from vfurniture.core.errors import Conflict, NotFound, Unauthorized, ValidationError
from vfurniture.core.security import (
    TokenError, TokenKind, TokenService,
    clear_auth_cookies, codes_match, get_config, get_token_service, hash_code,
    hash_password, read_access_token, read_refresh_token, set_auth_cookies,
    verify_password,
)
from vfurniture.core.slugs import slugify, unique_slug
from vfurniture.models.user import User

logger = logging.getLogger("vfurniture.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])

EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")


# ─────────────────────────────────────────────
# Request bodies
# (everything optional: missing fields are a 400 with our message)
# ─────────────────────────────────────────────
class RegisterRequest(BaseModel):
    name:     Optional[str] = None
    email:    Optional[str] = None
    password: Optional[str] = None
    uid:      Optional[str] = None
    photoURL: Optional[str] = None
    phone:    Optional[str] = None


class LoginRequest(BaseModel):
    email:    Optional[str] = None
    password: Optional[str] = None


class GoogleRequest(BaseModel):
    name:     Optional[str] = None
    email:    Optional[str] = None
    photoURL: Optional[str] = None
    uid:      Optional[str] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class ResetCodeRequest(BaseModel):
    email: Optional[str] = None
    code:  Optional[str] = None


class ResetPasswordRequest(BaseModel):
    email:       Optional[str] = None
    code:        Optional[str] = None
    newPassword: Optional[str] = None


# ─────────────────────────────────────────────
# Input formatting
# ─────────────────────────────────────────────
def format_email(email: Optional[str]) -> str:
    return email.strip().lower() if isinstance(email, str) else ""

def format_name(name: Optional[str]) -> str:
    """'  jane   DOE ' → 'Jane Doe'"""
    if not isinstance(name, str):
        return ""
    return " ".join(w[:1].upper() + w[1:].lower() for w in name.split())

def format_phone(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone) if isinstance(phone, str) else ""

def format_password(password: Optional[str]) -> str:
    return password.strip() if isinstance(password, str) else ""


# ─────────────────────────────────────────────
# User helpers
# ─────────────────────────────────────────────
async def get_user_by_email(db: Database, email: str) -> Optional[User]:
    row = await db.fetch_one("SELECT * FROM users WHERE email = ?", (email,))
    return User.from_row(row) if row else None

async def get_user_by_id(db: Database, user_id: str) -> Optional[User]:
    row = await db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
    return User.from_row(row) if row else None


async def create_user(
    db:        Database,
    config:    Config,
    name:      str,
    email:     str,
    password:  Optional[str] = None,
    photo_url: str = "",
    has_oauth: bool = False,
    phone:     Optional[str] = None,
) -> User:
    """
    Insert a user. Password is bcrypt-hashed here; OAuth-only accounts
    get a random placeholder so the column is never empty.

    Raises Conflict if email (or phone) is already taken.
    """
    user_id = new_id()
    ts      = now_utc()
    hashed  = hash_password(password or secrets.token_hex(16), config.BCRYPT_ROUNDS)

    try:
        # Slug lookup and insert are one unit
        async with db.transaction():
            slug = await unique_slug(db, "users", slugify(name, fallback="user"))
            await db.execute(
                """INSERT INTO users
                   (id, name, slug, email, password, phone, photo_url, has_oauth, created_at, updated_at)
                   VALUES (?,?,?,?,?,?,?,?,?,?)""",
                (user_id, name, slug, email, hashed,
                 phone or None, photo_url or "", int(has_oauth), ts, ts),
            )
    except sqlite3.IntegrityError as e:
        message = str(e)
        if "users.email" in message:
            raise Conflict("Email already exists. Try logging in instead.")
        if "users.phone" in message:
            raise Conflict("Phone number already in use")
        raise Conflict("Account could not be created, please retry")

    logger.info(f"User created: {user_id} ({'oauth' if has_oauth else 'password'})")
    return await get_user_by_id(db, user_id)


def _session_response(
    body: dict, user: User, tokens: TokenService, config: Config, status_code: int = 200,
) -> JSONResponse:
    """JSON body + freshly issued access/refresh cookies."""
    access, refresh = tokens.issue_pair(user)
    resp = JSONResponse(body, status_code=status_code)
    set_auth_cookies(resp, access, refresh, config)
    return resp


async def check_reset_code(db: Database, email: str, code: str) -> User:
    """
    Every failure is a 400; the caller learns nothing more specific
    than the message.
    """
    if not email:
        raise ValidationError("Missing email")
    if not code:
        raise ValidationError("Missing code")

    user = await get_user_by_email(db, email)
    if not user:
        raise ValidationError("User not found")
    if not user.reset_code:
        raise ValidationError("Reset code not set")
    if not user.reset_code_expires:
        raise ValidationError("Reset code expiry not set")

    if not codes_match(code.strip(), user.reset_code):
        raise ValidationError("Invalid reset code")

    if datetime.now(timezone.utc) > parse_ts(user.reset_code_expires):
        raise ValidationError("Reset code has expired")

    return user


# ─────────────────────────────────────────────
# Email via Resend
# ─────────────────────────────────────────────
async def send_reset_email(config: Config, email: str, name: str, code: str):
    first_name = (name or "there").split(" ")[0]
    html_body = f"""
<div style="font-family:'Segoe UI',Roboto,Helvetica,Arial,sans-serif;color:#333;max-width:480px;margin:auto;padding:24px;border:1px solid #eee;border-radius:8px;">
  <h2 style="text-align:center;color:#000;">VFurniture</h2>
  <p style="font-size:16px;">Hi {first_name},</p>
  <p style="font-size:15px;line-height:1.6;">
    We received a request to reset your password. Use the 6-digit code below to proceed:
  </p>
  <div style="text-align:center;margin:24px 0;">
    <span style="font-size:28px;letter-spacing:4px;font-weight:bold;color:#111;">{code}</span>
  </div>
  <p style="font-size:14px;line-height:1.5;">
    This code is valid for <strong>{config.RESET_CODE_MINUTES} minutes</strong>.
    If you didn't request this, you can safely ignore the email.
  </p>
</div>
"""
    if not config.email_ready:
        logger.info(f"[DEV] Reset code for {email}: {code}")
        return

    async with httpx.AsyncClient(timeout=15) as client:
        resp = await client.post(
            "https://api.resend.com/emails",
            headers={"Authorization": f"Bearer {config.RESEND_API_KEY}"},
            json={
                "from":    f"VFurniture Support <{config.EMAIL_FROM}>",
                "to":      [email],
                "subject": "Reset your VFurniture password",
                "html":    html_body,
            },
        )
    if resp.status_code >= 400:
        logger.error(f"Resend rejected reset email for {email}: {resp.status_code} {resp.text[:200]}")
        raise RuntimeError("Failed to send reset email")


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────
@router.post("/register", status_code=201)
async def register(
    payload: RegisterRequest,
    db:      Database = Depends(get_db),
    tokens:  TokenService = Depends(get_token_service),
    config:  Config = Depends(get_config),
):
    name     = format_name(payload.name)
    email    = format_email(payload.email)
    password = format_password(payload.password)
    phone    = format_phone(payload.phone) if payload.phone else None
    uid      = (payload.uid or "").strip()

    if not name or not email or (not password and not uid):
        raise ValidationError("Name, email, and either password or UID are required")
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    if password and not uid and len(password) < config.MIN_PASSWORD_LEN:
        raise ValidationError(f"Password must be at least {config.MIN_PASSWORD_LEN} characters")

    if await get_user_by_email(db, email):
        raise Conflict("Email already exists. Try logging in instead.")

    user = await create_user(
        db, config,
        name      = name,
        email     = email,
        password  = password or None,
        photo_url = payload.photoURL or "",
        has_oauth = bool(uid),
        phone     = phone,
    )

    return _session_response(
        {"id": user.id, "name": user.name, "email": user.email, "slug": user.slug},
        user, tokens, config, status_code=201,
    )


@router.post("/login")
async def login(
    payload: LoginRequest,
    db:      Database = Depends(get_db),
    tokens:  TokenService = Depends(get_token_service),
    config:  Config = Depends(get_config),
):
    email    = format_email(payload.email)
    password = format_password(payload.password)

    if not email or not password:
        raise ValidationError("Email and password are required")

    user = await get_user_by_email(db, email)
    if not user:
        raise NotFound("User not found")

    if not verify_password(password, user.password):
        logger.info(f"Failed login for {user.id}")
        raise Unauthorized("Incorrect password")

    return _session_response(
        {
            "message": "Login successful",
            "user": {"id": user.id, "email": user.email, "name": user.name},
        },
        user, tokens, config,
    )


@router.post("/google")
async def google_upsert(
    payload: GoogleRequest,
    db:      Database = Depends(get_db),
    tokens:  TokenService = Depends(get_token_service),
    config:  Config = Depends(get_config),
):
    name  = format_name(payload.name)
    email = format_email(payload.email)
    uid   = (payload.uid or "").strip()
    photo = payload.photoURL or ""

    if not name or not email or not uid:
        raise ValidationError("Missing required user data")

    user        = await get_user_by_email(db, email)
    first_time  = user is None

    if first_time:
        user = await create_user(db, config, name=name, email=email, photo_url=photo, has_oauth=True)
    else:
        updates = {}
        if not user.has_oauth:
            updates["has_oauth"] = 1
        if photo and user.photo_url != photo:
            updates["photo_url"] = photo

        if updates:
            cols = ", ".join(f"{k} = ?" for k in updates)
            await db.execute(
                f"UPDATE users SET {cols}, updated_at = ? WHERE id = ?",
                (*updates.values(), now_utc(), user.id),
            )
            user = await get_user_by_id(db, user.id)
            logger.info(f"OAuth backfill for {user.id}: {sorted(updates)}")

    return _session_response(
        {
            "id":        user.id,
            "email":     user.email,
            "name":      user.name,
            "photoURL":  user.photo_url,
            "hasOAuth":  user.has_oauth,
            "firstTime": first_time,
        },
        user, tokens, config,
    )


@router.post("/logout")
async def logout(config: Config = Depends(get_config)):
    resp = JSONResponse({"message": "Successfully logged out"})
    clear_auth_cookies(resp, config)
    return resp


@router.get("/me")
async def me(
    request: Request,
    db:      Database = Depends(get_db),
    tokens:  TokenService = Depends(get_token_service),
    config:  Config = Depends(get_config),
):
    token = read_access_token(request, config)
    if not token:
        raise Unauthorized("Access token missing")

    try:
        claims = tokens.verify(token, TokenKind.ACCESS)
    except TokenError:
        raise Unauthorized("Invalid token")

    user = await get_user_by_id(db, claims.user_id)
    if not user:
        raise Unauthorized("User not found")

    return {"user": user.public_profile()}


@router.post("/refresh")
async def refresh(
    request: Request,
    db:      Database = Depends(get_db),
    tokens:  TokenService = Depends(get_token_service),
    config:  Config = Depends(get_config),
):
    token = read_refresh_token(request, config)
    if not token:
        raise Unauthorized("No refresh token", clear_session=True)

    try:
        claims = tokens.verify(token, TokenKind.REFRESH)
    except TokenError:
        raise Unauthorized("Invalid refresh token", clear_session=True)

    user = await get_user_by_id(db, claims.user_id)
    if not user:
        raise Unauthorized("User not found", clear_session=True)

    # Always rotate; the old refresh cookie is overwritten
    return _session_response({"success": True}, user, tokens, config)


@router.post("/check-email-exists")
async def check_email_exists(payload: EmailRequest, db: Database = Depends(get_db)):
    email = format_email(payload.email)
    if not email:
        raise ValidationError("Email is required")

    user = await get_user_by_email(db, email)
    if not user:
        return {"exists": False}
    return {"exists": True, "hasOAuth": user.has_oauth}


@router.post("/send-reset-code")
async def send_reset_code(
    payload: EmailRequest,
    db:      Database = Depends(get_db),
    config:  Config = Depends(get_config),
):
    email = format_email(payload.email)
    if not email:
        raise ValidationError("Email required")

    user = await get_user_by_email(db, email)
    if not user:
        raise NotFound("No user with this email")

    code    = str(100000 + secrets.randbelow(900000))
    expires = (datetime.now(timezone.utc) + timedelta(minutes=config.RESET_CODE_MINUTES)).isoformat()

    await db.execute(
        "UPDATE users SET reset_code = ?, reset_code_expires = ?, updated_at = ? WHERE id = ?",
        (hash_code(code), expires, now_utc(), user.id),
    )

    await send_reset_email(config, email, user.name, code)
    logger.info(f"Reset code issued for {user.id}")
    return {"success": True}


@router.post("/verify-reset-code")
async def verify_reset_code(payload: ResetCodeRequest, db: Database = Depends(get_db)):
    await check_reset_code(db, format_email(payload.email), payload.code or "")
    return {"success": True}


@router.post("/reset-password")
async def reset_password(
    payload: ResetPasswordRequest,
    db:      Database = Depends(get_db),
    config:  Config = Depends(get_config),
):
    new_password = format_password(payload.newPassword)
    if not new_password:
        raise ValidationError("Missing email or password")
    if len(new_password) < config.MIN_PASSWORD_LEN:
        raise ValidationError(f"Password must be at least {config.MIN_PASSWORD_LEN} characters")

    user = await check_reset_code(db, format_email(payload.email), payload.code or "")

    await db.execute(
        """UPDATE users
           SET password = ?, reset_code = NULL, reset_code_expires = NULL, updated_at = ?
           WHERE id = ?""",
        (hash_password(new_password, config.BCRYPT_ROUNDS), now_utc(), user.id),
    )
    logger.info(f"Password reset for {user.id}")
    return {"success": True}

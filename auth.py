"""
Authentication routes and dependencies
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Header, Depends, Cookie
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from database import get_db
from database_models import Account, is_valid_account_id
from crud.account import AccountRepository
from auth_utils import hash_password, verify_password, create_jwt, decode_jwt, token_lifetime_seconds
from backend.utils.errors import NotFound, Unauthenticated
from services.email_service import send_verification_email
from services.verification_service import VerificationService, VerificationResult
from utils.security_utils import (
    validate_email,
    validate_full_name,
    validate_password_strength,
    validate_username,
)
from config.settings import IS_PRODUCTION

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])
# Legacy profile path
profile_router = APIRouter(prefix="/api/user", tags=["auth"])

AUTH_COOKIE = "auth_token"


# Request models
class RegisterRequest(BaseModel):
    full_name: str
    email: str
    username: str
    password: str


class VerifyCodeRequest(BaseModel):
    email: str
    code: str


class ResendCodeRequest(BaseModel):
    email: str


class LoginRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str


def account_profile(account: Account) -> dict:
    """Public view of an account; never includes credentials or codes."""
    return {
        "id": account.id,
        "full_name": account.full_name,
        "username": account.username,
        "email": account.email,
        "is_verified": account.is_verified,
        "trials_used": account.trials_used,
        "subscription_id": account.subscription_id,
    }


def _set_auth_cookie(response: JSONResponse, token: str, max_age: int) -> None:
    response.set_cookie(
        key=AUTH_COOKIE,
        value=token,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="none" if IS_PRODUCTION else "lax",
        max_age=max_age,
    )


@auth_router.post("/register")
async def register(request: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create an unverified account and email it a verification code"""
    try:
        try:
            validate_full_name(request.full_name)
            validate_username(request.username)
            validate_password_strength(request.password)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        if not validate_email(request.email):
            raise HTTPException(status_code=400, detail="Invalid email format")

        account_repo = AccountRepository(db)

        if (
            await account_repo.get_account_by_username(request.username)
            or await account_repo.get_account_by_email(request.email)
        ):
            raise HTTPException(status_code=409, detail="User already exists.")

        verification = VerificationService(account_repo)
        code_fields = verification.new_code()

        account = await account_repo.create_account({
            "full_name": request.full_name.strip(),
            "username": request.username,
            "email": request.email.strip(),
            "hashed_password": hash_password(request.password),
            **code_fields,
        })
        await db.commit()

        # Delivery failures are logged by the email service, never fatal here
        email_sent = await send_verification_email(account.email, code_fields["verification_code"])

        return JSONResponse(
            status_code=201,
            content={
                "ok": True,
                "user_id": account.id,
                "email_sent": email_sent,
                "message": "User created. A verification code has been sent to your email.",
            },
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Registration failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Registration failed.")


@auth_router.post("/verify-code")
async def verify_code(request: VerifyCodeRequest, db: AsyncSession = Depends(get_db)):
    """Finalize registration by checking the emailed code"""
    verification = VerificationService(AccountRepository(db))
    result = await verification.verify(request.email, request.code.strip())

    if result == VerificationResult.NOT_FOUND:
        raise NotFound("User not found.")
    if result == VerificationResult.ALREADY_VERIFIED:
        return {"ok": True, "message": "Email is already verified."}
    if result == VerificationResult.EXPIRED:
        raise HTTPException(status_code=400, detail="Verification code has expired.")
    if result == VerificationResult.INVALID:
        raise HTTPException(status_code=400, detail="Invalid verification code.")

    return {"ok": True, "message": "Email verified successfully!"}


@auth_router.post("/resend-code")
async def resend_code(request: ResendCodeRequest, db: AsyncSession = Depends(get_db)):
    """Issue a fresh verification code for an unverified account"""
    account_repo = AccountRepository(db)
    account = await account_repo.get_account_by_email(request.email)
    if not account:
        raise NotFound("User not found.")
    if account.is_verified:
        return {"ok": True, "message": "Email is already verified."}

    code = await VerificationService(account_repo).reissue_code(account)
    await db.commit()
    email_sent = await send_verification_email(account.email, code)
    return {"ok": True, "email_sent": email_sent, "message": "A new verification code has been sent."}


@auth_router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login with username or email and get a JWT token"""
    identifier = request.username or request.email
    if not identifier:
        raise HTTPException(status_code=422, detail="Username or email is required")

    account = await AccountRepository(db).get_account_by_login(identifier)
    if not account or not verify_password(request.password, account.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    if not account.is_verified:
        raise HTTPException(
            status_code=403,
            detail="Email not verified. Please check your inbox for the verification code.",
        )

    token = create_jwt(account.id, account.username)
    expires_in = token_lifetime_seconds()

    response = JSONResponse(
        content={
            "ok": True,
            "token": token,
            "expires_in": expires_in,
            "user": {
                "full_name": account.full_name,
                "username": account.username,
                "email": account.email,
            },
        }
    )
    _set_auth_cookie(response, token, expires_in)
    return response


@auth_router.post("/logout")
async def logout():
    """Logout and clear auth token cookie"""
    response = JSONResponse(
        content={
            "ok": True,
            "message": "Logged out successfully"
        }
    )
    _set_auth_cookie(response, "", 0)
    return response


def _extract_token(auth_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    # Cookie first (browser clients), then Authorization header (API consumers)
    if auth_token:
        return auth_token
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None


async def get_optional_account(
    auth_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db)
) -> Optional[Account]:
    """
    Resolve the caller's account, or None when no valid identity was presented.

    Used by gated routes so the access decision itself reports
    "unauthenticated".
    """
    token = _extract_token(auth_token, authorization)
    if not token:
        return None

    payload = decode_jwt(token)
    if not payload:
        return None

    account_id = payload.get("sub")
    if not is_valid_account_id(account_id):
        return None

    return await AccountRepository(db).get_account_by_id(account_id)


async def get_current_account(
    account: Optional[Account] = Depends(get_optional_account),
) -> Account:
    """
    Dependency function to get current authenticated account.

    Authentication priority:
    1. auth_token cookie (httpOnly cookie set by login)
    2. Authorization header (Bearer token)
    3. Raise Unauthenticated (401) if neither yields an account
    """
    if account is None:
        raise Unauthenticated("Not authorized, missing or invalid token.")
    return account


@auth_router.get("/me")
@profile_router.get("/profile")
async def get_current_account_info(account: Account = Depends(get_current_account)):
    """Get current account profile"""
    return {"ok": True, "user": account_profile(account)}

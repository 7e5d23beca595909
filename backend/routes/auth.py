from fastapi import APIRouter, HTTPException, Request, status
from database import database
from models import LoginRequest, SignupRequest, TokenResponse, UserRole, AuditAction
from auth import verify_password, create_access_token, normalize_email
from services.account_service import DuplicateAccountError, create_account
from utils.audit import create_audit_log
from utils.rate_limiter import rate_limiter, LOGIN_MAX_ATTEMPTS, LOGIN_WINDOW_MINUTES
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest):
    """Create credential and free profile, then sign the user in."""
    try:
        profile = await create_account(
            email=body.email,
            password=body.password,
            name=body.name,
            whatsapp=body.whatsapp,
            cpf=body.cpf,
        )
    except DuplicateAccountError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This email is already registered"
        )

    access_token = create_access_token({"user_id": profile["user_id"], "email": profile["email"]})
    return TokenResponse(access_token=access_token, user_id=profile["user_id"], email=profile["email"])


@router.post("/login", response_model=TokenResponse)
async def login(request: Request, credentials: LoginRequest):
    """Exchange email/password for a session token."""
    email_lower = normalize_email(credentials.email)
    rate_key = f"login:{email_lower}"

    allowed, error_message = await rate_limiter.check_rate_limit(
        rate_key, LOGIN_MAX_ATTEMPTS, LOGIN_WINDOW_MINUTES
    )
    if not allowed:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=error_message)

    db = database.get_db()
    credential = await db.credentials.find_one({"email_lower": email_lower}, {"_id": 0})

    if not credential or not verify_password(credentials.password, credential["password_hash"]):
        await create_audit_log(
            action=AuditAction.USER_LOGIN_FAILED,
            actor_id=credential["user_id"] if credential else None,
            metadata={
                "email": email_lower,
                "reason": "invalid_password" if credential else "user_not_found",
            },
            ip_address=request.client.host if request.client else None,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    rate_limiter.reset(rate_key)
    access_token = create_access_token({"user_id": credential["user_id"], "email": credential["email"]})

    await create_audit_log(
        action=AuditAction.USER_LOGIN_SUCCESS,
        actor_role=UserRole.ROLE_USER,
        actor_id=credential["user_id"],
    )
    return TokenResponse(access_token=access_token, user_id=credential["user_id"], email=credential["email"])

"""Session login for the dashboard."""

import logging
import secrets
from typing import TYPE_CHECKING, Any, Dict, Optional

import bcrypt
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ..utils import iso_after, iso_timestamp

if TYPE_CHECKING:
    from ..config import AuthConfig
    from ..store import DocumentStore

ADMIN_USERNAME = "admin"
BCRYPT_ROUNDS = 10
MIN_PASSWORD_LENGTH = 6
PUBLIC_PREFIXES = ("/api/auth",)

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header:
        return None
    return header.replace("Bearer ", "", 1) or None


async def hash_password(password: str) -> str:
    hashed = await run_in_threadpool(bcrypt.hashpw, password.encode(), bcrypt.gensalt(BCRYPT_ROUNDS))
    return hashed.decode()


async def check_password(password: str, password_hash: str) -> bool:
    return await run_in_threadpool(bcrypt.checkpw, password.encode(), password_hash.encode())


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": user["_id"], "username": user["username"], "display_name": user.get("display_name")}


async def find_session_user(store: "DocumentStore", token: Optional[str]):
    """Look up the live session for a token.

    Returns:
        (session, user), (session, None) for an orphaned session, or (None, None)
    """
    if not token:
        return None, None
    session = await store.collection("sessions").find_one(
        {"token": token, "expires_at": {"$gt": iso_timestamp()}}
    )
    if session is None:
        return None, None
    user = await store.collection("users").find_one({"_id": session["user_id"]})
    return session, user


async def init_default_user(store: "DocumentStore", password: Optional[str]) -> bool:
    """Create the admin account on first start.

    Returns:
        True if a user was created
    """
    users = store.collection("users")
    if await users.find_one({"username": ADMIN_USERNAME}) is not None:
        return False
    if not password:
        logger.error("ADMIN_PASSWORD is not set; no admin user created")
        return False

    await users.insert_one(
        {
            "username": ADMIN_USERNAME,
            "password_hash": await hash_password(password),
            "display_name": "Administrator",
            "created_at": iso_timestamp(),
        }
    )
    logger.info("Default admin user created")
    return True


def create_auth_middleware(store: "DocumentStore"):
    """Build the HTTP middleware that guards /api routes with session tokens."""

    def is_browser_navigation(request: Request) -> bool:
        accept = request.headers.get("accept", "")
        return "text/html" in accept and request.headers.get("x-requested-with") != "XMLHttpRequest"

    def reject(request: Request, error: str):
        if is_browser_navigation(request):
            return RedirectResponse("/#login", status_code=302)
        return JSONResponse({"error": error}, status_code=401)

    async def auth_middleware(request: Request, call_next):
        path = request.url.path
        if not path.startswith("/api/") or path.startswith(PUBLIC_PREFIXES):
            return await call_next(request)

        token = bearer_token(request)
        if not token:
            return reject(request, "Authentication required")

        try:
            session, user = await find_session_user(store, token)
        except Exception as e:
            logger.error(f"Auth middleware error: {e}", exc_info=True)
            return JSONResponse({"error": "Authentication error"}, status_code=500)

        if session is None:
            return reject(request, "Invalid or expired session")
        if user is None:
            return reject(request, "User not found")

        request.state.user = {"id": user["_id"], "username": user["username"]}
        return await call_next(request)

    return auth_middleware


def create_router(store: "DocumentStore", config: "AuthConfig") -> APIRouter:
    """Create the /api/auth router."""
    router = APIRouter(prefix="/api/auth", tags=["auth"])
    users = store.collection("users")
    sessions = store.collection("sessions")

    @router.post("/login")
    async def login(body: LoginRequest):
        if not body.username or not body.password:
            return JSONResponse({"error": "Username and password are required"}, status_code=400)

        user = await users.find_one({"username": body.username})
        if user is None or not await check_password(body.password, user["password_hash"]):
            return JSONResponse({"error": "Invalid credentials"}, status_code=401)

        token = secrets.token_hex(32)
        expires_at = iso_after(config.session_hours)
        await sessions.insert_one(
            {
                "user_id": user["_id"],
                "token": token,
                "expires_at": expires_at,
                "created_at": iso_timestamp(),
            }
        )
        await sessions.delete_many({"user_id": user["_id"], "expires_at": {"$lt": iso_timestamp()}})

        logger.info(f"User '{user['username']}' logged in")
        return {"token": token, "user": public_user(user), "expires_at": expires_at}

    @router.post("/logout")
    async def logout(request: Request):
        token = bearer_token(request)
        if token:
            await sessions.delete_one({"token": token})
        return {"message": "Logged out successfully"}

    @router.get("/check")
    async def check(request: Request):
        session, user = await find_session_user(store, bearer_token(request))
        if session is None or user is None:
            return JSONResponse({"authenticated": False}, status_code=401)
        return {"authenticated": True, "user": public_user(user), "expires_at": session["expires_at"]}

    @router.post("/change-password")
    async def change_password(request: Request, body: ChangePasswordRequest):
        token = bearer_token(request)
        if not token:
            return JSONResponse({"error": "Authentication required"}, status_code=401)

        session, user = await find_session_user(store, token)
        if session is None:
            return JSONResponse({"error": "Invalid or expired session"}, status_code=401)
        if user is None:
            return JSONResponse({"error": "User not found"}, status_code=401)

        if not body.current_password or not body.new_password:
            return JSONResponse(
                {"error": "Current password and new password are required"}, status_code=400
            )
        if len(body.new_password) < MIN_PASSWORD_LENGTH:
            return JSONResponse(
                {"error": f"New password must be at least {MIN_PASSWORD_LENGTH} characters"},
                status_code=400,
            )
        if not await check_password(body.current_password, user["password_hash"]):
            return JSONResponse({"error": "Current password is incorrect"}, status_code=401)

        await users.update_one(
            {"_id": user["_id"]}, {"$set": {"password_hash": await hash_password(body.new_password)}}
        )
        logger.info(f"Password changed for user '{user['username']}'")
        return {"message": "Password changed successfully"}

    return router

"""
FastAPI routes for authentication.

Prefix: /api/v1/auth

Token-issuing routes answer ``{"success": true, "token": ..., "data": <user>}``
and set the same token as an http-only cookie.
"""

from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from auth import TOKEN_COOKIE, AuthResult, AuthService, token_cookie
from config import API_PREFIX, Settings
from database import Document
from guards import get_app_settings, get_auth_service, protect
from schemas import (
    ForgotPasswordBody,
    LoginBody,
    RegisterBody,
    ResetPasswordBody,
    UpdateDetailsBody,
    UpdatePasswordBody,
    public_user,
    utcnow,
)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _token_response(result: AuthResult, settings: Settings) -> JSONResponse:
    response = JSONResponse(
        content={"success": True, "token": result.token, "data": public_user(result.user)}
    )
    response.set_cookie(**token_cookie(result.token, settings))
    return response


@router.post("/register")
async def register(
    body: RegisterBody,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    result = await service.register(body.name, body.email, body.password, body.role)
    return _token_response(result, settings)


@router.post("/login")
async def login(
    body: LoginBody,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    result = await service.login(body.email, body.password)
    return _token_response(result, settings)


@router.get("/logout")
async def logout():
    """Overwrite the token cookie; the token itself stays valid until it expires."""
    response = JSONResponse({"success": True, "data": {}})
    response.set_cookie(
        key=TOKEN_COOKIE,
        value="none",
        max_age=10,
        expires=utcnow() + timedelta(seconds=10),
        httponly=True,
    )
    return response


@router.get("/me")
async def me(user: Document = Depends(protect), service: AuthService = Depends(get_auth_service)):
    account = await service.get_current_account(user["_id"])
    return {"success": True, "data": public_user(account)}


@router.put("/updatedetails")
async def update_details(
    body: UpdateDetailsBody,
    user: Document = Depends(protect),
    service: AuthService = Depends(get_auth_service),
):
    account = await service.update_details(user["_id"], name=body.name, email=body.email)
    return {"success": True, "data": public_user(account)}


@router.put("/updatepassword")
async def update_password(
    body: UpdatePasswordBody,
    user: Document = Depends(protect),
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    result = await service.update_password(user["_id"], body.current_password, body.new_password)
    return _token_response(result, settings)


@router.post("/forgotpassword")
async def forgot_password(
    body: ForgotPasswordBody,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    reset_url_base = f"{str(request.base_url).rstrip('/')}{API_PREFIX}/auth/resetpassword"
    await service.forgot_password(body.email, reset_url_base)
    return {"success": True, "data": "Email sent"}


@router.put("/resetpassword/{resettoken}")
async def reset_password(
    resettoken: str,
    body: ResetPasswordBody,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    result = await service.reset_password(resettoken, body.password)
    return _token_response(result, settings)

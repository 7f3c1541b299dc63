# washdesk/web/accounts.py
from __future__ import annotations

import logging
from datetime import datetime
from urllib.parse import quote
from uuid import uuid4

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import RedirectResponse
from pydantic import ValidationError

from ..config import BASE_URL
from ..db import ACTIVE_ORDER_STATUSES
from ..mailer import MailerError
from ..reports.aggregator import order_amount
from ..schemas import ProfileForm, RegisterForm
from ..security import hash_password, new_token, token_expiry, verify_password
from ..utils import is_valid_email
from .common import (
    admin_required,
    flash,
    get_mailer,
    get_store,
    log_failure,
    login_required,
    message_page,
    render,
)

logger = logging.getLogger(__name__)

users_router = APIRouter(tags=["Users"])
password_router = APIRouter(tags=["Password"])


def _login_redirect(message: str) -> RedirectResponse:
    return RedirectResponse(f"/users/login?message={quote(message)}", status.HTTP_303_SEE_OTHER)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid input."
    err = errors[0]
    field = ".".join(str(part) for part in err.get("loc", ()))
    return f"{field}: {err.get('msg', 'invalid value')}" if field else err.get("msg", "Invalid input.")


def _session_payload(user: dict) -> dict:
    return {
        "id": user["id"],
        "user_id": user.get("user_id"),
        "first_name": user.get("first_name", ""),
        "last_name": user.get("last_name", ""),
        "email": user.get("email"),
        "role": user.get("role", "customer"),
    }


# ------------------------
# Registration & verification
# ------------------------
@users_router.get("/register")
async def register_page(request: Request):
    return render(request, "register.html", {"title": "Register"})


@users_router.post("/register")
async def register_submit(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
):
    try:
        form = RegisterForm(first_name=first_name, last_name=last_name, email=email.strip(), password=password)
    except ValidationError as exc:
        return message_page(
            request,
            "Registration Error",
            _first_error(exc),
            "error",
            redirect_url="/users/register",
            button_text="Try Again",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    store = get_store(request)
    if await store.find_user_by_email(form.email):
        return message_page(
            request,
            "User Exists",
            "User already exists with this email.",
            "error",
            redirect_url="/users/register",
            button_text="Register",
        )

    now = datetime.now()
    token = new_token()
    await store.insert_user(
        {
            "user_id": str(uuid4()),
            "first_name": form.first_name,
            "last_name": form.last_name,
            "email": form.email,
            "password_hash": hash_password(form.password),
            "role": "customer",
            "account_status": "active",
            "is_email_verified": False,
            "verification_token": token,
            "token_expiry": token_expiry(now),
            "created_at": now,
            "updated_at": now,
        }
    )
    logger.info("Registered user %s", form.email)

    try:
        await get_mailer(request).send_verification(
            form.email, form.first_name, f"{BASE_URL}/users/verify/{token}"
        )
    except MailerError as exc:
        logger.error("Failed to send verification email to %s: %s", form.email, exc)
        return message_page(
            request,
            "Registration Created",
            "Registration successful, but failed to send verification email. Please contact support.",
            "info",
        )

    return message_page(
        request,
        "Registration Successful",
        "Registration successful! Please check your email to verify your account.",
        "success",
        redirect_url="/users/login",
        button_text="Go to Login",
    )


@users_router.get("/verify/{token}")
async def verify_email(request: Request, token: str):
    store = get_store(request)
    user = await store.find_user_by_verification_token(token)
    if not user:
        return message_page(
            request,
            "Invalid Link",
            "This verification link is invalid or has already been used.",
            "error",
            redirect_url="/users/register",
            button_text="Register",
        )
    expiry = user.get("token_expiry")
    if expiry is None or expiry < datetime.now():
        return message_page(
            request,
            "Link Expired",
            "Your verification link has expired. Please register again to receive a new one.",
            "error",
            redirect_url="/users/register",
            button_text="Register",
        )

    await store.update_user(
        user["id"],
        {"is_email_verified": True, "updated_at": datetime.now()},
        unset=("verification_token", "token_expiry"),
    )
    return message_page(
        request,
        "Registration Successful",
        "Your account has been verified successfully!",
        "success",
        redirect_url="/users/login",
        button_text="Go to Login",
    )


# ------------------------
# Session
# ------------------------
@users_router.get("/login", name="login")
async def login_page(request: Request, message: str | None = None):
    return render(request, "login.html", {"title": "Login", "message": message})


@users_router.post("/login")
async def login_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
):
    def failed(title: str, text: str):
        return message_page(
            request, title, text, "error", redirect_url="/users/login", button_text="Back to Login"
        )

    user = await get_store(request).find_user_by_email(email.strip())
    if not user:
        return failed("Login Failed", "User not found.")
    if user.get("account_status") != "active":
        return failed("Account Inactive", "Account is not active.")
    if not user.get("is_email_verified"):
        return failed("Email Not Verified", "Please verify your email first.")
    if not verify_password(password, user.get("password_hash")):
        logger.warning("Invalid password for %s", user.get("email"))
        return failed("Login Failed", "Invalid password.")

    request.session["user"] = _session_payload(user)
    logger.info("User %s logged in", user.get("email"))
    return RedirectResponse("/users/dashboard", status.HTTP_303_SEE_OTHER)


@users_router.get("/logout")
async def logout(request: Request):
    request.session.clear()
    return _login_redirect("Logged out successfully.")


@users_router.get("/dashboard", name="dashboard")
async def dashboard(request: Request, user: dict = Depends(login_required)):
    store = get_store(request)
    orders = await store.list_orders(user_email=user["email"])
    payments = await store.list_payments(user_email=user["email"])
    stats = {
        "total_orders": len(orders),
        "active_orders": sum(1 for order in orders if order.get("status") in ACTIVE_ORDER_STATUSES),
        "total_spent": sum(order_amount(payment.get("amount")) for payment in payments),
    }
    return render(
        request,
        "dashboard.html",
        {"title": "User Dashboard", "user": user, "stats": stats, "recent_orders": orders[:5]},
    )


@users_router.get("/profile/edit")
async def profile_page(request: Request, user: dict = Depends(login_required)):
    record = await get_store(request).find_user_by_email(user["email"])
    if not record:
        return message_page(
            request, "User Not Found", "User not found.", "error",
            redirect_url="/users/dashboard", button_text="Back",
        )
    return render(request, "profile_edit.html", {"title": "Edit Profile", "user": record})


@users_router.post("/profile/edit")
async def profile_save(
    request: Request,
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    user: dict = Depends(login_required),
):
    try:
        form = ProfileForm(first_name=first_name.strip(), last_name=last_name.strip(), email=email.strip())
    except ValidationError as exc:
        return message_page(
            request, "Error", _first_error(exc), "error",
            redirect_url="/users/profile/edit", button_text="Back",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    store = get_store(request)
    record = await store.find_user_by_email(user["email"])
    if not record:
        return message_page(
            request, "User Not Found", "User not found.", "error",
            redirect_url="/users/dashboard", button_text="Back",
        )
    if form.email != record["email"] and await store.find_user_by_email(form.email):
        return message_page(
            request, "Email In Use", "Another account already uses this email.", "error",
            redirect_url="/users/profile/edit", button_text="Back",
        )

    await store.update_user(
        record["id"],
        {
            "first_name": form.first_name,
            "last_name": form.last_name,
            "email": form.email,
            "updated_at": datetime.now(),
        },
    )
    user.update(first_name=form.first_name, last_name=form.last_name, email=form.email)
    request.session["user"] = user
    return message_page(
        request,
        "Profile Updated",
        "Your profile has been updated.",
        "success",
        redirect_url="/users/dashboard",
        button_text="Back to Dashboard",
    )


# ------------------------
# User administration
# ------------------------
@users_router.get("/admin", name="admin_dashboard")
async def admin_dashboard(request: Request, admin: dict = Depends(admin_required)):
    users = await get_store(request).list_users()
    return render(request, "admin.html", {"title": "Admin Dashboard", "users": users})


@users_router.get("/list")
async def users_list(request: Request, admin: dict = Depends(admin_required)):
    users = await get_store(request).list_users()
    return render(request, "users_list.html", {"title": "Registered Users", "users": users})


@users_router.get("/edit/{user_id}")
async def user_edit_page(request: Request, user_id: str, admin: dict = Depends(admin_required)):
    user = await get_store(request).get_user(user_id)
    if not user:
        return message_page(
            request, "User Not Found", "User not found.", "error",
            redirect_url="/users/list", button_text="Back",
        )
    return render(request, "edit_user.html", {"title": "Edit User", "user": user})


@users_router.post("/edit/{user_id}")
async def user_edit_save(
    request: Request,
    user_id: str,
    first_name: str = Form(""),
    last_name: str = Form(""),
    email: str = Form(""),
    admin: dict = Depends(admin_required),
):
    try:
        form = ProfileForm(first_name=first_name.strip(), last_name=last_name.strip(), email=email.strip())
    except ValidationError as exc:
        return message_page(
            request, "Error", _first_error(exc), "error",
            redirect_url=f"/users/edit/{user_id}", button_text="Back",
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    store = get_store(request)
    existing = await store.find_user_by_email(form.email)
    if existing and existing["id"] != user_id:
        return message_page(
            request, "Email In Use", "Another account already uses this email.", "error",
            redirect_url=f"/users/edit/{user_id}", button_text="Back",
        )
    found = await store.update_user(
        user_id,
        {
            "first_name": form.first_name,
            "last_name": form.last_name,
            "email": form.email,
            "updated_at": datetime.now(),
        },
    )
    if not found:
        return message_page(
            request, "User Not Found", "User not found.", "error",
            redirect_url="/users/list", button_text="Back",
        )
    flash(request, "User updated.")
    return RedirectResponse("/users/list", status.HTTP_303_SEE_OTHER)


@users_router.post("/delete/{user_id}")
async def user_delete(request: Request, user_id: str, admin: dict = Depends(admin_required)):
    if user_id == admin.get("id"):
        flash(request, "You cannot delete your own account.", "error")
        return RedirectResponse("/users/list", status.HTTP_303_SEE_OTHER)
    if await get_store(request).delete_user(user_id):
        logger.info("Admin %s deleted user %s", admin.get("email"), user_id)
        flash(request, "User deleted.")
    else:
        flash(request, "User not found.", "error")
    return RedirectResponse("/users/list", status.HTTP_303_SEE_OTHER)


@users_router.post("/{user_id}/role")
async def user_toggle_role(request: Request, user_id: str, admin: dict = Depends(admin_required)):
    store = get_store(request)
    user = await store.get_user(user_id)
    if not user:
        return message_page(
            request, "User Not Found", "User not found.", "error",
            redirect_url="/users/admin", button_text="Back",
        )
    if user_id == admin.get("id"):
        flash(request, "You cannot change your own role.", "error")
        return RedirectResponse("/users/admin", status.HTTP_303_SEE_OTHER)
    role = "customer" if user.get("role") == "admin" else "admin"
    await store.update_user(user_id, {"role": role, "updated_at": datetime.now()})
    logger.info("Admin %s set role of %s to %s", admin.get("email"), user.get("email"), role)
    flash(request, f"{user.get('email')} is now {role}.")
    return RedirectResponse("/users/admin", status.HTTP_303_SEE_OTHER)


@users_router.post("/{user_id}/status")
async def user_toggle_status(request: Request, user_id: str, admin: dict = Depends(admin_required)):
    store = get_store(request)
    user = await store.get_user(user_id)
    if not user:
        return message_page(
            request, "User Not Found", "User not found.", "error",
            redirect_url="/users/admin", button_text="Back",
        )
    if user_id == admin.get("id"):
        flash(request, "You cannot suspend your own account.", "error")
        return RedirectResponse("/users/admin", status.HTTP_303_SEE_OTHER)
    account_status = "suspended" if user.get("account_status") == "active" else "active"
    await store.update_user(user_id, {"account_status": account_status, "updated_at": datetime.now()})
    logger.info("Admin %s set status of %s to %s", admin.get("email"), user.get("email"), account_status)
    flash(request, f"{user.get('email')} is now {account_status}.")
    return RedirectResponse("/users/admin", status.HTTP_303_SEE_OTHER)


# ------------------------
# Password reset
# ------------------------
@password_router.get("/forgot")
async def forgot_page(request: Request):
    return render(request, "forgot_password.html", {"title": "Forgot Password"})


@password_router.post("/forgot")
async def forgot_submit(request: Request, email: str = Form("")):
    email = email.strip()
    if not is_valid_email(email):
        return message_page(
            request,
            "Invalid Email",
            "Please enter a valid email address.",
            "error",
            redirect_url="/password/forgot",
            button_text="Try Again",
        )
    store = get_store(request)
    user = await store.find_user_by_email(email)
    if not user:
        return message_page(
            request,
            "No Account Found",
            "No account found with this email.",
            "error",
            redirect_url="/password/forgot",
            button_text="Try Again",
        )

    token = new_token()
    await store.update_user(user["id"], {"reset_token": token, "reset_expiry": token_expiry()})
    try:
        await get_mailer(request).send_password_reset(user["email"], f"{BASE_URL}/password/reset/{token}")
    except MailerError as exc:
        log_failure(request, "Password reset email", exc, {"email": email})
        return message_page(
            request,
            "Error",
            "Could not send the reset email. Please try again later.",
            "error",
            redirect_url="/password/forgot",
            button_text="Try Again",
        )

    return message_page(
        request,
        "Reset Email Sent",
        "If an account with that email exists, a reset link has been sent.",
        "success",
        redirect_url="/users/login",
        button_text="Return to Login",
    )


@password_router.get("/reset/{token}")
async def reset_page(request: Request, token: str):
    return render(request, "reset_password.html", {"title": "Reset Password", "token": token})


@password_router.post("/reset/{token}")
async def reset_submit(
    request: Request,
    token: str,
    password: str = Form(""),
    confirm: str = Form(""),
):
    store = get_store(request)
    user = await store.find_user_by_reset_token(token, datetime.now())
    if not user:
        return message_page(
            request,
            "Invalid or Expired Link",
            "Reset link is invalid or has expired.",
            "error",
            redirect_url="/password/forgot",
            button_text="Request Reset",
        )
    if password != confirm:
        return message_page(
            request,
            "Password Mismatch",
            "Passwords do not match.",
            "error",
            redirect_url=f"/password/reset/{token}",
            button_text="Try Again",
        )
    if len(password) < 6:
        return message_page(
            request,
            "Password Too Short",
            "Password must be at least 6 characters.",
            "error",
            redirect_url=f"/password/reset/{token}",
            button_text="Try Again",
        )

    await store.update_user(
        user["id"],
        {"password_hash": hash_password(password), "updated_at": datetime.now()},
        unset=("reset_token", "reset_expiry"),
    )
    logger.info("Password reset for %s", user.get("email"))
    return message_page(
        request,
        "Password Reset Successful",
        "Password has been reset. You can now log in with your new password.",
        "success",
        redirect_url="/users/login",
        button_text="Login",
    )


__all__ = ["password_router", "users_router"]

"""
Form routes.

Submissions are validated with ``windsurf.validation``; failures surface as a
422 with per-field messages. POSTs only get here after CsrfMiddleware has
accepted their token.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from windsurf.routes.dependencies import get_csrf, get_session, request_data
from windsurf.schemas.forms import (
    ContactResponse,
    CsrfTokenResponse,
    FormPage,
    RegisterResponse,
    ValidationErrorResponse,
)
from windsurf.services.csrf_service import HEADER_NAME, CsrfTokenStore
from windsurf.services.session_service import SessionHandle
from windsurf.validation import AllOf, Email, Length, Predicate, Required, ValidationError, ValidationResult, validate_or_raise

router = APIRouter(tags=["Forms"])

VALIDATION_RESPONSES = {422: {"model": ValidationErrorResponse}}

CONTACT_SUCCESS = "Thank you! Your message has been sent successfully."

# JSON bodies can carry numbers, lists or objects where a string is expected
TEXT = Predicate(lambda v: isinstance(v, str), "Must be text.")

CONTACT_RULES = {
    "name": [Required(), TEXT, Length(3, 100)],
    "email": [Required(), TEXT, Email()],
    "subject": [Required(), TEXT, Length(5, 200)],
    "message": [Required(), TEXT, Length(10, 1000)],
}

REGISTER_RULES = {
    "name": [Required(), TEXT, Length(3, 100)],
    "email": [Required(), TEXT, AllOf([Email(), Length(max=255)])],
    "password": [
        Required(),
        TEXT,
        Length(min=8, message="Password must be at least 8 characters."),
        Predicate(lambda v: any(c.isdigit() for c in v), "Password must contain at least one number."),
    ],
    "password_confirmation": [Required(), TEXT],
}


def _token(csrf: CsrfTokenStore) -> CsrfTokenResponse:
    return CsrfTokenResponse(name=csrf.token_name, value=csrf.token_value, header=HEADER_NAME)


@router.get("/api/csrf-token", response_model=CsrfTokenResponse)
def get_csrf_token(csrf: CsrfTokenStore = Depends(get_csrf)):
    """Issue a token for clients that send it in the X-CSRF-TOKEN header."""
    return _token(csrf)


@router.get("/contact", response_model=FormPage)
def show_contact_form(
    csrf: CsrfTokenStore = Depends(get_csrf),
    session: SessionHandle = Depends(get_session),
):
    return FormPage(title="Contact Form", csrf=_token(csrf), success=session.get_flash("contact_success"))


@router.post("/contact", response_model=ContactResponse, responses=VALIDATION_RESPONSES)
async def submit_contact_form(
    data: Dict[str, Any] = Depends(request_data),
    session: SessionHandle = Depends(get_session),
):
    submitted = validate_or_raise(data, CONTACT_RULES)
    session.flash("contact_success", CONTACT_SUCCESS)
    return {"success": CONTACT_SUCCESS, "submitted": submitted}


@router.post("/register", response_model=RegisterResponse, responses=VALIDATION_RESPONSES)
async def submit_register_form(data: Dict[str, Any] = Depends(request_data)):
    submitted = validate_or_raise(data, REGISTER_RULES)
    if submitted["password"] != submitted["password_confirmation"]:
        raise ValidationError(ValidationResult({"password_confirmation": ["Passwords do not match."]}))

    return {
        "success": f"Registration successful! Welcome, {submitted['name']}",
        "user": {"name": submitted["name"], "email": submitted["email"]},
    }

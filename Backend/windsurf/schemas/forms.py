"""Form and CSRF schemas."""

from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr


class CsrfTokenResponse(BaseModel):
    name: str
    value: str
    header: str


class FormPage(BaseModel):
    title: str
    csrf: CsrfTokenResponse
    success: Optional[str] = None


class ContactSubmission(BaseModel):
    name: str
    email: EmailStr
    subject: str
    message: str


class ContactResponse(BaseModel):
    success: str
    submitted: ContactSubmission


class RegisteredUser(BaseModel):
    name: str
    email: EmailStr


class RegisterResponse(BaseModel):
    success: str
    user: RegisteredUser


class ValidationErrorResponse(BaseModel):
    errors: Dict[str, List[str]]

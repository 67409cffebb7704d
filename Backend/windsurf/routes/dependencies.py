"""Request-scoped dependencies shared by the routers."""

import secrets
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from windsurf.services.centinela.dispatcher import CentinelaDispatcher
from windsurf.services.csrf_service import CsrfTokenStore
from windsurf.services.session_service import SessionHandle


def get_session(request: Request) -> SessionHandle:
    session = getattr(request.state, "session", None)
    if session is None:
        raise HTTPException(status_code=500, detail="Session middleware is not installed")
    return session


def get_csrf(request: Request, session: SessionHandle = Depends(get_session)) -> CsrfTokenStore:
    """The store CsrfMiddleware attached, or a fresh one when CSRF enforcement is off."""
    csrf = getattr(request.state, "csrf", None)
    if csrf is None:
        csrf = CsrfTokenStore(session, request.app.state.settings.csrf.token_name)
        request.state.csrf = csrf
    return csrf


def get_dispatcher(request: Request) -> CentinelaDispatcher:
    return request.app.state.centinela


admin_token_header = APIKeyHeader(name="X-Admin-Token", auto_error=False)


def require_admin_token(
    supplied: Optional[str] = Security(admin_token_header),
    dispatcher: CentinelaDispatcher = Depends(get_dispatcher),
) -> None:
    """
    Guard for routes that expose stored audit records.

    With no CENTINELA_ADMIN_TOKEN configured the routes stay closed.
    """
    expected = dispatcher.config.admin_token
    if not expected:
        raise HTTPException(status_code=403, detail="Audit log access is not configured")
    if not supplied or not secrets.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(
            status_code=401,
            detail="Invalid or missing admin token",
            headers={"WWW-Authenticate": "X-Admin-Token"},
        )


async def request_data(request: Request) -> Dict[str, Any]:
    """Submitted fields from a JSON object body or a form body."""
    content_type = request.headers.get("content-type", "").lower()
    if "application/json" in content_type:
        try:
            data = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Malformed JSON body")
        if not isinstance(data, dict):
            raise HTTPException(status_code=400, detail="JSON body must be an object")
        return data

    form = await request.form()
    try:
        return {key: value for key, value in form.items() if isinstance(value, str)}
    finally:
        await form.close()

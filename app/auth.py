"""Supabase JWT auth middleware."""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

import httpx
from jose import jwt
from jose.exceptions import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse

logger = logging.getLogger("folio.auth")

_JWKS_CACHE: Dict[str, Any] = {"keys": None, "fetched_at": 0.0, "ttl": 600.0}
_PUBLIC_PATHS = {"/health", "/api/analytics"}
_PUBLIC_PREFIXES = ("/uploads/",)
SESSION_COOKIE = "sb-access-token"


def auth_disabled() -> bool:
    return os.getenv("FOLIO_DISABLE_AUTH", "").strip().lower() in ("1", "true", "yes")


def sign_in_path() -> str:
    return os.getenv("FOLIO_SIGN_IN_PATH", "/sign-in").strip() or "/sign-in"


def _fetch_jwks(jwks_url: str, force: bool = False) -> dict:
    now = time.time()
    if not force and _JWKS_CACHE["keys"] and now - _JWKS_CACHE["fetched_at"] < _JWKS_CACHE["ttl"]:
        return _JWKS_CACHE["keys"]
    resp = httpx.get(jwks_url, timeout=10.0)
    resp.raise_for_status()
    data = resp.json()
    _JWKS_CACHE["keys"] = data
    _JWKS_CACHE["fetched_at"] = now
    return data


def _get_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        return auth.split(" ", 1)[1].strip() or None
    return (request.cookies.get(SESSION_COOKIE) or "").strip() or None


def _find_key(jwks: dict, kid: str | None) -> dict | None:
    for jwk in jwks.get("keys", []):
        if jwk.get("kid") == kid:
            return jwk
    return None


def _verify_jwt(token: str, jwks_url: str, issuer: str, audience: Optional[str]) -> dict:
    headers = jwt.get_unverified_header(token)
    kid = headers.get("kid")
    key = _find_key(_fetch_jwks(jwks_url), kid) or _find_key(_fetch_jwks(jwks_url, force=True), kid)
    if key is None:
        raise JWTError("Unknown kid")
    options = {"verify_aud": audience is not None}
    return jwt.decode(token, key, algorithms=[headers.get("alg", "RS256")], issuer=issuer, audience=audience, options=options)


def _is_public(path: str) -> bool:
    return path in _PUBLIC_PATHS or path.startswith(_PUBLIC_PREFIXES) or path == sign_in_path()


def _wants_html(request: Request) -> bool:
    return request.method == "GET" and "text/html" in request.headers.get("accept", "")


def _reject(request: Request, code: str, message: str, detail: dict | None = None):
    if _wants_html(request):
        target = f"{sign_in_path()}?next={request.url.path}"
        return RedirectResponse(target, status_code=303)
    return JSONResponse(
        {
            "ok": False,
            "errors": [{"code": code, "message": message, "path": "Authorization", "detail": detail}],
            "warnings": [],
        },
        status_code=401,
    )


class SupabaseAuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, supabase_url: str, audience: Optional[str] = None) -> None:
        super().__init__(app)
        self._supabase_url = supabase_url.rstrip("/")
        self._audience = audience
        self._jwks_url = f"{self._supabase_url}/auth/v1/.well-known/jwks.json"
        self._issuer = f"{self._supabase_url}/auth/v1"

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        if auth_disabled() or request.method == "OPTIONS" or _is_public(request.url.path):
            return await call_next(request)

        token = _get_token(request)
        if not token:
            logger.warning("auth_missing_token path=%s", request.url.path)
            return _reject(request, "AUTH_MISSING_TOKEN", "Missing bearer token")

        try:
            claims = _verify_jwt(token, self._jwks_url, self._issuer, self._audience)
        except Exception as exc:
            logger.warning(
                "auth_invalid_token path=%s issuer=%s audience=%s error=%s",
                request.url.path,
                self._issuer,
                self._audience,
                exc,
            )
            return _reject(request, "AUTH_INVALID_TOKEN", "Invalid bearer token", {"error": str(exc)})

        request.state.user = {
            "id": claims.get("sub"),
            "email": claims.get("email"),
            "role": claims.get("role"),
            "claims": claims,
        }
        request.state.auth_ms = (time.perf_counter() - start) * 1000
        return await call_next(request)

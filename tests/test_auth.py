import os
import sys
import unittest
from unittest import mock

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from jose.exceptions import JWTError

from app.auth import SupabaseAuthMiddleware


def _build_app() -> FastAPI:
    app = FastAPI()

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.get("/admin/brands")
    async def brands(request: Request):
        return {"ok": True, "email": request.state.user["email"]}

    app.add_middleware(SupabaseAuthMiddleware, supabase_url="https://proj.supabase.co/")
    return app


class TestSupabaseAuthMiddleware(unittest.TestCase):
    def setUp(self) -> None:
        patcher = mock.patch.dict(os.environ, {"FOLIO_DISABLE_AUTH": "0", "FOLIO_SIGN_IN_PATH": "/sign-in"})
        patcher.start()
        self.addCleanup(patcher.stop)
        self.client = TestClient(_build_app())

    def test_public_path_skips_auth(self) -> None:
        self.assertEqual(self.client.get("/health").status_code, 200)

    def test_missing_token_json(self) -> None:
        res = self.client.get("/admin/brands")
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json()["errors"][0]["code"], "AUTH_MISSING_TOKEN")

    def test_missing_token_browser_redirects_to_sign_in(self) -> None:
        res = self.client.get("/admin/brands", headers={"accept": "text/html"}, follow_redirects=False)
        self.assertEqual(res.status_code, 303)
        self.assertEqual(res.headers["location"], "/sign-in?next=/admin/brands")

    def test_valid_bearer_token(self) -> None:
        with mock.patch("app.auth._verify_jwt", return_value={"sub": "u1", "email": "admin@example.com"}) as verify:
            res = self.client.get("/admin/brands", headers={"Authorization": "Bearer tok"})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["email"], "admin@example.com")
        args = verify.call_args.args
        self.assertEqual(args[0], "tok")
        self.assertEqual(args[1], "https://proj.supabase.co/auth/v1/.well-known/jwks.json")
        self.assertEqual(args[2], "https://proj.supabase.co/auth/v1")

    def test_session_cookie_token(self) -> None:
        self.client.cookies.set("sb-access-token", "cookie-tok")
        with mock.patch("app.auth._verify_jwt", return_value={"sub": "u1", "email": "cookie@example.com"}) as verify:
            res = self.client.get("/admin/brands")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(verify.call_args.args[0], "cookie-tok")

    def test_invalid_token(self) -> None:
        with mock.patch("app.auth._verify_jwt", side_effect=JWTError("Signature verification failed")):
            res = self.client.get("/admin/brands", headers={"Authorization": "Bearer bad"})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json()["errors"][0]["code"], "AUTH_INVALID_TOKEN")


if __name__ == "__main__":
    unittest.main()

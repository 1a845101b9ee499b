"""
Hosted backend client (Supabase): GoTrue auth endpoints and PostgREST tables.

Only what the app needs is wrapped. Table queries mirror the supabase-js
builder the data model was designed around:

    client.table("user_todos", token).select("id, text").eq("user_id", uid).order("created_at").execute()
"""

import base64
import hashlib
import logging
import secrets
from typing import Optional
from urllib.parse import urlencode

import requests

from errors import BackendError

logger = logging.getLogger(__name__)


def _error_message(r) -> str:
    try:
        body = r.json()
    except ValueError:
        return r.text[:200] or f"HTTP {r.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {r.status_code}"


def make_pkce_pair() -> tuple[str, str]:
    """Return (code_verifier, code_challenge) for the S256 PKCE flow."""
    verifier = secrets.token_urlsafe(48)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


class SupabaseClient:
    def __init__(self, url: str, anon_key: str, timeout: float = 15):
        if not url or not anon_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required")
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.auth = AuthClient(self)

    def request(self, method: str, path: str, *, params=None, json=None,
                access_token: Optional[str] = None, prefer: Optional[str] = None):
        """Send one request; returns decoded JSON (or None for empty bodies). Raises BackendError."""
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        try:
            r = requests.request(method, f"{self.url}{path}", params=params, json=json,
                                 headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise BackendError(f"Backend unreachable: {e}") from e
        if r.status_code >= 400:
            raise BackendError(_error_message(r), status=r.status_code)
        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise BackendError("Backend returned invalid JSON") from e

    def table(self, name: str, access_token: Optional[str] = None) -> "Table":
        return Table(self, name, access_token)


class AuthClient:
    """GoTrue endpoints. Session dicts carry access_token, refresh_token, expires_at and user."""

    def __init__(self, client: SupabaseClient):
        self.client = client

    def sign_in_with_password(self, email: str, password: str) -> dict:
        return self.client.request("POST", "/auth/v1/token", params={"grant_type": "password"},
                                   json={"email": email, "password": password})

    def sign_up(self, email: str, password: str, redirect_to: Optional[str] = None) -> dict:
        params = {"redirect_to": redirect_to} if redirect_to else None
        return self.client.request("POST", "/auth/v1/signup", params=params,
                                   json={"email": email, "password": password})

    def sign_in_with_oauth(self, provider: str, redirect_to: str) -> tuple[str, str]:
        """Build the provider authorize URL. Returns (url, code_verifier); keep the verifier for the callback."""
        verifier, challenge = make_pkce_pair()
        query = urlencode({
            "provider": provider,
            "redirect_to": redirect_to,
            "code_challenge": challenge,
            "code_challenge_method": "s256",
        })
        return f"{self.client.url}/auth/v1/authorize?{query}", verifier

    def exchange_code_for_session(self, auth_code: str, code_verifier: str) -> dict:
        return self.client.request("POST", "/auth/v1/token", params={"grant_type": "pkce"},
                                   json={"auth_code": auth_code, "code_verifier": code_verifier})

    def reset_password_for_email(self, email: str, redirect_to: str) -> str:
        """Send the recovery email. Returns the PKCE verifier needed when the link comes back."""
        verifier, challenge = make_pkce_pair()
        self.client.request("POST", "/auth/v1/recover", params={"redirect_to": redirect_to},
                            json={"email": email, "code_challenge": challenge,
                                  "code_challenge_method": "s256"})
        return verifier

    def refresh_session(self, refresh_token: str) -> dict:
        return self.client.request("POST", "/auth/v1/token", params={"grant_type": "refresh_token"},
                                   json={"refresh_token": refresh_token})

    def get_user(self, access_token: str) -> dict:
        return self.client.request("GET", "/auth/v1/user", access_token=access_token)

    def update_user(self, access_token: str, password: str) -> dict:
        return self.client.request("PUT", "/auth/v1/user", access_token=access_token,
                                   json={"password": password})

    def sign_out(self, access_token: str) -> None:
        self.client.request("POST", "/auth/v1/logout", access_token=access_token)


def _filter_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class Table:
    """Chainable PostgREST query. Nothing is sent until execute()."""

    def __init__(self, client: SupabaseClient, name: str, access_token: Optional[str] = None):
        self.client = client
        self.name = name
        self.access_token = access_token
        self.method = "GET"
        self.params = {}
        self.body = None
        self.prefer = None

    def select(self, columns: str = "*") -> "Table":
        self.method = "GET"
        self.params["select"] = columns.replace(" ", "")
        return self

    def insert(self, rows) -> "Table":
        self.method = "POST"
        self.body = rows
        self.prefer = "return=representation"
        return self

    def upsert(self, rows, on_conflict: Optional[str] = None) -> "Table":
        self.method = "POST"
        self.body = rows
        self.prefer = "resolution=merge-duplicates,return=representation"
        if on_conflict:
            self.params["on_conflict"] = on_conflict
        return self

    def update(self, values: dict) -> "Table":
        self.method = "PATCH"
        self.body = values
        self.prefer = "return=representation"
        return self

    def delete(self) -> "Table":
        self.method = "DELETE"
        self.prefer = "return=representation"
        return self

    def eq(self, column: str, value) -> "Table":
        self.params[column] = f"eq.{_filter_value(value)}"
        return self

    def order(self, column: str, ascending: bool = True) -> "Table":
        self.params["order"] = f"{column}.{'asc' if ascending else 'desc'}"
        return self

    def execute(self) -> list[dict]:
        # Writes without a filter would touch every visible row
        if self.method in ("PATCH", "DELETE") and not any(k not in ("select", "order") for k in self.params):
            raise BackendError(f"Refusing unfiltered {self.method} on {self.name}")
        data = self.client.request(self.method, f"/rest/v1/{self.name}", params=self.params or None,
                                   json=self.body, access_token=self.access_token, prefer=self.prefer)
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return data

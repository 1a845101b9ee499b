"""Pytest configuration and shared fixtures: in-memory backend and price oracle."""

import copy
import itertools
import time

import pytest

from errors import BackendError, PriceOracleError
from server import create_app

USER_ID = "user-1"
EMAIL = "trader@example.com"
PASSWORD = "secret"


class FakeTable:
    """Mimics backend.Table against a dict of lists."""

    def __init__(self, store, name, token):
        self.store = store
        self.name = name
        self.token = token
        self.op = "select"
        self.filters = {}
        self.payload = None
        self.on_conflict = None
        self.order_by = None

    def select(self, columns="*"):
        self.op = "select"
        return self

    def insert(self, rows):
        self.op, self.payload = "insert", rows
        return self

    def upsert(self, rows, on_conflict=None):
        self.op, self.payload, self.on_conflict = "upsert", rows, on_conflict
        return self

    def update(self, values):
        self.op, self.payload = "update", values
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters[column] = value
        return self

    def order(self, column, ascending=True):
        self.order_by = (column, ascending)
        return self

    def _matches(self, row):
        return all(row.get(k) == v for k, v in self.filters.items())

    def execute(self):
        self.store.calls.append((self.name, self.op, dict(self.filters)))
        if self.store.fail:
            raise BackendError("backend down", status=503)
        rows = self.store.tables.setdefault(self.name, [])
        if self.op == "insert":
            new = self.payload if isinstance(self.payload, list) else [self.payload]
            out = []
            for r in new:
                row = dict(r)
                row.setdefault("id", f"row-{next(self.store.ids)}")
                row.setdefault("created_at", next(self.store.clock))
                rows.append(row)
                out.append(copy.deepcopy(row))
            return out
        if self.op == "upsert":
            row = dict(self.payload)
            keys = (self.on_conflict or "id").split(",")
            for existing in rows:
                if all(existing.get(k) == row.get(k) for k in keys):
                    existing.update(row)
                    return [copy.deepcopy(existing)]
            row.setdefault("id", f"row-{next(self.store.ids)}")
            row.setdefault("created_at", next(self.store.clock))
            rows.append(row)
            return [copy.deepcopy(row)]
        matched = [r for r in rows if self._matches(r)]
        if self.op == "update":
            for r in matched:
                r.update(copy.deepcopy(self.payload))
            return copy.deepcopy(matched)
        if self.op == "delete":
            self.store.tables[self.name] = [r for r in rows if not self._matches(r)]
            return copy.deepcopy(matched)
        if self.order_by:
            col, asc = self.order_by
            matched = sorted(matched, key=lambda r: r.get(col, 0), reverse=not asc)
        return copy.deepcopy(matched)


class FakeAuth:
    def __init__(self):
        self.calls = []
        self.fail_refresh_status = None

    def _session(self, email=EMAIL, expires_in=3600):
        return {
            "access_token": f"tok-{email}",
            "refresh_token": "ref-1",
            "expires_in": expires_in,
            "user": {"id": USER_ID, "email": email},
        }

    def sign_in_with_password(self, email, password):
        self.calls.append(("sign_in", email))
        if password != PASSWORD:
            raise BackendError("Invalid login credentials", status=400)
        return self._session(email)

    def sign_up(self, email, password, redirect_to=None):
        self.calls.append(("sign_up", email, redirect_to))
        return {"id": "new-user", "email": email}

    def sign_in_with_oauth(self, provider, redirect_to):
        self.calls.append(("oauth", provider, redirect_to))
        return f"https://backend.test/auth/v1/authorize?provider={provider}", "verifier-oauth"

    def exchange_code_for_session(self, auth_code, code_verifier):
        self.calls.append(("exchange", auth_code, code_verifier))
        if auth_code == "bad":
            raise BackendError("invalid flow state", status=400)
        return self._session()

    def reset_password_for_email(self, email, redirect_to):
        self.calls.append(("recover", email, redirect_to))
        return "verifier-reset"

    def refresh_session(self, refresh_token):
        self.calls.append(("refresh", refresh_token))
        if self.fail_refresh_status is not None:
            raise BackendError("refresh failed", status=self.fail_refresh_status or None)
        return self._session()

    def update_user(self, access_token, password):
        self.calls.append(("update_user", access_token))
        return {"id": USER_ID}

    def sign_out(self, access_token):
        self.calls.append(("sign_out", access_token))


class FakeBackend:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.fail = False
        self.ids = itertools.count(1)
        self.clock = itertools.count(1)
        self.auth = FakeAuth()

    def table(self, name, access_token=None):
        return FakeTable(self, name, access_token)

    def db(self, token="tok"):
        return lambda name: self.table(name, token)


class FakeOracle:
    def __init__(self):
        self.markets = [
            {"id": "bitcoin", "name": "Bitcoin", "symbol": "BTC", "price": 50000.0, "image": ""},
            {"id": "ethereum", "name": "Ethereum", "symbol": "ETH", "price": 2500.0, "image": ""},
            {"id": "tether", "name": "Tether", "symbol": "USDT", "price": 1.0, "image": ""},
        ]
        self.prices = {"bitcoin": 50000.0, "ethereum": 2500.0, "tether": 1.0}
        self.search = {"bitcoin": {"id": "bitcoin", "name": "Bitcoin", "symbol": "btc", "price": 50000.0}}
        self.fail = False
        self.price_requests = []

    def fetch_markets(self):
        if self.fail:
            raise PriceOracleError("HTTP 429", status=429)
        return [dict(c) for c in self.markets]

    def fetch_simple_prices(self, ids):
        self.price_requests.append(list(ids))
        if self.fail:
            raise PriceOracleError("HTTP 429", status=429)
        return {i: self.prices[i] for i in ids if i in self.prices}

    def search_coin(self, query):
        if self.fail:
            raise PriceOracleError("HTTP 429", status=429)
        return dict(self.search[query.lower()]) if query.lower() in self.search else None


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def fake_oracle():
    return FakeOracle()


@pytest.fixture
def app(fake_backend, fake_oracle):
    settings = {"FLASK_SECRET": "test-secret", "PUBLIC_URL": "http://companion.test", "HTTP_TIMEOUT": 1}
    app = create_app(settings, deps={"backend": fake_backend, "oracle": fake_oracle})
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    """Test client with a signed-in, unexpired session cookie."""
    with client.session_transaction() as sess:
        sess["auth"] = {
            "access_token": "tok-live",
            "refresh_token": "ref-1",
            "expires_at": int(time.time()) + 3600,
            "user": {"id": USER_ID, "email": EMAIL},
        }
    return client

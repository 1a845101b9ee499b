"""End-to-end route tests through the Flask test client with fake backend and oracle."""

import logging
import time

from conftest import EMAIL, PASSWORD, USER_ID
from portfolio import TABLE as PORTFOLIO_TABLE
from todos import TABLE as TODO_TABLE


def location(resp) -> str:
    return resp.headers.get("Location", "")


# ── Gating ──

def test_protected_page_redirects_to_auth(client) -> None:
    resp = client.get("/dashboard")
    assert resp.status_code == 302
    assert location(resp).endswith("/auth")


def test_root_redirects_by_session(client, auth_client) -> None:
    assert location(auth_client.get("/")).endswith("/dashboard")
    with client.session_transaction() as sess:
        sess.pop("auth", None)
    assert location(client.get("/")).endswith("/auth")


def test_api_requires_session(client) -> None:
    resp = client.get("/api/convert?amount=1&from_price=1&to_price=1")
    assert resp.status_code == 401
    assert resp.get_json()["success"] is False


def test_auth_page_redirects_when_signed_in(auth_client) -> None:
    assert location(auth_client.get("/auth")).endswith("/dashboard")


def test_unknown_route_is_404_and_logged(client, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        resp = client.get("/no/such/page")
    assert resp.status_code == 404
    assert b"404" in resp.data
    assert "/no/such/page" in caplog.text


# ── Auth ──

def test_sign_in_stores_session(client, fake_backend) -> None:
    resp = client.post("/auth", data={"mode": "signin", "email": EMAIL, "password": PASSWORD})
    assert location(resp).endswith("/dashboard")
    with client.session_transaction() as sess:
        assert sess["auth"]["access_token"] == f"tok-{EMAIL}"
        assert sess["auth"]["user"]["id"] == USER_ID
        assert sess["auth"]["expires_at"] > time.time()


def test_sign_in_rejected(client) -> None:
    resp = client.post("/auth", data={"mode": "signin", "email": EMAIL, "password": "wrong"})
    assert resp.status_code == 200
    assert b"Invalid login credentials." in resp.data
    with client.session_transaction() as sess:
        assert "auth" not in sess


def test_sign_up_asks_for_confirmation(client, fake_backend) -> None:
    resp = client.post("/auth", data={"mode": "signup", "email": "new@example.com", "password": "pw12345"})
    assert "saved=Check" in location(resp)
    assert fake_backend.auth.calls[-1] == ("sign_up", "new@example.com", "http://companion.test/auth")


def test_forgot_password_sends_link(client, fake_backend) -> None:
    resp = client.post("/auth", data={"mode": "forgot", "email": EMAIL})
    assert "saved=" in location(resp)
    assert fake_backend.auth.calls[-1] == ("recover", EMAIL, "http://companion.test/reset-password")
    with client.session_transaction() as sess:
        assert sess["pkce_verifier"] == "verifier-reset"


def test_google_sign_in_round_trip(client, fake_backend) -> None:
    resp = client.get("/auth/google")
    assert location(resp).startswith("https://backend.test/auth/v1/authorize")
    assert fake_backend.auth.calls[-1] == ("oauth", "google", "http://companion.test/auth/callback")

    resp = client.get("/auth/callback?code=abc")
    assert location(resp).endswith("/dashboard")
    assert fake_backend.auth.calls[-1] == ("exchange", "abc", "verifier-oauth")


def test_google_callback_without_verifier(client) -> None:
    resp = client.get("/auth/callback?code=abc")
    assert "error=Google" in location(resp)


def test_password_reset_flow(client, fake_backend) -> None:
    with client.session_transaction() as sess:
        sess["pkce_verifier"] = "verifier-reset"

    resp = client.get("/reset-password?code=recovery-code")
    assert location(resp).endswith("/reset-password")
    assert b"Set a new password" in client.get("/reset-password").data

    resp = client.post("/reset-password", data={"password": "new-secret"})
    assert "saved=Password" in location(resp)
    assert fake_backend.auth.calls[-1][0] == "update_user"
    with client.session_transaction() as sess:
        assert "auth" not in sess


def test_reset_password_without_session(client) -> None:
    assert b"invalid or has expired" in client.get("/reset-password").data


def test_logout_clears_session(auth_client, fake_backend) -> None:
    resp = auth_client.post("/logout")
    assert location(resp).endswith("/auth")
    assert fake_backend.auth.calls[-1] == ("sign_out", "tok-live")
    with auth_client.session_transaction() as sess:
        assert "auth" not in sess


def test_profile_shows_email(auth_client) -> None:
    assert EMAIL.encode() in auth_client.get("/profile").data


def test_expired_token_is_refreshed(auth_client, fake_backend) -> None:
    with auth_client.session_transaction() as sess:
        sess["auth"] = dict(sess["auth"], expires_at=int(time.time()) - 5)

    resp = auth_client.get("/dashboard")

    assert resp.status_code == 200
    assert fake_backend.auth.calls[-1] == ("refresh", "ref-1")
    with auth_client.session_transaction() as sess:
        assert sess["auth"]["access_token"] == f"tok-{EMAIL}"


def test_rejected_refresh_signs_out(auth_client, fake_backend) -> None:
    fake_backend.auth.fail_refresh_status = 400
    with auth_client.session_transaction() as sess:
        sess["auth"] = dict(sess["auth"], expires_at=int(time.time()) - 5)
    assert location(auth_client.get("/dashboard")).endswith("/auth")


def test_unreachable_backend_shows_wait_page(auth_client, fake_backend) -> None:
    fake_backend.auth.fail_refresh_status = 503
    with auth_client.session_transaction() as sess:
        sess["auth"] = dict(sess["auth"], expires_at=int(time.time()) - 5)
    resp = auth_client.get("/converter")
    assert resp.status_code == 200
    assert b"checking your session" in resp.data


# ── Dashboard / portfolio ──

def _holding(coin_id, quantity, selected=True):
    return {"user_id": USER_ID, "coin_id": coin_id, "name": coin_id, "symbol": coin_id[:3],
            "price": 1.0, "quantity": quantity, "isSelected": selected}


def test_dashboard_totals(auth_client, fake_backend) -> None:
    fake_backend.tables[PORTFOLIO_TABLE] = [_holding("bitcoin", 0.5), _holding("ethereum", 4)]
    data = auth_client.get("/dashboard").data
    assert b"35000.00 USD" in data
    assert b"= 0.700000 BTC" in data


def test_dashboard_survives_price_failure(auth_client, fake_backend, fake_oracle) -> None:
    fake_backend.tables[PORTFOLIO_TABLE] = [_holding("bitcoin", 0.5)]
    fake_oracle.fail = True
    resp = auth_client.get("/dashboard")
    assert resp.status_code == 200
    assert b"0.00 USD" in resp.data
    assert b"Could not load portfolio prices." in resp.data


def test_portfolio_add_and_list(auth_client, fake_backend) -> None:
    resp = auth_client.post("/portfolio/add", data={"name": "bitcoin", "quantity": "0.5"})
    assert "saved=Added+BTC" in location(resp)

    rows = fake_backend.tables[PORTFOLIO_TABLE]
    assert rows[0]["user_id"] == USER_ID and rows[0]["quantity"] == 0.5

    data = auth_client.get("/portfolio").data
    assert b"25000.00 USD" in data
    assert b"BTC" in data


def test_portfolio_add_validation(auth_client, fake_backend) -> None:
    assert "error=Fill" in location(auth_client.post("/portfolio/add", data={"name": "bitcoin", "quantity": "0"}))
    assert "error=Failed" in location(auth_client.post("/portfolio/add", data={"name": "nocoin", "quantity": "1"}))
    assert fake_backend.tables.get(PORTFOLIO_TABLE, []) == []


def test_portfolio_toggle_and_reset(auth_client, fake_backend) -> None:
    fake_backend.tables[PORTFOLIO_TABLE] = [_holding("bitcoin", 1)]

    auth_client.post("/portfolio/bitcoin/toggle")
    assert fake_backend.tables[PORTFOLIO_TABLE][0]["isSelected"] is False
    assert b"0.00 USD" in auth_client.get("/portfolio").data

    auth_client.post("/portfolio/reset")
    assert fake_backend.tables[PORTFOLIO_TABLE] == []


def test_portfolio_backend_failure(auth_client, fake_backend) -> None:
    fake_backend.fail = True
    resp = auth_client.get("/portfolio")
    assert resp.status_code == 200
    assert b"Could not load your portfolio." in resp.data


# ── Calculators ──

def test_position_calculator(auth_client) -> None:
    resp = auth_client.post("/position-calculator", data={
        "investment": "1000", "leverage": "10", "direction": "long",
        "open_price": "100", "has_close_price": "no", "required_profit": "50",
    })
    assert b"Target Price" in resp.data
    assert b"$100.50" in resp.data


def test_position_calculator_errors(auth_client) -> None:
    resp = auth_client.post("/position-calculator", data={"investment": "", "has_close_price": "yes"})
    assert resp.status_code == 200
    assert b"Enter an amount to invest" in resp.data
    assert b"Target Price" not in resp.data


def test_daily_compounding(auth_client) -> None:
    resp = auth_client.post("/daily-compounding", data={
        "starting_amount": "100", "target_amount": "200", "daily_rate": "1",
    })
    assert b"Days: 70" in resp.data
    assert b"and 40 more days" in resp.data


def test_daily_compounding_ceiling(auth_client) -> None:
    resp = auth_client.post("/daily-compounding", data={
        "starting_amount": "100", "target_amount": "200", "daily_rate": "0",
    })
    assert b"Days: 365" in resp.data
    assert b"Target not reached within" in resp.data


def test_export_plan_to_todo(auth_client, fake_backend) -> None:
    resp = auth_client.post("/daily-compounding/export", data={
        "starting_amount": "100", "target_amount": "200", "daily_rate": "1",
    })
    assert "/todo" in location(resp) and "tab=plan" in location(resp)
    rows = fake_backend.tables[TODO_TABLE]
    assert rows[0]["type"] == "plan" and len(rows[0]["text"]) == 70
    assert b"Day - 1: 101.00" in auth_client.get("/todo?tab=plan").data


def test_second_export_is_shown(auth_client, fake_backend) -> None:
    auth_client.post("/daily-compounding/export", data={
        "starting_amount": "1000", "target_amount": "1100", "daily_rate": "5",
    })
    auth_client.post("/daily-compounding/export", data={
        "starting_amount": "100", "target_amount": "200", "daily_rate": "1",
    })
    html = auth_client.get("/todo?tab=plan").data
    assert b"Day - 70" in html
    assert b"Day - 1: 1,050.00" not in html


def test_export_without_inputs(auth_client, fake_backend) -> None:
    resp = auth_client.post("/daily-compounding/export", data={})
    assert "error=" in location(resp)
    assert fake_backend.tables.get(TODO_TABLE, []) == []


# ── Converter ──

def test_converter_defaults_to_btc_usdt(auth_client) -> None:
    resp = auth_client.get("/converter")
    assert resp.status_code == 200
    assert b'id="converted">50,000<' in resp.data
    assert b"USDT" in resp.data


def test_converter_query_keeps_selected_pair(auth_client) -> None:
    data = auth_client.get("/converter?q=eth&from=bitcoin&to=tether&amount=2").data
    assert b'value="ethereum"' in data
    assert b'value="bitcoin"' in data
    assert b'id="converted">100,000<' in data


def test_converter_swap_link_is_url_encoded(auth_client) -> None:
    data = auth_client.get("/converter?from=bitcoin&to=tether&amount=1%2B2%262%23").data
    assert b'href="/converter?from=tether&amp;to=bitcoin&amp;amount=1%2B2%262%23"' in data


def test_converter_price_failure(auth_client, fake_oracle) -> None:
    fake_oracle.fail = True
    resp = auth_client.get("/converter")
    assert resp.status_code == 200
    assert b"Failed to fetch coin list." in resp.data


def test_api_convert(auth_client) -> None:
    body = auth_client.get("/api/convert?amount=2&from_price=50000&to_price=1").get_json()
    assert body == {"amount": "2", "converted": 100000.0, "display": "100,000"}


def test_api_convert_applies_keypad(auth_client) -> None:
    body = auth_client.get("/api/convert?amount=0&key=5&from_price=2&to_price=1").get_json()
    assert body["amount"] == "5"
    assert body["converted"] == 10.0


def test_api_convert_missing_price(auth_client) -> None:
    body = auth_client.get("/api/convert?amount=3&from_price=&to_price=1").get_json()
    assert body["converted"] == 0.0


# ── To-do ──

def test_todo_empty_states(auth_client) -> None:
    assert b"Plan has been reset." in auth_client.get("/todo").data
    assert b"No custom tasks yet." in auth_client.get("/todo?tab=new").data


def test_plan_toggle_cascades(auth_client, fake_backend) -> None:
    auth_client.post("/daily-compounding/export", data={
        "starting_amount": "100", "target_amount": "110", "daily_rate": "1",
    })
    resp = auth_client.post("/todo/plan/2/toggle")
    assert "tab=plan" in location(resp)
    completed = fake_backend.tables[TODO_TABLE][0]["completed"]
    assert completed[:3] == [True, True, True]
    assert not any(completed[3:])


def test_plan_reset(auth_client, fake_backend) -> None:
    auth_client.post("/daily-compounding/export", data={
        "starting_amount": "100", "target_amount": "110", "daily_rate": "1",
    })
    auth_client.post("/todo/plan/reset")
    assert fake_backend.tables[TODO_TABLE] == []


def test_custom_task_lifecycle(auth_client, fake_backend) -> None:
    auth_client.post("/todo/custom", data={"text": "Buy the dip"})
    assert b"Buy the dip" in auth_client.get("/todo?tab=new").data

    task_id = fake_backend.tables[TODO_TABLE][0]["id"]
    auth_client.post(f"/todo/custom/{task_id}/toggle")
    assert fake_backend.tables[TODO_TABLE][0]["completed"] == [True]

    resp = auth_client.post(f"/todo/custom/{task_id}/delete")
    assert "tab=new" in location(resp)
    assert fake_backend.tables[TODO_TABLE] == []


def test_blank_custom_task_ignored(auth_client, fake_backend) -> None:
    auth_client.post("/todo/custom", data={"text": "   "})
    assert fake_backend.tables.get(TODO_TABLE, []) == []

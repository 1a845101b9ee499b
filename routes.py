"""Flask route handlers for Crypto Companion (Blueprint)."""

import logging
from urllib.parse import urlencode

from flask import Blueprint, g, jsonify, redirect, request, session

import calculators
import pages
import portfolio
import todos
from errors import BackendError, CompanionError, PriceOracleError
from formatting import format_converted
from price_oracle import filter_coins, find_coin
from session_state import SessionContext, navigation_for, restore_session

logger = logging.getLogger(__name__)

bp = Blueprint("main", __name__)

# Module-level references, set by init_routes()
PUBLIC_URL = ""
_deps = {}  # backend, oracle

DEFAULT_FROM = "bitcoin"
DEFAULT_TO = "tether"
OAUTH_PROVIDER = "google"


def init_routes(config):
    """Inject dependencies from create_app(). Call before registering blueprint."""
    global PUBLIC_URL
    PUBLIC_URL = (config.get("PUBLIC_URL") or "").rstrip("/")
    _deps.clear()
    _deps.update(config)


# ── Accessor helpers for injected dependencies ──
def backend():
    return _deps["backend"]

def oracle():
    return _deps["oracle"]

def db(name):
    """Table query builder bound to the signed-in user's token."""
    return backend().table(name, g.auth.access_token)

def public_url():
    return PUBLIC_URL or request.host_url.rstrip("/")

def back(path, saved="", error="", **params):
    """Redirect to `path` carrying a toast message (and any extra query params)."""
    query = {k: v for k, v in params.items() if v not in (None, "")}
    if saved:
        query["saved"] = saved
    if error:
        query["error"] = error
    return redirect(f"{path}?{urlencode(query)}" if query else path)

def _persist_session(ctx):
    if ctx.to_cookie():
        session["auth"] = ctx.to_cookie()
    else:
        session.pop("auth", None)


# Session context + route gating
@bp.before_app_request
def load_session():
    ctx = SessionContext.from_cookie(session.get("auth"))
    ctx.subscribe(_persist_session)
    restore_session(ctx, backend().auth)
    g.auth = ctx

    target = navigation_for(ctx.state, request.path)
    if target is None:
        return None
    if request.path.startswith("/api/"):
        return jsonify({"success": False, "error": "Not signed in"}), 401
    if target == "wait":
        return pages.render_wait_page(request.full_path)
    return redirect(target)


@bp.app_errorhandler(404)
def not_found(e):
    logger.warning("404 Error: User attempted to access non-existent route: %s", request.path)
    return pages.render_not_found(request.path), 404


@bp.route("/")
def index():
    return redirect("/auth")


# ── Auth ──

@bp.route("/auth", methods=["GET", "POST"])
def auth_page():
    if request.method == "GET":
        return pages.render_auth_page(
            mode=request.args.get("mode", "signin"),
            saved=request.args.get("saved", ""),
            error=request.args.get("error", ""),
        )

    mode = request.form.get("mode", "signin")
    email = request.form.get("email", "").strip()
    password = request.form.get("password", "")
    if not email:
        return pages.render_auth_page(mode=mode, error="Enter your email")

    auth = backend().auth
    if mode == "forgot":
        try:
            session["pkce_verifier"] = auth.reset_password_for_email(email, public_url() + "/reset-password")
        except BackendError as e:
            logger.warning("Reset error: %s", e.message)
            return pages.render_auth_page(mode=mode, email=email, error="Failed to send reset email.")
        return back("/auth", saved="Password reset link sent to your email.")

    if not password:
        return pages.render_auth_page(mode=mode, email=email, error="Enter your password")

    if mode == "signup":
        try:
            resp = auth.sign_up(email, password, redirect_to=public_url() + "/auth")
        except BackendError as e:
            logger.warning("Sign-up error: %s", e.message)
            return pages.render_auth_page(mode=mode, email=email, error="Sign-up failed. Check your email.")
        # Projects without email confirmation hand back a session right away
        if (resp or {}).get("access_token"):
            g.auth.set_session(resp)
            return redirect("/dashboard")
        return back("/auth", saved="Check your email to confirm your account.")

    try:
        resp = auth.sign_in_with_password(email, password)
    except BackendError as e:
        logger.info("Sign-in rejected: %s", e.message)
        return pages.render_auth_page(mode="signin", email=email, error="Invalid login credentials.")
    g.auth.set_session(resp)
    return redirect("/dashboard")


@bp.route("/auth/google")
def auth_google():
    url, verifier = backend().auth.sign_in_with_oauth(OAUTH_PROVIDER, public_url() + "/auth/callback")
    session["pkce_verifier"] = verifier
    return redirect(url)


@bp.route("/auth/callback")
def auth_callback():
    code = request.args.get("code", "")
    verifier = session.pop("pkce_verifier", None)
    if request.args.get("error") or not code or not verifier:
        logger.warning("OAuth callback without usable code: %s", request.args.get("error_description", ""))
        return back("/auth", error="Google Sign-In Error")
    try:
        g.auth.set_session(backend().auth.exchange_code_for_session(code, verifier))
    except BackendError as e:
        logger.warning("OAuth code exchange failed: %s", e.message)
        return back("/auth", error="Google Sign-In Error")
    return redirect("/dashboard")


@bp.route("/reset-password", methods=["GET", "POST"])
def reset_password():
    if request.method == "GET":
        code = request.args.get("code", "")
        if code:
            verifier = session.pop("pkce_verifier", None)
            if not verifier:
                return pages.render_reset_password_page(
                    error="Open the reset link in the browser you requested it from.", can_reset=False)
            try:
                g.auth.set_session(backend().auth.exchange_code_for_session(code, verifier))
            except BackendError as e:
                logger.warning("Recovery code exchange failed: %s", e.message)
                return pages.render_reset_password_page(can_reset=False)
            return redirect("/reset-password")
        return pages.render_reset_password_page(can_reset=g.auth.access_token is not None)

    if not g.auth.access_token:
        return pages.render_reset_password_page(can_reset=False)
    password = request.form.get("password", "")
    if not password:
        return pages.render_reset_password_page(error="Enter a new password")
    try:
        backend().auth.update_user(g.auth.access_token, password)
    except BackendError as e:
        return pages.render_reset_password_page(error=e.message)
    g.auth.clear()
    return back("/auth", saved="Password updated! Please sign in again.")


@bp.route("/profile")
def profile():
    return pages.render_profile(g.auth.email)


@bp.route("/logout", methods=["POST"])
def logout():
    try:
        backend().auth.sign_out(g.auth.access_token)
    except BackendError as e:
        logger.warning("Sign-out call failed, clearing local session anyway: %s", e.message)
    g.auth.clear()
    return redirect("/auth")


# ── Dashboard / portfolio ──

@bp.route("/dashboard")
def dashboard():
    error = request.args.get("error", "")
    try:
        totals = portfolio.dashboard_totals(db, oracle(), g.auth.user_id)
    except CompanionError as e:
        logger.warning("Error loading portfolio totals: %s", e.message)
        totals = {"total_usd": 0.0, "total_btc": 0.0}
        error = error or "Could not load portfolio prices."
    return pages.render_dashboard(totals, saved=request.args.get("saved", ""), error=error)


@bp.route("/portfolio")
def portfolio_page():
    error = request.args.get("error", "")
    try:
        holdings, price_error = portfolio.load_holdings(db, oracle(), g.auth.user_id)
    except BackendError as e:
        logger.warning("Error loading portfolio: %s", e.message)
        holdings, price_error = [], None
        error = error or "Could not load your portfolio."
    if price_error and not error:
        error = "Live prices unavailable, showing last saved prices."
    return pages.render_portfolio(holdings, portfolio.total_value(holdings),
                                  saved=request.args.get("saved", ""), error=error)


@bp.route("/portfolio/add", methods=["POST"])
def portfolio_add():
    name = request.form.get("name", "").strip()
    quantity = calculators.parse_number(request.form.get("quantity"))
    if not name or quantity is None or quantity <= 0:
        return back("/portfolio", error="Fill in all fields correctly.")
    try:
        holding = portfolio.add_holding(db, oracle(), g.auth.user_id, name, quantity)
    except PriceOracleError as e:
        logger.warning("Failed to fetch CoinGecko price: %s", e.message)
        return back("/portfolio", error="Failed to fetch price or invalid coin.")
    except BackendError as e:
        logger.warning("Failed to save holding: %s", e.message)
        return back("/portfolio", error="Could not save the coin.")
    if holding is None:
        return back("/portfolio", error="Failed to fetch price or invalid coin.")
    return back("/portfolio", saved=f"Added {holding['symbol']}")


@bp.route("/portfolio/<coin_id>/toggle", methods=["POST"])
def portfolio_toggle(coin_id):
    try:
        portfolio.toggle_holding(db, g.auth.user_id, coin_id)
    except BackendError as e:
        logger.warning("Failed to toggle %s: %s", coin_id, e.message)
        return back("/portfolio", error="Could not update selection.")
    return redirect("/portfolio")


@bp.route("/portfolio/reset", methods=["POST"])
def portfolio_reset():
    try:
        portfolio.reset_portfolio(db, g.auth.user_id)
    except BackendError as e:
        logger.warning("Failed to reset portfolio: %s", e.message)
        return back("/portfolio", error="Could not reset portfolio.")
    return back("/portfolio", saved="Portfolio reset")


# ── Calculators ──

@bp.route("/position-calculator", methods=["GET", "POST"])
def position_calculator():
    if request.method == "GET":
        return pages.render_position_calculator()
    inputs, errors = calculators.parse_position_form(request.form)
    if errors:
        return pages.render_position_calculator(form=request.form.to_dict(), errors=errors)
    return pages.render_position_calculator(result=calculators.calculate_position(**inputs))


@bp.route("/daily-compounding", methods=["GET", "POST"])
def daily_compounding():
    if request.method == "GET":
        return pages.render_compounding(error=request.args.get("error", ""))
    inputs, errors = calculators.parse_compounding_form(request.form)
    if errors:
        return pages.render_compounding(form=request.form.to_dict(), errors=errors)
    result = calculators.project(inputs["starting_amount"], inputs["target_amount"], inputs["daily_rate"])
    return pages.render_compounding(result=result)


@bp.route("/daily-compounding/export", methods=["POST"])
def daily_compounding_export():
    inputs, errors = calculators.parse_compounding_form(request.form)
    if errors:
        return back("/daily-compounding", error="Nothing to add, calculate a plan first.")
    result = calculators.project(inputs["starting_amount"], inputs["target_amount"], inputs["daily_rate"])
    try:
        todos.export_plan(db, g.auth.user_id, result)
    except BackendError as e:
        logger.error("Failed to add to To-Do: %s", e.message)
        return pages.render_compounding(result=result, error="Failed to add to To-Do.")
    return back("/todo", saved="Plan added to your list", tab="plan")


# ── Converter ──

@bp.route("/converter")
def converter():
    error = ""
    try:
        coins = oracle().fetch_markets()
    except PriceOracleError as e:
        logger.error("Failed to fetch coin list: %s", e.message)
        coins, error = [], "Failed to fetch coin list."

    from_id = request.args.get("from") or DEFAULT_FROM
    to_id = request.args.get("to") or DEFAULT_TO
    amount = request.args.get("amount") or "1"
    query = request.args.get("q", "")
    from_coin = find_coin(coins, from_id)
    to_coin = find_coin(coins, to_id)
    converted = calculators.convert(amount, from_coin, to_coin)

    shown = filter_coins(coins, query)
    # Keep the current pair selectable even when the search hides it
    for picked in (to_coin, from_coin):
        if picked and picked not in shown:
            shown.insert(0, picked)
    return pages.render_converter(coins, from_id, to_id, amount, converted, query=query, error=error, shown=shown)


def _quote_from_price(raw):
    price = calculators.parse_number(raw)
    return {"price": price} if price and price > 0 else None


@bp.route("/api/convert")
def api_convert():
    """Recompute the converted amount for the current inputs (called on every change)."""
    amount = request.args.get("amount") or "0"
    key = request.args.get("key", "")
    if key:
        amount = calculators.apply_keypad(amount, key)
    converted = calculators.convert(
        amount,
        _quote_from_price(request.args.get("from_price")),
        _quote_from_price(request.args.get("to_price")),
    )
    return jsonify({"amount": amount, "converted": converted, "display": format_converted(converted)})


# ── To-do ──

@bp.route("/todo")
def todo_page():
    tab = request.args.get("tab", "plan")
    error = request.args.get("error", "")
    plan_items, custom_items = [], []
    try:
        plan_items = todos.load_plan(db, g.auth.user_id)
        custom_items = todos.load_custom(db, g.auth.user_id)
    except BackendError as e:
        logger.warning("Error loading todos: %s", e.message)
        error = error or "Could not load your lists."
    return pages.render_todo(plan_items, custom_items, active_tab=tab,
                             saved=request.args.get("saved", ""), error=error)


@bp.route("/todo/plan/<int:index>/toggle", methods=["POST"])
def todo_plan_toggle(index):
    try:
        todos.toggle_plan_item(db, g.auth.user_id, index)
    except BackendError as e:
        logger.warning("Failed to update plan: %s", e.message)
        return back("/todo", error="Could not update plan.", tab="plan")
    return back("/todo", tab="plan")


@bp.route("/todo/plan/reset", methods=["POST"])
def todo_plan_reset():
    try:
        todos.reset_plan(db, g.auth.user_id)
    except BackendError as e:
        logger.warning("Failed to reset plan: %s", e.message)
        return back("/todo", error="Could not reset plan.", tab="plan")
    return back("/todo", tab="plan")


@bp.route("/todo/custom", methods=["POST"])
def todo_custom_add():
    text = request.form.get("text", "")
    if not text.strip():
        return back("/todo", tab="new")
    try:
        todos.add_custom(db, g.auth.user_id, text)
    except BackendError as e:
        logger.warning("Failed to add task: %s", e.message)
        return back("/todo", error="Could not add task.", tab="new")
    return back("/todo", tab="new")


@bp.route("/todo/custom/<todo_id>/toggle", methods=["POST"])
def todo_custom_toggle(todo_id):
    try:
        todos.toggle_custom(db, g.auth.user_id, todo_id)
    except BackendError as e:
        logger.warning("Failed to update task %s: %s", todo_id, e.message)
        return back("/todo", error="Could not update task.", tab="new")
    return back("/todo", tab="new")


@bp.route("/todo/custom/<todo_id>/delete", methods=["POST"])
def todo_custom_delete(todo_id):
    try:
        todos.delete_custom(db, g.auth.user_id, todo_id)
    except BackendError as e:
        logger.warning("Failed to delete task %s: %s", todo_id, e.message)
        return back("/todo", error="Could not delete task.", tab="new")
    return back("/todo", tab="new")

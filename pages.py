"""HTML rendering for Crypto Companion pages (server-rendered, no front-end build)."""

import json
from urllib.parse import urlencode

from markupsafe import escape

from calculators import LEVERAGE_CHOICES, MAX_PERIODS
from formatting import format_compact, format_converted, format_money, format_price_html

APP_NAME = "Crypto Companion"

# Trajectory rows shown inline; the rest are summarised
PREVIEW_PERIODS = 30

_CSS = """:root{--bg-primary:#09090b;--bg-card:#161619;--border-subtle:rgba(255,255,255,0.06);--accent-primary:#d4a017;--accent-glow:rgba(212,160,23,0.15);--text-primary:#f1f5f9;--text-muted:#64748b;--danger:#f87171;--ok:#3fb950;
--portfolio:#f5d76e;--position:#9ad0f5;--compound:#f5a3c7;--converter:#bcf26b;--todo:#c4b5fd;}
*{box-sizing:border-box;margin:0;padding:0;} body{font-family:'Inter',sans-serif;background:var(--bg-primary);color:var(--text-primary);min-height:100vh;padding:16px;}
a{color:inherit;text-decoration:none;}
.header{display:flex;justify-content:space-between;align-items:center;margin-bottom:24px;}
.header h1{font-size:1.5rem;font-weight:600;}
.close{width:40px;height:40px;border-radius:50%;background:#fff;color:#000;display:flex;align-items:center;justify-content:center;font-weight:700;}
.card{border-radius:16px;padding:20px;margin-bottom:20px;color:#000;}
.card.plain{background:var(--bg-card);color:var(--text-primary);border:1px solid var(--border-subtle);}
.bg-portfolio{background:var(--portfolio);} .bg-position{background:var(--position);} .bg-compound{background:var(--compound);}
.bg-converter{background:var(--converter);} .bg-todo{background:var(--todo);}
.box{border:2px solid #000;border-radius:10px;padding:12px;margin-bottom:10px;}
.tiles{display:grid;grid-template-columns:1fr 1fr;gap:16px;}
.tile{border-radius:16px;padding:24px 12px;text-align:center;font-weight:600;color:#000;}
label{display:block;font-size:0.85rem;font-weight:500;margin:12px 0 6px;}
input,select{width:100%;padding:10px;border-radius:8px;border:1px solid #000;background:rgba(255,255,255,0.35);color:#000;font-size:1rem;}
.plain input{background:#1a1a1f;border:1px solid var(--border-subtle);color:var(--text-primary);}
.row2{display:grid;grid-template-columns:1fr 1fr;gap:12px;}
button,.btn{display:block;width:100%;padding:12px;margin-top:16px;border:none;border-radius:999px;background:#fff;color:#000;font-weight:600;font-size:1rem;cursor:pointer;text-align:center;}
button:disabled{opacity:0.5;cursor:not-allowed;}
.btn-accent{background:var(--accent-primary);color:#09090b;}
.btn-danger{background:#ef4444;color:#fff;}
.btn-inline{display:inline-block;width:auto;margin:0;padding:4px 10px;border-radius:6px;}
.field-error{color:#7f1d1d;font-size:0.8rem;margin-top:4px;}
.hint{color:var(--text-muted);font-size:0.85rem;}
.toast{position:fixed;bottom:20px;left:50%;transform:translateX(-50%);background:var(--bg-card);border:1px solid var(--border-subtle);padding:10px 18px;border-radius:10px;z-index:100;}
.toast.err{border-color:var(--danger);color:var(--danger);}
.holding{display:flex;justify-content:space-between;align-items:center;}
.holding .cols{display:grid;grid-template-columns:repeat(3,1fr);gap:12px;text-align:center;font-size:0.85rem;}
.holding .lbl{opacity:0.6;font-size:0.75rem;}
.check{width:24px;height:24px;border-radius:50%;border:1px solid #000;display:inline-flex;align-items:center;justify-content:center;margin:0 10px 0 0;padding:0;background:transparent;}
.check.on{background:#000;color:#fff;}
.zero-marker{color:#6b7280;}
.todo-item{display:flex;align-items:center;gap:8px;padding:10px;border:1px solid rgba(0,0,0,0.2);border-radius:8px;margin-bottom:8px;}
.todo-item.done{opacity:0.6;background:rgba(0,0,0,0.1);} .todo-item.done span{text-decoration:line-through;}
.tabs{display:flex;gap:8px;margin-bottom:16px;} .tabs a{flex:1;text-align:center;border:2px solid #000;border-radius:999px;padding:8px;font-weight:600;}
.tabs a.active{background:#000;color:#fff;}
.keypad{display:grid;grid-template-columns:repeat(3,1fr);gap:10px;}
.keypad button{margin:0;border-radius:10px;background:var(--converter);}
.keypad button.clear{background:#ef4444;color:#fff;}
.conv-row{display:flex;justify-content:space-between;align-items:center;gap:12px;}
.conv-row select{flex:1;} .conv-amount{font-size:1.5rem;font-weight:700;min-width:40%;text-align:right;word-break:break-all;}
"""


def layout(title: str, body: str, saved: str = "", error: str = "") -> str:
    """Wrap page body with head, stylesheet and optional toast."""
    toast = ""
    if error:
        toast = f'<div class="toast err" id="toast-msg">{escape(error)}</div>'
    elif saved:
        toast = f'<div class="toast" id="toast-msg">{escape(saved)}</div>'
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{escape(title)} · {APP_NAME}</title>
<link href="https://fonts.googleapis.com/css2?family=Inter:wght@400;600;700&display=swap" rel="stylesheet">
<style>{_CSS}</style>
</head>
<body>
{body}
{toast}
<script>
(function(){{var t=document.getElementById("toast-msg");if(t)setTimeout(function(){{t.remove();}},4000);}})();
</script>
</body>
</html>"""


def _header(title: str, close_href: str = "/dashboard") -> str:
    return f'<div class="header"><h1>{escape(title)}</h1><a class="close" href="{close_href}" aria-label="Close">&times;</a></div>'


def _field_error(errors: dict, name: str) -> str:
    msg = (errors or {}).get(name)
    return f'<div class="field-error">{escape(msg)}</div>' if msg else ""


def _value(form: dict, name: str) -> str:
    return escape((form or {}).get(name, "") or "")


# ── Session / auth ──

def render_wait_page(retry_href: str = "/") -> str:
    body = f"""<div class="card plain" style="max-width:360px;margin:20vh auto;text-align:center;">
<p>Please wait... checking your session.</p>
<a class="btn btn-accent" href="{escape(retry_href)}">Retry</a></div>"""
    return layout("Loading", body)


def render_auth_page(mode: str = "signin", email: str = "", error: str = "", saved: str = "") -> str:
    """Sign in / create account / forgot password, switched by `mode`."""
    forgot = mode == "forgot"
    signup = mode == "signup"
    submit = "Send Reset Link" if forgot else ("Create Account" if signup else "Sign In")
    subtitle = "Enter email to receive reset link" if forgot else "Or continue with email"

    google = "" if forgot else '<a class="btn" href="/auth/google">Continue with Google</a>'
    password = "" if forgot else (
        '<label for="password">Password</label>'
        '<input id="password" type="password" name="password" placeholder="Enter your password" required>'
    )
    links = []
    if not forgot and not signup:
        links.append('<a href="/auth?mode=forgot">Forgot Password?</a>')
    if not forgot:
        if signup:
            links.append('Already have an account? <a href="/auth">Sign In</a>')
        else:
            links.append('Don\'t have an account? <a href="/auth?mode=signup">Create New Account</a>')
    else:
        links.append('<a href="/auth">Back to Sign In</a>')
    links_html = "".join(f'<p class="hint" style="margin-top:12px;">{l}</p>' for l in links)

    body = f"""<div class="card plain" style="max-width:380px;margin:8vh auto;">
<h1 style="font-size:2rem;color:var(--accent-primary);margin-bottom:16px;">Crypto<br>Companion</h1>
{google}
<p class="hint" style="text-align:center;margin-top:16px;">{subtitle}</p>
<form method="post" action="/auth">
<input type="hidden" name="mode" value="{escape(mode)}">
<label for="email">Email</label>
<input id="email" type="email" name="email" value="{escape(email)}" placeholder="Enter your email" required autofocus>
{password}
<button type="submit" class="btn-accent">{submit}</button>
</form>
{links_html}
</div>"""
    return layout("Sign in", body, saved=saved, error=error)


def render_reset_password_page(error: str = "", can_reset: bool = True) -> str:
    if not can_reset:
        body = """<div class="card plain" style="max-width:380px;margin:10vh auto;">
<p>This reset link is invalid or has expired.</p><a class="btn btn-accent" href="/auth?mode=forgot">Request a new link</a></div>"""
        return layout("Reset password", body, error=error)
    body = """<div class="card plain" style="max-width:380px;margin:10vh auto;">
<h1 style="font-size:1.4rem;margin-bottom:12px;">Set a new password</h1>
<form method="post" action="/reset-password">
<input type="password" name="password" placeholder="Enter new password" required minlength="6">
<button type="submit" class="btn-accent">Update Password</button>
</form></div>"""
    return layout("Reset password", body, error=error)


def render_profile(email: str) -> str:
    body = f"""{_header("Profile")}
<div class="card plain" style="text-align:center;">
<div style="font-size:3rem;">&#128100;</div>
<p style="margin:12px 0;">{escape(email)}</p>
<form method="post" action="/logout"><button type="submit" class="btn-danger">Log Out</button></form>
</div>"""
    return layout("Profile", body)


def render_not_found(path: str) -> str:
    body = f"""<div class="card plain" style="max-width:420px;margin:15vh auto;text-align:center;">
<h1 style="font-size:3rem;">404</h1>
<p class="hint">No page at {escape(path)}. The page you are looking for might have been removed, had its name changed, or is temporarily unavailable.</p>
<a class="btn btn-accent" href="/">Return to Home</a></div>"""
    return layout("Not found", body)


# ── Dashboard / portfolio ──

def render_dashboard(totals: dict, saved: str = "", error: str = "") -> str:
    total_usd = totals.get("total_usd", 0)
    total_btc = totals.get("total_btc", 0)
    tiles = [
        ("Position Calculator", "/position-calculator", "bg-position"),
        ("Daily Compounding", "/daily-compounding", "bg-compound"),
        ("Converter", "/converter", "bg-converter"),
        ("To Do", "/todo", "bg-todo"),
    ]
    tiles_html = "".join(f'<a class="tile {cls}" href="{href}">{name}</a>' for name, href, cls in tiles)
    body = f"""<div class="header"><h1>{APP_NAME}</h1><a class="close" href="/profile" aria-label="Profile">&#128100;</a></div>
<a class="card bg-portfolio" style="display:block;" href="/portfolio">
<h2 style="font-size:1.2rem;">Portfolio:</h2>
<div style="font-size:1.6rem;font-weight:700;">{total_usd:.2f} USD</div>
<div style="opacity:0.8;">= {total_btc:.6f} BTC</div>
</a>
<div class="tiles">{tiles_html}</div>"""
    return layout("Dashboard", body, saved=saved, error=error)


def render_portfolio(holdings: list[dict], total: float, saved: str = "", error: str = "") -> str:
    rows = ""
    for h in holdings:
        cid = escape(h["coin_id"])
        on = "on" if h["is_selected"] else ""
        card_cls = "bg-portfolio" if h["is_selected"] else "plain"
        rows += f"""<div class="card {card_cls} holding">
<div style="display:flex;align-items:center;">
<form method="post" action="/portfolio/{cid}/toggle"><button type="submit" class="check {on}" aria-label="Toggle {escape(h['symbol'])}">{"&#10003;" if on else ""}</button></form>
<span style="font-size:1.1rem;font-weight:600;">{escape(h["symbol"])}</span></div>
<div class="cols">
<div><div class="lbl">Price</div><div>{format_price_html(h["price"])}</div></div>
<div><div class="lbl">Qty</div><div>{format_compact(h["quantity"])}</div></div>
<div><div class="lbl">Value</div><div>${h["value"]:.2f}</div></div>
</div></div>"""

    reset = ""
    if holdings:
        reset = """<form method="post" action="/portfolio/reset" onsubmit="return confirm('Are you sure you want to reset your portfolio?');">
<button type="submit" class="btn-danger">Reset Portfolio</button></form>"""

    body = f"""{_header("Portfolio", "/dashboard?updated=true")}
<div class="card bg-portfolio" style="text-align:center;"><h2 style="font-size:1.1rem;">Total:</h2>
<div style="font-size:1.8rem;font-weight:700;">{total:.2f} USD</div></div>
<form class="card plain" method="post" action="/portfolio/add">
<h2 style="font-size:1.1rem;">Add Coin</h2>
<label>Coin Name</label><input name="name" placeholder="Bitcoin" required>
<label>Quantity</label><input name="quantity" type="number" step="any" min="0" placeholder="0.5" required>
<button type="submit">Add Coin</button>
</form>
{rows}
{reset}"""
    return layout("Portfolio", body, saved=saved, error=error)


# ── Calculators ──

def render_position_calculator(form: dict = None, errors: dict = None, result: dict = None) -> str:
    if result:
        summary = [
            ("Investment", f"${format_converted(result['investment'])}"),
            ("Leverage", f"{format_converted(result['leverage'])}x"),
            ("Position Type", result["direction"].capitalize()),
            ("Open Price", f"${format_converted(result['open_price'])}"),
            ("Total Position Size", f"${format_converted(result['total_position_size'])}"),
        ]
        summary_html = "".join(
            f'<div style="display:flex;justify-content:space-between;"><span>{k}</span><strong>{escape(v)}</strong></div>'
            for k, v in summary
        )
        note = ""
        if result["mode"] == "close_price":
            note = '<p class="hint" style="color:#1f2937;">Profit from a close price is the size of the move, whichever way it went.</p>'
        body = f"""{_header("Position Result")}
<div class="card bg-position">
<div class="box"><h3>Target Price</h3><div style="font-size:1.3rem;font-weight:700;">${result["target_price"]:.2f}</div></div>
<div class="box"><h3>Expected Profit</h3><div style="font-size:1.3rem;font-weight:700;">${result["expected_profit"]:.2f}</div></div>
<div class="box"><h3 style="margin-bottom:8px;">Position Summary</h3>{summary_html}</div>
{note}
</div>
<a class="btn" href="/position-calculator">Calculate again</a>"""
        return layout("Position Result", body)

    form = form or {}
    errors = errors or {}
    lev_opts = "".join(
        f'<option value="{lv}"{" selected" if str(form.get("leverage", "")) == str(lv) else ""}>{lv}x</option>'
        for lv in LEVERAGE_CHOICES
    )
    dir_opts = "".join(
        f'<option value="{d}"{" selected" if form.get("direction") == d else ""}>{d.capitalize()}</option>'
        for d in ("long", "short")
    )
    has_close = form.get("has_close_price", "")
    yes_sel = " selected" if has_close == "yes" else ""
    no_sel = " selected" if has_close == "no" else ""
    body = f"""{_header("Position Calculator")}
<form class="card bg-position" method="post" action="/position-calculator" id="position-form">
<label>Enter amount to invest:</label>
<input type="number" step="any" name="investment" value="{_value(form, 'investment')}" placeholder="Enter amount" required>{_field_error(errors, "investment")}
<div class="row2">
<div><label>Select Leverage:</label><select name="leverage" required><option value="">Leverage</option>{lev_opts}</select>{_field_error(errors, "leverage")}</div>
<div><label>Select Position:</label><select name="direction" required><option value="">Position</option>{dir_opts}</select>{_field_error(errors, "direction")}</div>
</div>
<label>Enter Open Price:</label>
<input type="number" step="any" name="open_price" value="{_value(form, 'open_price')}" placeholder="Enter open price" required>{_field_error(errors, "open_price")}
<label>Do you have Close Price:</label>
<select name="has_close_price" id="has-close" required><option value="">Select option</option><option value="yes"{yes_sel}>Yes</option><option value="no"{no_sel}>No</option></select>{_field_error(errors, "has_close_price")}
<div id="close-field"><label>Enter Close Price:</label><input type="number" step="any" name="close_price" value="{_value(form, 'close_price')}" placeholder="Enter close price">{_field_error(errors, "close_price")}</div>
<div id="profit-field"><label>Enter Required Profit:</label><input type="number" step="any" name="required_profit" value="{_value(form, 'required_profit')}" placeholder="Enter required profit">{_field_error(errors, "required_profit")}</div>
<button type="submit" id="calc-btn">Calculate</button>
</form>
<script>
(function(){{
  var f=document.getElementById("position-form"),sel=document.getElementById("has-close"),btn=document.getElementById("calc-btn");
  function sync(){{
    var v=sel.value;
    document.getElementById("close-field").style.display=v==="yes"?"":"none";
    document.getElementById("profit-field").style.display=v==="no"?"":"none";
    var need=["investment","leverage","direction","open_price","has_close_price"];
    if(v==="yes")need.push("close_price"); if(v==="no")need.push("required_profit");
    btn.disabled=need.some(function(n){{return !f.elements[n].value;}});
  }}
  f.addEventListener("input",sync); f.addEventListener("change",sync); sync();
}})();
</script>"""
    return layout("Position Calculator", body)


def render_compounding(form: dict = None, errors: dict = None, result: dict = None, error: str = "") -> str:
    if result:
        preview = result["trajectory"][:PREVIEW_PERIODS]
        rows = "".join(
            f'<div class="box"><strong>Day - {step["period"]}: {format_money(step["amount"])}</strong></div>'
            for step in preview
        )
        extra = len(result["trajectory"]) - len(preview)
        more = f'<p style="text-align:center;opacity:0.7;">... and {extra} more days</p>' if extra > 0 else ""
        truncated = ""
        if not result["reached_target"]:
            truncated = (f'<p class="box" style="background:rgba(0,0,0,0.08);">Target not reached within '
                         f'{MAX_PERIODS} days. Final amount: {format_money(result["final_amount"])}</p>')
        hidden = "".join(
            f'<input type="hidden" name="{k}" value="{result[k]!r}">'
            for k in ("starting_amount", "target_amount", "daily_rate")
        )
        body = f"""{_header("Daily Compounding")}
<div class="card bg-compound">
<div class="box" style="display:flex;justify-content:space-between;align-items:center;">
<div><div style="font-size:1.1rem;font-weight:600;">Target: {format_money(result["target_amount"])}</div><div>Days: {result["period_count"]}</div></div>
<form method="post" action="/daily-compounding/export">{hidden}<button type="submit" class="btn-inline" title="Add to To-Do">Add to To-Do</button></form>
</div>
{truncated}
<div style="max-height:320px;overflow-y:auto;">{rows}{more}</div>
</div>
<a class="btn" href="/daily-compounding">Calculate again</a>"""
        return layout("Daily Compounding", body, error=error)

    form = form or {}
    errors = errors or {}
    body = f"""{_header("Daily Compounding")}
<form class="card bg-compound" method="post" action="/daily-compounding" id="compound-form">
<label>Enter Starting Amount:</label>
<input type="number" step="any" name="starting_amount" value="{_value(form, 'starting_amount')}" placeholder="Starting amount" required>{_field_error(errors, "starting_amount")}
<label>Enter Target Amount:</label>
<input type="number" step="any" name="target_amount" value="{_value(form, 'target_amount')}" placeholder="Target amount" required>{_field_error(errors, "target_amount")}
<label>Enter Daily Return Rate (%):</label>
<input type="number" step="0.1" name="daily_rate" value="{_value(form, 'daily_rate')}" placeholder="Daily return rate" required>{_field_error(errors, "daily_rate")}
<button type="submit" id="calc-btn">Calculate</button>
</form>
<script>
(function(){{
  var f=document.getElementById("compound-form"),btn=document.getElementById("calc-btn");
  function sync(){{btn.disabled=["starting_amount","target_amount","daily_rate"].some(function(n){{return !f.elements[n].value;}});}}
  f.addEventListener("input",sync); sync();
}})();
</script>"""
    return layout("Daily Compounding", body, error=error)


# ── Converter ──

def render_converter(coins: list[dict], from_id: str, to_id: str, amount: str, converted: float,
                     query: str = "", error: str = "", shown: list[dict] = None) -> str:
    """Converter page. Prices travel with the page; /api/convert recomputes on every change.
    `shown` limits the select options (search results); `coins` is the full list for live search."""
    shown = coins if shown is None else shown
    def options(selected):
        return "".join(
            f'<option value="{escape(c["id"])}" data-price="{c["price"]!r}"{" selected" if c["id"] == selected else ""}>'
            f'{escape(c["symbol"])} · {escape(c["name"])}</option>'
            for c in shown
        )

    keys = ["1", "2", "3", "4", "5", "6", "7", "8", "9", ".", "0", "clear"]
    keypad = "".join(
        f'<button type="button" data-key="{k}"{" class=clear" if k == "clear" else ""}>{"&#9003;" if k == "clear" else k}</button>'
        for k in keys
    )
    coins_json = json.dumps([{"id": c["id"], "symbol": c["symbol"], "name": c["name"], "price": c["price"]} for c in coins]).replace("</", "<\\/")
    swap_href = "/converter?" + urlencode({"from": to_id, "to": from_id, "amount": amount})
    empty = '<p class="hint" style="color:#1f2937;">Loading coins failed. Try again shortly.</p>' if not coins else ""

    body = f"""{_header("Converter")}
<form class="card bg-converter" method="get" action="/converter" id="conv-form">
<input type="text" name="q" id="coin-search" value="{escape(query)}" placeholder="Search for a coin..." style="margin-bottom:12px;">
{empty}
<div class="conv-row"><select name="from" id="from-coin">{options(from_id)}</select><span class="conv-amount" id="amount">{escape(amount)}</span></div>
<input type="hidden" name="amount" id="amount-input" value="{escape(amount)}">
<a class="btn btn-inline" id="swap" style="margin:12px auto;display:block;width:48px;background:#000;color:#fff;" href="{escape(swap_href)}">&#8645;</a>
<div class="conv-row"><select name="to" id="to-coin">{options(to_id)}</select><span class="conv-amount" id="converted">{format_converted(converted)}</span></div>
<noscript><button type="submit">Convert</button></noscript>
</form>
<div class="keypad">{keypad}</div>
<script>
(function(){{
  var coins={coins_json};
  var from=document.getElementById("from-coin"),to=document.getElementById("to-coin");
  var amountEl=document.getElementById("amount"),amountInput=document.getElementById("amount-input");
  function price(sel){{var o=sel.options[sel.selectedIndex];return o?o.getAttribute("data-price"):"";}}
  function refresh(key){{
    var p=new URLSearchParams({{amount:amountInput.value,from_price:price(from),to_price:price(to)}});
    if(key)p.set("key",key);
    fetch("/api/convert?"+p.toString()).then(function(r){{return r.json();}}).then(function(d){{
      amountInput.value=d.amount;amountEl.textContent=d.amount;
      document.getElementById("converted").textContent=d.display;
    }});
  }}
  function fill(sel,list){{
    var keep=sel.value;sel.innerHTML="";
    list.forEach(function(c){{var o=document.createElement("option");o.value=c.id;o.setAttribute("data-price",c.price);o.textContent=c.symbol+" \\u00b7 "+c.name;if(c.id===keep)o.selected=true;sel.appendChild(o);}});
    if(!list.some(function(c){{return c.id===keep;}})){{var o=document.createElement("option");var c=coins.filter(function(x){{return x.id===keep;}})[0];if(c){{o.value=c.id;o.setAttribute("data-price",c.price);o.textContent=c.symbol+" \\u00b7 "+c.name;o.selected=true;sel.insertBefore(o,sel.firstChild);}}}}
  }}
  document.getElementById("coin-search").addEventListener("input",function(e){{
    var q=e.target.value.trim().toLowerCase();
    var list=q?coins.filter(function(c){{return c.name.toLowerCase().indexOf(q)>=0||c.symbol.toLowerCase().indexOf(q)>=0;}}):coins;
    fill(from,list);fill(to,list);refresh();
  }});
  from.addEventListener("change",function(){{refresh();}}); to.addEventListener("change",function(){{refresh();}});
  document.getElementById("swap").addEventListener("click",function(e){{
    e.preventDefault();var a=from.value,b=to.value;from.value=b;to.value=a;refresh();
  }});
  document.querySelectorAll(".keypad button").forEach(function(b){{b.addEventListener("click",function(){{refresh(b.getAttribute("data-key"));}});}});
}})();
</script>"""
    return layout("Converter", body, error=error)


# ── To-do ──

def render_todo(plan_items: list[dict], custom_items: list[dict], active_tab: str = "plan",
                saved: str = "", error: str = "") -> str:
    plan_active = active_tab != "new"
    tabs = (f'<div class="tabs"><a href="/todo?tab=plan" class="{"active" if plan_active else ""}">Plan</a>'
            f'<a href="/todo?tab=new" class="{"" if plan_active else "active"}">New List</a></div>')

    if plan_active:
        items = ""
        for item in plan_items:
            done = "done" if item["completed"] else ""
            items += (f'<div class="todo-item {done}"><form method="post" action="/todo/plan/{item["index"]}/toggle">'
                      f'<button type="submit" class="check {"on" if done else ""}">{"&#10003;" if done else ""}</button></form>'
                      f'<span>{escape(item["text"])}</span></div>')
        if plan_items:
            items += ('<form method="post" action="/todo/plan/reset">'
                      '<button type="submit" class="btn-danger">Reset Plan</button></form>')
        else:
            items = '<p style="text-align:center;opacity:0.7;">Plan has been reset. Create a new plan to get started.</p>'
        content = items
    else:
        items = ""
        for todo in custom_items:
            done = "done" if todo["completed"] else ""
            tid = escape(todo["id"])
            items += (f'<div class="todo-item {done}"><form method="post" action="/todo/custom/{tid}/toggle">'
                      f'<button type="submit" class="check {"on" if done else ""}">{"&#10003;" if done else ""}</button></form>'
                      f'<span style="flex:1;">{escape(todo["text"])}</span>'
                      f'<form method="post" action="/todo/custom/{tid}/delete"><button type="submit" class="btn-inline" aria-label="Delete">&times;</button></form></div>')
        if not custom_items:
            items = '<p style="text-align:center;opacity:0.7;">No custom tasks yet. Add one above!</p>'
        content = f"""<form method="post" action="/todo/custom" style="display:flex;gap:8px;margin-bottom:12px;">
<input type="text" name="text" placeholder="Add new task..." required><button type="submit" class="btn-inline">+</button></form>
{items}"""

    body = f"""{_header("To Do")}
<div class="card bg-todo">{tabs}{content}</div>"""
    return layout("To Do", body, saved=saved, error=error)

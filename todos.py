"""
To-do lists in the `user_todos` table.

A "plan" row holds a whole compounding checklist in parallel `text` /
`completed` arrays; each "custom" row holds one user-written task.
"""

import logging
from typing import Callable, Optional

from formatting import format_money

logger = logging.getLogger(__name__)

TABLE = "user_todos"
PLAN = "plan"
CUSTOM = "custom"


def plan_checklist(result: dict) -> tuple[list[str], list[bool]]:
    """Turn a compounding trajectory into checklist lines, all unchecked."""
    texts = [f"Day - {step['period']}: {format_money(step['amount'])}" for step in result["trajectory"]]
    return texts, [False] * len(texts)


def export_plan(db: Callable, user_id: str, result: dict) -> None:
    """Save a compounding result as the user's plan checklist, replacing any previous plan."""
    texts, completed = plan_checklist(result)
    reset_plan(db, user_id)
    db(TABLE).insert({
        "user_id": user_id,
        "type": PLAN,
        "text": texts,
        "completed": completed,
    }).execute()
    logger.info("Exported %d-day plan", len(texts))


def _load_plan_row(db: Callable, user_id: str) -> tuple[Optional[str], list[dict]]:
    """(row id, items) of the newest plan row; (None, []) when there is no plan."""
    rows = (db(TABLE).select("id,text,completed")
            .eq("user_id", user_id).eq("type", PLAN)
            .order("created_at", ascending=False).execute())
    if not rows:
        return None, []
    row = rows[0]
    texts = row.get("text") or []
    completed = row.get("completed") or []
    return row.get("id"), [
        {"index": i, "text": t, "completed": bool(completed[i]) if i < len(completed) else False}
        for i, t in enumerate(texts)
    ]


def load_plan(db: Callable, user_id: str) -> list[dict]:
    """Items of the current plan: [{index, text, completed}]."""
    return _load_plan_row(db, user_id)[1]


def toggle_plan_item(db: Callable, user_id: str, index: int) -> list[dict]:
    """
    Check off a plan item and every item before it (or uncheck them all back).
    Items after `index` are untouched. Only the row the items came from is
    written. Returns the updated items.
    """
    row_id, items = _load_plan_row(db, user_id)
    if not items or not 0 <= index < len(items):
        return items
    for item in items[:index + 1]:
        item["completed"] = not item["completed"]
    db(TABLE).update({
        "text": [i["text"] for i in items],
        "completed": [i["completed"] for i in items],
    }).eq("id", row_id).eq("user_id", user_id).eq("type", PLAN).execute()
    return items


def reset_plan(db: Callable, user_id: str) -> None:
    db(TABLE).delete().eq("user_id", user_id).eq("type", PLAN).execute()


def load_custom(db: Callable, user_id: str) -> list[dict]:
    """Custom tasks, newest first: [{id, text, completed}]."""
    rows = (db(TABLE).select("id,text,completed")
            .eq("user_id", user_id).eq("type", CUSTOM)
            .order("created_at", ascending=False).execute())
    items = []
    for row in rows:
        texts = row.get("text") or [""]
        completed = row.get("completed") or [False]
        items.append({"id": row.get("id"), "text": texts[0], "completed": bool(completed[0])})
    return items


def add_custom(db: Callable, user_id: str, text: str) -> Optional[dict]:
    text = (text or "").strip()
    if not text:
        return None
    rows = db(TABLE).insert({
        "user_id": user_id,
        "type": CUSTOM,
        "text": [text],
        "completed": [False],
    }).execute()
    row = rows[0] if rows else {}
    return {"id": row.get("id"), "text": text, "completed": False}


def toggle_custom(db: Callable, user_id: str, todo_id: str) -> Optional[bool]:
    rows = (db(TABLE).select("id,completed")
            .eq("id", todo_id).eq("user_id", user_id).eq("type", CUSTOM).execute())
    if not rows:
        return None
    completed = not bool((rows[0].get("completed") or [False])[0])
    db(TABLE).update({"completed": [completed]}).eq("id", todo_id).eq("user_id", user_id).execute()
    return completed


def delete_custom(db: Callable, user_id: str, todo_id: str) -> None:
    db(TABLE).delete().eq("id", todo_id).eq("user_id", user_id).eq("type", CUSTOM).execute()

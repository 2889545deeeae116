"""lambda/admin.py — Admin-only endpoints.

Gated by the AdminSecret header via @require_admin: user management for the
admin UI logins, plus app/auth/scrape log listing.
"""
import re
from datetime import datetime, timezone
from functools import wraps

from helpers import (
    ok, err, _to_py, get_admin_auth, hash_password,
    users_table, sessions_table, scrape_logs_tbl,
    auth_logs_tbl, app_logs_tbl,
)
from logging_utils import _log_app_event
from shared.dynamo import scan_all

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.@-]{3,64}$")
MIN_PASSWORD_LENGTH = 8


# ── Decorator ─────────────────────────────────────────────────────────────────

def require_admin(f):
    """Decorator that gates a function behind admin auth."""
    @wraps(f)
    def wrapper(event, *args, **kwargs):
        if not get_admin_auth(event):
            return err("Unauthorized.", 401)
        return f(event, *args, **kwargs)
    return wrapper


# ── User management ───────────────────────────────────────────────────────────

@require_admin
def admin_list_users(event):
    try:
        users = []
        for u in _to_py(scan_all(users_table)):
            users.append({
                "username":        u["username"],
                "created_at":      u.get("created_at", ""),
                "last_login_at":   u.get("last_login_at", ""),
                "failed_attempts": int(u.get("failed_attempts", 0)),
                "locked_until":    u.get("lockout_until", ""),
            })
        users.sort(key=lambda x: x["username"].lower())
        return ok({"users": users, "total": len(users)})
    except Exception as e:
        print(f"[CAT] admin_list_users: {e}")
        return err("Failed to list users.", 500)


@require_admin
def admin_create_user(event, body):
    """POST /api/admin/users { username, password } — also resets an existing
    user's password when overwrite is true."""
    username  = str(body.get("username") or "").strip()
    password  = str(body.get("password") or "")
    overwrite = body.get("overwrite") is True
    if not _USERNAME_RE.match(username):
        return err("Username must be 3-64 letters, digits or . _ @ -")
    if len(password) < MIN_PASSWORD_LENGTH:
        return err(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    try:
        existing = users_table.get_item(Key={"username": username}).get("Item")
        if existing and not overwrite:
            return err("User already exists.", 409)
        now = datetime.now(timezone.utc).isoformat()
        users_table.put_item(Item={
            "username":      username,
            "password_hash": hash_password(password),
            "created_at":    (existing or {}).get("created_at") or now,
            "updated_at":    now,
        })
    except Exception as e:
        print(f"[CAT] admin_create_user {username}: {e}")
        return err("Failed to create user.", 500)
    _log_app_event("auth", "info", action="user-create" if not existing else "user-reset",
                   user=username)
    return ok({"message": f"User {username} saved.", "username": username},
              200 if existing else 201)


@require_admin
def admin_delete_user(event, username: str):
    """Deletes the user and every session it holds."""
    if not username: return err("Missing username.")
    try:
        if not users_table.get_item(Key={"username": username}).get("Item"):
            return err("User not found.", 404)
        users_table.delete_item(Key={"username": username})
        revoked = 0
        for s in scan_all(sessions_table):
            if s.get("user") == username:
                sessions_table.delete_item(Key={"token": s["token"]})
                revoked += 1
    except Exception as e:
        print(f"[CAT] admin_delete_user {username}: {e}")
        return err("Failed to delete user.", 500)
    _log_app_event("auth", "info", action="user-delete", user=username)
    return ok({"message": f"User {username} deleted.", "sessions_revoked": revoked})


# ── Logs ──────────────────────────────────────────────────────────────────────

def _limit(event, default=100, cap=500) -> int:
    params = event.get("queryStringParameters") or {}
    try:
        return max(1, min(int(params.get("limit", default)), cap))
    except (TypeError, ValueError):
        return default


def _recent(table, event, sort_key: str, what: str):
    try:
        limit = _limit(event)
        items = _to_py(scan_all(table))
        items.sort(key=lambda x: x.get(sort_key, ""), reverse=True)
        return ok({"logs": items[:limit]})
    except Exception as e:
        print(f"[CAT] admin {what} logs: {e}")
        return err(f"Could not fetch {what} logs.", 500)


@require_admin
def get_auth_logs(event):
    return _recent(auth_logs_tbl, event, "ts", "auth")


@require_admin
def get_app_logs(event):
    return _recent(app_logs_tbl, event, "ts", "app")


@require_admin
def get_scrape_logs(event):
    return _recent(scrape_logs_tbl, event, "started_at", "scrape")

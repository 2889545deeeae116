"""lambda/auth.py — Authentication: login, logout, session check.

Credentials live in the users table (scrypt hashes); sessions live in the
sessions table with a 24h expires_at that doubles as the DynamoDB TTL.
Brute-force lockout after LOGIN_MAX_ATTEMPTS failures.
"""
import secrets
from datetime import datetime, timezone, timedelta

from helpers import (
    ok, err, _to_py, verify_password, bearer_token,
    get_session, users_table, sessions_table,
    SESSION_TTL_HOURS, LOGIN_MAX_ATTEMPTS, LOGIN_LOCKOUT_MINUTES,
)
from logging_utils import _log_auth_event


def create_session(username: str, now: datetime = None) -> dict:
    now        = now or datetime.now(timezone.utc)
    token      = secrets.token_hex(32)
    expires_at = int((now + timedelta(hours=SESSION_TTL_HOURS)).timestamp())
    item = {
        "token":              token,
        "user":               username,
        "expires_at":         expires_at,
        "session_created_at": int(now.timestamp()),
    }
    sessions_table.put_item(Item=item)
    return item


def _locked_out(event, username: str, user: dict, now: datetime):
    """Return an error response while the account's lockout window is open.

    An expired window clears the stored counters (and `user` in place).
    """
    lockout_until_str = user.get("lockout_until", "")
    if not lockout_until_str:
        return None
    try:
        lockout_until = datetime.fromisoformat(lockout_until_str)
    except ValueError as e:
        print(f"[CAT] lockout parse error: {e}")
        return None
    if lockout_until.tzinfo is None:
        lockout_until = lockout_until.replace(tzinfo=timezone.utc)
    if now >= lockout_until:
        # Window over: start counting from zero again
        users_table.update_item(
            Key={"username": username},
            UpdateExpression="REMOVE failed_attempts, lockout_until",
        )
        user.pop("failed_attempts", None)
        user.pop("lockout_until", None)
        return None
    remaining_secs = int((lockout_until - now).total_seconds())
    remaining_mins = max(1, (remaining_secs + 59) // 60)
    _log_auth_event(event, username, False, "locked_out")
    return err(
        f"Account locked. Try again in {remaining_mins} minute{'s' if remaining_mins != 1 else ''}.",
        429,
        _extra={"locked_until": lockout_until.isoformat(),
                "retry_after_seconds": remaining_secs},
    )


def _record_failure(event, username: str, user: dict, now: datetime):
    attempts    = int(user.get("failed_attempts", 0)) + 1
    update_expr = "SET failed_attempts = :a, last_failed_at = :t"
    expr_vals   = {":a": attempts, ":t": now.isoformat()}

    if attempts >= LOGIN_MAX_ATTEMPTS:
        lockout_until = now + timedelta(minutes=LOGIN_LOCKOUT_MINUTES)
        update_expr  += ", lockout_until = :lu"
        expr_vals[":lu"] = lockout_until.isoformat()
        users_table.update_item(
            Key={"username": username},
            UpdateExpression=update_expr,
            ExpressionAttributeValues=expr_vals,
        )
        _log_auth_event(event, username, False, "locked_out")
        return err(
            f"Too many failed attempts. Account locked for {LOGIN_LOCKOUT_MINUTES} minutes.",
            429,
            _extra={"locked_until": lockout_until.isoformat()},
        )

    users_table.update_item(
        Key={"username": username},
        UpdateExpression=update_expr,
        ExpressionAttributeValues=expr_vals,
    )
    _log_auth_event(event, username, False, "bad_password")
    return err("Invalid credentials.", 401)


def login(event, body):
    """POST /api/login  { username, password } → { token, user, expires_at }"""
    username = str(body.get("username") or "").strip()
    password = str(body.get("password") or "")
    if not username or not password:
        return err("Username and password required.")

    now  = datetime.now(timezone.utc)
    user = users_table.get_item(Key={"username": username}).get("Item")

    # Timing-safe: always run verify_password even when user not found
    if not user:
        verify_password(password, "")
        _log_auth_event(event, username, False, "unknown_user")
        return err("Invalid credentials.", 401)

    user = _to_py(user)
    locked = _locked_out(event, username, user, now)
    if locked:
        return locked

    if not verify_password(password, user.get("password_hash", "")):
        return _record_failure(event, username, user, now)

    users_table.update_item(
        Key={"username": username},
        UpdateExpression="REMOVE failed_attempts, lockout_until, last_failed_at SET last_login_at = :t",
        ExpressionAttributeValues={":t": now.isoformat()},
    )
    sess = create_session(username, now)
    _log_auth_event(event, username, True)
    return ok({
        "success":    True,
        "token":      sess["token"],
        "user":       username,
        "expires_at": sess["expires_at"],
        "message":    "Login successful",
    })


def logout(event):
    """POST /api/logout — deletes the presented session if it exists."""
    token = bearer_token(event)
    if token:
        sessions_table.delete_item(Key={"token": token})
    return ok({"success": True, "message": "Logout successful"})


def auth_check(event):
    """GET /api/auth/check"""
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    return ok({"authenticated": True, "user": sess["user"], "expires_at": sess["expires_at"]})

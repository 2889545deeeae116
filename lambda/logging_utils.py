"""lambda/logging_utils.py — Auth-event and application-event logging.

Rows carry an expires_at TTL: auth-logs 90 days, app-logs 30 days.
Neither writer raises; a failed log write is printed and the request goes on.
"""
import secrets
from datetime import datetime, timezone, timedelta

from botocore.exceptions import BotoCoreError, ClientError

from helpers import _get_client_ip, _headers, auth_logs_tbl, app_logs_tbl


def _log_id(now: datetime) -> str:
    return f"{now.isoformat()}#{secrets.token_hex(4)}"


def _log_auth_event(event: dict, username: str, success: bool, reason: str = ""):
    """Write a login attempt record to auth_logs."""
    try:
        now = datetime.now(timezone.utc)
        auth_logs_tbl.put_item(Item={
            "log_id":     _log_id(now),
            "ts":         now.isoformat(),
            "user":       username or "(unknown)",
            "success":    success,
            "ip":         _get_client_ip(event),
            "user_agent": _headers(event).get("user-agent", "")[:200],
            "reason":     reason,
            "expires_at": int((now + timedelta(days=90)).timestamp()),
        })
    except (BotoCoreError, ClientError) as e:
        print(f"[CAT] _log_auth_event failed: {e}")


def _log_app_event(source: str, level: str = "info", **fields):
    """Write a structured application log entry to app_logs.
    source: 'api' | 'auth' | 'catalog'"""
    try:
        now = datetime.now(timezone.utc)
        app_logs_tbl.put_item(Item={
            "log_id":     _log_id(now),
            "ts":         now.isoformat(),
            "source":     source,
            "level":      level,
            "expires_at": int((now + timedelta(days=30)).timestamp()),
            **{k: v for k, v in fields.items() if v is not None},
        })
    except (BotoCoreError, ClientError) as e:
        print(f"[CAT] _log_app_event failed: {e}")

"""lambda/helpers.py — Shared utilities, DynamoDB table references, and constants.

Imported by all other lambda modules. Contains no business logic.
"""
import json
import os
import hashlib
import hmac
import secrets
import boto3
from decimal import Decimal
from datetime import datetime, timezone

from shared.dynamo import to_python

# ── AWS clients ───────────────────────────────────────────────────────────────

_region  = os.environ.get("CATALOG_REGION", "us-east-1")
dynamodb = boto3.resource("dynamodb", region_name=_region)

products_tbl    = dynamodb.Table(os.environ["PRODUCTS_TABLE"])
variants_tbl    = dynamodb.Table(os.environ["VARIANTS_TABLE"])
categories_tbl  = dynamodb.Table(os.environ["CATEGORIES_TABLE"])
goals_tbl       = dynamodb.Table(os.environ.get("GOALS_TABLE",   "catalog-admin-goals"))
flavors_tbl     = dynamodb.Table(os.environ.get("FLAVORS_TABLE", "catalog-admin-flavors"))
users_table     = dynamodb.Table(os.environ["USERS_TABLE"])
sessions_table  = dynamodb.Table(os.environ["SESSIONS_TABLE"])
auth_logs_tbl   = dynamodb.Table(os.environ["AUTH_LOGS_TABLE"])
app_logs_tbl    = dynamodb.Table(os.environ["APP_LOGS_TABLE"])
scrape_logs_tbl = dynamodb.Table(os.environ.get("SCRAPE_LOGS_TABLE", "catalog-admin-scrape-logs"))

# ── Configuration ─────────────────────────────────────────────────────────────

ADMIN_SECRET = (os.environ.get("ADMIN_SECRET", "") or "").strip()
FRONTEND_URL = (os.environ.get("FRONTEND_URL", "") or "").strip()
STAGE        = (os.environ.get("STAGE", "development") or "").strip()

SESSION_TTL_HOURS     = 24
LOGIN_MAX_ATTEMPTS    = 5
LOGIN_LOCKOUT_MINUTES = 60

CORS = {
    "Access-Control-Allow-Origin":  FRONTEND_URL if FRONTEND_URL else "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
    "Content-Type": "application/json",
}

# ── JSON encoder ──────────────────────────────────────────────────────────────

class _Enc(json.JSONEncoder):
    def default(self, o):
        if isinstance(o, Decimal):
            return int(o) if o == int(o) else float(o)
        if isinstance(o, set):
            return sorted(o)
        return super().default(o)

# ── Response helpers ──────────────────────────────────────────────────────────

def ok(body, status=200):
    return {"statusCode": status, "headers": CORS, "body": json.dumps(body, cls=_Enc)}

def err(msg, status=400, _extra=None):
    if status >= 400 and status not in (401, 404, 405, 429):
        from logging_utils import _log_app_event
        _log_app_event("api", "error" if status >= 500 else "warn",
                       status=status, message=str(msg)[:300])
    body = {"error": msg}
    if _extra:
        body.update(_extra)
    return {"statusCode": status, "headers": CORS, "body": json.dumps(body, cls=_Enc)}

# ── Request helpers ───────────────────────────────────────────────────────────

_to_py = to_python

def get_body(event) -> dict:
    try:
        body = json.loads(event.get("body") or "{}")
    except (TypeError, ValueError):
        return {}
    return body if isinstance(body, dict) else {}

def get_params(event) -> dict:
    return event.get("queryStringParameters") or {}

def _headers(event) -> dict:
    return {k.lower(): v for k, v in (event.get("headers") or {}).items()}

def _get_client_ip(event: dict) -> str:
    """Client IP from the API Gateway request context (X-Forwarded-For is spoofable)."""
    return (event.get("requestContext", {})
                 .get("http", {})
                 .get("sourceIp", "unknown"))

def bearer_token(event) -> str:
    auth = _headers(event).get("authorization", "").strip()
    if auth[:7].lower() == "bearer ":
        return auth[7:].strip()
    return ""

def now_ts() -> int:
    return int(datetime.now(timezone.utc).timestamp())

# ── Password hashing (scrypt) ─────────────────────────────────────────────────

def hash_password(password: str, salt: bytes = None) -> str:
    """Hash a password with scrypt + random salt.
    Returns 'scrypt$<hex_salt>$<hex_hash>'."""
    if salt is None:
        salt = secrets.token_bytes(16)
    h = hashlib.scrypt(password.encode(), salt=salt, n=2**14, r=8, p=1, dklen=32)
    return f"scrypt${salt.hex()}${h.hex()}"

def verify_password(password: str, stored_hash: str) -> bool:
    """Verify a password against a stored scrypt hash."""
    if not stored_hash or "$" not in stored_hash:
        return False
    parts = stored_hash.split("$")
    if parts[0] != "scrypt" or len(parts) != 3:
        return False
    try:
        salt = bytes.fromhex(parts[1])
    except ValueError:
        return False
    h = hashlib.scrypt(password.encode(), salt=salt, n=2**14, r=8, p=1, dklen=32)
    return hmac.compare_digest(h.hex(), parts[2])

# ── Session & admin auth ──────────────────────────────────────────────────────

def get_session(event):
    """Validate Bearer token, return session item or None.
    Expired sessions are deleted on the access that finds them."""
    token = bearer_token(event)
    if not token: return None
    item = sessions_table.get_item(Key={"token": token}).get("Item")
    if not item: return None
    if int(item.get("expires_at", 0)) < now_ts():
        sessions_table.delete_item(Key={"token": token})
        return None
    return _to_py(item)

def get_admin_auth(event) -> bool:
    """Return True if the request carries a valid 'AdminSecret <secret>' header."""
    if not ADMIN_SECRET: return False
    auth = _headers(event).get("authorization", "").strip()
    prefix = "adminsecret "
    if auth.lower().startswith(prefix):
        candidate = auth[len(prefix):].strip()
        return hmac.compare_digest(candidate, ADMIN_SECRET)
    return False

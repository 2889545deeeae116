"""tests/conftest.py — Shared fixtures for all tests.

Sets environment variables before any Lambda module is imported,
then provides moto-mocked DynamoDB tables and API Gateway event builders.
"""
import json
import os
import sys

# Set test env vars before any Lambda module is imported
os.environ.update({
    "PRODUCTS_TABLE":        "test-products",
    "VARIANTS_TABLE":        "test-variants",
    "CATEGORIES_TABLE":      "test-categories",
    "GOALS_TABLE":           "test-goals",
    "FLAVORS_TABLE":         "test-flavors",
    "USERS_TABLE":           "test-users",
    "SESSIONS_TABLE":        "test-sessions",
    "AUTH_LOGS_TABLE":       "test-auth-logs",
    "APP_LOGS_TABLE":        "test-app-logs",
    "SCRAPE_LOGS_TABLE":     "test-scrape-logs",
    "MIGRATIONS_TABLE":      "test-migrations",
    "ADMIN_SECRET":          "test-admin-secret-12345",
    "FRONTEND_URL":          "http://localhost:3000",
    "STAGE":                 "test",
    "CATALOG_REGION":        "us-east-1",
    "AWS_DEFAULT_REGION":    "us-east-1",
    "AWS_ACCESS_KEY_ID":     "testing",
    "AWS_SECRET_ACCESS_KEY": "testing",
    "AWS_SECURITY_TOKEN":    "testing",
    "AWS_SESSION_TOKEN":     "testing",
})

# Add lambda/, scraper/, migration/ and project root to path so imports resolve without packaging
_root = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, os.path.join(_root, "migration"))
sys.path.insert(0, os.path.join(_root, "scraper"))
sys.path.insert(0, os.path.join(_root, "lambda"))
sys.path.insert(0, _root)

import pytest
import boto3
from moto import mock_aws

TEST_USER     = "admin"
TEST_PASSWORD = "correct-horse-battery"
ADMIN_SECRET  = os.environ["ADMIN_SECRET"]


@pytest.fixture
def dynamodb_tables():
    """Spin up mocked DynamoDB tables for each test."""
    with mock_aws():
        ddb = boto3.resource("dynamodb", region_name="us-east-1")
        table_defs = [
            ("test-products",    "handle",   None),
            ("test-variants",    "handle",   "variant_id"),
            ("test-categories",  "id",       None),
            ("test-goals",       "id",       None),
            ("test-flavors",     "name",     None),
            ("test-users",       "username", None),
            ("test-sessions",    "token",    None),
            ("test-auth-logs",   "log_id",   None),
            ("test-app-logs",    "log_id",   None),
            ("test-scrape-logs", "job_id",   None),
            ("test-migrations",  "version",  None),
        ]
        for name, key, sort_key in table_defs:
            schema = [{"AttributeName": key, "KeyType": "HASH"}]
            attrs  = [{"AttributeName": key, "AttributeType": "S"}]
            if sort_key:
                schema.append({"AttributeName": sort_key, "KeyType": "RANGE"})
                attrs.append({"AttributeName": sort_key, "AttributeType": "S"})
            ddb.create_table(
                TableName=name,
                KeySchema=schema,
                AttributeDefinitions=attrs,
                BillingMode="PAY_PER_REQUEST",
            )
        yield ddb


@pytest.fixture
def user(dynamodb_tables):
    """A login-capable user in the users table."""
    from helpers import hash_password
    dynamodb_tables.Table("test-users").put_item(Item={
        "username":      TEST_USER,
        "password_hash": hash_password(TEST_PASSWORD),
        "created_at":    "2026-01-01T00:00:00+00:00",
    })
    return TEST_USER


@pytest.fixture
def token(user):
    """A valid session token for the test user."""
    from auth import create_session
    return create_session(user)["token"]


def make_event(method, path, body=None, token=None, params=None, headers=None):
    """Build an API Gateway HTTP API (v2) event."""
    hdrs = dict(headers or {})
    if token:
        hdrs["Authorization"] = f"Bearer {token}"
    return {
        "rawPath": path,
        "headers": hdrs,
        "queryStringParameters": params,
        "body": json.dumps(body) if body is not None else None,
        "requestContext": {"http": {"method": method, "path": path, "sourceIp": "127.0.0.1"}},
    }


def admin_headers():
    return {"Authorization": f"AdminSecret {ADMIN_SECRET}"}


def body_of(resp):
    return json.loads(resp["body"]) if resp.get("body") else None

"""shared/dynamo.py — DynamoDB type conversion and scan helpers.

Used by the API Lambda, the scraper and the migration tool.
boto3 returns every number as Decimal and refuses Python floats on write,
so records cross this boundary in both directions.
"""
from decimal import Decimal


def to_python(obj):
    """Recursively convert DynamoDB Decimal types to int/float."""
    if isinstance(obj, Decimal):
        return int(obj) if obj == int(obj) else float(obj)
    if isinstance(obj, dict):  return {k: to_python(v) for k, v in obj.items()}
    if isinstance(obj, list):  return [to_python(i) for i in obj]
    return obj


def to_dynamo(obj):
    """Recursively convert floats to Decimal so boto3 accepts the item."""
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):  return {k: to_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):  return [to_dynamo(i) for i in obj]
    return obj


def scan_all(table, **kwargs) -> list:
    """Scan every page of a table, following LastEvaluatedKey."""
    resp  = table.scan(**kwargs)
    items = list(resp.get("Items", []))
    while "LastEvaluatedKey" in resp:
        resp = table.scan(ExclusiveStartKey=resp["LastEvaluatedKey"], **kwargs)
        items.extend(resp.get("Items", []))
    return items

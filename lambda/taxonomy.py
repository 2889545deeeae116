"""lambda/taxonomy.py — Categories, goals and flavors.

Categories and goals share one shape: id is the slug of the name, with an
optional parent_id pointing at another row of the same table. Flavors are
keyed by name. Listing is public; writes need a session.

Deleting one strips its name from every product that lists it, and the
children of a deleted category or goal move up one level.
"""
from datetime import datetime, timezone

from boto3.dynamodb.conditions import Attr

from helpers import (
    ok, err, _to_py, get_session,
    categories_tbl, goals_tbl, flavors_tbl, products_tbl,
)
from logging_utils import _log_app_event
from shared.catalog import put_product
from shared.dynamo import scan_all
from shared.product_record import slugify

# kind → (table, child flag, display name, list key, product list field, product primary field)
_KINDS = {
    "category": (categories_tbl, "is_sub_category", "Category", "categories", "categories", "category"),
    "goal":     (goals_tbl,      "is_sub_goal",     "Goal",     "goals",      "goals",      "primary_goal"),
}


def _list_tree(kind: str):
    table, _, label, plural, _, _ = _KINDS[kind]
    try:
        items = _to_py(scan_all(table))
    except Exception as e:
        print(f"[CAT] list {kind}: {e}")
        return err(f"Failed to fetch {label.lower()} list.", 500)
    items.sort(key=lambda x: (x.get("name") or "").lower())
    return ok({plural: items})


def _create_tree(event, body, kind: str):
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    table, flag, label, *_ = _KINDS[kind]
    name = str(body.get("name") or "").strip()
    if not name: return err(f"{label} name is required.")
    item_id = slugify(name)
    if not item_id: return err(f"{label} name must contain letters or numbers.")
    parent_id = str(body.get("parent_id") or body.get("parentId") or "").strip()
    try:
        if table.get_item(Key={"id": item_id}).get("Item"):
            return err(f"{label} '{name}' already exists.", 409)
        if parent_id and not table.get_item(Key={"id": parent_id}).get("Item"):
            return err(f"Parent {label.lower()} '{parent_id}' not found.", 400)
        item = {
            "id":         item_id,
            "name":       name,
            flag:         bool(parent_id),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        if parent_id:
            item["parent_id"] = parent_id
        table.put_item(Item=item)
    except Exception as e:
        print(f"[CAT] create {kind} {name}: {e}")
        return err(f"Failed to create {label.lower()}.", 500)
    _log_app_event("catalog", "info", action=f"{kind}-create", user=sess["user"], name=name)
    return ok({kind: item}, 201)


def _strip_from_products(name: str, list_field: str, primary_field: str | None = None,
                         details_field: str | None = None) -> int:
    """Remove a deleted name from every product that references it.

    A primary field pointing at the name moves to the first remaining list
    entry (or is dropped). Returns the number of products rewritten.
    """
    cond = Attr(list_field).contains(name)
    if primary_field:
        cond = cond | Attr(primary_field).eq(name)
    products = _to_py(scan_all(products_tbl, FilterExpression=cond))
    for p in products:
        p[list_field] = [v for v in p.get(list_field) or [] if v != name]
        if primary_field and p.get(primary_field) == name:
            p[primary_field] = p[list_field][0] if p[list_field] else None
        if details_field:
            (p.get(details_field) or {}).pop(name, None)
        put_product(products_tbl, p)
    return len(products)


def _reparent_children(table, flag: str, item_id: str, new_parent: str | None) -> int:
    """Children of a deleted row move up to its parent, or to the top level."""
    children = _to_py(scan_all(table, FilterExpression=Attr("parent_id").eq(item_id)))
    for child in children:
        if new_parent:
            table.update_item(
                Key={"id": child["id"]},
                UpdateExpression="SET parent_id = :p",
                ExpressionAttributeValues={":p": new_parent},
            )
        else:
            table.update_item(
                Key={"id": child["id"]},
                UpdateExpression=f"REMOVE parent_id SET {flag} = :f",
                ExpressionAttributeValues={":f": False},
            )
    return len(children)


def _delete_tree(event, item_id: str, kind: str):
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    table, flag, label, _, list_field, primary_field = _KINDS[kind]
    try:
        existing = table.get_item(Key={"id": item_id}).get("Item")
        if not existing:
            return err(f"{label} not found.", 404)
        table.delete_item(Key={"id": item_id})
        moved   = _reparent_children(table, flag, item_id, existing.get("parent_id"))
        updated = _strip_from_products(existing.get("name") or item_id, list_field, primary_field)
    except Exception as e:
        print(f"[CAT] delete {kind} {item_id}: {e}")
        return err(f"Failed to delete {label.lower()}.", 500)
    _log_app_event("catalog", "info", action=f"{kind}-delete", user=sess["user"], name=item_id,
                   products_updated=updated, children_moved=moved)
    return ok({"message": f"{label} {item_id} deleted.",
               "products_updated": updated, "children_moved": moved})


# ── Categories ────────────────────────────────────────────────────────────────

def list_categories(event):
    return _list_tree("category")

def create_category(event, body):
    return _create_tree(event, body, "category")

def delete_category(event, item_id: str):
    return _delete_tree(event, item_id, "category")


# ── Goals ─────────────────────────────────────────────────────────────────────

def list_goals(event):
    return _list_tree("goal")

def create_goal(event, body):
    return _create_tree(event, body, "goal")

def delete_goal(event, item_id: str):
    return _delete_tree(event, item_id, "goal")


# ── Flavors ───────────────────────────────────────────────────────────────────

def list_flavors(event):
    """GET /api/flavors — the flavors table, or the distinct flavors found
    on products when the table is empty."""
    try:
        rows = _to_py(scan_all(flavors_tbl))
        if rows:
            names, source = [r["name"] for r in rows if r.get("name")], "table"
        else:
            names, source = set(), "products"
            for p in _to_py(scan_all(products_tbl)):
                for f in p.get("flavors") or []:
                    if isinstance(f, str) and f.strip():
                        names.add(f.strip())
    except Exception as e:
        print(f"[CAT] list_flavors: {e}")
        return err("Failed to fetch flavors.", 500)
    return ok({"flavors": sorted(names, key=str.lower), "source": source})


def create_flavor(event, body):
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    name = str(body.get("name") or "").strip()
    if not name: return err("Flavor name is required.")
    try:
        if flavors_tbl.get_item(Key={"name": name}).get("Item"):
            return err(f"Flavor '{name}' already exists.", 409)
        item = {"name": name, "created_at": datetime.now(timezone.utc).isoformat()}
        flavors_tbl.put_item(Item=item)
    except Exception as e:
        print(f"[CAT] create_flavor {name}: {e}")
        return err("Failed to create flavor.", 500)
    _log_app_event("catalog", "info", action="flavor-create", user=sess["user"], name=name)
    return ok({"flavor": item}, 201)


def delete_flavor(event, name: str):
    sess = get_session(event)
    if not sess: return err("Authentication required.", 401)
    try:
        if not flavors_tbl.get_item(Key={"name": name}).get("Item"):
            return err("Flavor not found.", 404)
        flavors_tbl.delete_item(Key={"name": name})
        updated = _strip_from_products(name, "flavors", details_field="flavor_details")
    except Exception as e:
        print(f"[CAT] delete_flavor {name}: {e}")
        return err("Failed to delete flavor.", 500)
    _log_app_event("catalog", "info", action="flavor-delete", user=sess["user"], name=name,
                   products_updated=updated)
    return ok({"message": f"Flavor {name} deleted.", "products_updated": updated})

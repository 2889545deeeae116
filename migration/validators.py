"""
migration/validators.py

Validation and shaping of snapshot records before they are written.
Each validator returns (data, errors, warnings); validate_batch splits a
list into valid rows and invalid entries with their errors.
"""

from shared.product_record import normalize_product, slugify, validate_product

# Keys under which nested children appear in categories.json / goals.json
_CHILD_KEYS = ("subCategories", "sub_categories", "subGoals", "sub_goals", "children")


def validate_product_row(raw: dict) -> tuple:
    if not isinstance(raw, dict):
        return None, ["product must be an object"], []
    data = normalize_product(raw)
    if isinstance(raw.get("variants"), list):
        data["variants"] = raw["variants"]
    errors, warnings = validate_product(data)
    return data, errors, warnings


def _own_id(entry: dict) -> str:
    """Explicit id when given, else the slug of the name."""
    raw_id = entry.get("id")
    if isinstance(raw_id, str) and raw_id.strip():
        return slugify(raw_id)
    return slugify(str(entry.get("name") or ""))


def _tree_row(raw: dict, flag: str) -> tuple:
    if not isinstance(raw, dict):
        return None, ["entry must be an object"], []
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None, ["name is required and must be a string"], []
    name = name.strip()
    item_id = _own_id(raw)
    if not item_id:
        return None, [f"name {name!r} has no letters or numbers"], []
    parent_id = raw.get("parent_id") or raw.get("parentId")
    data = {
        "id":   item_id,
        "name": name,
        flag:   bool(parent_id) or bool(raw.get(flag) or raw.get(_camel(flag))),
    }
    if parent_id:
        data["parent_id"] = slugify(str(parent_id))
    return data, [], []


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


def validate_category(raw: dict) -> tuple:
    return _tree_row(raw, "is_sub_category")


def validate_goal(raw: dict) -> tuple:
    return _tree_row(raw, "is_sub_goal")


def validate_flavor(raw) -> tuple:
    if isinstance(raw, str):
        raw = {"name": raw}
    if not isinstance(raw, dict):
        return None, ["flavor must be a string or an object"], []
    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None, ["name is required and must be a string"], []
    return {"name": name.strip()}, [], []


def flatten_tree(entries: list, parent_id: str | None = None) -> list:
    """Flatten nested {id, name, subCategories: [...]} entries into rows
    whose children carry parent_id."""
    rows = []
    for entry in entries or []:
        if not isinstance(entry, dict):
            rows.append(entry)
            continue
        row = {k: v for k, v in entry.items() if k not in _CHILD_KEYS}
        if parent_id and not (row.get("parent_id") or row.get("parentId")):
            row["parent_id"] = parent_id
        rows.append(row)
        children = next((entry[k] for k in _CHILD_KEYS if isinstance(entry.get(k), list)), [])
        if children:
            rows.extend(flatten_tree(children, _own_id(entry)))
    return rows


def validate_batch(items: list, validator, entity: str = "item") -> dict:
    print(f"Validating {len(items)} {entity}(s)...")
    results = {"valid": [], "invalid": [], "warnings": []}
    for i, item in enumerate(items):
        data, errors, warnings = validator(item)
        if errors:
            results["invalid"].append({"index": i, "errors": errors})
        else:
            results["valid"].append(data)
        if warnings:
            results["warnings"].append({"index": i, "warnings": warnings})
    print(f"  {len(results['valid'])} valid, {len(results['invalid'])} invalid, "
          f"{len(results['warnings'])} with warnings")
    return results

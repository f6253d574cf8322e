"""
Seed the product collection.

The default source is a JSON fixture (data/products.json). A frontend mock
module (.ts/.js) exporting `PRODUCTS` is also accepted: its array literal is
cut out of the source text and converted to plain data without evaluating it.

Usage: python seed.py   (or the clearx-seed console script)
"""
import ast
import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List

from pymongo import MongoClient
from pymongo.database import Database

from config import settings
from database import ensure_indexes
from schemas import Product as ProductSchema, dump

log = logging.getLogger("clearx.seed")

PRODUCTS_MARKER = "export const PRODUCTS"
ENUM_NAMES = ("VerticalType", "Vertical")
PLACEHOLDER_URI = "your_mongodb"

JS_CONSTANTS = {"true": "True", "false": "False", "null": "None", "undefined": "None"}


class SeedError(Exception):
    pass


def extract_array_literal(source: str, marker: str = PRODUCTS_MARKER) -> str:
    start = source.find(marker)
    if start == -1:
        raise SeedError(f"{marker!r} not found in source")
    after = source[start:]

    # Skip past the type annotation (Product[] has brackets of its own).
    eq = after.find("=")
    if eq == -1:
        raise SeedError("Could not find '=' for PRODUCTS assignment")
    after_eq = after[eq + 1:]

    array_start = after_eq.find("[")
    if array_start == -1:
        raise SeedError("Could not find array start for PRODUCTS")

    depth = 0
    for idx in range(array_start, len(after_eq)):
        ch = after_eq[idx]
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return after_eq[array_start:idx + 1]
    raise SeedError("Could not parse PRODUCTS array end")


def rewrite_enum_references(literal: str, enum_names: Iterable[str] = ENUM_NAMES) -> str:
    """`Vertical.DEALS` -> `'DEALS'`."""
    names = "|".join(re.escape(n) for n in enum_names)
    return re.sub(rf"\b(?:{names})\.(\w+)", r"'\1'", literal)


def js_literal_to_python(literal: str) -> str:
    """Rewrite a JS object/array literal into Python literal syntax.

    Bare object keys are quoted and JS constants mapped; string contents are
    copied through untouched. Comments are dropped.
    """
    out = []
    i, n = 0, len(literal)
    while i < n:
        ch = literal[i]
        if ch in "'\"":
            j = i + 1
            while j < n and literal[j] != ch:
                j += 2 if literal[j] == "\\" else 1
            if j >= n:
                raise SeedError("Unterminated string literal")
            out.append(literal[i:j + 1])
            i = j + 1
        elif ch == "`":
            raise SeedError("Template literals are not supported")
        elif literal.startswith("//", i):
            end = literal.find("\n", i)
            i = n if end == -1 else end
        elif literal.startswith("/*", i):
            end = literal.find("*/", i + 2)
            if end == -1:
                raise SeedError("Unterminated comment")
            i = end + 2
        elif ch.isdigit():
            j = i
            while j < n and (literal[j].isalnum() or literal[j] == "."):
                j += 1
            out.append(literal[i:j])
            i = j
        elif ch.isalpha() or ch in "_$":
            j = i
            while j < n and (literal[j].isalnum() or literal[j] in "_$"):
                j += 1
            word = literal[i:j]
            k = j
            while k < n and literal[k].isspace():
                k += 1
            if k < n and literal[k] == ":":
                out.append(repr(word))
            elif word in JS_CONSTANTS:
                out.append(JS_CONSTANTS[word])
            else:
                raise SeedError(f"Unsupported identifier in literal: {word}")
            i = j
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def parse_mock_products(source: str) -> List[Dict[str, Any]]:
    literal = rewrite_enum_references(extract_array_literal(source))
    try:
        products = ast.literal_eval(js_literal_to_python(literal))
    except (SyntaxError, ValueError) as e:
        raise SeedError(f"PRODUCTS literal is not plain data: {e}") from e
    if not isinstance(products, list):
        raise SeedError("PRODUCTS is not an array")
    return products


def load_products(path: Path) -> List[Dict[str, Any]]:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".ts", ".tsx", ".js"):
        return parse_mock_products(text)
    products = json.loads(text)
    if not isinstance(products, list):
        raise SeedError(f"{path} must contain a JSON array")
    return products


def to_product_document(p: Dict[str, Any]) -> Dict[str, Any]:
    product = ProductSchema(
        id=p["id"],
        name=p["name"],
        description=p.get("description") or "",
        price=p.get("price") or 0,
        original_price=p.get("originalPrice"),
        discount=p.get("discount"),
        image=p.get("image") or "",
        category=p.get("category") or "",
        vertical=p.get("vertical") or None,
        store_name=p.get("storeName") or "",
        store_id=p.get("storeId") or "",
        stock=p.get("stock") or 0,
        rating=p.get("rating") or 4.5,
        distance=p.get("distance") or "",
        delivery_time=p.get("deliveryTime") or "",
        expiry_date=p.get("expiryDate"),
        weight=p.get("weight"),
        origin=p.get("origin"),
        material=p.get("material"),
        maker_material=p.get("makerMaterial"),
        dimensions=p.get("dimensions"),
    )
    return dump(product)


def seed_products(db: Database, products: List[Dict[str, Any]]) -> int:
    """Wipe the product collection and bulk insert; returns the inserted count."""
    docs = [to_product_document(p) for p in products]
    db["product"].delete_many({})
    log.info("Cleared existing products collection")
    if docs:
        db["product"].insert_many(docs)
    log.info("Inserted %d products", len(docs))
    return len(docs)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    if not settings.mongo_uri or PLACEHOLDER_URI in settings.mongo_uri:
        log.error("Please set a valid MONGO_URI in .env before running the seed script.")
        return 1
    client = MongoClient(settings.mongo_uri)
    try:
        db = client[settings.database_name]
        source = Path(settings.seed_source)
        log.info("Reading products from %s", source)
        products = load_products(source)
        log.info("Parsed %d products", len(products))
        ensure_indexes(db)
        seed_products(db, products)
    except Exception:
        log.exception("Seeding error")
        return 1
    finally:
        client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())

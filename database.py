"""
MongoDB access for the ClearX backend.

`db` is None when no MONGO_URI is configured; callers check for that and
answer with a 500.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import settings

log = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.mongo_uri:
    client = MongoClient(settings.mongo_uri)
    db = client[settings.database_name]
else:
    log.warning("MONGO_URI not set; database features are disabled")


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with createdAt/updatedAt and return its _id."""
    if db is None:
        raise RuntimeError("Database not configured")
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True, exclude_none=True)
    else:
        doc = dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def ensure_indexes(database: Optional[Database] = None):
    """Unique business keys on the three collections."""
    target = database if database is not None else db
    if target is None:
        return
    target["user"].create_index([("uid", ASCENDING)], unique=True)
    target["user"].create_index([("phoneNumber", ASCENDING)], unique=True, sparse=True)
    target["product"].create_index([("id", ASCENDING)], unique=True)
    target["order"].create_index([("id", ASCENDING)], unique=True)
    target["order"].create_index([("userId", ASCENDING)])
    log.info("Indexes ensured on %s", target.name)

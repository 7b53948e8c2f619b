"""
Database helpers

Thin wrappers around pymongo shared by every service. Services receive the
``Database`` handle explicitly; nothing here keeps a module-level connection.
"""

import logging
import re
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_fixed,
)

logger = logging.getLogger(__name__)

OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form pymongo hands back on reads."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def open_database(url: str, name: str, server_selection_timeout_ms: int = 10000) -> Database:
    """Build a client without touching the network; pymongo connects lazily."""
    client = MongoClient(url, serverSelectionTimeoutMS=server_selection_timeout_ms)
    return client[name]


def wait_for_server(
    db: Database,
    retries: int = 5,
    delay: float = 5,
    stopping: Optional[threading.Event] = None,
) -> bool:
    """Ping the server up to ``retries`` times, ``delay`` seconds apart.

    Returns False once the attempts are used up or ``stopping`` is set. The
    handle stays usable either way, so requests start working as soon as the
    server becomes reachable.
    """
    stopping = stopping or threading.Event()

    def give_up(retry_state) -> bool:
        logger.error(
            "MongoDB handshake gave up after %d attempt(s); serving without a confirmed connection",
            retry_state.attempt_number,
        )
        return False

    @retry(
        stop=stop_after_attempt(retries) | stop_when_event_set(stopping),
        wait=wait_fixed(delay),
        retry=retry_if_exception_type(PyMongoError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        retry_error_callback=give_up,
        sleep=stopping.wait,
    )
    def _ping() -> bool:
        db.client.admin.command("ping")
        logger.info("MongoDB connected: %s", db.name)
        return True

    return _ping()


def ping(db: Optional[Database]) -> bool:
    if db is None:
        return False
    try:
        db.client.admin.command("ping")
        return True
    except PyMongoError:
        return False


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and bool(OBJECT_ID_PATTERN.match(value))


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document, stamping createdAt/updatedAt. Returns the new id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    d = dict(doc)
    if d.get("_id") is not None:
        d["_id"] = str(d["_id"])
    return d

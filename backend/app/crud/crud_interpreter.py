from typing import List, Optional

from .. import models, schemas
from .persistence import PersistenceAdapter

ACTIVE = "ACTIVE"


async def get_interpreter(adapter: PersistenceAdapter, interpreter_id: str) -> Optional[schemas.Interpreter]:
    doc = await adapter.fetch_one(models.Collections.INTERPRETERS, interpreter_id)
    return schemas.Interpreter.from_document(doc) if doc else None


async def get_client(adapter: PersistenceAdapter, client_id: str) -> Optional[schemas.Client]:
    doc = await adapter.fetch_one(models.Collections.CLIENTS, client_id)
    return schemas.Client.from_document(doc) if doc else None


async def list_interpreters(adapter: PersistenceAdapter) -> List[schemas.Interpreter]:
    docs = await adapter.fetch_collection(models.Collections.INTERPRETERS, order=("name", False))
    return [schemas.Interpreter.from_document(d) for d in docs]


async def find_interpreters_by_language(adapter: PersistenceAdapter, language: str) -> List[schemas.Interpreter]:
    """Active interpreters listing a language that contains ``language`` (case-insensitive)."""
    needle = (language or "").strip().lower()
    if not needle:
        return []
    docs = await adapter.fetch_collection(
        models.Collections.INTERPRETERS,
        [("status", "==", ACTIVE)],
        ("name", False),
    )
    matches = []
    for doc in docs:
        interpreter = schemas.Interpreter.from_document(doc)
        if any(needle in lang.lower() for lang in interpreter.languages):
            matches.append(interpreter)
    return matches

# backend/scripts/import_paths_jsonl_to_db.py
"""
Bulk-load learning paths from a JSONL export, one path state per line:

    {"title": "...", "userId": 1, "structureGraph": {"nodes": [...], "edges": [...]}, ...}

Each path gets an initial version tagged "import".
"""
import json
import logging
import os
from typing import Callable

from pydantic import ValidationError
from sqlalchemy.orm import Session

from backend.database import SessionLocal
from backend.schemas.paths import PathIn
from backend.services.path_versions import PathVersionService

log = logging.getLogger("scripts.import_paths")

JSONL_PATH = os.environ.get("PATHS_JSONL", "data/paths.jsonl")


def run(jsonl_path: str = JSONL_PATH, session_factory: Callable[[], Session] = SessionLocal) -> int:
    if not os.path.exists(jsonl_path):
        log.warning("No file found at %s. Nothing to import.", jsonl_path)
        return 0

    db = session_factory()
    svc = PathVersionService(db)
    added = skipped = 0
    try:
        with open(jsonl_path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    state = PathIn.model_validate(json.loads(line))
                except (json.JSONDecodeError, ValidationError) as e:
                    log.warning("line %d skipped: %s", lineno, e)
                    skipped += 1
                    continue
                svc.create_path(state, user_id=state.user_id, reason="import")
                added += 1
    finally:
        db.close()

    log.info("✅ Imported %d learning paths from %s (%d skipped).", added, jsonl_path, skipped)
    return added


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run()

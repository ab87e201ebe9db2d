import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# Fix path to allow absolute imports from the project root
root_dir = Path(__file__).resolve().parent.parent
if str(root_dir) not in sys.path:
    sys.path.insert(0, str(root_dir))

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from memoryhaven.config import settings
from memoryhaven.core.events import Services, make_lifespan
from memoryhaven.core.exceptions import (
    ArtifactCleanupError,
    DatabaseError,
    EntryNotFoundError,
    ValidationError,
)
from memoryhaven.core.logger import logger
from memoryhaven.journal.activity import activity_counts
from memoryhaven.memory.records import EntryPatch


class EntryUpdate(BaseModel):
    title: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    original_path: Optional[str] = None
    compressed_path: Optional[str] = None
    transcription: Optional[str] = None
    duration: Optional[int] = None
    file_size: Optional[int] = None
    compressed_size: Optional[int] = None
    tags: Optional[list[str]] = None

    def to_patch(self) -> EntryPatch:
        # Only fields present in the request body become patch slots
        return EntryPatch(**{name: getattr(self, name) for name in self.model_fields_set})


def _services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(title="MemoryHaven", lifespan=make_lifespan(services))

    @app.exception_handler(EntryNotFoundError)
    async def not_found(request: Request, exc: EntryNotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc), "kind": "not_found"})

    @app.exception_handler(ValidationError)
    async def invalid(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"error": str(exc), "kind": type(exc).__name__})

    @app.exception_handler(DatabaseError)
    async def database_failed(request: Request, exc: DatabaseError):
        logger.error("Database error while serving {}: {}", request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": str(exc), "kind": "database"})

    @app.get("/health")
    async def health():
        return {"status": "alive", "name": "MemoryHaven"}

    @app.post("/recordings")
    async def save_recording(request: Request, captured_at: Optional[datetime] = None, title: Optional[str] = None):
        raw = await request.body()
        if not raw:
            raise HTTPException(status_code=400, detail="Recording body is empty")
        result = await _services(request).pipeline.process(raw, captured_at or datetime.now(), title=title)
        status = 201 if result.committed else 500
        return JSONResponse(status_code=status, content=result.to_dict())

    @app.get("/entries")
    async def list_entries(request: Request, limit: int = Query(100, ge=1, le=1000), offset: int = Query(0, ge=0)):
        entries = await run_in_threadpool(_services(request).store.list_entries, limit, offset)
        return {"entries": [entry.to_dict() for entry in entries]}

    @app.get("/entries/{entry_id}")
    async def get_entry(request: Request, entry_id: int):
        entry = await run_in_threadpool(_services(request).store.get_entry, entry_id)
        return entry.to_dict()

    @app.patch("/entries/{entry_id}")
    async def update_entry(request: Request, entry_id: int, update: EntryUpdate):
        changes = await run_in_threadpool(_services(request).store.update_entry, entry_id, update.to_patch())
        return {"changes": changes}

    @app.delete("/entries/{entry_id}")
    async def delete_entry(request: Request, entry_id: int):
        services = _services(request)
        deleted = await run_in_threadpool(services.store.delete_entry, entry_id)
        cleanup_error = None
        try:
            removed = services.artifacts.remove(deleted.original_path, deleted.compressed_path)
        except ArtifactCleanupError as e:
            logger.error("Entry {} deleted but some of its files remain: {}", entry_id, e)
            removed = e.removed
            cleanup_error = str(e)
        return {
            "changes": deleted.changed,
            "file_paths": {
                "original_path": deleted.original_path,
                "compressed_path": deleted.compressed_path,
            },
            "removed": removed,
            "cleanup_error": cleanup_error,
        }

    @app.get("/search")
    async def search_entries(request: Request, q: str = ""):
        entries = await run_in_threadpool(_services(request).store.search_entries, q)
        return {"entries": [entry.to_dict() for entry in entries]}

    @app.get("/tags")
    async def list_tags(request: Request):
        tags = await run_in_threadpool(_services(request).store.list_tags)
        return {"tags": [{"id": tag.id, "name": tag.name} for tag in tags]}

    @app.get("/activity")
    async def activity(request: Request):
        counts = await run_in_threadpool(activity_counts, _services(request).store)
        return {"counts": counts}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)

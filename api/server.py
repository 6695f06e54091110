"""FastAPI application serving conversations, queues and CSV uploads.

Run with `uvicorn api.server:app` or `python -m api.server`.
"""

import logging
import os
from typing import Any

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from utils.blob_store import StorageError
from utils.config_utils import resolve_storage_config
from utils.csv_ingest import parse_optional_int
from utils.data_helpers import maybe_load_dotenv
from utils.review_store import ReviewStore, store_from_config

logger = logging.getLogger(__name__)


async def _save_array(save: Any, request: Request, what: str) -> JSONResponse:
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Rejected %s save: body is not valid JSON", what)
        return JSONResponse({"error": f"Failed to save {what}"}, status_code=500)
    if not isinstance(payload, list):
        return JSONResponse({"error": f"Expected a JSON array of {what}"}, status_code=400)
    try:
        await run_in_threadpool(save, payload)
    except StorageError:
        logger.exception("Error saving %s", what)
        return JSONResponse({"error": f"Failed to save {what}"}, status_code=500)
    return JSONResponse({"success": True})


def create_app(store: ReviewStore | None = None) -> FastAPI:
    """Build the API around `store` (defaults to the store described by the environment)."""
    if store is None:
        maybe_load_dotenv()
        store = store_from_config(resolve_storage_config(None, None, os.environ))

    app = FastAPI(title="SensAI Eval API", version="0.1.0")
    app.state.store = store

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    @app.get("/api/conversations")
    def get_conversations() -> list[dict[str, Any]]:
        return app.state.store.load_conversations()

    @app.post("/api/conversations")
    async def post_conversations(request: Request) -> JSONResponse:
        return await _save_array(app.state.store.save_conversations, request, "conversations")

    @app.get("/api/queues")
    def get_queues() -> list[dict[str, Any]]:
        return app.state.store.load_queues()

    @app.post("/api/queues")
    async def post_queues(request: Request) -> JSONResponse:
        return await _save_array(app.state.store.save_queues, request, "queues")

    @app.post("/api/upload-csv")
    async def upload_csv(
        file: UploadFile | None = File(None),
        uploadedBy: str | None = Form(None),
        isChunk: str = Form("false"),
        chunkNumber: str = Form("1"),
        totalChunks: str = Form("1"),
    ) -> JSONResponse:
        if file is None:
            return JSONResponse({"error": "No file provided"}, status_code=400)
        if not uploadedBy:
            return JSONResponse({"error": "No uploadedBy provided"}, status_code=400)

        contents = await file.read()
        status_code, payload = await run_in_threadpool(
            app.state.store.upload_csv,
            contents,
            uploadedBy,
            is_chunk=isChunk == "true",
            chunk_number=parse_optional_int(chunkNumber) or 1,
            total_chunks=parse_optional_int(totalChunks) or 1,
        )
        return JSONResponse(payload, status_code=status_code)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    uvicorn.run(
        "api.server:app",
        host=os.getenv("API_HOST", "127.0.0.1"),
        port=int(os.getenv("API_PORT", "8000")),
        reload=False,
    )

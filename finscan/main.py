"""FastAPI application for FinScan."""

import logging
from uuid import UUID

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from finscan.config import settings
from finscan.db.sqlite import db
from finscan.models import Document, DocumentType, HealthResponse, ProcessingResult, UploadRequest
from finscan.services.pipeline import StageFailure, pipeline

logging.basicConfig(level=logging.DEBUG if settings.dev_mode else logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="FinScan",
    description="Financial document OCR and LLM-powered transaction extraction",
    version="0.1.0",
)

# CORS for the upload frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    """Initialize on startup."""
    settings.ensure_directories()
    if settings.dev_mode:
        settings.log_config()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        document_count=db.get_document_count(),
        transaction_count=db.get_transaction_count(),
    )


@app.post("/documents/upload", response_model=ProcessingResult)
async def upload_document(
    file: UploadFile = File(...),
    fileName: str | None = Form(None),
    documentType: str | None = Form(None),
):
    """Upload a photographed or scanned financial document (image or PDF)."""
    if not file.filename and not fileName:
        raise HTTPException(status_code=400, detail="No file uploaded")

    # One byte past the limit is enough to tell an oversized upload apart
    contents = await file.read(settings.max_upload_size + 1)
    if not contents:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(contents) > settings.max_upload_size:
        raise HTTPException(
            status_code=400,
            detail=f"File too large, maximum {settings.max_upload_size} bytes",
        )

    try:
        upload = UploadRequest(
            file_name=fileName or file.filename or "",
            mime_type=file.content_type or "application/octet-stream",
            contents=contents,
            document_type=documentType or DocumentType.OTHER,
        )
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid input data",
                "details": [
                    {"path": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()
                ],
            },
        )

    try:
        return await pipeline.process(upload)
    except StageFailure as e:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process document", "stage": e.stage.value, "details": e.detail},
        )


@app.get("/documents/{document_id}", response_model=Document)
async def get_document(document_id: UUID):
    """Get a document with its transactions."""
    document = db.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


@app.delete("/documents/{document_id}")
async def delete_document(document_id: UUID):
    """Delete a document and its transactions."""
    if not db.delete_document(document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"deleted": str(document_id)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "finscan.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.dev_mode,
    )

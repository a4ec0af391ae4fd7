"""
FastAPI entrypoint.

Consolidates all input handling:
- Reads uploads (or downloads a dataset URL) fully before ingestion starts
- Maps ingestion failures to a single actionable 400 message
- Runs the synchronous pipeline in a worker thread
- Keeps sessions so a new upload supersedes the previous Dataset and its results
"""

import logging
from typing import Optional
from urllib.parse import quote

from .config import LOG_LEVEL, MAX_UPLOAD_BYTES, MAX_UPLOAD_MB, PREVIEW_ROWS

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

import httpx
from fastapi import FastAPI, File, Form, HTTPException, Response, UploadFile
from fastapi.concurrency import run_in_threadpool

from .analyzer import analyze, response_from_run
from .export import generate_script, results_filename, results_to_csv, script_filename
from .ingestion import UnreadableFileError, column_type, load_dataset
from .schemas import AnalysisResponse, Dataset, PreviewResponse, SessionResponse
from .session import AnalysisSession, SessionStore, SupersededAnalysisError
from .utils import cap_rows, download_bytes, filename_from_url, is_missing, safe_serialize

app = FastAPI(title="Statistical Analysis Pipeline")
sessions = SessionStore()


async def _read_upload(file: UploadFile) -> bytes:
    # size is known from the multipart parser when available
    size = getattr(file, "size", None)
    if size is not None and size > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File is larger than {MAX_UPLOAD_MB}MB.")
    raw = await file.read()
    if len(raw) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File is larger than {MAX_UPLOAD_MB}MB.")
    return raw


def _load(raw: bytes, file_name: str) -> Dataset:
    """Parse bytes into a Dataset with the row cap applied."""
    try:
        dataset = load_dataset(raw, file_name)
    except UnreadableFileError as e:
        raise HTTPException(status_code=400, detail=f"Could not read '{file_name}': {e}")
    rows = cap_rows(dataset.rows)
    if len(rows) != len(dataset.rows):
        dataset = dataset.model_copy(update={"rows": rows})
    logger.info(f"Loaded '{file_name}' with {len(dataset.rows)} rows and {len(dataset.columns)} columns")
    return dataset


async def _load_upload(file: UploadFile) -> Dataset:
    name = getattr(file, "filename", None) or "uploaded.csv"
    return _load(await _read_upload(file), name)


def _preview(dataset: Dataset) -> PreviewResponse:
    return PreviewResponse(
        file_name=dataset.file_name,
        row_count=len(dataset.rows),
        columns=dataset.columns,
        column_types={c: column_type(dataset.column_values(c)) for c in dataset.columns},
        missing={
            c: sum(1 for v in dataset.column_values(c) if is_missing(v))
            for c in dataset.columns
        },
        rows=safe_serialize(dataset.rows[:PREVIEW_ROWS]),
    )


def _get_session(session_id: str) -> AnalysisSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session


def _attachment(content: str, filename: str, media_type: str) -> Response:
    return Response(
        content=content.encode("utf-8"),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.post("/preview", response_model=PreviewResponse)
async def preview_endpoint(file: UploadFile = File(...)):
    return _preview(await _load_upload(file))


@app.post("/analyze", response_model=AnalysisResponse)
async def analyze_endpoint(
    user_text: str = Form(""),
    file: Optional[UploadFile] = File(None),
    dataset_url: Optional[str] = Form(None),
):
    # 1) Require exactly one data source
    if file is None and not dataset_url:
        raise HTTPException(
            status_code=400,
            detail="Upload a CSV/Excel file or provide a dataset URL."
        )

    # 2) Buffer the whole file before ingestion
    if file is not None:
        dataset = await _load_upload(file)
    else:
        try:
            raw = await download_bytes(dataset_url)
        except httpx.HTTPError as e:
            raise HTTPException(status_code=400, detail=f"Error loading dataset from URL: {e}")
        if len(raw) > MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=413, detail=f"File is larger than {MAX_UPLOAD_MB}MB.")
        dataset = _load(raw, filename_from_url(dataset_url))

    # 3) Run the pipeline
    try:
        return await run_in_threadpool(analyze, dataset, user_text)
    except Exception as e:
        logger.exception("Analysis failed")
        raise HTTPException(status_code=500, detail=f"Analysis failed: {e}")


@app.post("/sessions", response_model=SessionResponse)
async def create_session(file: UploadFile = File(...)):
    dataset = await _load_upload(file)
    session = sessions.create(dataset)
    return SessionResponse(session_id=session.id, generation=session.generation, preview=_preview(dataset))


@app.put("/sessions/{session_id}/file", response_model=SessionResponse)
async def replace_session_file(session_id: str, file: UploadFile = File(...)):
    session = _get_session(session_id)
    dataset = await _load_upload(file)
    generation = session.replace_dataset(dataset)
    return SessionResponse(session_id=session.id, generation=generation, preview=_preview(dataset))


@app.post("/sessions/{session_id}/analyze", response_model=AnalysisResponse)
async def analyze_session(session_id: str, user_text: str = Form("")):
    session = _get_session(session_id)
    try:
        run = await run_in_threadpool(session.analyze, user_text)
    except SupersededAnalysisError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        # the loaded dataset and preview stay valid
        logger.exception(f"Analysis failed for session {session_id}")
        raise HTTPException(status_code=500, detail=f"Analysis failed: {e}")
    return response_from_run(run)


@app.get("/sessions/{session_id}/export/results")
def export_results(session_id: str):
    session = _get_session(session_id)
    run = session.last_run
    if run is None:
        raise HTTPException(status_code=409, detail="Run an analysis before exporting results.")
    file_name = run.dataset.file_name
    return _attachment(
        results_to_csv(run.results, file_name),
        results_filename(file_name),
        "text/csv; charset=utf-8",
    )


@app.get("/sessions/{session_id}/export/script")
def export_script(session_id: str):
    session = _get_session(session_id)
    run = session.last_run
    if run is None:
        raise HTTPException(status_code=409, detail="Run an analysis before exporting code.")
    file_name = run.dataset.file_name
    language = run.parsed.language
    return _attachment(
        generate_script(run.results, file_name, session.last_instructions, language),
        script_filename(file_name, language),
        "text/plain; charset=utf-8",
    )


@app.delete("/sessions/{session_id}")
def delete_session(session_id: str):
    if not sessions.delete(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return {"deleted": session_id}

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from . import __version__
from .configuration import get_settings
from .dispatcher import CombineOptions, InvoiceService
from .errors import InvalidArgumentError, ToolkitError, UnprocessableDocumentError
from .models import HealthStatus
from .resolver import Attachment
from .responses import attachment_response, error_response, validation_response
from .toolkit import MustangToolkit
from .utils import default_if_blank, parse_boolean, parse_int, safe_filename
from .workspace import UploadedPart

logger = logging.getLogger(__name__)

settings = get_settings()

invoice_service = InvoiceService(
    toolkit=MustangToolkit.from_settings(settings),
    workspace_root=Path(settings.workspace.root) if settings.workspace.root else None,
    max_workers=int(settings.workers.max_concurrent_operations),
    workspace_prefix=str(settings.workspace.prefix),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        yield
    finally:
        invoice_service.shutdown()


app = FastAPI(
    title="E-Invoice API",
    version=__version__,
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_invoice_service() -> InvoiceService:
    return invoice_service


@app.exception_handler(InvalidArgumentError)
async def _invalid_argument(request: Request, exc: InvalidArgumentError) -> JSONResponse:
    return error_response(400, exc)


FILE_PARTS = ("source", "pdf", "xml")


def _request_error_message(errors: Sequence[Dict[str, Any]]) -> str:
    names = [part for error in errors for part in error.get("loc", ()) if isinstance(part, str) and part != "body"]
    for name in names:
        if name in FILE_PARTS:
            return f"Missing file part: {name}"
    if names:
        return f"Invalid value for {names[0]}"
    return "Invalid request"


@app.exception_handler(RequestValidationError)
async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    # A file part sent as a plain form field is treated as missing
    return error_response(400, InvalidArgumentError(_request_error_message(exc.errors())))


@app.exception_handler(UnprocessableDocumentError)
async def _unprocessable_document(request: Request, exc: UnprocessableDocumentError) -> JSONResponse:
    return error_response(422, exc)


@app.exception_handler(ToolkitError)
async def _toolkit_failure(request: Request, exc: ToolkitError) -> JSONResponse:
    logger.error(f"Toolkit failure on {request.url.path}: {exc}")
    return error_response(500, exc)


@app.exception_handler(Exception)
async def _unexpected_failure(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unexpected failure on {request.url.path}")
    return error_response(500, exc)


def _require_upload(upload: Optional[UploadFile], name: str) -> UploadedPart:
    if upload is None:
        raise InvalidArgumentError(f"Missing file part: {name}")
    return UploadedPart(
        name=name,
        filename=upload.filename or "",
        data=upload.file.read(),
        content_type=upload.content_type,
    )


def _read_attachments(uploads: Optional[List[UploadFile]]) -> List[Attachment]:
    attachments: List[Attachment] = []
    for upload in uploads or []:
        attachments.append(
            Attachment(
                filename=safe_filename(upload.filename) or "attachment",
                data=upload.file.read(),
                mime_type=upload.content_type,
            )
        )
    return attachments


@app.get("/health", response_model=HealthStatus)
def health(service: InvoiceService = Depends(get_invoice_service)) -> HealthStatus:
    return HealthStatus(status="ok", version=__version__, toolkit_version=service.toolkit_version())


@app.post("/api/validate")
def validate(
    source: Optional[UploadFile] = File(None),
    noNotices: Optional[str] = Form(None),
    logAppend: Optional[str] = Form(None),
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    part = _require_upload(source, "source")
    outcome = service.validate(part, no_notices=parse_boolean(noNotices, False), log_append=logAppend)
    return validation_response(outcome)


@app.post("/api/extract")
def extract(
    pdf: Optional[UploadFile] = File(None),
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    return attachment_response(service.extract(_require_upload(pdf, "pdf")))


@app.post("/api/a3only")
def a3only(
    pdf: Optional[UploadFile] = File(None),
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    return attachment_response(service.convert_a3_only(_require_upload(pdf, "pdf")))


@app.post("/api/combine")
def combine(
    pdf: Optional[UploadFile] = File(None),
    xml: Optional[UploadFile] = File(None),
    attachments: Optional[List[UploadFile]] = File(None),
    format: Optional[str] = Form(None),
    version: Optional[str] = Form(None),
    profile: Optional[str] = Form(None),
    ignoreInputErrors: Optional[str] = Form(None),
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    pdf_part = _require_upload(pdf, "pdf")
    xml_part = _require_upload(xml, "xml")
    options = CombineOptions(
        format=default_if_blank(format, "fx"),
        version=parse_int(version, 1),
        profile=profile,
        ignore_input_errors=parse_boolean(ignoreInputErrors, False),
        attachments=tuple(_read_attachments(attachments)),
    )
    return attachment_response(service.combine(pdf_part, xml_part, options))


@app.post("/api/visualize")
def visualize(
    xml: Optional[UploadFile] = File(None),
    format: Optional[str] = Form(None),
    language: Optional[str] = Form(None),
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    xml_part = _require_upload(xml, "xml")
    result = service.visualize(
        xml_part,
        output_format=default_if_blank(format, "html"),
        language=default_if_blank(language, "en"),
    )
    return attachment_response(result)


@app.post("/api/upgrade")
def upgrade(
    xml: Optional[UploadFile] = File(None),
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    return attachment_response(service.upgrade(_require_upload(xml, "xml")))


@app.post("/api/ubl")
def ubl(
    xml: Optional[UploadFile] = File(None),
    service: InvoiceService = Depends(get_invoice_service),
) -> Response:
    return attachment_response(service.convert_to_ubl(_require_upload(xml, "xml")))

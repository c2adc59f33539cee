"""
Response assembly for operation results.

Each file-producing operation has a fixed content type and a fixed download
name; validation maps the document's validity to the status code while the
body is the report either way.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from fastapi.responses import JSONResponse, Response

from .dispatcher import Operation, OperationResult
from .errors import error_message
from .models import ErrorDetail
from .toolkit import ValidationOutcome

XML_MEDIA_TYPE = "application/xml"
PDF_MEDIA_TYPE = "application/pdf"
HTML_MEDIA_TYPE = "text/html"


@dataclass(frozen=True)
class OutputSpec:
    media_type: str
    filename: str


OUTPUT_SPECS: Dict[Operation, OutputSpec] = {
    Operation.EXTRACT: OutputSpec(XML_MEDIA_TYPE, "extracted.xml"),
    Operation.A3_ONLY: OutputSpec(PDF_MEDIA_TYPE, "converted.pdf"),
    Operation.COMBINE: OutputSpec(PDF_MEDIA_TYPE, "combined.pdf"),
    Operation.VISUALIZE_HTML: OutputSpec(HTML_MEDIA_TYPE, "visualization.html"),
    Operation.VISUALIZE_PDF: OutputSpec(PDF_MEDIA_TYPE, "visualization.pdf"),
    Operation.UPGRADE: OutputSpec(XML_MEDIA_TYPE, "upgraded.xml"),
    Operation.UBL: OutputSpec(XML_MEDIA_TYPE, "ubl.xml"),
}


def content_disposition(filename: str) -> str:
    return f'attachment; filename="{filename}"'


def attachment_response(result: OperationResult) -> Response:
    spec = OUTPUT_SPECS[result.operation]
    return Response(
        content=result.content,
        media_type=spec.media_type,
        headers={"Content-Disposition": content_disposition(spec.filename)},
    )


def validation_response(outcome: ValidationOutcome) -> Response:
    return Response(
        content=outcome.report_xml,
        status_code=200 if outcome.is_valid else 422,
        media_type=XML_MEDIA_TYPE,
    )


def error_response(status_code: int, exc: BaseException) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorDetail(error=error_message(exc)).model_dump())

"""
Operation dispatch for the e-invoice API.

InvoiceService binds uploaded parts, a per-request workspace and (for combine)
a resolved ConversionConfig to exactly one toolkit call sequence:

- validate: validation report for any invoice file
- extract: embedded XML out of a hybrid PDF
- a3only: re-package a hybrid as a plain PDF/A-3
- combine: build a hybrid PDF from PDF/A + XML (+ attachments)
- visualize: HTML or PDF rendering of invoice XML
- upgrade: migrate version 1 XML to version 2
- ubl: convert CII XML to UBL

Toolkit calls run on a bounded thread pool so that the number of concurrent
conversions (and therefore temp directories and memory) stays limited no
matter how many requests the server accepts. Calls are never retried: a
repeated export could attach files twice.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, TypeVar

from .errors import InvalidArgumentError, ToolkitError, UnprocessableDocumentError
from .resolver import Attachment, ConversionConfig, resolve_conversion_config
from .toolkit import ExporterKind, ValidationOutcome
from .workspace import DEFAULT_PREFIX, UploadedPart, temp_workspace

logger = logging.getLogger(__name__)

T = TypeVar("T")

PRODUCER = "E-Invoice Backend"
CREATOR = "einvoice-backend"
ATTACHMENT_RELATIONSHIP = "Data"

VISUALIZATION_FORMATS = ("html", "pdf")
LANGUAGES = ("en", "de", "fr")

EXPORTER_KIND_BY_FORMAT: Dict[str, ExporterKind] = {
    "ox": ExporterKind.ORDER_X,
    "da": ExporterKind.DESPATCH_ADVICE,
}


class Operation(str, Enum):
    VALIDATE = "validate"
    EXTRACT = "extract"
    A3_ONLY = "a3only"
    COMBINE = "combine"
    VISUALIZE_HTML = "visualize-html"
    VISUALIZE_PDF = "visualize-pdf"
    UPGRADE = "upgrade"
    UBL = "ubl"


@dataclass(frozen=True)
class OperationResult:
    operation: Operation
    content: bytes


@dataclass(frozen=True)
class CombineOptions:
    """Raw combine selectors as received from the caller."""

    format: Optional[str] = None
    version: int = 1
    profile: Optional[str] = None
    ignore_input_errors: bool = False
    attachments: Sequence[Attachment] = field(default_factory=tuple)


def exporter_kind(format_code: str) -> ExporterKind:
    return EXPORTER_KIND_BY_FORMAT.get(format_code, ExporterKind.ZUGFERD)


def _read_output(out_path: Path) -> bytes:
    if not out_path.exists():
        raise ToolkitError(f"Toolkit did not produce {out_path.name}")
    return out_path.read_bytes()


class InvoiceService:
    """
    Runs one toolkit operation per call inside an isolated workspace.

    Attributes:
        toolkit: Invoice toolkit adapter (see toolkit.MustangToolkit)
        workspace_root: Parent directory for workspaces (None: system temp)
    """

    def __init__(
        self,
        toolkit: Any,
        workspace_root: Optional[Path] = None,
        max_workers: int = 4,
        workspace_prefix: str = DEFAULT_PREFIX,
    ) -> None:
        self.toolkit = toolkit
        self.workspace_root = workspace_root
        self.workspace_prefix = workspace_prefix
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="invoice-op")

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def toolkit_version(self) -> Optional[str]:
        return self.toolkit.version()

    def _run(self, operation: Operation, func: Callable[..., T], *args: Any) -> T:
        started = time.monotonic()
        logger.info(f"Operation {operation.value} started")
        try:
            result = self._executor.submit(func, *args).result()
        except Exception as exc:
            logger.info(f"Operation {operation.value} failed after {time.monotonic() - started:.2f}s: {exc}")
            raise
        logger.info(f"Operation {operation.value} finished in {time.monotonic() - started:.2f}s")
        return result

    def _workspace(self):
        return temp_workspace(parent=self.workspace_root, prefix=self.workspace_prefix)

    # -- validate ---------------------------------------------------------

    def validate(self, source: UploadedPart, no_notices: bool = False, log_append: Optional[str] = None) -> ValidationOutcome:
        """
        Validate an invoice file.

        Raises:
            InvalidArgumentError: If the toolkit did not accept the options
        """
        outcome = self._run(Operation.VALIDATE, self._validate, source, no_notices, log_append or None)
        if not outcome.options_recognized:
            raise InvalidArgumentError("Validation options not recognized")
        return outcome

    def _validate(self, source: UploadedPart, no_notices: bool, log_append: Optional[str]) -> ValidationOutcome:
        with self._workspace() as workspace:
            source_path = workspace.write_input(source, "source")
            return self.toolkit.validate(source_path, no_notices, log_append)

    # -- extract / a3only -------------------------------------------------

    def extract(self, pdf: UploadedPart) -> OperationResult:
        return self._run(Operation.EXTRACT, self._extract, pdf)

    def _extract(self, pdf: UploadedPart) -> OperationResult:
        with self._workspace() as workspace:
            out_path = workspace.resolve("output.xml")
            pdf_path = workspace.write_input(pdf, "input.pdf")
            if not self.toolkit.extract_xml(pdf_path, out_path):
                raise UnprocessableDocumentError("No ZUGFeRD XML found in PDF file")
            return OperationResult(Operation.EXTRACT, _read_output(out_path))

    def convert_a3_only(self, pdf: UploadedPart) -> OperationResult:
        return self._run(Operation.A3_ONLY, self._convert_a3_only, pdf)

    def _convert_a3_only(self, pdf: UploadedPart) -> OperationResult:
        with self._workspace() as workspace:
            out_path = workspace.resolve("output.pdf")
            pdf_path = workspace.write_input(pdf, "input.pdf")
            self.toolkit.convert_a3_only(pdf_path, out_path)
            return OperationResult(Operation.A3_ONLY, _read_output(out_path))

    # -- combine ----------------------------------------------------------

    def combine(self, pdf: UploadedPart, xml: UploadedPart, options: CombineOptions) -> OperationResult:
        """
        Build a hybrid PDF.

        The configuration is resolved before the workspace exists, so an
        invalid combination never touches the filesystem or the toolkit.
        """
        config = resolve_conversion_config(
            options.format,
            options.version,
            options.profile,
            ignore_input_errors=options.ignore_input_errors,
            attachments=options.attachments,
        )
        logger.info(
            f"Resolved combine config: format={config.format_code} version={config.version} "
            f"profile={config.profile.name} exporter_version={config.exporter_version}"
        )
        return self._run(Operation.COMBINE, self._combine, pdf, xml, config)

    def _combine(self, pdf: UploadedPart, xml: UploadedPart, config: ConversionConfig) -> OperationResult:
        with self._workspace() as workspace:
            out_path = workspace.resolve("output.pdf")
            pdf_path = workspace.write_input(pdf, "input.pdf")
            xml_path = workspace.write_input(xml, "input.xml")

            exporter = self.toolkit.create_exporter(exporter_kind(config.format_code), workspace, config.ignore_input_errors)
            exporter.load(pdf_path)
            exporter.set_producer(PRODUCER).set_version(config.exporter_version).set_creator(CREATOR).set_profile(config.profile)
            if config.format_code == "zf":
                exporter.disable_facturx()
            for attachment in config.attachments:
                exporter.attach_file(attachment.filename, attachment.data, attachment.effective_mime_type, ATTACHMENT_RELATIONSHIP)
            exporter.set_xml(xml_path.read_bytes())
            exporter.export(out_path)
            return OperationResult(Operation.COMBINE, _read_output(out_path))

    # -- visualize / upgrade / ubl ----------------------------------------

    def visualize(self, xml: UploadedPart, output_format: str = "html", language: str = "en") -> OperationResult:
        """
        Render invoice XML for humans.

        Args:
            xml: Invoice XML part
            output_format: "html" or "pdf" (any case)
            language: "en", "de" or "fr" (any case); used for HTML output

        Raises:
            InvalidArgumentError: On an unsupported format or language
        """
        output_format = (output_format or "html").strip().lower()
        language = (language or "en").strip().lower()
        if output_format not in VISUALIZATION_FORMATS:
            raise InvalidArgumentError("format must be html or pdf")
        if language not in LANGUAGES:
            raise InvalidArgumentError("language must be en, de, or fr")

        if output_format == "pdf":
            return self._run(Operation.VISUALIZE_PDF, self._visualize_pdf, xml)
        return self._run(Operation.VISUALIZE_HTML, self._visualize_html, xml, language)

    def _visualize_html(self, xml: UploadedPart, language: str) -> OperationResult:
        with self._workspace() as workspace:
            out_path = workspace.resolve("output.html")
            xml_path = workspace.write_input(xml, "input.xml")
            self.toolkit.visualize_html(xml_path, out_path, language)
            return OperationResult(Operation.VISUALIZE_HTML, _read_output(out_path))

    def _visualize_pdf(self, xml: UploadedPart) -> OperationResult:
        with self._workspace() as workspace:
            out_path = workspace.resolve("output.pdf")
            xml_path = workspace.write_input(xml, "input.xml")
            self.toolkit.visualize_pdf(xml_path, out_path)
            return OperationResult(Operation.VISUALIZE_PDF, _read_output(out_path))

    def upgrade(self, xml: UploadedPart) -> OperationResult:
        return self._run(Operation.UPGRADE, self._upgrade, xml)

    def _upgrade(self, xml: UploadedPart) -> OperationResult:
        with self._workspace() as workspace:
            out_path = workspace.resolve("output.xml")
            xml_path = workspace.write_input(xml, "input.xml")
            self.toolkit.upgrade(xml_path, out_path)
            return OperationResult(Operation.UPGRADE, _read_output(out_path))

    def convert_to_ubl(self, xml: UploadedPart) -> OperationResult:
        return self._run(Operation.UBL, self._convert_to_ubl, xml)

    def _convert_to_ubl(self, xml: UploadedPart) -> OperationResult:
        with self._workspace() as workspace:
            out_path = workspace.resolve("output.xml")
            xml_path = workspace.write_input(xml, "input.xml")
            self.toolkit.convert_to_ubl(xml_path, out_path)
            return OperationResult(Operation.UBL, _read_output(out_path))

"""
Adapter for the external invoice toolkit (Mustang command line tool).

The toolkit owns every invoice-specific algorithm: reading embedded XML,
validating against business rules, writing PDF/A-3 hybrids and transforming
XML schemas. This module only turns calls into `java -jar Mustang-CLI.jar
--action ...` invocations and maps their results back to Python values.

Every file the toolkit reads or writes is a path inside the caller's request
workspace; the adapter never creates temporary files of its own.

The exporter follows the builder-style contract of the toolkit:

    exporter = toolkit.create_exporter(ExporterKind.ZUGFERD, workspace)
    exporter.load(pdf_path).set_producer("...").set_version(2).set_profile(profile)
    exporter.attach_file("terms.txt", data, "text/plain")
    exporter.set_xml(xml_bytes)
    exporter.export(out_path)
"""

from __future__ import annotations

import logging
import subprocess
import time
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

from omegaconf import DictConfig

from .errors import ToolkitError
from .profiles import Profile
from .workspace import TempWorkspace

logger = logging.getLogger(__name__)

# Substrings of toolkit output meaning "the PDF carries no invoice XML"
NO_XML_MARKERS = ("no zugferd", "no xml", "no factur-x", "not found")
# Substrings of toolkit output meaning "the validation options were rejected"
OPTION_ERROR_MARKERS = ("usage:", "unrecognized option", "unknown option", "missing argument", "invalid option")
STDERR_TAIL_CHARS = 2000
MANIFEST_PATH = "META-INF/MANIFEST.MF"
MANIFEST_VERSION_KEYS = ("Implementation-Version", "Bundle-Version")


@dataclass(frozen=True)
class ValidationOutcome:
    """
    Result of a validation run.

    Attributes:
        report_xml: Validation report produced by the toolkit
        is_valid: True when the document passed every check
        options_recognized: False when the toolkit rejected the options
    """

    report_xml: str
    is_valid: bool
    options_recognized: bool


class ExporterKind(str, Enum):
    ZUGFERD = "zugferd"
    ORDER_X = "orderx"
    DESPATCH_ADVICE = "despatchadvice"


class MustangCli:
    """Runs the Mustang command line tool in a subprocess."""

    def __init__(self, jar: str, java: str = "java", timeout: Optional[float] = 300) -> None:
        self.jar = jar
        self.java = java
        self.timeout = timeout

    def command(self, action: str, args: Sequence[str]) -> List[str]:
        return [self.java, "-jar", self.jar, "--action", action, *args]

    def run(self, action: str, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """
        Execute one toolkit action.

        Args:
            action: Toolkit action name, e.g. "extract"
            *args: Remaining command line arguments
            check: Raise ToolkitError on a non-zero exit status

        Returns:
            The completed process with text stdout/stderr

        Raises:
            ToolkitError: If java cannot be started, the call times out, or
                (with check) the toolkit exits with an error
        """
        cmd = self.command(action, args)
        logger.debug(f"Running toolkit: {' '.join(cmd)}")
        started = time.monotonic()
        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise ToolkitError(f"Toolkit runtime not found: {self.java}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ToolkitError(f"Toolkit action '{action}' timed out after {self.timeout}s") from exc

        logger.debug(f"Toolkit action '{action}' exited with {completed.returncode} in {time.monotonic() - started:.2f}s")
        if check and completed.returncode != 0:
            raise ToolkitError(_failure_message(action, completed))
        return completed


def _failure_message(action: str, completed: subprocess.CompletedProcess) -> str:
    detail = (completed.stderr or completed.stdout or "").strip()
    if len(detail) > STDERR_TAIL_CHARS:
        detail = detail[-STDERR_TAIL_CHARS:]
    if not detail:
        return f"Toolkit action '{action}' failed with exit status {completed.returncode}"
    return detail


def _combined_output(completed: subprocess.CompletedProcess) -> str:
    return f"{completed.stdout or ''}\n{completed.stderr or ''}".lower()


def read_manifest_version(jar: str) -> Optional[str]:
    """Return the version recorded in a jar's manifest, or None."""
    with zipfile.ZipFile(jar) as archive:
        manifest = archive.read(MANIFEST_PATH).decode("utf-8", errors="replace")
    for line in manifest.splitlines():
        key, _, value = line.partition(":")
        if key.strip() in MANIFEST_VERSION_KEYS and value.strip():
            return value.strip()
    return None


@dataclass
class _PendingAttachment:
    filename: str
    data: bytes
    mime_type: str
    relationship: str


@dataclass
class PdfExporter:
    """
    Builds a hybrid PDF from a PDF/A input and invoice XML.

    One class covers the three exporter variants; `kind` selects which
    standard the toolkit writes. Intermediate files go into `workspace`.
    """

    kind: ExporterKind
    cli: MustangCli
    workspace: TempWorkspace
    pdf_path: Optional[Path] = None
    producer: Optional[str] = None
    creator: Optional[str] = None
    version: Optional[int] = None
    profile: Optional[Profile] = None
    facturx_enabled: bool = True
    pdfa_errors_ignored: bool = False
    xml: Optional[bytes] = None
    attachments: List[_PendingAttachment] = field(default_factory=list)

    def load(self, pdf_path: Path) -> "PdfExporter":
        self.pdf_path = Path(pdf_path)
        return self

    def set_producer(self, producer: str) -> "PdfExporter":
        self.producer = producer
        return self

    def set_creator(self, creator: str) -> "PdfExporter":
        self.creator = creator
        return self

    def set_version(self, version: int) -> "PdfExporter":
        self.version = version
        return self

    def set_profile(self, profile: Profile) -> "PdfExporter":
        self.profile = profile
        return self

    def disable_facturx(self) -> "PdfExporter":
        self.facturx_enabled = False
        return self

    def ignore_pdfa_errors(self) -> "PdfExporter":
        self.pdfa_errors_ignored = True
        return self

    def attach_file(self, filename: str, data: bytes, mime_type: str, relationship: str = "Data") -> "PdfExporter":
        self.attachments.append(_PendingAttachment(filename, data, mime_type, relationship))
        return self

    def set_xml(self, xml: bytes) -> "PdfExporter":
        self.xml = xml
        return self

    @property
    def format_code(self) -> str:
        if self.kind is ExporterKind.ORDER_X:
            return "ox"
        if self.kind is ExporterKind.DESPATCH_ADVICE:
            return "da"
        return "fx" if self.facturx_enabled else "zf"

    def _write_attachments(self) -> List[str]:
        paths = []
        for index, attachment in enumerate(self.attachments):
            # Numbered folders keep duplicate names apart and preserve order
            folder = self.workspace.make_directory(f"attachment-{index:03d}")
            name = attachment.filename
            if "," in name:
                # The toolkit takes a comma separated path list
                name = name.replace(",", "_")
                logger.warning(f"Attachment {attachment.filename!r} is embedded as {name!r}")
            target = folder / name
            target.write_bytes(attachment.data)
            paths.append(str(target))
            logger.debug(f"Attaching {name} ({attachment.mime_type}, {attachment.relationship})")
        return paths

    def export(self, out_path: Path) -> None:
        if self.pdf_path is None:
            raise ToolkitError("No PDF loaded")
        if self.xml is None:
            raise ToolkitError("No XML set")

        xml_path = self.workspace.write_bytes("invoice.xml", self.xml)
        args = [
            "--source", str(self.pdf_path),
            "--source-xml", str(xml_path),
            "--out", str(out_path),
            "--format", self.format_code,
        ]
        if self.version is not None:
            args += ["--version", str(self.version)]
        if self.profile is not None:
            args += ["--profile", self.profile.code]
        if self.pdfa_errors_ignored:
            args.append("--ignore-input-errors")

        attachment_paths = self._write_attachments()
        if attachment_paths:
            args += ["--attachments", ",".join(attachment_paths)]

        logger.debug(f"Exporting {self.kind.value} hybrid (producer={self.producer!r}, creator={self.creator!r})")
        self.cli.run("combine", *args)

        if not Path(out_path).exists():
            raise ToolkitError("Toolkit did not produce a PDF")


class MustangToolkit:
    """Invoice toolkit operations backed by the Mustang command line tool."""

    def __init__(self, cli: MustangCli) -> None:
        self.cli = cli
        self._version: Optional[str] = None
        self._version_read = False

    @classmethod
    def from_settings(cls, settings: DictConfig) -> "MustangToolkit":
        toolkit_settings = settings.toolkit
        return cls(
            MustangCli(
                jar=str(toolkit_settings.jar),
                java=str(toolkit_settings.java),
                timeout=float(toolkit_settings.timeout_seconds),
            )
        )

    def version(self) -> Optional[str]:
        """Toolkit version from the jar manifest; None when it cannot be read."""
        if not self._version_read:
            try:
                self._version = read_manifest_version(self.cli.jar)
            except (OSError, KeyError, zipfile.BadZipFile) as exc:
                logger.warning(f"Could not read toolkit version from {self.cli.jar}: {exc}")
                self._version = None
            self._version_read = True
        return self._version

    def validate(self, source_path: Path, no_notices: bool = False, log_append: Optional[str] = None) -> ValidationOutcome:
        """
        Validate an invoice file.

        Raises:
            ToolkitError: If the toolkit failed without producing a report
        """
        args = ["--source", str(source_path)]
        if no_notices:
            args.append("--no-notices")
        if log_append:
            args += ["--logAppend", log_append]
        completed = self.cli.run("validate", *args, check=False)

        report = (completed.stdout or "").strip()
        if report.startswith("<"):
            # Exit status is non-zero for invalid documents
            return ValidationOutcome(report_xml=report, is_valid=completed.returncode == 0, options_recognized=True)

        output = _combined_output(completed)
        if any(marker in output for marker in OPTION_ERROR_MARKERS):
            return ValidationOutcome(report_xml=report, is_valid=False, options_recognized=False)
        if completed.returncode != 0:
            raise ToolkitError(_failure_message("validate", completed))
        raise ToolkitError("Toolkit produced no validation report")

    def extract_xml(self, pdf_path: Path, out_path: Path) -> bool:
        """
        Write the invoice XML embedded in a PDF to out_path.

        Returns:
            False when the PDF carries no invoice XML
        """
        completed = self.cli.run("extract", "--source", str(pdf_path), "--out", str(out_path), check=False)
        if out_path.exists() and out_path.stat().st_size > 0:
            return True

        if completed.returncode == 0 or any(marker in _combined_output(completed) for marker in NO_XML_MARKERS):
            return False
        raise ToolkitError(_failure_message("extract", completed))

    def convert_a3_only(self, pdf_path: Path, out_path: Path) -> None:
        self.cli.run("a3only", "--source", str(pdf_path), "--out", str(out_path))

    def create_exporter(self, kind: ExporterKind, workspace: TempWorkspace, ignore_input_errors: bool = False) -> PdfExporter:
        exporter = PdfExporter(kind=ExporterKind(kind), cli=self.cli, workspace=workspace)
        if ignore_input_errors:
            exporter.ignore_pdfa_errors()
        return exporter

    def visualize_html(self, xml_path: Path, out_path: Path, language: str) -> None:
        self.cli.run("visualize", "--source", str(xml_path), "--out", str(out_path), "--language", language)

    def visualize_pdf(self, xml_path: Path, out_path: Path) -> None:
        self.cli.run("pdf", "--source", str(xml_path), "--out", str(out_path))

    def upgrade(self, xml_path: Path, out_path: Path) -> None:
        self.cli.run("upgrade", "--source", str(xml_path), "--out", str(out_path))

    def convert_to_ubl(self, xml_path: Path, out_path: Path) -> None:
        self.cli.run("ubl", "--source", str(xml_path), "--out", str(out_path))

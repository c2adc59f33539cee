"""
Pytest configuration and fixtures for E-Invoice Backend tests.
"""

import os
import shutil
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
os.environ["EINVOICE_MUSTANG_JAR"] = "/nonexistent/Mustang-CLI.jar"
os.environ["EINVOICE_WORKSPACE_ROOT"] = tempfile.mkdtemp(prefix="einvoice_test_workspaces_")

from einvoice_backend.dispatcher import InvoiceService
from einvoice_backend.main import app, get_invoice_service
from einvoice_backend.toolkit import ValidationOutcome


class FakeExporter:
    """Records the builder calls the dispatcher makes."""

    def __init__(self, kind, ignore_input_errors):
        self.kind = kind
        self.ignore_input_errors = ignore_input_errors
        self.calls = []
        self.attachments = []
        self.xml = None
        self.exported_to = None

    def _record(self, name, *args):
        self.calls.append((name, *args))
        return self

    def load(self, pdf_path):
        self.pdf_bytes = Path(pdf_path).read_bytes()
        return self._record("load", Path(pdf_path).name)

    def set_producer(self, producer):
        return self._record("set_producer", producer)

    def set_creator(self, creator):
        return self._record("set_creator", creator)

    def set_version(self, version):
        return self._record("set_version", version)

    def set_profile(self, profile):
        return self._record("set_profile", profile)

    def disable_facturx(self):
        return self._record("disable_facturx")

    def attach_file(self, filename, data, mime_type, relationship="Data"):
        self.attachments.append((filename, data, mime_type, relationship))
        return self._record("attach_file", filename)

    def set_xml(self, xml):
        self.xml = xml
        return self._record("set_xml")

    def export(self, out_path):
        self._record("export")
        self.exported_to = Path(out_path)
        Path(out_path).write_bytes(b"%PDF-1.7 combined")

    def value_of(self, name):
        for call in self.calls:
            if call[0] == name:
                return call[1] if len(call) > 1 else True
        return None


class FakeToolkit:
    """In-memory stand-in for the Mustang toolkit adapter."""

    def __init__(self):
        self.calls = []
        self.exporters = []
        self.seen_paths = []
        self.validation = ValidationOutcome("<validation><summary status='valid'/></validation>", True, True)
        self.extracted_xml = b"<rsm:CrossIndustryInvoice/>"
        self.toolkit_version = "2.16.0"
        self.failure = None

    def _enter(self, name, *args):
        self.calls.append((name, *args))
        if self.failure is not None:
            raise self.failure

    def _see(self, path):
        path = Path(path)
        self.seen_paths.append(path)
        return path

    def version(self):
        return self.toolkit_version

    def validate(self, source_path, no_notices=False, log_append=None):
        source_path = self._see(source_path)
        self._enter("validate", source_path.read_bytes(), source_path.name, no_notices, log_append)
        return self.validation

    def extract_xml(self, pdf_path, out_path):
        self._enter("extract_xml", self._see(pdf_path).name)
        if self.extracted_xml is None:
            return False
        self._see(out_path).write_bytes(self.extracted_xml)
        return True

    def convert_a3_only(self, pdf_path, out_path):
        self._enter("convert_a3_only", self._see(pdf_path).name)
        Path(out_path).write_bytes(b"%PDF-1.7 a3")

    def create_exporter(self, kind, workspace, ignore_input_errors=False):
        self._enter("create_exporter", kind, ignore_input_errors)
        self._see(workspace.root)
        exporter = FakeExporter(kind, ignore_input_errors)
        self.exporters.append(exporter)
        return exporter

    def visualize_html(self, xml_path, out_path, language):
        self._enter("visualize_html", self._see(xml_path).name, language)
        Path(out_path).write_text(f"<html lang=\"{language}\"><body>invoice</body></html>", encoding="utf-8")

    def visualize_pdf(self, xml_path, out_path):
        self._enter("visualize_pdf", self._see(xml_path).name)
        Path(out_path).write_bytes(b"%PDF-1.7 visualization")

    def upgrade(self, xml_path, out_path):
        self._enter("upgrade", self._see(xml_path).read_bytes())
        Path(out_path).write_text("<rsm:CrossIndustryInvoice version=\"2\"/>", encoding="utf-8")

    def convert_to_ubl(self, xml_path, out_path):
        self._enter("convert_to_ubl", self._see(xml_path).name)
        Path(out_path).write_bytes(b"<Invoice xmlns=\"urn:oasis:names:specification:ubl\"/>")


@pytest.fixture(scope="session", autouse=True)
def test_dirs():
    """Cleanup the workspace root configured for the app."""
    workspace_root = os.environ["EINVOICE_WORKSPACE_ROOT"]
    yield {"workspaces": workspace_root}
    shutil.rmtree(workspace_root, ignore_errors=True)


@pytest.fixture
def toolkit():
    return FakeToolkit()


@pytest.fixture
def workspace_root(tmp_path):
    return tmp_path / "workspaces"


@pytest.fixture
def service(toolkit, workspace_root):
    invoice_service = InvoiceService(toolkit, workspace_root=workspace_root, max_workers=2)
    yield invoice_service
    invoice_service.shutdown()


@pytest.fixture
def client(service):
    """Create a test client whose service uses the fake toolkit."""
    app.dependency_overrides[get_invoice_service] = lambda: service
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def sample_pdf():
    """Minimal PDF content for upload tests."""
    return b"""%PDF-1.4
1 0 obj
<< /Type /Catalog /Pages 2 0 R >>
endobj
2 0 obj
<< /Type /Pages /Kids [3 0 R] /Count 1 >>
endobj
3 0 obj
<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >>
endobj
trailer
<< /Size 4 /Root 1 0 R >>
%%EOF"""


@pytest.fixture
def sample_xml():
    return b"""<?xml version="1.0" encoding="UTF-8"?>
<rsm:CrossIndustryInvoice xmlns:rsm="urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100">
  <rsm:ExchangedDocument><ram:ID xmlns:ram="urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100">471102</ram:ID></rsm:ExchangedDocument>
</rsm:CrossIndustryInvoice>"""

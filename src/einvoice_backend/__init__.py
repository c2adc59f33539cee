"""
E-Invoice Backend - REST API for hybrid PDF/XML invoice documents

This package provides a FastAPI-based web service in front of an external
invoice toolkit (the Mustang command line tool). It enables:

- Validation of Factur-X / ZUGFeRD / XRechnung documents
- Extraction of embedded invoice XML from hybrid PDFs
- Creation of hybrid PDF/A-3 files (Factur-X, ZUGFeRD, Order-X, despatch advice)
- Human-readable HTML/PDF renderings of invoice XML
- Schema upgrades (version 1 to 2) and CII to UBL conversion

The backend is a thin request pipeline: it resolves and checks the caller's
parameters, materializes uploads in a per-request temporary workspace, runs
exactly one toolkit operation, and removes the workspace again.

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - resolver: format/version/profile resolution into a ConversionConfig
    - profiles: catalog of standards and conformance profiles
    - workspace: per-request temporary directories with guaranteed cleanup
    - dispatcher: InvoiceService, one toolkit operation per call
    - toolkit: subprocess adapter for the Mustang command line tool
    - responses: content types and download names per operation
    - configuration: settings loading (defaults, YAML file, environment)

Usage:
    Run the API server with:
        python -m einvoice_backend

    Or with uvicorn directly:
        uvicorn einvoice_backend.main:app --host 0.0.0.0 --port 8080
"""

__version__ = "0.1.0"

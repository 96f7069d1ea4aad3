"""
Exception taxonomy for document generation.

Fatal errors derive from DocumentGenerationError and abort the whole
request.  Chart and branding errors are recoverable: the component that
raises them is also the one that catches them and substitutes a fallback.
"""


class DocumentGenerationError(Exception):
    """Base class for errors that abort a generation request."""


class UnsupportedDocumentTypeError(DocumentGenerationError):
    def __init__(self, doc_type: str):
        super().__init__(f"Unsupported document type: {doc_type!r}")
        self.doc_type = doc_type


class ReportConfigError(DocumentGenerationError):
    def __init__(self, report_id: str):
        super().__init__(f"No report configuration registered for {report_id!r}")
        self.report_id = report_id


class LayoutError(DocumentGenerationError):
    """Content that cannot fit even on an empty page."""


class ChartRenderError(Exception):
    """A single chart failed to rasterize."""


class ChartRenderTimeout(ChartRenderError):
    """The rasterizer did not settle within the allowed wait."""


class BrandingLookupError(Exception):
    """A branding source could not be reached or returned garbage."""

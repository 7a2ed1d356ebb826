"""
Clients for the external services used by the generation pipeline.
"""

from .delegate_client import DelegateResult, PdfDelegateClient, derive_pdf_filename
from .openai_client import ContentGenerator, placeholder_content

__all__ = [
    "ContentGenerator",
    "DelegateResult",
    "PdfDelegateClient",
    "derive_pdf_filename",
    "placeholder_content",
]

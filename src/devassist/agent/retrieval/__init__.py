"""Documentation retrieval adapters."""

from .document_index import PgVectorDocumentIndex

__all__ = ["PgVectorDocumentIndex"]

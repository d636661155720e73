"""SMS export ingestion."""

from .sources import ExportFileSource, MessageSource, load_messages

__all__ = ["ExportFileSource", "MessageSource", "load_messages"]

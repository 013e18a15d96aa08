"""Plain-text extraction for uploaded documents (PDF, DOCX, TXT)."""

import asyncio
import os

import docx
import fitz

from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ProcessedDocument
from shared.models.errors import CollaboratorError, InvalidRequestError

ALLOWED_MIME_TYPES: dict[str, str] = {
    "application/pdf": "pdf",
    "text/plain": "txt",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
}

ALLOWED_EXTENSIONS = set(ALLOWED_MIME_TYPES.values())


def get_file_type(file_name: str) -> str:
    """Return the lowercased extension of a file name without the dot ("" if none)."""
    return os.path.splitext(file_name)[1].lstrip(".").lower()


def is_allowed_upload(file_name: str, content_type: str | None) -> bool:
    """Check whether an upload may be processed.

    The declared content type decides when it is one of the allowed types.
    Clients that send a generic type (or none) are judged by the file extension.
    """
    if content_type in ALLOWED_MIME_TYPES:
        return True
    if content_type and content_type not in ("application/octet-stream", ""):
        return False
    return get_file_type(file_name) in ALLOWED_EXTENSIONS


class TextExtractor:
    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()

    async def extract(self, file_path: str, file_name: str) -> ProcessedDocument:
        """Extract the plain text of a stored upload.

        Parsing runs in a worker thread so the event loop is never blocked.

        Args:
            file_path (str): Path of the stored upload.
            file_name (str): Original file name; its extension selects the parser.

        Returns:
            ProcessedDocument: Title (the file name), text and file type.

        Raises:
            InvalidRequestError: If the file type is not supported.
            CollaboratorError: If the file cannot be parsed.
        """
        file_type = get_file_type(file_name)
        if file_type not in ALLOWED_EXTENSIONS:
            raise InvalidRequestError(f"Unsupported file type: {file_type or 'unknown'}")

        parser = {
            "pdf": self._extract_pdf,
            "docx": self._extract_docx,
            "txt": self._extract_txt,
        }[file_type]
        try:
            content = await asyncio.to_thread(parser, file_path)
        except Exception as exc:
            self.logging.error("Text extraction failed for '%s': %s", file_name, exc)
            raise CollaboratorError(f"Failed to extract text from {file_name}", backend="extractor") from exc

        self.logging.debug("Extracted %d characters from '%s' (%s).", len(content), file_name, file_type)
        return ProcessedDocument(title=file_name, content=content, file_type=file_type)

    ##########################################
    ################ PARSERS #################
    ##########################################

    def _extract_pdf(self, file_path: str) -> str:
        with fitz.open(file_path) as pdf:
            return "".join(page.get_text() for page in pdf)

    def _extract_docx(self, file_path: str) -> str:
        document = docx.Document(file_path)
        return "\n".join(paragraph.text for paragraph in document.paragraphs)

    def _extract_txt(self, file_path: str) -> str:
        with open(file_path, "r", encoding="utf-8", errors="replace") as f:
            return f.read()

"""
Tests for shared/extract/TextExtractor.py.
PDF and DOCX fixtures are generated on the fly with the same libraries that parse them.
"""

import docx
import fitz
import pytest

from shared.extract.TextExtractor import TextExtractor, get_file_type, is_allowed_upload
from shared.models.errors import CollaboratorError, InvalidRequestError


@pytest.fixture
def extractor(helper_config):
    return TextExtractor(helper_config)


class TestUploadTypes:
    @pytest.mark.parametrize("file_name, content_type, allowed", [
        ("notes.txt", "text/plain", True),
        ("report.pdf", "application/pdf", True),
        ("letter.docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document", True),
        ("report.pdf", "application/octet-stream", True),
        ("report.pdf", None, True),
        ("image.png", "application/octet-stream", False),
        ("notes.txt", "image/png", False),
        ("archive.zip", "application/zip", False),
    ])
    def test_is_allowed_upload(self, file_name, content_type, allowed):
        assert is_allowed_upload(file_name, content_type) is allowed

    def test_file_type_is_lowercase_extension(self):
        assert get_file_type("Report.PDF") == "pdf"
        assert get_file_type("README") == ""


class TestExtract:
    async def test_txt(self, extractor, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("First line. Second line.", encoding="utf-8")

        document = await extractor.extract(str(path), "notes.txt")

        assert document.content == "First line. Second line."
        assert document.title == "notes.txt"
        assert document.file_type == "txt"

    async def test_docx_joins_paragraphs(self, extractor, tmp_path):
        path = tmp_path / "letter.docx"
        source = docx.Document()
        source.add_paragraph("Dear reader.")
        source.add_paragraph("Kind regards.")
        source.save(str(path))

        document = await extractor.extract(str(path), "letter.docx")

        assert document.content == "Dear reader.\nKind regards."
        assert document.file_type == "docx"

    async def test_pdf(self, extractor, tmp_path):
        path = tmp_path / "report.pdf"
        pdf = fitz.open()
        pdf.new_page().insert_text((72, 72), "Quarterly numbers are up.")
        pdf.save(str(path))
        pdf.close()

        document = await extractor.extract(str(path), "report.pdf")

        assert "Quarterly numbers are up." in document.content
        assert document.file_type == "pdf"

    async def test_corrupt_file_is_collaborator_error(self, extractor, tmp_path):
        path = tmp_path / "broken.docx"
        path.write_bytes(b"this is not a zip archive")

        with pytest.raises(CollaboratorError):
            await extractor.extract(str(path), "broken.docx")

    async def test_unsupported_extension(self, extractor, tmp_path):
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG")

        with pytest.raises(InvalidRequestError):
            await extractor.extract(str(path), "image.png")

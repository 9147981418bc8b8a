"""
Tests for upload file type detection.
"""
import pytest

from rxparse.parsers import UnsupportedFileTypeError, detect_content_type, file_extension


class TestDetectContentType:

    @pytest.mark.parametrize("name", ["rx.pdf", "RX.PDF", "scans/2024/rx.Pdf"])
    def test_pdf(self, name):
        assert detect_content_type(name) == "application/pdf"

    @pytest.mark.parametrize(
        "name, ext",
        [("rx.png", ".png"), ("rx.jpeg", ".jpeg"), ("rx.pdf.txt", ".txt")],
    )
    def test_rejected(self, name, ext):
        with pytest.raises(UnsupportedFileTypeError) as exc_info:
            detect_content_type(name)

        assert exc_info.value.extension == ext
        assert str(exc_info.value) == f"unsupported file type. file must be PDF not {ext}"

    def test_no_extension(self):
        with pytest.raises(UnsupportedFileTypeError, match="no extension"):
            detect_content_type("prescription")

    def test_file_extension(self):
        assert file_extension("a/b/c.PDF") == ".pdf"
        assert file_extension("noext") == ""

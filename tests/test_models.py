"""Tests for asset and document models

Run with pytest from project root:
    pytest tests/test_models.py -v
"""

from datetime import datetime, timezone

from models.asset import LocalFile
from models.document import DocumentRecord, is_required_type, required_document_slots


class TestLocalFile:
    """Tests for LocalFile"""

    def test_mime_type_guessed(self):
        """Test mime type comes from the file name when not given"""
        assert LocalFile("a.JPG", b"").mime_type == "image/jpeg"
        assert LocalFile("blob", b"").mime_type == "application/octet-stream"
        assert LocalFile("a.jpg", b"", content_type="image/webp").mime_type == "image/webp"

    def test_from_path(self, tmp_path):
        """Test from_path reads name and bytes"""
        path = tmp_path / "plano.pdf"
        path.write_bytes(b"%PDF")
        local_file = LocalFile.from_path(path)
        assert (local_file.name, local_file.size, local_file.extension) == ("plano.pdf", 4, "pdf")


class TestDocumentRecord:
    """Tests for DocumentRecord payload conversion"""

    def test_to_payload(self):
        """Test payload keys are camelCase with an ISO timestamp"""
        record = DocumentRecord(
            id="doc-1",
            type_code="copia_titulo",
            display_name="Copia de Título",
            url="https://cdn.test/t.pdf",
            committed_at=datetime(2024, 5, 2, 8, 30, tzinfo=timezone.utc),
        )
        assert record.to_payload() == {
            "id": "doc-1",
            "typeCode": "copia_titulo",
            "displayName": "Copia de Título",
            "url": "https://cdn.test/t.pdf",
            "committedAt": "2024-05-02T08:30:00+00:00",
        }
        assert DocumentRecord.from_payload(record.to_payload()) == record

    def test_from_payload_defaults(self):
        """Test missing type code and timestamp fall back to defaults"""
        record = DocumentRecord.from_payload({"id": 7, "url": "https://cdn.test/x.pdf"})
        assert record.id == "7"
        assert record.type_code == "adicional"
        assert record.committed_at.tzinfo is not None

    def test_required_slots(self):
        """Test required slots differ between projects and ready properties"""
        assert [code for code, _ in required_document_slots(True)] == ["hoja_captacion"]
        assert is_required_type("copia_titulo", False)
        assert not is_required_type("copia_titulo", True)
        assert not is_required_type("adicional", False)

"""Tests for the CRM HTTP client

Run with pytest from project root:
    pytest tests/test_crm_client.py -v
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from crm_client import CrmClient
from errors import PersistenceError, ReconciliationError, UploadError
from models.asset import LocalFile


def fake_response(status=200, body=None, reason="OK"):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.reason = reason
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


class TestUploads:
    """Tests for batched multipart uploads"""

    def test_upload_images_single_request(self):
        """Test every image goes in one POST under the images field, in order"""
        client = CrmClient("https://crm.test/api/", token="secret", timeout=12)
        files = [LocalFile("a.jpg", b"1"), LocalFile("b.png", b"22")]

        with patch("crm_client.requests.post") as mock_post:
            mock_post.return_value = fake_response(body={"images": [{"url": "u1"}, {"url": "u2"}]})
            result = client.upload_images("t1", files)

        assert result == {"images": [{"url": "u1"}, {"url": "u2"}]}
        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        assert args[0] == "https://crm.test/api/upload/propiedades/t1"
        assert kwargs["files"] == [
            ("images", ("a.jpg", b"1", "image/jpeg")),
            ("images", ("b.png", b"22", "image/png")),
        ]
        assert kwargs["data"] == {"folder": "propiedades"}
        assert kwargs["headers"] == {"Authorization": "Bearer secret"}
        assert kwargs["timeout"] == 12

    def test_upload_documents_endpoint(self):
        """Test documents go to the documentos endpoint under the files field"""
        client = CrmClient("https://crm.test/api")
        with patch("crm_client.requests.post") as mock_post:
            mock_post.return_value = fake_response(body={"images": [{"url": "u1"}]})
            client.upload_documents("t1", [LocalFile("deed.pdf", b"%PDF")])

        args, kwargs = mock_post.call_args
        assert args[0] == "https://crm.test/api/upload/propiedades/t1/documentos"
        assert kwargs["files"][0][0] == "files"
        assert kwargs["headers"] == {}

    def test_network_error(self):
        """Test transport failures become UploadError"""
        client = CrmClient()
        with patch("crm_client.requests.post", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(UploadError, match="Failed to upload images"):
                client.upload_images("t1", [LocalFile("a.jpg", b"1")])

    def test_http_error_uses_server_message(self):
        """Test a non-2xx status carries the server's message and status code"""
        client = CrmClient()
        with patch("crm_client.requests.post") as mock_post:
            mock_post.return_value = fake_response(413, {"message": "Archivo demasiado grande"}, "Payload Too Large")
            with pytest.raises(UploadError) as exc_info:
                client.upload_images("t1", [LocalFile("a.jpg", b"1")])

        assert exc_info.value.status_code == 413
        assert "Archivo demasiado grande" in str(exc_info.value)

    def test_http_error_without_body(self):
        """Test the fallback message when the error body is not JSON"""
        client = CrmClient()
        with patch("crm_client.requests.post") as mock_post:
            mock_post.return_value = fake_response(502, ValueError("no json"), "Bad Gateway")
            with pytest.raises(UploadError, match="Error 502: Bad Gateway"):
                client.upload_images("t1", [LocalFile("a.jpg", b"1")])

    def test_non_json_success(self):
        """Test a 200 without JSON is a reconciliation failure"""
        client = CrmClient()
        with patch("crm_client.requests.post") as mock_post:
            mock_post.return_value = fake_response(200, ValueError("no json"))
            with pytest.raises(ReconciliationError):
                client.upload_documents("t1", [LocalFile("a.pdf", b"1")])


class TestPropertySave:
    """Tests for create/update property calls"""

    def test_create_uses_post(self):
        """Test a property without id is created with POST"""
        client = CrmClient("https://crm.test/api")
        with patch("crm_client.requests.post") as mock_post:
            mock_post.return_value = fake_response(201, {"id": "p-1"})
            result = client.save_property("t1", None, {"titulo": "Casa"})

        assert result == {"id": "p-1"}
        args, kwargs = mock_post.call_args
        assert args[0] == "https://crm.test/api/tenants/t1/propiedades"
        assert kwargs["json"] == {"titulo": "Casa"}

    def test_update_uses_put(self):
        """Test an existing property is updated with PUT"""
        client = CrmClient("https://crm.test/api")
        with patch("crm_client.requests.put") as mock_put:
            mock_put.return_value = fake_response(200, {"id": "p-1"})
            client.save_property("t1", "p-1", {})

        assert mock_put.call_args[0][0] == "https://crm.test/api/tenants/t1/propiedades/p-1"

    def test_persistence_error(self):
        """Test a rejected save raises PersistenceError with the status"""
        client = CrmClient()
        with patch("crm_client.requests.put") as mock_put:
            mock_put.return_value = fake_response(400, {"error": "titulo requerido"}, "Bad Request")
            with pytest.raises(PersistenceError) as exc_info:
                client.save_property("t1", "p-1", {})

        assert exc_info.value.status_code == 400
        assert str(exc_info.value) == "Failed to save property: titulo requerido"

    def test_persistence_network_error(self):
        """Test transport failures during save raise PersistenceError"""
        client = CrmClient()
        with patch("crm_client.requests.post", side_effect=requests.Timeout("slow")):
            with pytest.raises(PersistenceError):
                client.save_property("t1", None, {})

    def test_empty_success_body(self):
        """Test a 204-style success without JSON returns an empty dict"""
        client = CrmClient()
        with patch("crm_client.requests.post") as mock_post:
            mock_post.return_value = fake_response(204, ValueError("empty"))
            assert client.save_property("t1", None, {}) == {}

import logging
from typing import Any, Dict, Optional, Sequence

import requests

from errors import PersistenceError, ReconciliationError, UploadError
from models.asset import LocalFile

logger = logging.getLogger("CrmClient")

DEFAULT_BASE_URL = "http://localhost:3001/api"
DEFAULT_IMAGE_FOLDER = "propiedades"


class CrmClient:
    """Blocking HTTP client for the CRM upload and property endpoints.

    Callers on the event loop wrap these methods in asyncio.to_thread.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, token: Optional[str] = None, timeout: float = 60):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def upload_images(self, tenant_id: str, files: Sequence[LocalFile], folder: str = DEFAULT_IMAGE_FOLDER) -> Dict[str, Any]:
        return self._upload_batch(
            f"/upload/propiedades/{tenant_id}",
            field_name="images",
            files=files,
            population="images",
            data={"folder": folder},
        )

    def upload_documents(self, tenant_id: str, files: Sequence[LocalFile]) -> Dict[str, Any]:
        return self._upload_batch(
            f"/upload/propiedades/{tenant_id}/documentos",
            field_name="files",
            files=files,
            population="documents",
        )

    def _upload_batch(
        self,
        path: str,
        field_name: str,
        files: Sequence[LocalFile],
        population: str,
        data: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST every file in one multipart request, preserving order"""
        multipart = [
            (field_name, (local_file.name, local_file.data, local_file.mime_type))
            for local_file in files
        ]
        url = self._url(path)
        logger.info(f"Uploading {len(multipart)} {population} to {url}")
        try:
            response = requests.post(
                url,
                files=multipart,
                data=data or {},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Upload of {population} to {url} failed: {e}")
            raise UploadError(population, str(e)) from e

        if not response.ok:
            message = self._error_message(response)
            logger.error(f"Upload of {population} rejected: {response.status_code} - {message}")
            raise UploadError(population, message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise ReconciliationError(population, f"upload response is not JSON: {e}") from e

    def create_property(self, tenant_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._send_property("post", f"/tenants/{tenant_id}/propiedades", payload)

    def update_property(self, tenant_id: str, property_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._send_property("put", f"/tenants/{tenant_id}/propiedades/{property_id}", payload)

    def save_property(self, tenant_id: str, property_id: Optional[str], payload: Dict[str, Any]) -> Dict[str, Any]:
        if property_id:
            return self.update_property(tenant_id, property_id, payload)
        return self.create_property(tenant_id, payload)

    def _send_property(self, method: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = self._url(path)
        sender = requests.put if method == "put" else requests.post
        try:
            response = sender(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Property {method.upper()} {url} failed: {e}")
            raise PersistenceError(str(e)) from e

        if not response.ok:
            message = self._error_message(response)
            logger.error(f"Property {method.upper()} rejected: {response.status_code} - {message}")
            raise PersistenceError(message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError:
            return {}

    def _error_message(self, response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
            if message:
                return str(message)
        return f"Error {response.status_code}: {response.reason}"

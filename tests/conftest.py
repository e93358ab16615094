"""Shared fixtures: generated image bytes and a fake CRM client"""

from io import BytesIO

import pytest
from PIL import Image

from models.asset import LocalFile


def make_image_bytes(size=(400, 300), fmt="JPEG", mode="RGB", color=(200, 40, 40)) -> bytes:
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    img = Image.new(mode, size, color)
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


class FakeCrmClient:
    """Records upload/save calls; answers with one url per submitted file"""

    def __init__(self):
        self.image_batches = []
        self.document_batches = []
        self.saved = []
        self.image_response = None
        self.document_response = None
        self.image_error = None
        self.document_error = None
        self.save_error = None

    def upload_images(self, tenant_id, files, folder="propiedades"):
        self.image_batches.append([f.name for f in files])
        if self.image_error:
            raise self.image_error
        if self.image_response is not None:
            return self.image_response
        return {"images": [{"url": f"https://cdn.test/{tenant_id}/{f.name}"} for f in files]}

    def upload_documents(self, tenant_id, files):
        self.document_batches.append([f.name for f in files])
        if self.document_error:
            raise self.document_error
        if self.document_response is not None:
            return self.document_response
        return {"images": [{"url": f"https://cdn.test/{tenant_id}/docs/{f.name}"} for f in files]}

    def save_property(self, tenant_id, property_id, payload):
        self.saved.append((tenant_id, property_id, payload))
        if self.save_error:
            raise self.save_error
        return {"id": property_id or "prop-new", "titulo": payload.get("titulo")}


@pytest.fixture
def fake_client():
    return FakeCrmClient()


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes()


@pytest.fixture
def image_file():
    """Factory for in-memory image files"""
    def _make(name="photo.jpg", size=(400, 300), fmt="JPEG"):
        return LocalFile(name=name, data=make_image_bytes(size=size, fmt=fmt))
    return _make


@pytest.fixture
def blob_file():
    """Factory for files of an exact byte length (content irrelevant)"""
    def _make(name, length):
        return LocalFile(name=name, data=b"\0" * length)
    return _make

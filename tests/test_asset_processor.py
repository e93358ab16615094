"""Tests for file validation and thumbnail generation

Run with pytest from project root:
    pytest tests/test_asset_processor.py -v
"""

from io import BytesIO

import pytest
from PIL import Image

from asset_processor import (
    DEFAULT_MAX_BYTES,
    DOCUMENT_POLICY,
    IMAGE_POLICY,
    ValidationPolicy,
    create_thumbnail,
    file_extension,
    generate_image_metadata,
    get_image_metadata,
    render_thumbnail,
    thumbnail_size,
    validate_file,
)
from errors import DecodeError, InvalidExtension, TooLarge
from conftest import make_image_bytes

MIB = 1024 * 1024


class TestValidateFile:
    """Tests for validate_file"""

    def test_accepts_whitelisted_extension(self):
        """Test a small jpg passes the image policy"""
        assert validate_file("house.jpg", 500 * 1024, IMAGE_POLICY) is None

    def test_extension_is_case_insensitive(self):
        """Test upper-case extensions are lower-cased before checking"""
        assert validate_file("HOUSE.JPEG", 1024, IMAGE_POLICY) is None

    def test_rejects_exe(self):
        """Test .exe is rejected with InvalidExtension"""
        error = validate_file("setup.exe", 1024, IMAGE_POLICY)
        assert isinstance(error, InvalidExtension)
        assert error.file_name == "setup.exe"
        assert error.extension == "exe"

    def test_rejects_missing_extension(self):
        """Test a file without extension is rejected"""
        assert isinstance(validate_file("README", 10, IMAGE_POLICY), InvalidExtension)

    def test_rejects_too_large(self):
        """Test an 11 MiB file is rejected against the 10 MiB cap"""
        error = validate_file("big.png", 11 * MIB, IMAGE_POLICY)
        assert isinstance(error, TooLarge)
        assert error.max_bytes == 10 * MIB

    def test_exact_cap_is_allowed(self):
        """Test the size cap is inclusive"""
        assert validate_file("edge.png", DEFAULT_MAX_BYTES, IMAGE_POLICY) is None

    def test_extension_checked_before_size(self):
        """Test a huge file with a bad extension reports the extension"""
        assert isinstance(validate_file("big.exe", 50 * MIB, IMAGE_POLICY), InvalidExtension)

    def test_document_policy_differs(self):
        """Test pdf is a document but not an image"""
        assert validate_file("deed.pdf", 1024, DOCUMENT_POLICY) is None
        assert isinstance(validate_file("deed.pdf", 1024, IMAGE_POLICY), InvalidExtension)

    def test_policy_build_normalizes(self):
        """Test ValidationPolicy.build strips dots and lower-cases"""
        policy = ValidationPolicy.build([".PDF", " docx ", ""], max_bytes=100)
        assert policy.allowed_extensions == frozenset({"pdf", "docx"})
        assert isinstance(validate_file("a.pdf", 101, policy), TooLarge)

    def test_file_extension(self):
        """Test file_extension only looks at the last suffix"""
        assert file_extension("archive.tar.GZ") == "gz"
        assert file_extension("noext") == ""


class TestThumbnails:
    """Tests for thumbnail rendering"""

    def test_thumbnail_size_landscape(self):
        """Test the longer side becomes max_dim"""
        assert thumbnail_size(800, 400, 200) == (200, 100)

    def test_thumbnail_size_portrait(self):
        """Test portrait images scale on height"""
        assert thumbnail_size(300, 600, 200) == (100, 200)

    def test_thumbnail_size_never_upscales(self):
        """Test small images keep their size"""
        assert thumbnail_size(120, 80, 200) == (120, 80)

    def test_create_thumbnail_jpeg(self):
        """Test create_thumbnail downsizes and encodes JPEG"""
        thumb = create_thumbnail(make_image_bytes(size=(1000, 500)), max_dim=200)
        assert thumb.size_px == (200, 100)
        assert thumb.mime_type == "image/jpeg"
        with Image.open(BytesIO(thumb.data)) as img:
            assert img.format == "JPEG"
            assert img.size == (200, 100)

    def test_create_thumbnail_flattens_alpha(self):
        """Test transparent PNGs become RGB JPEGs"""
        png = make_image_bytes(size=(300, 300), fmt="PNG", mode="RGBA")
        thumb = create_thumbnail(png, max_dim=100)
        with Image.open(BytesIO(thumb.data)) as img:
            assert img.mode == "RGB"
            assert img.size == (100, 100)

    def test_create_thumbnail_decode_error(self):
        """Test undecodable bytes raise DecodeError"""
        with pytest.raises(DecodeError):
            create_thumbnail(b"definitely not an image")

    @pytest.mark.asyncio
    async def test_render_thumbnail_async(self):
        """Test render_thumbnail runs off-loop and returns the same result"""
        thumb = await render_thumbnail(make_image_bytes(size=(50, 40)), max_dim=200)
        assert thumb.size_px == (50, 40)

    def test_get_image_metadata(self):
        """Test width/height/format extraction and failure fallback"""
        meta = get_image_metadata(make_image_bytes(size=(64, 32), fmt="PNG"))
        assert meta == {"width": 64, "height": 32, "format": "PNG"}
        assert get_image_metadata(b"junk")["width"] is None


class TestGenerateImageMetadata:
    """Tests for SEO metadata generation"""

    def test_with_title_and_code(self):
        """Test alt text combines title, code and file stem"""
        meta = generate_image_metadata("salon.jpg", 2, "Villa Mar", "VM-01")
        assert meta.alt_text == "Villa Mar (VM-01) - salon"
        assert meta.title == "Villa Mar"

    def test_without_title(self):
        """Test positional alt text when the property has no title"""
        meta = generate_image_metadata("salon.jpg", 3)
        assert meta.alt_text == "Imagen 3 de la propiedad"
        assert meta.title == "salon"

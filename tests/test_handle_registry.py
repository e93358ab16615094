"""Tests for the ephemeral handle registry

Run with pytest from project root:
    pytest tests/test_handle_registry.py -v
"""

from managers.handle_registry import (
    ROLE_PREVIEW,
    ROLE_SOURCE,
    HandleRegistry,
    is_ephemeral_locator,
)


class TestHandleRegistry:
    """Tests for HandleRegistry"""

    def test_acquire_and_resolve(self):
        """Test an acquired handle resolves to its bytes"""
        registry = HandleRegistry(session_id="s1")
        handle = registry.acquire("img-1", ROLE_SOURCE, b"abc", "image/jpeg")

        assert handle.locator.startswith("blob:s1/")
        assert is_ephemeral_locator(handle.locator)
        assert registry.resolve(handle.locator) == b"abc"
        assert handle.locator in registry
        assert len(registry) == 1

    def test_locators_are_unique(self):
        """Test two handles for the same asset get distinct locators"""
        registry = HandleRegistry()
        a = registry.acquire("img-1", ROLE_SOURCE, b"a", "image/png")
        b = registry.acquire("img-1", ROLE_PREVIEW, b"a", "image/png")
        assert a.locator != b.locator
        assert [h.role for h in registry.handles_for("img-1")] == [ROLE_SOURCE, ROLE_PREVIEW]

    def test_release_exactly_once(self):
        """Test a second release of the same asset releases nothing"""
        registry = HandleRegistry()
        handle = registry.acquire("img-1", ROLE_SOURCE, b"a", "image/png")
        registry.acquire("img-1", ROLE_PREVIEW, b"a", "image/png")

        assert registry.release("img-1") == 2
        assert registry.release("img-1") == 0
        assert registry.released_count == 2
        assert handle.released
        assert handle.data is None
        assert registry.resolve(handle.locator) is None

    def test_release_only_touches_owner(self):
        """Test releasing one asset leaves other assets' handles live"""
        registry = HandleRegistry()
        registry.acquire("img-1", ROLE_SOURCE, b"a", "image/png")
        keep = registry.acquire("img-2", ROLE_SOURCE, b"b", "image/png")

        registry.release("img-1")
        assert registry.resolve(keep.locator) == b"b"
        assert registry.live_count == 1

    def test_release_all(self):
        """Test session teardown releases every outstanding handle"""
        registry = HandleRegistry()
        for asset_id in ("img-1", "img-2", "doc-1"):
            registry.acquire(asset_id, ROLE_SOURCE, b"x", "application/pdf")
        registry.release("img-2")

        assert registry.release_all() == 2
        assert registry.live_count == 0
        assert registry.released_count == 3
        assert registry.release_all() == 0

    def test_is_ephemeral_locator(self):
        """Test only blob: locators are ephemeral"""
        assert not is_ephemeral_locator("https://cdn.test/a.jpg")
        assert not is_ephemeral_locator(None)
        assert not is_ephemeral_locator("")

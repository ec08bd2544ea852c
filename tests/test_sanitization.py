"""Tests for resource id sanitization."""

import pytest

from zohobooks_mcp.client import sanitize_resource_id


class TestSanitizeResourceId:
    """Test cases for sanitize_resource_id function."""

    def test_normal_id_unchanged(self):
        """Plain record ids should pass through unchanged."""
        assert sanitize_resource_id("460000000012345") == "460000000012345"
        assert sanitize_resource_id("INV-0001") == "INV-0001"
        assert sanitize_resource_id("a.b_c~d") == "a.b_c~d"

    def test_rejects_path_separator(self):
        """Should reject ids that would add path segments."""
        with pytest.raises(ValueError, match="Invalid characters"):
            sanitize_resource_id("1/../../contacts")
        with pytest.raises(ValueError, match="Invalid characters"):
            sanitize_resource_id("1\\2")

    def test_rejects_query_and_fragment(self):
        """Should reject ids that would start a query or fragment."""
        with pytest.raises(ValueError, match="Invalid characters"):
            sanitize_resource_id("1?organization_id=2")
        with pytest.raises(ValueError, match="Invalid characters"):
            sanitize_resource_id("1#x")

    def test_rejects_percent_encoding(self):
        """Pre-encoded input should be rejected, not decoded."""
        with pytest.raises(ValueError, match="Invalid characters"):
            sanitize_resource_id("1%2F2")

    def test_rejects_whitespace(self):
        for value in ["a b", "a\tb", "a\n"]:
            with pytest.raises(ValueError, match="Invalid characters"):
                sanitize_resource_id(value)

    def test_rejects_dot_segments(self):
        """Should reject relative path segments."""
        for value in [".", ".."]:
            with pytest.raises(ValueError, match="Invalid characters"):
                sanitize_resource_id(value)

    def test_rejects_non_string_input(self):
        """Should reject non-string input."""
        with pytest.raises(ValueError, match="must be a string"):
            sanitize_resource_id(123)  # type: ignore
        with pytest.raises(ValueError, match="must be a string"):
            sanitize_resource_id(None)  # type: ignore

    def test_rejects_empty_string(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            sanitize_resource_id("")


class TestAccessorsSanitize:
    """Accessors reject bad ids before any call is made."""

    @pytest.mark.asyncio
    async def test_get_invoice_rejects_bad_id(self, fake, client):
        with pytest.raises(ValueError, match="Invalid characters"):
            await client.get_invoice("1/../../contacts")
        assert fake.function_calls == []

    @pytest.mark.asyncio
    async def test_delete_vendor_rejects_bad_id(self, fake, client):
        with pytest.raises(ValueError):
            await client.delete_vendor("")
        assert fake.api_calls == []

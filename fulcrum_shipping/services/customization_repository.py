"""
Carrier Customization Repository

One JSON document per store key, holding the list of customization records
for that store:

    <prefix>/<store_key>.json  ->  [{"id": "c_...", "code": "ups", ...}, ...]

Lookups by carrier code fall back to the older per-code documents
(carrier_custom_<code>.json, then carrier_custom_<code>) written by earlier
deployments.

Reads never fail the caller: missing, unreadable or malformed documents are
logged and treated as absent. Writes are read-modify-write of the whole
document, serialized per document within the process. Across processes the
last write wins.
"""
import asyncio
import copy
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from fulcrum_shipping.core.config import DEFAULT_LEGACY_CUSTOM_KEYS
from fulcrum_shipping.core.exceptions import InvalidCustomizationError, StorageError
from fulcrum_shipping.core.utils import first_text, generate_record_id, iter_nonblank
from fulcrum_shipping.models.customization import normalize_record
from fulcrum_shipping.services.storage import ByteStore

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "fulcrum/carriers"
DEFAULT_STORE_KEY = "default"


def normalize_store_key(store: Any) -> str:
    """
    Canonical document key for a store selector.

    A list of store tokens is trimmed, sorted and comma-joined so the same set
    always addresses the same document.
    """
    if isinstance(store, (list, tuple, set)):
        tokens = sorted(iter_nonblank(store))
        return ",".join(tokens) if tokens else DEFAULT_STORE_KEY
    if isinstance(store, str) and store.strip():
        return store.strip()
    return DEFAULT_STORE_KEY


class DocumentLockManager:
    """
    Manages per-document locks to serialize read-modify-write cycles.

    Two concurrent upserts against the same store document would otherwise
    both read the old list and the second write would drop the first record.
    """
    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock = asyncio.Lock()  # Protects _locks dict creation

    async def get_lock(self, key: str) -> asyncio.Lock:
        """Get or create a lock for a specific document key."""
        async with self._lock:
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()
            return self._locks[key]


class CustomizationRepository:
    """Keyed persistence for carrier customization records."""

    def __init__(
        self,
        store: ByteStore,
        prefix: str = DEFAULT_PREFIX,
        legacy_key_patterns: Optional[Sequence[str]] = None,
    ):
        self.store = store
        self.prefix = prefix.strip("/") or DEFAULT_PREFIX
        self.legacy_key_patterns = list(
            DEFAULT_LEGACY_CUSTOM_KEYS if legacy_key_patterns is None else legacy_key_patterns
        )
        self._locks = DocumentLockManager()

    def document_key(self, store: Any) -> str:
        return f"{self.prefix}/{normalize_store_key(store)}.json"

    def legacy_keys(self, code: str) -> List[str]:
        return [pattern.format(code=code) for pattern in self.legacy_key_patterns]

    # ==================== Reads ====================

    async def _read_json(self, key: str) -> Any:
        """Parsed document, or None when absent, unreadable or malformed."""
        try:
            data = await self.store.read(key)
        except StorageError as e:
            logger.warning(f"Customization read failed for {key}: {e.message}")
            return None
        if data is None:
            return None
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Invalid JSON in {key}, treating as absent: {e}")
            return None

    async def _load_for_write(self, key: str) -> List[Dict[str, Any]]:
        """
        Current entries of a document that is about to be rewritten.

        Unlike reads, a document that exists but cannot be parsed raises,
        so a write never replaces data it could not see.
        """
        data = await self.store.read(key)
        if data is None:
            return []
        try:
            entries = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"Refusing to overwrite malformed document: {e}", key=key) from e
        if not isinstance(entries, list):
            raise StorageError("Refusing to overwrite non-list document", key=key)
        return [entry for entry in entries if isinstance(entry, dict)]

    async def _write_entries(self, key: str, entries: List[Dict[str, Any]]) -> None:
        payload = json.dumps(entries, ensure_ascii=False).encode("utf-8")
        await self.store.write(key, payload)

    async def list(self, store: Any = None) -> List[Dict[str, Any]]:
        """All customization records for a store key; [] when absent."""
        entries = await self._read_json(self.document_key(store))
        if not isinstance(entries, list):
            if entries is not None:
                logger.warning(f"Ignoring non-list customization document for store {normalize_store_key(store)}")
            return []
        return [copy.deepcopy(entry) for entry in entries if isinstance(entry, dict)]

    async def get(self, store: Any, carrier_code: str) -> Dict[str, Any]:
        """
        Customization record for a carrier code, or {} when none exists.

        Args:
            store: Store key or list of store tokens
            carrier_code: Native carrier code (or derived customization key)

        Returns:
            A copy of the stored record
        """
        if not carrier_code:
            return {}

        for entry in await self.list(store):
            if entry.get("code") == carrier_code:
                return entry

        for key in self.legacy_keys(carrier_code):
            document = await self._read_json(key)
            if isinstance(document, dict):
                logger.debug(f"Customization for {carrier_code} resolved from legacy key {key}")
                return copy.deepcopy(document)

        return {}

    # ==================== Writes ====================

    async def upsert(self, store: Any, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge a record into the store document.

        An existing entry is matched by id, then by code, and shallow-merged;
        otherwise the record is appended with a generated id. When an id match
        moves a record onto a code another entry holds, that other entry is
        dropped. Repeating the same upsert leaves the document unchanged.

        Raises:
            InvalidCustomizationError: record has neither id nor code
            StorageError: document unreadable or write failed
        """
        patch = normalize_record(record)
        record_id = first_text(patch.get("id"))
        code = first_text(patch.get("code"))
        if not record_id and not code:
            raise InvalidCustomizationError("Customization record needs an id or a code")

        key = self.document_key(store)
        lock = await self._locks.get_lock(key)
        async with lock:
            entries = await self._load_for_write(key)

            index = None
            if record_id:
                index = next((i for i, e in enumerate(entries) if e.get("id") == record_id), None)
            if index is None and code:
                index = next((i for i, e in enumerate(entries) if e.get("code") == code), None)

            if index is None:
                saved = {**patch, "id": record_id or generate_record_id()}
                entries.append(saved)
                logger.info(f"Added customization {saved['id']} ({code}) to {key}")
            else:
                saved = {**entries[index], **patch}
                entries[index] = saved
                logger.info(f"Updated customization {saved.get('id')} ({code}) in {key}")

            # At most one record per carrier code
            saved_code = saved.get("code")
            if saved_code:
                kept = [entry for entry in entries if entry is saved or entry.get("code") != saved_code]
                if len(kept) != len(entries):
                    logger.warning(
                        f"Dropped {len(entries) - len(kept)} duplicate record(s) for code {saved_code} in {key}"
                    )
                    entries = kept

            await self._write_entries(key, entries)

        return copy.deepcopy(saved)

    async def merge_customization(self, store: Any, code: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Upsert keyed by carrier code."""
        return await self.upsert(store, {**patch, "code": code})

    async def delete(self, store: Any, record_id: str) -> bool:
        """Remove a record by id. Returns True when something was removed."""
        key = self.document_key(store)
        lock = await self._locks.get_lock(key)
        async with lock:
            entries = await self._load_for_write(key)
            remaining = [entry for entry in entries if entry.get("id") != record_id]
            if len(remaining) == len(entries):
                return False
            await self._write_entries(key, remaining)
        logger.info(f"Deleted customization {record_id} from {key}")
        return True

    async def delete_by_code(self, store: Any, code: str) -> bool:
        """Remove a carrier's record and any legacy per-code documents."""
        key = self.document_key(store)
        changed = False
        lock = await self._locks.get_lock(key)
        async with lock:
            entries = await self._load_for_write(key)
            remaining = [entry for entry in entries if entry.get("code") != code]
            if len(remaining) != len(entries):
                await self._write_entries(key, remaining)
                changed = True

        for legacy_key in self.legacy_keys(code):
            if await self.store.delete(legacy_key):
                changed = True

        if changed:
            logger.info(f"Deleted customization state for carrier {code}")
        return changed

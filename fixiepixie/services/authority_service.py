import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Union

from fixiepixie.core.errors import ContactDirectoryError
from fixiepixie.models.report_model import ContactRecord

logger = logging.getLogger(__name__)

DEFAULT_KEY = "Default"


def _to_record(city: str, raw: Any) -> ContactRecord:
    if not isinstance(raw, dict):
        raise ContactDirectoryError(f"Contact entry for '{city}' must be an object with an 'emails' list")
    emails = raw.get("emails") or []
    if isinstance(emails, str):
        emails = [emails]
    if not isinstance(emails, list):
        raise ContactDirectoryError(f"'emails' for '{city}' must be a list")
    # keep order, drop blanks
    cleaned = tuple(e.strip() for e in emails if isinstance(e, str) and e.strip())
    return ContactRecord(emails=cleaned)


class ContactDirectory:
    """
    Read-only city -> contact mapping with a mandatory Default entry.

    City names are matched exactly (case and whitespace included). Anything
    that does not match, including an empty name, gets the Default record.
    """

    def __init__(self, entries: Mapping[str, Any]):
        if DEFAULT_KEY not in entries:
            raise ContactDirectoryError(f"Contact directory has no '{DEFAULT_KEY}' entry")
        records: Dict[str, ContactRecord] = {
            str(city): _to_record(str(city), raw) for city, raw in entries.items()
        }
        self._records = MappingProxyType(records)
        self.default = records[DEFAULT_KEY]

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ContactDirectory":
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ContactDirectoryError(f"Contact directory file {path} not found") from e
        except json.JSONDecodeError as e:
            raise ContactDirectoryError(f"Failed to decode contact directory {path}: {e}") from e

        if not isinstance(data, dict):
            raise ContactDirectoryError(f"Contact directory {path} must be a JSON object")

        directory = cls(data)
        logger.info(f"✅ Loaded contact directory from {path} ({len(directory)} entries)")
        return directory

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, city: object) -> bool:
        return city in self._records

    def resolve(self, city: str) -> ContactRecord:
        if not city or city == DEFAULT_KEY:
            return self.default
        record = self._records.get(city)
        if record is None:
            logger.info(f"City '{city}' not in contact directory, using {DEFAULT_KEY}")
            return self.default
        return record

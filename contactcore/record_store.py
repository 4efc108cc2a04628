"""In-memory contact table edited during review, plus the employer name cache."""

from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from pydantic import ValidationError

from .error_handling import RecordValidationError
from .logging_config import get_logger
from .models import Company, Contact

logger = get_logger(__name__)

EDITABLE_FIELDS = tuple(Contact.model_fields)


class EmployerCache:
    """Session-wide map of company id to company name.

    Writes only ever add or overwrite entries; nothing is evicted.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._names: Dict[str, str] = dict(initial or {})

    def __contains__(self, company_id: Any) -> bool:
        return str(company_id) in self._names

    def __len__(self) -> int:
        return len(self._names)

    def add(self, company_id: Union[int, str], name: str) -> bool:
        """Add one company. Returns True if the id was not cached before."""
        key = str(company_id)
        is_new = key not in self._names
        self._names[key] = name
        return is_new

    def merge(self, companies: Iterable[Company]) -> int:
        """Merge resolved companies into the cache. Returns the number of new ids."""
        return sum(1 for company in companies if self.add(company.EntryId, company.CompanyName))

    def name_for(self, company_id: Optional[Union[int, str]]) -> Optional[str]:
        if company_id is None:
            return None
        return self._names.get(str(company_id))

    def options(self) -> List[Tuple[str, str]]:
        """(id, name) pairs in insertion order."""
        return list(self._names.items())


class ContactStore:
    """Ordered contacts addressed by row index.

    Rows are replaced, never mutated in place, so a row handed out earlier
    keeps its values after an edit.
    """

    def __init__(self, contacts: Optional[Iterable[Contact]] = None):
        self._rows: List[Contact] = list(contacts or [])

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Contact]:
        return iter(list(self._rows))

    def __getitem__(self, index: int) -> Contact:
        return self._rows[index]

    @property
    def rows(self) -> List[Contact]:
        return list(self._rows)

    def load(self, contacts: Iterable[Contact]) -> None:
        """Replace the whole table."""
        self._rows = list(contacts)

    def clear(self) -> None:
        self._rows = []

    def emails(self) -> List[str]:
        return [row.Email for row in self._rows]

    def update_field(self, row_index: int, field_name: str, value: Any) -> Contact:
        """Set one field of one row.

        Args:
            row_index: Zero-based row position
            field_name: Contact field name, e.g. ``"JobTitle"``
            value: New value; validated with the rest of the record

        Returns:
            The updated contact

        Raises:
            RecordValidationError: Unknown row or field, or the value fails validation
        """
        if not 0 <= row_index < len(self._rows):
            raise RecordValidationError(
                f"No contact at row {row_index}",
                field_name=field_name,
                field_value=value,
                context={"rows": len(self._rows)},
            )
        if field_name not in EDITABLE_FIELDS:
            raise RecordValidationError(
                f"Unknown contact field: {field_name}",
                field_name=field_name,
                field_value=value,
            )

        current = self._rows[row_index]
        data = current.model_dump()
        data[field_name] = value

        try:
            updated = Contact.model_validate(data)
        except ValidationError as e:
            raise RecordValidationError(
                f"Invalid value for {field_name}: {value!r}",
                field_name=field_name,
                field_value=value,
                context={"row": row_index, "errors": e.errors(include_url=False)},
            ) from e

        self._rows[row_index] = updated
        logger.debug("Contact field updated", extra={"row": row_index, "field": field_name})
        return updated


def select_employer(
    store: ContactStore, cache: EmployerCache, row_index: int, company: Company
) -> Contact:
    """Set a row's employer, adding the company to the cache if it is new.

    The row is updated first, so a failed edit leaves the cache untouched.
    """
    updated = store.update_field(row_index, "Employer", str(company.EntryId))
    if company.EntryId not in cache:
        cache.add(company.EntryId, company.CompanyName)
    return updated


def merge_options(
    cached: List[Tuple[str, str]], results: Iterable[Company]
) -> List[Tuple[str, str]]:
    """Combine cached employers with search results, one option per name.

    Later entries win for a repeated name, while the first position of the
    name is kept.
    """
    combined: Dict[str, Tuple[str, str]] = {}
    for company_id, name in cached:
        combined[name] = (company_id, name)
    for company in results:
        combined[company.CompanyName] = (str(company.EntryId), company.CompanyName)
    return list(combined.values())

"""Duplicate-email check run before contacts are submitted."""

from typing import Iterable, List, Tuple

from .dealcloud_client import DealCloudClient
from .error_handling import ConfigurationError, ContactCoreError, DuplicateCheckError
from .logging_config import log_event
from .models import Contact, ReviewedContact
from .resolvers import find_contacts_by_emails


class DeduplicationGate:
    """Flags contacts whose email already exists in DealCloud.

    Emails are compared as-is: case and surrounding whitespace count.
    """

    def __init__(self, client: DealCloudClient):
        self.client = client

    async def existing_emails(self, emails: Iterable[str]) -> set:
        """Emails among ``emails`` that already belong to a stored contact."""
        try:
            existing = await find_contacts_by_emails(self.client, list(emails))
        except ConfigurationError:
            raise
        except ContactCoreError as e:
            raise DuplicateCheckError(
                f"Failed to fetch contact details: {e}",
                context={"original_error": type(e).__name__},
            ) from e
        return {contact.Email for contact in existing if contact.Email}

    async def check_duplicates(self, records: Iterable[Contact]) -> List[ReviewedContact]:
        """Annotate each record with ``isDuplicate``.

        Returns:
            The same records, in order, as ReviewedContact
        """
        records = list(records)
        known = await self.existing_emails(record.Email for record in records)

        reviewed = []
        for record in records:
            data = record.model_dump()
            data["isDuplicate"] = record.Email in known
            reviewed.append(ReviewedContact(**data))

        log_event(
            __name__,
            "duplicates_checked",
            checked=len(reviewed),
            duplicates=sum(1 for r in reviewed if r.isDuplicate),
        )
        return reviewed


def partition(reviewed: Iterable[ReviewedContact]) -> Tuple[List[ReviewedContact], List[ReviewedContact]]:
    """Split reviewed contacts into (to insert, duplicates)."""
    to_insert: List[ReviewedContact] = []
    duplicates: List[ReviewedContact] = []
    for contact in reviewed:
        (duplicates if contact.isDuplicate else to_insert).append(contact)
    return to_insert, duplicates

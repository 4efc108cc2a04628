"""Company and contact lookups over the DealCloud client."""

import html
from typing import Any, Dict, List, Sequence

from . import constants
from .dealcloud_client import DealCloudClient
from .error_handling import ErrorContext, QueryError
from .logging_config import log_event
from .models import Company, ExistingContact, QuerySpec, ResolveMode


def encode_entities(text: str) -> str:
    """Encode & < > " ' with the named entities DealCloud stores names with."""
    return html.escape(text).replace("&#x27;", "&apos;")


def build_company_filter(names: Sequence[str]) -> Dict[str, Any]:
    """Containment filter on ``CompanyName`` for one or more names.

    Names are HTML-entity encoded before they go into the filter. A single
    name gives a direct clause; several are wrapped in ``$or``.
    """
    clauses = [{"CompanyName": {"$contains": encode_entities(name)}} for name in names]
    if len(clauses) == 1:
        return clauses[0]
    return {"$or": clauses}


def build_email_filter(emails: Sequence[str]) -> Dict[str, Any]:
    """Exact-match filter on ``Email``, one ``$eq`` clause per address."""
    return {"$or": [{"Email": {"$eq": email}} for email in emails]}


async def find_companies_by_names(
    client: DealCloudClient, names: Sequence[str], **options
) -> List[Company]:
    """Find companies whose name contains any of ``names``.

    Args:
        client: DealCloud client
        names: Company names as extracted from the input text
        **options: Query overrides such as ``limit=10``

    Returns:
        Matching companies with HTML entities in their names decoded
    """
    names = [name for name in names if name and name.strip()]
    if not names:
        return []

    spec = QuerySpec(
        query=build_company_filter(names),
        fields=list(constants.COMPANY_FIELDS),
        limit=constants.DEFAULT_PAGE_SIZE,
    ).with_overrides(**options)

    rows = await client.query_data(constants.COMPANY_ENTRY_TYPE, spec, resolve=ResolveMode.NAME)

    companies = []
    with ErrorContext("read company rows", convert_to=QueryError, entry_type="company"):
        for row in rows:
            name = row.get("CompanyName")
            companies.append(
                Company(
                    EntryId=row.get("EntryId"),
                    CompanyName=html.unescape(name) if isinstance(name, str) else str(name or ""),
                )
            )

    log_event(__name__, "companies_resolved", searched=len(names), found=len(companies))
    return companies


async def search_companies(
    client: DealCloudClient, text: str, limit: int = constants.SEARCH_PAGE_SIZE
) -> List[Company]:
    """Single-term company search used while picking an employer."""
    if not text or not text.strip():
        return []
    return await find_companies_by_names(client, [text], limit=limit)


async def find_contacts_by_emails(
    client: DealCloudClient, emails: Sequence[str]
) -> List[ExistingContact]:
    """Look up existing contacts whose email equals one of ``emails``."""
    emails = [email for email in emails if email]
    if not emails:
        return []

    spec = QuerySpec(
        query=build_email_filter(emails),
        fields=list(constants.CONTACT_LOOKUP_FIELDS),
        limit=constants.DEFAULT_PAGE_SIZE,
    )
    rows = await client.query_data(constants.CONTACT_ENTRY_TYPE, spec, resolve=ResolveMode.ID)
    with ErrorContext("read contact rows", convert_to=QueryError, entry_type="contact"):
        return [ExistingContact.model_validate(row) for row in rows]

"""Contact intake for DealCloud.

This package turns unstructured text about people and companies into
DealCloud contact records:
- Extracting company names and contacts using AI
- Resolving companies against DealCloud
- Reviewing and editing the generated records
- Skipping contacts whose email already exists, then inserting the rest
"""

from .pipeline import ContactPipeline
from .ai_extractor import AIExtractor
from .dealcloud_client import DealCloudClient
from .company_search import CompanySearch
from .dedupe import DeduplicationGate
from .record_store import ContactStore, EmployerCache
from .models import Company, Contact, ReviewedContact, QuerySpec, PipelineState

__all__ = [
    "ContactPipeline",
    "AIExtractor",
    "DealCloudClient",
    "CompanySearch",
    "DeduplicationGate",
    "ContactStore",
    "EmployerCache",
    "Company",
    "Contact",
    "ReviewedContact",
    "QuerySpec",
    "PipelineState",
]

__version__ = "0.1.0"

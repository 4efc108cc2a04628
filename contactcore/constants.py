"""Constants shared across the contact intake modules."""

# DealCloud REST roots
OAUTH_API_VERSION = "v1"
DATA_API_VERSION = "v4"

# Authentication
DEFAULT_TOKEN_SCOPE = "data"
TOKEN_EXPIRY_MARGIN = 120  # seconds subtracted from expires_in
DEFAULT_HTTP_TIMEOUT = 30.0

# Entry types
COMPANY_ENTRY_TYPE = "company"
CONTACT_ENTRY_TYPE = "contact"

# Query defaults
DEFAULT_PAGE_SIZE = 1000
SEARCH_PAGE_SIZE = 10
COMPANY_FIELDS = ["CompanyName", "EntryId"]
CONTACT_LOOKUP_FIELDS = ["FullName", "Email", "EntryId"]

# Flattening
ARRAY_JOIN_SEPARATOR = "; "

# Employer search
SEARCH_DEBOUNCE_SECONDS = 0.3

# Pipeline progress checkpoints
PROGRESS_NAMES_EXTRACTED = 33
PROGRESS_COMPANIES_FETCHED = 66
PROGRESS_CONTACTS_GENERATED = 100

# AI defaults
DEFAULT_CLAUDE_MODEL = "claude-3-5-sonnet-20241022"
DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_MAX_TOKENS = 4000
DEFAULT_TEMPERATURE = 0.3

# Logging
RESPONSE_EXCERPT_LENGTH = 500

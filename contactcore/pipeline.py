"""Orchestrator for the text-to-DealCloud contact pipeline."""

import time
import uuid
from typing import Any, Callable, Iterable, List, Optional, Set

from pydantic import ValidationError

from . import constants
from .ai_extractor import AIExtractor
from .config import require_ai
from .dealcloud_client import DealCloudClient
from .dedupe import DeduplicationGate, partition
from .error_handling import (
    PipelineStateError,
    RecordValidationError,
    describe_error,
)
from .logging_config import get_logger, log_context, log_error, log_event, log_performance
from .models import (
    Company,
    Config,
    Contact,
    InsertResult,
    Notification,
    PipelineState,
    ProcessingConfig,
    ReviewedContact,
)
from .record_store import ContactStore, EmployerCache, select_employer
from .resolvers import find_companies_by_names

logger = get_logger(__name__)

ProgressCallback = Callable[[int, str], None]
NotifyCallback = Callable[[Notification], None]

STATUS_EXTRACTING = "Extracting company names..."
STATUS_FETCHING = "Fetching companies..."
STATUS_GENERATING = "Generating contacts..."
STATUS_DONE = "Done"

_CAN_GENERATE = {
    PipelineState.IDLE,
    PipelineState.READY,
    PipelineState.DONE,
    PipelineState.ERRORED,
}


class ContactPipeline:
    """Runs extraction, company resolution, review, duplicate check and insert.

    Steps run one after another; each awaits the previous one. When a step
    fails, an error notification is emitted and the pipeline returns to the
    state it was in when the user started that operation. The contact store
    is only written after a step has fully succeeded.
    """

    def __init__(
        self,
        client: DealCloudClient,
        extractor: AIExtractor,
        store: Optional[ContactStore] = None,
        employers: Optional[EmployerCache] = None,
        gate: Optional[DeduplicationGate] = None,
        config: Optional[ProcessingConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_notify: Optional[NotifyCallback] = None,
    ):
        self.client = client
        self.extractor = extractor
        self.store = store if store is not None else ContactStore()
        self.employers = employers if employers is not None else EmployerCache()
        self.gate = gate or DeduplicationGate(client)
        self.config = config or ProcessingConfig()
        self.on_progress = on_progress
        self.on_notify = on_notify

        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [self.state]
        self.progress = 0
        self.status = ""
        self.text = ""
        self.run_id: Optional[str] = None
        self.companies: List[Company] = []
        self.pending_review: List[ReviewedContact] = []
        self.notifications: List[Notification] = []
        self.last_error: Optional[Exception] = None
        self.last_result: Optional[InsertResult] = None

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "ContactPipeline":
        """Build the pipeline and the components it owns from a loaded Config."""
        ai = require_ai(config.ai)
        client = DealCloudClient(
            config.dealcloud,
            http_client=kwargs.pop("http_client", None),
            expiry_margin=config.processing.token_expiry_margin,
        )
        extractor = AIExtractor(
            provider=ai.provider,
            api_key=ai.api_key,
            model=ai.model,
            names_model=ai.names_model,
            max_tokens=ai.max_tokens,
            temperature=ai.temperature,
            strict_employer_check=config.processing.strict_employer_check,
        )
        return cls(client, extractor, config=config.processing, **kwargs)

    async def __aenter__(self) -> "ContactPipeline":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    # State handling

    def _enter(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug("Pipeline state changed", extra={"state": state.value})

    def _require(self, allowed: Set[PipelineState], operation: str) -> None:
        if self.state not in allowed:
            raise PipelineStateError(
                f"Cannot {operation} while {self.state.value}",
                state=self.state.value,
            )

    def _set_progress(self, progress: int, status: str) -> None:
        self.progress = progress
        self.status = status
        if self.on_progress:
            self.on_progress(progress, status)

    def _notify(self, level: str, title: str, description: str = "") -> Notification:
        notification = Notification(level=level, title=title, description=description)
        self.notifications.append(notification)
        if self.on_notify:
            self.on_notify(notification)
        return notification

    def _fail(self, error: Exception, step: PipelineState, recover_to: PipelineState) -> None:
        self.last_error = error
        log_error(__name__, "pipeline_step_failed", error, step=step.value, run_id=self.run_id)
        self._enter(PipelineState.ERRORED)
        self._notify("error", "Error", describe_error(error))
        self._enter(recover_to)

    # Operations

    async def generate(self, text: str) -> Optional[List[Contact]]:
        """Extract company names, resolve companies and generate contacts.

        Args:
            text: Unstructured text describing people and companies

        Returns:
            The generated contacts, or None if a step failed
        """
        self._require(_CAN_GENERATE, "generate contacts")
        origin = self.state
        self.text = text
        self.run_id = uuid.uuid4().hex[:12]
        self.last_error = None
        step = PipelineState.EXTRACTING_NAMES
        start_time = time.time()

        with log_context(run_id=self.run_id):
            try:
                self._enter(step)
                self._set_progress(0, STATUS_EXTRACTING)
                names = await self.extractor.extract_company_names(text)

                self._set_progress(constants.PROGRESS_NAMES_EXTRACTED, STATUS_FETCHING)
                step = PipelineState.FETCHING_COMPANIES
                self._enter(step)
                companies = await self._fetch_companies(names)

                self._set_progress(constants.PROGRESS_COMPANIES_FETCHED, STATUS_GENERATING)
                step = PipelineState.GENERATING_CONTACTS
                self._enter(step)
                contacts = await self.extractor.generate_contacts(text, companies)
            except Exception as e:
                self._fail(e, step, origin)
                self._set_progress(0, "")
                return None

            self.store.load(contacts)
            self.pending_review = []
            self._set_progress(constants.PROGRESS_CONTACTS_GENERATED, STATUS_DONE)
            self._enter(PipelineState.READY)

            log_event(
                __name__,
                "contacts_generated",
                company_names=len(names),
                companies=len(companies),
                contacts=len(contacts),
            )
            log_performance(__name__, "contact_generation", (time.time() - start_time) * 1000)
            return contacts

    async def _fetch_companies(self, names: List[str]) -> List[Company]:
        if not names:
            self.companies = []
            return []
        companies = await find_companies_by_names(
            self.client, names, limit=self.config.page_size
        )
        # Merged before contact generation so a later failure keeps the cache
        self.employers.merge(companies)
        self.companies = companies
        return companies

    def update_field(self, row_index: int, field_name: str, value: Any) -> Contact:
        """Apply one user edit to the contact table."""
        self._require({PipelineState.READY}, "edit contacts")
        return self.store.update_field(row_index, field_name, value)

    def select_employer(self, row_index: int, company: Company) -> Contact:
        """Assign an employer chosen in the employer picker."""
        self._require({PipelineState.READY}, "edit contacts")
        return select_employer(self.store, self.employers, row_index, company)

    async def check_duplicates(self) -> Optional[List[ReviewedContact]]:
        """Flag contacts whose email already exists and wait for confirmation.

        Returns:
            Every contact with its ``isDuplicate`` flag, or None if the lookup failed
        """
        self._require({PipelineState.READY}, "check duplicates")
        self._enter(PipelineState.CHECKING_DUPLICATES)

        try:
            reviewed = await self.gate.check_duplicates(self.store.rows)
        except Exception as e:
            self._fail(e, PipelineState.CHECKING_DUPLICATES, PipelineState.READY)
            return None

        self.pending_review = reviewed
        self._enter(PipelineState.AWAITING_CONFIRMATION)
        return reviewed

    def cancel(self) -> None:
        """Leave the submission overview without inserting anything."""
        self._require({PipelineState.AWAITING_CONFIRMATION}, "cancel submission")
        self.pending_review = []
        self._enter(PipelineState.READY)

    async def confirm(self) -> Optional[InsertResult]:
        """Insert every reviewed contact that is not a duplicate.

        Returns:
            The insert outcome, or None if validation or the insert failed
        """
        self._require({PipelineState.AWAITING_CONFIRMATION}, "submit contacts")
        self._enter(PipelineState.INSERTING)
        start_time = time.time()

        to_insert, duplicates = partition(self.pending_review)
        result = InsertResult(
            skipped=[c.Email for c in duplicates],
            dry_run=self.config.dry_run,
        )

        try:
            payloads = validate_for_insert(to_insert)

            if not payloads:
                reason = "All contacts already exist." if duplicates else "No contacts to insert."
                self._notify("info", "Nothing to insert", reason)
            elif self.config.dry_run:
                log_event(__name__, "dry_run_insert", contacts=len(payloads))
                result.inserted = payloads
                self._notify("info", "Dry run", f"Would insert {len(payloads)} contacts.")
            else:
                result.inserted = await self.client.insert_data(
                    constants.CONTACT_ENTRY_TYPE, payloads
                )
                self._notify("success", "Success", "Contacts have been inserted.")
        except Exception as e:
            self._fail(e, PipelineState.INSERTING, PipelineState.AWAITING_CONFIRMATION)
            return None

        result.processing_time = time.time() - start_time
        self.last_result = result
        self._enter(PipelineState.DONE)

        log_event(
            __name__,
            "contacts_inserted",
            inserted=len(result.inserted),
            skipped=len(result.skipped),
            dry_run=result.dry_run,
        )
        return result

    def reset(self) -> None:
        """Drop the current contacts and go back to text input.

        The employer cache is kept for the rest of the session.
        """
        self._require(_CAN_GENERATE, "start over")
        self.store.clear()
        self.pending_review = []
        self.companies = []
        self._set_progress(0, "")
        self._enter(PipelineState.IDLE)


def validate_for_insert(contacts: Iterable[Contact]) -> List[dict]:
    """Re-check every contact against the schema and return the insert payloads.

    Raises:
        RecordValidationError: If any contact fails, before anything is sent
    """
    payloads = []
    for index, contact in enumerate(contacts):
        payload = contact.to_payload()
        try:
            Contact.model_validate(payload)
        except ValidationError as e:
            raise RecordValidationError(
                f"Contact {index + 1} ({payload.get('Email', '')}) is invalid: "
                f"{e.errors(include_url=False)[0]['msg']}",
                context={"row": index},
            ) from e
        payloads.append(payload)
    return payloads

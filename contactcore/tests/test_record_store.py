"""Tests for the contact table and the employer cache."""

import pytest

from ..error_handling import RecordValidationError
from ..models import Company, Contact
from ..record_store import ContactStore, EmployerCache, merge_options, select_employer


@pytest.fixture
def store(contact_data):
    second = dict(contact_data, FirstName="Erika", Email="erika@acme.de")
    third = dict(contact_data, FirstName="Hans", Email="hans@acme.de")
    return ContactStore([Contact(**contact_data), Contact(**second), Contact(**third)])


class TestContactStore:
    def test_update_touches_only_one_row(self, store):
        before = store.rows

        store.update_field(1, "JobTitle", "CFO")

        assert store[1].JobTitle == "CFO"
        assert store[0] == before[0]
        assert store[2] == before[2]
        assert before[1].JobTitle is None

    def test_invalid_value_leaves_row_unchanged(self, store):
        with pytest.raises(RecordValidationError) as exc_info:
            store.update_field(0, "ContactType", "not-a-code")

        assert exc_info.value.field_name == "ContactType"
        assert store[0].ContactType == "81391"

    def test_unknown_field(self, store):
        with pytest.raises(RecordValidationError, match="Unknown contact field"):
            store.update_field(0, "isDuplicate", True)

    def test_row_out_of_range(self, store):
        with pytest.raises(RecordValidationError):
            store.update_field(3, "JobTitle", "CFO")

    def test_load_and_clear(self, store, contact_data):
        store.load([Contact(**contact_data)])
        assert store.emails() == ["max@acme.de"]

        store.clear()
        assert len(store) == 0


class TestEmployerCache:
    def test_merge_counts_new_ids(self):
        cache = EmployerCache({"101": "Acme GmbH"})

        added = cache.merge(
            [Company(EntryId=101, CompanyName="Acme GmbH"), Company(EntryId=102, CompanyName="Beta")]
        )

        assert added == 1
        assert len(cache) == 2
        assert 102 in cache
        assert cache.name_for("102") == "Beta"

    def test_select_employer_adds_new_company(self, store):
        cache = EmployerCache()

        updated = select_employer(store, cache, 0, Company(EntryId=555, CompanyName="Delta"))

        assert updated.Employer == "555"
        assert cache.name_for(555) == "Delta"

    def test_failed_selection_leaves_cache(self, store):
        cache = EmployerCache()

        with pytest.raises(RecordValidationError):
            select_employer(store, cache, 9, Company(EntryId=555, CompanyName="Delta"))

        assert len(cache) == 0


def test_merge_options_unique_by_label():
    cached = [("101", "Acme GmbH"), ("102", "Beta")]
    results = [Company(EntryId=201, CompanyName="Beta"), Company(EntryId=103, CompanyName="Gamma")]

    options = merge_options(cached, results)

    assert options == [("101", "Acme GmbH"), ("201", "Beta"), ("103", "Gamma")]

"""
Payload validation tests.

- Schema validation: one error per violation, naming the offending field
- Referential checks: provenance, address and organisation references,
  metric periods and duplicate metric keys
"""
import pytest

from credit_timeline.services.ingestion import validate_credit_file, check_referential_integrity

from builders import full_payload, make_import, make_payload, make_tradeline


# =============================================================================
# TEST: Schema validation
# =============================================================================

class TestSchemaValidation:

    def test_valid_payload(self):
        outcome = validate_credit_file(full_payload())
        assert outcome.valid
        assert outcome.errors == []
        assert outcome.value.file_id == "file-1"
        assert outcome.value.import_ids == ["imp-eq", "imp-tu"]

    def test_missing_required_field_single_error_naming_it(self):
        payload = full_payload()
        del payload["file_id"]
        outcome = validate_credit_file(payload)
        assert not outcome.valid
        assert len(outcome.errors) == 1
        assert outcome.errors[0].path == "/file_id"
        assert "file_id" in str(outcome.errors[0])

    def test_nested_missing_field_path(self):
        payload = full_payload()
        del payload["tradelines"][1]["source_import_id"]
        outcome = validate_credit_file(payload)
        assert [e.path for e in outcome.errors] == ["/tradelines/1/source_import_id"]

    def test_unknown_source_system_rejected(self):
        payload = make_payload(imports=[make_import(source_system="callcredit")])
        outcome = validate_credit_file(payload)
        assert not outcome.valid
        assert outcome.errors[0].path == "/imports/0/source_system"

    def test_imports_required(self):
        outcome = validate_credit_file(make_payload(imports=[]))
        assert not outcome.valid
        assert outcome.errors[0].path == "/imports"

    def test_unknown_field_rejected(self):
        payload = full_payload()
        payload["unexpected"] = True
        outcome = validate_credit_file(payload)
        assert [e.path for e in outcome.errors] == ["/unexpected"]

    def test_multiple_violations_reported(self):
        payload = full_payload()
        del payload["file_id"]
        del payload["created_at"]
        outcome = validate_credit_file(payload)
        assert {e.path for e in outcome.errors} == {"/file_id", "/created_at"}

    @pytest.mark.parametrize("raw", [None, [], "not a payload", 42])
    def test_non_object_payload(self, raw):
        outcome = validate_credit_file(raw)
        assert not outcome.valid
        assert len(outcome.errors) >= 1


# =============================================================================
# TEST: Referential checks
# =============================================================================

def _issues(payload):
    outcome = validate_credit_file(payload)
    assert outcome.valid, outcome.errors
    return check_referential_integrity(outcome.value)


class TestReferentialIntegrity:

    def test_full_payload_is_consistent(self):
        assert _issues(full_payload()) == []

    def test_unknown_source_import_id(self):
        payload = full_payload()
        payload["searches"][0]["source_import_id"] = "imp-missing"
        issues = _issues(payload)
        assert len(issues) == 1
        assert issues[0].path == "/searches[s-1]"
        assert "imp-missing" in issues[0].message

    def test_snapshot_import_reference_checked(self):
        payload = full_payload()
        payload["tradelines"][0]["snapshots"][0]["source_import_id"] = "nope"
        issues = _issues(payload)
        assert [i.path for i in issues] == ["/tradelines[tl-eq-card]/snapshots[tl-eq-card-snap]"]

    def test_unknown_address_reference(self):
        payload = full_payload()
        payload["public_records"][0]["address_id"] = "addr-missing"
        issues = _issues(payload)
        assert [i.path for i in issues] == ["/public_records[pr-1]"]

    def test_unknown_furnisher_organisation(self):
        payload = full_payload()
        payload["tradelines"][0]["furnisher_organisation_id"] = "org-missing"
        issues = _issues(payload)
        assert len(issues) == 1
        assert "org-missing" in issues[0].message

    def test_subject_id_mismatch(self):
        payload = full_payload()
        payload["subject"]["subject_id"] = "someone-else"
        issues = _issues(payload)
        assert [i.path for i in issues] == ["/subject/subject_id"]

    def test_duplicate_import_ids(self):
        payload = make_payload(imports=[make_import("imp-1"), make_import("imp-1", "experian")])
        issues = _issues(payload)
        assert [i.path for i in issues] == ["/imports/1/import_id"]

    def test_invalid_metric_period(self):
        payload = full_payload()
        payload["tradelines"][0]["monthly_metrics"][0]["period"] = "2024-13"
        issues = _issues(payload)
        assert len(issues) == 1
        assert "YYYY-MM" in issues[0].message

    def test_duplicate_metric_key(self):
        metric = {
            "monthly_metric_id": "mm-1",
            "period": "2024-01",
            "metric_type": "payment_status",
            "raw_status_code": "0",
            "source_import_id": "imp-eq-1",
        }
        payload = make_payload(tradelines=[make_tradeline(
            "tl-1", "imp-eq-1", metrics=[metric, {**metric, "monthly_metric_id": "mm-2"}],
        )])
        issues = _issues(payload)
        assert len(issues) == 1
        assert "duplicate metric key" in issues[0].message

    def test_each_violation_reported(self):
        payload = full_payload()
        payload["searches"][0]["source_import_id"] = "x"
        payload["credit_scores"][0]["source_import_id"] = "y"
        payload["address_associations"][0]["address_id"] = "z"
        assert len(_issues(payload)) == 3

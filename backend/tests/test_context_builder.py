"""
Analysis over persisted timelines: ingest credit files, build the
AnalysisContext from the store, and run the full analysis end-to-end.
"""
import logging

import pytest

from credit_timeline.errors import AnomalyConfigError, SubjectNotFoundError
from credit_timeline.models.db_models import AppSettingDB, GeneratedInsightDB
from credit_timeline.services.analysis import analyze_subject, build_analysis_context
from credit_timeline.services.ingestion import ingest_credit_file

from builders import full_payload, make_import, make_payload, make_tradeline, second_file


@pytest.fixture
def two_files(db):
    assert ingest_credit_file(db, full_payload()).success
    assert ingest_credit_file(db, second_file()).success
    return db


# =============================================================================
# TEST: build_analysis_context
# =============================================================================

class TestBuildAnalysisContext:

    def test_unknown_subject(self, db):
        with pytest.raises(SubjectNotFoundError):
            build_analysis_context(db, "nobody")

    def test_single_file_has_no_prior_imports(self, db):
        ingest_credit_file(db, full_payload())
        context = build_analysis_context(db, "subj-1")

        assert [i.import_id for i in context.imports] == ["imp-eq", "imp-tu"]
        assert context.current_import_ids == {"imp-eq", "imp-tu"}
        assert context.prior_import_ids == frozenset()

    def test_latest_file_is_current(self, two_files):
        context = build_analysis_context(two_files, "subj-1")

        assert [i.import_id for i in context.imports] == ["imp-eq", "imp-tu", "imp-eq-2", "imp-tu-2"]
        assert context.current_import_ids == {"imp-eq-2", "imp-tu-2"}
        assert context.prior_import_ids == {"imp-eq", "imp-tu"}

    def test_explicit_current_imports(self, two_files):
        context = build_analysis_context(two_files, "subj-1", current_import_ids=["imp-tu-2"])
        assert context.current_import_ids == {"imp-tu-2"}

    def test_foreign_import_rejected(self, two_files):
        with pytest.raises(ValueError):
            build_analysis_context(two_files, "subj-1", current_import_ids=["imp-elsewhere"])

    def test_tradelines_flattened_with_latest_snapshot(self, two_files):
        context = build_analysis_context(two_files, "subj-1")
        by_id = {t.tradeline_id: t for t in context.tradelines}

        card = by_id["tl-eq-card-2"]
        assert card.account_key == "canonical:acct-card"
        assert card.balance == 2500.0
        assert card.credit_limit == 5000.0
        assert card.payment_status == "up_to_date"
        assert card.account_status == "open"
        assert card.snapshot_id == "tl-eq-card-2-snap"
        assert card.source_system == "equifax"
        assert card.furnisher_name == "Barclaycard"

        assert by_id["tl-loan-2"].account_key == "canonical:acct-loan"
        assert len(context.tradelines) == 5

    def test_same_account_matched_across_sources(self, two_files):
        context = build_analysis_context(two_files, "subj-1")
        card_keys = {t.account_key for t in context.tradelines if "card" in t.tradeline_id}
        assert card_keys == {"canonical:acct-card"}

    def test_fingerprint_when_no_canonical_id(self, db):
        payload = make_payload(tradelines=[make_tradeline("tl-1", "imp-eq-1", furnisher="Barclays Bank PLC")])
        ingest_credit_file(db, payload)

        [obs] = build_analysis_context(db, "subj-1").tradelines

        assert obs.account_key == "fingerprint:BARCLAYS|1234|202005"

    def test_same_identity_twice_in_one_import(self, db, caplog):
        payload = make_payload(tradelines=[
            make_tradeline("tl-sl-1", "imp-eq-1", furnisher="Student Loans Co", opened_at="2020-09-01", balance=1000.0),
            make_tradeline("tl-sl-2", "imp-eq-1", furnisher="Student Loans Co", opened_at="2020-09-01", balance=9000.0),
        ])
        assert ingest_credit_file(db, payload).success

        with caplog.at_level(logging.WARNING, logger="credit_timeline.services.analysis.context_builder"):
            context = build_analysis_context(db, "subj-1")

        assert context.ambiguous_tradeline_ids == {"tl-sl-1", "tl-sl-2"}
        assert context.tradeline_histories() == {}
        assert any("excluded from matching" in r.getMessage() for r in caplog.records)

    def test_searches_and_scores_loaded(self, two_files):
        context = build_analysis_context(two_files, "subj-1")

        assert [s.search_id for s in context.searches] == ["s-1", "s-1-2", "s-2", "s-2-2"]
        assert {s.visibility for s in context.searches} == {"hard", "soft"}
        assert [s.score_value for s in context.scores] == [780, 700]
        assert len(context.public_records) == 2

    def test_timestamps_are_naive(self, two_files):
        context = build_analysis_context(two_files, "subj-1")
        assert all(i.imported_at.tzinfo is None for i in context.imports)


# =============================================================================
# TEST: analyze_subject
# =============================================================================

class TestAnalyzeSubject:

    def test_end_to_end(self, two_files):
        result = analyze_subject(two_files, "subj-1")

        assert result.rule_errors == []
        assert len(result.rules_evaluated) == 6

        [new_account] = result.insights_for("new_tradeline")
        assert new_account.entity_ids == ("tl-loan-2",)

        [balance] = result.insights_for("balance_change")
        assert balance.evidence["source_system"] == "equifax"
        assert balance.evidence["balance_old"] == 1000.0
        assert balance.evidence["balance_new"] == 2500.0

        [score] = [i for i in result.insights_for("status_change") if i.kind == "score_movement"]
        assert score.evidence["delta"] == -80

        [discrepancy] = result.insights_for("cross_source_discrepancy")
        assert discrepancy.evidence["account_key"] == "canonical:acct-card"

        # One hard search, re-reported by the second file
        assert result.insights_for("hard_search") == []

    def test_ambiguous_accounts_never_paired(self, db):
        first = make_payload(tradelines=[
            make_tradeline("tl-sl-1", "imp-eq-1", furnisher="Student Loans Co", opened_at="2020-09-01", balance=1000.0),
            make_tradeline("tl-sl-2", "imp-eq-1", furnisher="Student Loans Co", opened_at="2020-09-01", balance=9000.0),
        ])
        later = make_payload(
            file_id="file-2",
            created_at="2024-05-01T09:30:00Z",
            imports=[make_import("imp-eq-2", "equifax", "2024-05-01T09:00:00Z")],
            tradelines=[
                make_tradeline("tl-sl-3", "imp-eq-2", furnisher="Student Loans Co", opened_at="2020-09-01", balance=1000.0),
            ],
        )
        assert ingest_credit_file(db, first).success
        assert ingest_credit_file(db, later).success

        result = analyze_subject(db, "subj-1")

        assert result.rule_errors == []
        assert result.insights_for("balance_change") == []

    def test_first_file_produces_no_temporal_insights(self, db):
        ingest_credit_file(db, full_payload())
        result = analyze_subject(db, "subj-1")
        assert result.insights_for("new_tradeline") == []
        assert result.insights_for("balance_change") == []

    def test_overrides_change_outcome(self, two_files):
        result = analyze_subject(two_files, "subj-1", overrides={"balance_change": {"pct_threshold": 500}})
        assert result.insights_for("balance_change") == []

    def test_persisted_settings_applied(self, two_files):
        two_files.add(AppSettingDB(key="anomaly.status_change.track_scores", value="false"))
        two_files.commit()

        result = analyze_subject(two_files, "subj-1")

        assert [i for i in result.insights if i.kind == "score_movement"] == []

    def test_bad_override_fails_before_timeline_is_read(self, db):
        with pytest.raises(AnomalyConfigError):
            analyze_subject(db, "nobody", overrides={"hard_search": {"threshold": -1}})

    def test_unknown_subject(self, db):
        with pytest.raises(SubjectNotFoundError):
            analyze_subject(db, "nobody")

    def test_analysis_is_read_only_and_repeatable(self, two_files):
        before = two_files.query(GeneratedInsightDB).count()

        first = analyze_subject(two_files, "subj-1")
        second = analyze_subject(two_files, "subj-1")

        assert first.insights == second.insights
        assert two_files.query(GeneratedInsightDB).count() == before

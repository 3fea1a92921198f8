"""
Ingestion pipeline tests.

Covers:
1. Successful ingest: entity counts, provenance, receipt and audit rows
2. Idempotence: identical payload (any key order) is a no-op success
3. Validation short-circuit: invalid payloads never reach the transaction
4. Atomicity: a failure part-way through leaves no rows behind
5. Quality warnings recorded inside the same transaction
6. Per-subject locks and concurrent identical ingests
"""
import logging
import threading

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from credit_timeline.database import Base, build_engine
from credit_timeline.errors import StorageError
from credit_timeline.models.db_models import (
    SubjectDB, CreditFileDB, ImportBatchDB, PersonNameDB, OrganisationDB, AddressDB,
    AddressAssociationDB, TradelineDB, TradelineSnapshotDB, TradelineMonthlyMetricDB,
    SearchRecordDB, CreditScoreDB, PublicRecordDB, GeneratedInsightDB, IngestReceiptDB,
    AuditLogDB,
)
from credit_timeline.services.ingestion import (
    ingest_credit_file, subject_locks, SubjectLockRegistry, generate_quality_warnings, validate_credit_file,
)
from credit_timeline.services.ingestion import pipeline

from builders import FULL_PAYLOAD_COUNTS, full_payload, make_payload, make_tradeline, reorder_keys

ALL_TABLES = (
    SubjectDB, CreditFileDB, ImportBatchDB, PersonNameDB, OrganisationDB, AddressDB,
    AddressAssociationDB, TradelineDB, TradelineSnapshotDB, TradelineMonthlyMetricDB,
    SearchRecordDB, CreditScoreDB, PublicRecordDB, GeneratedInsightDB, IngestReceiptDB,
    AuditLogDB,
)


def row_counts(db):
    return {model.__tablename__: db.query(model).count() for model in ALL_TABLES}


# =============================================================================
# TEST: Successful ingest
# =============================================================================

class TestSuccessfulIngest:

    def test_entity_counts(self, db):
        result = ingest_credit_file(db, full_payload())
        assert result.success
        assert not result.duplicate
        assert result.errors == []
        assert result.entity_counts == FULL_PAYLOAD_COUNTS
        assert result.import_ids == ["imp-eq", "imp-tu"]
        assert result.receipt_id is not None

    def test_rows_committed(self, db, session_factory):
        ingest_credit_file(db, full_payload())

        # A fresh session only sees committed data
        other = session_factory()
        try:
            assert other.query(TradelineDB).count() == 2
            assert other.query(SearchRecordDB).count() == 2
            assert other.get(CreditFileDB, "file-1") is not None
        finally:
            other.close()

    def test_children_inherit_source_system_from_import(self, db):
        ingest_credit_file(db, full_payload())

        assert db.get(TradelineDB, "tl-eq-card").source_system == "equifax"
        assert db.get(TradelineDB, "tl-tu-card").source_system == "transunion"
        assert db.get(TradelineSnapshotDB, "tl-tu-card-snap").source_system == "transunion"
        assert db.get(PublicRecordDB, "pr-1").source_system == "transunion"
        assert db.get(SearchRecordDB, "s-1").source_system == "equifax"
        assert db.get(PersonNameDB, "name-1").source_system == "equifax"

    def test_timestamps_stored_as_naive_utc(self, db):
        ingest_credit_file(db, full_payload())
        imported_at = db.get(ImportBatchDB, "imp-eq").imported_at
        assert imported_at.tzinfo is None
        assert (imported_at.hour, imported_at.minute) == (9, 0)

    def test_metric_value_key_stored(self, db):
        ingest_credit_file(db, full_payload())
        keys = {m.id: m.metric_value_key for m in db.query(TradelineMonthlyMetricDB).all()}
        assert keys == {"mm-eq": "payment_status:0", "mm-tu": "balance:1040"}

    def test_receipt_and_audit_log_written(self, db):
        result = ingest_credit_file(db, full_payload())

        receipt = db.get(IngestReceiptDB, result.receipt_id)
        assert receipt.subject_id == "subj-1"
        assert receipt.file_id == "file-1"
        assert len(receipt.payload_sha256) == 64
        assert receipt.entity_counts == FULL_PAYLOAD_COUNTS
        assert receipt.status == "success"

        audit = db.query(AuditLogDB).one()
        assert audit.event_type == "ingest.completed"
        assert audit.entity_id == "file-1"

    def test_second_file_for_existing_subject(self, db):
        ingest_credit_file(db, full_payload())
        result = ingest_credit_file(db, full_payload(file_id="file-2", suffix="-2"))

        assert result.success
        assert not result.duplicate
        # Subject already existed
        assert "subjects" not in result.entity_counts
        assert result.entity_counts["tradelines"] == 2
        assert db.query(SubjectDB).count() == 1
        assert db.query(CreditFileDB).count() == 2

    def test_injected_logger_receives_outcome(self, db, caplog):
        log = logging.getLogger("tests.ingest")
        with caplog.at_level(logging.INFO, logger="tests.ingest"):
            ingest_credit_file(db, full_payload(), log=log)
        assert any("Ingested file file-1" in r.getMessage() for r in caplog.records)


# =============================================================================
# TEST: Idempotence
# =============================================================================

class TestIdempotentIngest:

    def test_same_payload_twice_is_noop_success(self, db):
        first = ingest_credit_file(db, full_payload())
        before = row_counts(db)

        second = ingest_credit_file(db, full_payload())

        assert second.success
        assert second.duplicate
        assert second.entity_counts == first.entity_counts
        assert second.import_ids == first.import_ids
        assert second.receipt_id == first.receipt_id
        assert row_counts(db) == before

    def test_reordered_keys_are_the_same_payload(self, db):
        ingest_credit_file(db, full_payload())
        before = row_counts(db)

        result = ingest_credit_file(db, reorder_keys(full_payload()))

        assert result.duplicate
        assert row_counts(db) == before

    def test_changed_payload_is_not_a_duplicate(self, db):
        ingest_credit_file(db, full_payload())
        result = ingest_credit_file(db, full_payload(file_id="file-2", suffix="-2"))
        assert not result.duplicate
        assert db.query(IngestReceiptDB).count() == 2

    def test_equivalent_number_and_timestamp_spellings_are_the_same_payload(self, db):
        ingest_credit_file(db, full_payload())
        before = row_counts(db)

        payload = full_payload()
        payload["tradelines"][0]["snapshots"][0]["current_balance"] = 1000
        payload["imports"][0]["imported_at"] = payload["imports"][0]["imported_at"].replace("Z", "+00:00")
        result = ingest_credit_file(db, payload)

        assert result.success
        assert result.duplicate
        assert row_counts(db) == before


# =============================================================================
# TEST: Validation short-circuit
# =============================================================================

class TestValidationShortCircuit:

    def test_missing_field_returns_single_error(self, db):
        payload = full_payload()
        del payload["subject_id"]

        result = ingest_credit_file(db, payload)

        assert not result.success
        assert len(result.errors) == 1
        assert "subject_id" in result.errors[0]

    def test_invalid_payload_never_reaches_transaction(self, db, monkeypatch):
        calls = []
        monkeypatch.setattr(pipeline, "find_prior_receipt", lambda *a, **kw: calls.append(a))
        payload = full_payload()
        del payload["file_id"]

        result = ingest_credit_file(db, payload)

        assert not result.success
        assert calls == []
        assert all(count == 0 for count in row_counts(db).values())

    def test_referential_failure_reported_like_schema_failure(self, db):
        payload = full_payload()
        payload["searches"][0]["source_import_id"] = "imp-missing"

        result = ingest_credit_file(db, payload)

        assert not result.success
        assert result.errors == ['/searches[s-1]: source_import_id "imp-missing" not found in imports[]']
        assert all(count == 0 for count in row_counts(db).values())


# =============================================================================
# TEST: Atomicity
# =============================================================================

class TestAtomicity:

    def test_constraint_violation_rolls_back_everything(self, db):
        ingest_credit_file(db, full_payload())
        before = row_counts(db)

        # Second file reuses an organisation id: fails after subject, file and imports were flushed
        payload = full_payload(file_id="file-2", suffix="-2")
        payload["organisations"][0]["organisation_id"] = "org-barclaycard"
        payload["tradelines"][0]["furnisher_organisation_id"] = "org-barclaycard"

        with pytest.raises(StorageError) as exc_info:
            ingest_credit_file(db, payload)

        assert isinstance(exc_info.value.__cause__, SQLAlchemyError)
        assert exc_info.value.file_id == "file-2"
        assert row_counts(db) == before
        assert db.get(CreditFileDB, "file-2") is None
        assert db.get(ImportBatchDB, "imp-eq-2") is None

    def test_failure_in_nth_inserter_leaves_no_rows(self, db, monkeypatch):
        def failing_insert(ctx):
            raise SQLAlchemyError("disk full")

        inserters = list(pipeline.ENTITY_INSERTERS)
        # Fail at search records, after tradelines have been flushed
        index = inserters.index(pipeline.insert_search_records)
        inserters[index] = failing_insert
        monkeypatch.setattr(pipeline, "ENTITY_INSERTERS", tuple(inserters))

        with pytest.raises(StorageError):
            ingest_credit_file(db, full_payload())

        assert all(count == 0 for count in row_counts(db).values())

    def test_unexpected_error_rolls_back_and_propagates(self, db, monkeypatch):
        def interrupted(ctx, *args, **kwargs):
            raise TimeoutError("caller deadline exceeded")

        monkeypatch.setattr(pipeline, "insert_ingest_receipt", interrupted)

        with pytest.raises(TimeoutError):
            ingest_credit_file(db, full_payload())

        assert all(count == 0 for count in row_counts(db).values())

    def test_retry_after_failure_succeeds(self, db, monkeypatch):
        def failing_insert(ctx):
            raise SQLAlchemyError("transient")

        original = pipeline.ENTITY_INSERTERS
        monkeypatch.setattr(pipeline, "ENTITY_INSERTERS", original[:3] + (failing_insert,))
        with pytest.raises(StorageError):
            ingest_credit_file(db, full_payload())

        monkeypatch.setattr(pipeline, "ENTITY_INSERTERS", original)
        result = ingest_credit_file(db, full_payload())
        assert result.success
        assert not result.duplicate
        assert result.entity_counts == FULL_PAYLOAD_COUNTS


# =============================================================================
# TEST: Quality warnings
# =============================================================================

class TestQualityWarnings:

    def test_sparse_file_warning_persisted(self, db):
        result = ingest_credit_file(db, make_payload())

        assert result.success
        assert [w.kind for w in result.warnings] == ["sparse_file"]
        assert result.entity_counts["generated_insights"] == 1
        insight = db.query(GeneratedInsightDB).one()
        assert insight.kind == "sparse_file"
        assert insight.file_id == "file-1"

    def test_clean_file_has_no_warnings(self, db):
        result = ingest_credit_file(db, full_payload())
        assert result.warnings == []
        assert db.query(GeneratedInsightDB).count() == 0

    def test_suspicious_tradelines_flagged(self):
        payload = make_payload(tradelines=[
            make_tradeline("tl-1", "imp-eq-1", balance=-25.0),
            make_tradeline("tl-2", "imp-eq-1", credit_limit=0.0, account_number="****5678"),
        ])
        credit_file = validate_credit_file(payload).value

        kinds = sorted(w.kind for w in generate_quality_warnings(credit_file))

        assert kinds == ["duplicate_looking_tradeline", "negative_balance", "zero_credit_limit"]

    def test_tradeline_without_snapshots(self):
        tradeline = make_tradeline("tl-1", "imp-eq-1")
        tradeline["snapshots"] = []
        credit_file = validate_credit_file(make_payload(tradelines=[tradeline])).value

        [warning] = generate_quality_warnings(credit_file)

        assert warning.kind == "missing_snapshots"
        assert warning.entity_ids == ["tl-1"]


# =============================================================================
# TEST: Per-subject locks
# =============================================================================

class TestSubjectLocks:

    def test_lock_dropped_once_released(self):
        registry = SubjectLockRegistry()
        with registry.hold("a"):
            assert registry.active_subjects() == ["a"]
        assert len(registry) == 0

    def test_lock_dropped_after_failure(self):
        registry = SubjectLockRegistry()
        with pytest.raises(RuntimeError):
            with registry.hold("a"):
                raise RuntimeError("boom")
        assert len(registry) == 0

    def test_registry_empty_after_ingest(self, db):
        ingest_credit_file(db, full_payload())
        ingest_credit_file(db, full_payload(file_id="file-2", subject_id="subj-2"))
        assert len(subject_locks) == 0

    def test_same_subject_waits_for_holder(self):
        registry = SubjectLockRegistry()
        entered = threading.Event()
        order = []

        def second_writer():
            with registry.hold("a"):
                order.append("second")
            entered.set()

        with registry.hold("a"):
            worker = threading.Thread(target=second_writer)
            worker.start()
            assert not entered.wait(timeout=0.2)
            order.append("first")
        worker.join(timeout=5)

        assert order == ["first", "second"]
        assert len(registry) == 0

    def test_other_subjects_not_blocked(self):
        registry = SubjectLockRegistry()
        entered = threading.Event()

        def other_writer():
            with registry.hold("b"):
                entered.set()

        with registry.hold("a"):
            worker = threading.Thread(target=other_writer)
            worker.start()
            assert entered.wait(timeout=5)
        worker.join(timeout=5)


# =============================================================================
# TEST: Concurrent identical ingests
# =============================================================================

class TestConcurrentIngest:

    @pytest.fixture
    def file_engine(self, tmp_path):
        # File-backed so each thread gets its own connection
        engine = build_engine(f"sqlite:///{tmp_path / 'timeline.db'}")
        Base.metadata.create_all(bind=engine)
        yield engine
        engine.dispose()

    def test_one_fresh_result_one_duplicate(self, file_engine):
        factory = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
        barrier = threading.Barrier(2)
        results, failures = [], []

        def writer():
            session = factory()
            try:
                barrier.wait(timeout=5)
                results.append(ingest_credit_file(session, full_payload()))
            except Exception as exc:  # surfaced by the assertion below
                failures.append(exc)
            finally:
                session.close()

        workers = [threading.Thread(target=writer) for _ in range(2)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=30)

        assert failures == []
        assert sorted(r.duplicate for r in results) == [False, True]
        assert all(r.success for r in results)
        assert results[0].receipt_id == results[1].receipt_id

        check = factory()
        try:
            assert check.query(IngestReceiptDB).count() == 1
            assert check.query(TradelineDB).count() == 2
        finally:
            check.close()

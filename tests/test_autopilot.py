"""Tests for autopilot batch processing."""

from unittest.mock import MagicMock

import pytest

from autopilot import AutopilotOrchestrator, merge_default_tags
from db import (
    add_default_tag,
    add_image,
    claim_run_batch,
    get_product,
    get_qc_state,
    get_run,
    insert_product,
)
from listing.errors import InvalidRequest, RateLimited
from listing.models import GenerationRequest, GenerationResult


def _generated(**overrides):
    fields = {
        "title": "Nike 90s Mens Grey Oversized Hoodie Embroidered Swoosh Size M",
        "description_style_a": "Grey Nike hoodie.",
        "description_style_b": "Soft grey Nike hoodie.",
        "shopify_tags": "nike, hoodie",
        "garment_type": "Hoodie",
        "condition": "Excellent",
        "size_label": "M",
        "pit_to_pit": "24 inches",
        "era": "90s",
        "brand": "Nike",
    }
    fields.update(overrides)
    return GenerationResult(**fields)


def _seed(conn, n, batch_id="b1", **fields):
    ids = []
    for i in range(n):
        product_id = insert_product(conn, {"batch_id": batch_id, "price": 40, **fields})
        for position in range(3):
            add_image(conn, product_id, f"https://img.example.com/{product_id}/{position}.jpg", position)
        ids.append(product_id)
    conn.commit()
    return ids


@pytest.fixture
def generate():
    return MagicMock(return_value=_generated())


@pytest.fixture
def orchestrator(db_path, generate):
    return AutopilotOrchestrator(db_path, generate=generate)


def _drain(orchestrator, run_id, limit=20):
    """Follow the dispatch chain synchronously. Returns every outcome."""
    queue = [run_id]
    orchestrator.dispatch = queue.append
    outcomes = []
    while queue and len(outcomes) < limit:
        outcomes.append(orchestrator.run_batch(queue.pop(0)))
    return outcomes


class TestStartRun:
    """Tests for start_run / stop_run."""

    def test_creates_run_and_resets_products(self, conn, orchestrator):
        ids = _seed(conn, 3, qc_status="blocked", confidence=40, flags={"era_uncertain": True})
        dispatched = []
        orchestrator.dispatch = dispatched.append

        started = orchestrator.start_run("b1", batch_size=2)

        assert started["status"] == "started"
        assert started["total_cards"] == 3
        assert dispatched == [started["run_id"]]
        run = get_run(conn, started["run_id"])
        assert run.status == "running"
        assert run.batch_size == 2
        for product_id in ids:
            state = get_qc_state(conn, product_id)
            assert state.qc_status == "draft"
            assert state.confidence is None
            assert state.flags == {}

    def test_resumes_running_run(self, conn, orchestrator):
        _seed(conn, 1)
        first = orchestrator.start_run("b1")

        second = orchestrator.start_run("b1")

        assert second["status"] == "resumed"
        assert second["run_id"] == first["run_id"]

    def test_empty_batch_rejected(self, orchestrator):
        with pytest.raises(InvalidRequest):
            orchestrator.start_run("nothing-here")

    def test_deleted_products_not_counted(self, conn, orchestrator):
        _seed(conn, 2)
        _seed(conn, 1, deleted_at="2025-01-01 00:00:00")
        assert orchestrator.start_run("b1")["total_cards"] == 2

    def test_stop_run(self, conn, orchestrator, generate):
        _seed(conn, 2)
        run_id = orchestrator.start_run("b1")["run_id"]

        assert orchestrator.stop_run(run_id)
        outcome = orchestrator.run_batch(run_id)

        assert outcome.status == "stopped"
        generate.assert_not_called()
        assert not orchestrator.stop_run(run_id)


class TestRunBatch:
    """Tests for run_batch."""

    def test_drains_queue_in_batches(self, conn, orchestrator, generate):
        _seed(conn, 5)
        run_id = orchestrator.start_run("b1", batch_size=2)["run_id"]

        outcomes = _drain(orchestrator, run_id)

        assert [o.processed for o in outcomes] == [2, 2, 1, 0]
        assert [o.batch_number for o in outcomes[:3]] == [1, 2, 3]
        assert outcomes[-1].status == "awaiting_qc"
        run = get_run(conn, run_id)
        assert run.status == "awaiting_qc"
        assert run.processed_cards == 5
        assert run.current_batch == 3
        assert generate.call_count == 5

    def test_oldest_first(self, conn, orchestrator):
        ids = _seed(conn, 3)
        run_id = orchestrator.start_run("b1", batch_size=2)["run_id"]

        orchestrator.run_batch(run_id)

        assert [get_qc_state(conn, i).batch_number for i in ids] == [1, 1, None]

    def test_per_product_failure_is_isolated(self, conn, orchestrator, generate):
        ids = _seed(conn, 3)
        generate.side_effect = [_generated(), RuntimeError("boom"), _generated()]
        run_id = orchestrator.start_run("b1", batch_size=3)["run_id"]

        outcome = orchestrator.run_batch(run_id)

        assert (outcome.processed, outcome.errors) == (2, 1)
        assert get_qc_state(conn, ids[0]).qc_status == "ready"
        assert get_qc_state(conn, ids[1]).qc_status == "failed"
        assert get_qc_state(conn, ids[2]).qc_status == "ready"
        run = get_run(conn, run_id)
        assert run.status == "running"
        assert run.processed_cards == 2
        assert run.last_error == "Batch 1: 1 products failed"

    def test_provider_limits_are_isolated_too(self, conn, orchestrator, generate):
        ids = _seed(conn, 2)
        generate.side_effect = [RateLimited("slow down", 429), _generated()]
        run_id = orchestrator.start_run("b1")["run_id"]

        outcome = orchestrator.run_batch(run_id)

        assert outcome.errors == 1
        assert get_qc_state(conn, ids[0]).qc_status == "failed"

    def test_failed_products_are_retried(self, conn, orchestrator, generate):
        ids = _seed(conn, 1)
        generate.side_effect = [RuntimeError("boom"), _generated()]
        run_id = orchestrator.start_run("b1")["run_id"]

        outcomes = _drain(orchestrator, run_id)

        assert [o.errors for o in outcomes] == [1, 0, 0]
        assert get_qc_state(conn, ids[0]).qc_status == "ready"
        assert get_run(conn, run_id).status == "awaiting_qc"

    def test_max_attempts_stops_retrying(self, conn, db_path, generate):
        ids = _seed(conn, 1)
        generate.side_effect = RuntimeError("always broken")
        orchestrator = AutopilotOrchestrator(db_path, generate=generate, max_attempts=2)
        run_id = orchestrator.start_run("b1")["run_id"]

        outcomes = _drain(orchestrator, run_id)

        assert generate.call_count == 2
        assert outcomes[-1].status == "awaiting_qc"
        assert get_qc_state(conn, ids[0]).qc_status == "failed"

    def test_existing_values_win_over_inferred(self, conn, orchestrator, generate):
        ids = _seed(conn, 1, brand="Adidas", title="Old title")
        run_id = orchestrator.start_run("b1")["run_id"]

        orchestrator.run_batch(run_id)

        product = get_product(conn, ids[0])
        assert product["brand"] == "Adidas"
        assert product["era"] == "90s"
        assert product["title"] == _generated().title
        assert product["status"] == "generated"
        assert product["generated_at"] is not None

    def test_sends_known_fields_and_two_images(self, conn, orchestrator, generate):
        ids = _seed(conn, 1, brand="Adidas", raw_input_text="Found at a car boot")
        run_id = orchestrator.start_run("b1")["run_id"]

        orchestrator.run_batch(run_id)

        request = generate.call_args.args[0]
        assert isinstance(request, GenerationRequest)
        assert request.product.brand == "Adidas"
        assert request.product.raw_input_text == "Found at a car boot"
        assert request.image_urls == [
            f"https://img.example.com/{ids[0]}/0.jpg",
            f"https://img.example.com/{ids[0]}/1.jpg",
        ]

    def test_default_tags_merged(self, conn, orchestrator):
        add_default_tag(conn, "Vintage Clothing", ["hoodie", "sweatshirt"])
        add_default_tag(conn, "Denim", ["jeans"])
        ids = _seed(conn, 1)
        run_id = orchestrator.start_run("b1")["run_id"]

        orchestrator.run_batch(run_id)

        assert get_product(conn, ids[0])["shopify_tags"] == "nike, hoodie, Vintage Clothing"

    def test_stub_result_is_blocked(self, conn, orchestrator, generate):
        generate.return_value = GenerationResult.stub()
        ids = _seed(conn, 1)
        run_id = orchestrator.start_run("b1")["run_id"]

        outcome = orchestrator.run_batch(run_id)

        assert outcome.processed == 1
        state = get_qc_state(conn, ids[0])
        assert state.qc_status == "blocked"
        assert state.flags["missing_required_fields"] is True

    def test_unknown_run(self, orchestrator):
        with pytest.raises(InvalidRequest):
            orchestrator.run_batch(999)

    def test_not_running_is_a_no_op(self, conn, orchestrator, generate):
        _seed(conn, 1)
        run_id = orchestrator.start_run("b1")["run_id"]
        _drain(orchestrator, run_id)
        generate.reset_mock()

        outcome = orchestrator.run_batch(run_id)

        assert outcome.status == "awaiting_qc"
        assert outcome.processed == 0
        generate.assert_not_called()

    def test_lost_batch_claim_does_nothing(self, conn, orchestrator, generate, monkeypatch):
        _seed(conn, 2)
        run_id = orchestrator.start_run("b1")["run_id"]
        dispatched = []
        orchestrator.dispatch = dispatched.append

        # another worker claims batch 1 between our read and our claim
        def racing_get_run(c, rid):
            run = get_run(c, rid)
            claim_run_batch(c, rid, run.current_batch)
            c.commit()
            return run

        monkeypatch.setattr("autopilot.get_run", racing_get_run)
        outcome = orchestrator.run_batch(run_id)

        assert outcome.message == "Batch already claimed"
        generate.assert_not_called()
        assert dispatched == []

    def test_dispatch_failure_does_not_fail_batch(self, conn, orchestrator):
        _seed(conn, 1)
        run_id = orchestrator.start_run("b1")["run_id"]
        orchestrator.dispatch = MagicMock(side_effect=ConnectionError("queue down"))

        outcome = orchestrator.run_batch(run_id)

        assert outcome.processed == 1
        orchestrator.dispatch.assert_called_once_with(run_id)


class TestClaimRunBatch:
    """Tests for the compare-and-swap batch claim."""

    def test_second_claim_for_same_batch_fails(self, conn, orchestrator):
        _seed(conn, 1)
        run_id = orchestrator.start_run("b1")["run_id"]

        assert claim_run_batch(conn, run_id, 0)
        assert not claim_run_batch(conn, run_id, 0)
        assert get_run(conn, run_id).current_batch == 1


class TestMergeDefaultTags:
    """Tests for merge_default_tags."""

    def test_appends_without_duplicates(self):
        assert merge_default_tags("nike, Vintage", ["vintage", "90s"]) == "nike, Vintage, 90s"

    def test_no_defaults_keeps_existing(self):
        assert merge_default_tags(None, []) is None

    def test_defaults_only(self):
        assert merge_default_tags(None, ["Vintage"]) == "Vintage"

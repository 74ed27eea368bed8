"""Autopilot: unattended listing generation over a batch of draft products.

Each call to ``run_batch`` processes at most one batch and then hands the run
back to the dispatcher, so a long queue drains as a chain of short steps.
The run row in sqlite is the only state shared between steps.
"""

import logging
from typing import Callable, Optional

from config import (
    AUTOPILOT_BATCH_SIZE,
    AUTOPILOT_IMAGES_PER_PRODUCT,
    AUTOPILOT_MAX_ATTEMPTS,
    DB_PATH,
)
from db import (
    claim_product,
    claim_run_batch,
    count_batch_products,
    create_run,
    get_claimable_products,
    get_connection,
    get_default_tags,
    get_product_images,
    get_run,
    get_running_run_for_batch,
    now_utc,
    record_batch_progress,
    reset_batch_products,
    set_run_status,
    update_product,
)
from listing.errors import InvalidRequest
from listing.generator import generate_listing
from listing.models import ALL_FIELDS, ATTRIBUTE_FIELDS, GenerationRequest, GenerationResult
from listing.provenance import merge_for_storage
from listing.qc import score_product
from listing.sanitize import sanitize_tags, sanitize_value
from models import RUN_AWAITING_QC, RUN_RUNNING, RUN_STOPPED, BatchOutcome

logger = logging.getLogger(__name__)

Dispatch = Callable[[int], None]


def merge_default_tags(existing: Optional[str], defaults: list[str]) -> Optional[str]:
    """Append the shop's default tags, keeping the first spelling of each."""
    if not defaults:
        return existing
    return sanitize_tags([*(existing or "").split(","), *defaults])


def _request_for(product: dict, image_urls: list[str]) -> GenerationRequest:
    known = {name: product.get(name) for name in ATTRIBUTE_FIELDS}
    known["raw_input_text"] = product.get("raw_input_text")
    known = {k: v for k, v in known.items() if sanitize_value(v) is not None}
    return GenerationRequest.from_payload({"product": known, "imageUrls": image_urls})


class AutopilotOrchestrator:
    """Claims and processes batches of products for autopilot runs.

    ``generate`` takes a GenerationRequest and returns a GenerationResult.
    ``dispatch`` is called with the run id once a batch is done and must not
    block on the next batch; without one the caller drives the run.
    """

    def __init__(
        self,
        db_path: str = DB_PATH,
        generate: Callable[[GenerationRequest], GenerationResult] = generate_listing,
        dispatch: Optional[Dispatch] = None,
        max_attempts: int = AUTOPILOT_MAX_ATTEMPTS,
        images_per_product: int = AUTOPILOT_IMAGES_PER_PRODUCT,
    ):
        self.db_path = db_path
        self.generate = generate
        self.dispatch = dispatch
        self.max_attempts = max_attempts
        self.images_per_product = images_per_product

    def start_run(self, batch_id: str, batch_size: int = AUTOPILOT_BATCH_SIZE) -> dict:
        """Start autopilot for a batch, or resume the one already running."""
        if batch_size < 1:
            raise InvalidRequest("batch_size must be at least 1")

        conn = get_connection(self.db_path)
        try:
            existing = get_running_run_for_batch(conn, batch_id)
            if existing:
                logger.info(f"[Autopilot] Resuming existing run {existing.id} for batch {batch_id}")
                return {"run_id": existing.id, "status": "resumed", "total_cards": existing.total_cards}

            total = count_batch_products(conn, batch_id)
            if total == 0:
                raise InvalidRequest(f"No products found in batch {batch_id}")

            run_id = create_run(conn, batch_id, batch_size, total)
            reset_batch_products(conn, batch_id, run_id)
            conn.commit()
        finally:
            conn.close()

        logger.info(f"[Autopilot] Created run {run_id} for batch {batch_id} with {total} cards")
        self._dispatch_next(run_id)
        return {"run_id": run_id, "status": "started", "total_cards": total}

    def stop_run(self, run_id: int) -> bool:
        """Ask a running run to stop. Takes effect at its next batch."""
        conn = get_connection(self.db_path)
        try:
            stopped = set_run_status(conn, run_id, RUN_STOPPED, expected=RUN_RUNNING)
            conn.commit()
        finally:
            conn.close()
        if stopped:
            logger.info(f"[Autopilot] Run {run_id} stopped")
        return stopped

    def run_batch(self, run_id: int) -> BatchOutcome:
        """Process one batch of the run's draft/failed products."""
        conn = get_connection(self.db_path)
        try:
            return self._run_batch(conn, run_id)
        finally:
            conn.close()

    def _run_batch(self, conn, run_id: int) -> BatchOutcome:
        run = get_run(conn, run_id)
        if run is None:
            raise InvalidRequest(f"Run {run_id} not found")
        if run.status != RUN_RUNNING:
            logger.info(f"[Autopilot] Run {run_id} is not running ({run.status})")
            return BatchOutcome(status=run.status, message="Run is not in running state")

        products = get_claimable_products(conn, run_id, run.batch_size, self.max_attempts)
        if not products:
            set_run_status(conn, run_id, RUN_AWAITING_QC, expected=RUN_RUNNING)
            conn.commit()
            logger.info(f"[Autopilot] Run {run_id} complete, no more products")
            return BatchOutcome(status=RUN_AWAITING_QC, message="Autopilot complete")

        batch_number = run.current_batch + 1
        if not claim_run_batch(conn, run_id, run.current_batch):
            conn.rollback()
            logger.warning(f"[Autopilot] Run {run_id} batch {batch_number} already claimed, skipping")
            return BatchOutcome(status=RUN_RUNNING, message="Batch already claimed")

        claimed = [p for p in products if claim_product(conn, p["id"], batch_number)]
        conn.commit()
        logger.info(f"[Autopilot] Run {run_id} batch {batch_number}: processing {len(claimed)} products")

        processed = 0
        errors = 0
        for product in claimed:
            try:
                self._process_product(conn, product)
                conn.commit()
                processed += 1
            except Exception as e:
                conn.rollback()
                logger.error(f"[Autopilot] Run {run_id} batch {batch_number}: product {product['id']} failed: {e}")
                update_product(conn, product["id"], {"qc_status": "failed"})
                conn.commit()
                errors += 1

        last_error = f"Batch {batch_number}: {errors} products failed" if errors else None
        record_batch_progress(conn, run_id, processed, last_error)
        conn.commit()
        logger.info(
            f"[Autopilot] Run {run_id} batch {batch_number} complete: "
            f"{processed} processed, {errors} errors"
        )

        self._dispatch_next(run_id)
        return BatchOutcome(
            status=RUN_RUNNING,
            processed=processed,
            errors=errors,
            batch_number=batch_number,
            message=f"Batch {batch_number} complete",
        )

    def _process_product(self, conn, product: dict):
        images = get_product_images(conn, product["id"], limit=self.images_per_product)
        result = self.generate(_request_for(product, images))

        merged = merge_for_storage(product, result.model_dump())
        defaults = get_default_tags(conn, merged.get("garment_type"))
        merged["shopify_tags"] = merge_default_tags(merged.get("shopify_tags"), defaults)

        qc = score_product({**product, **merged})
        updates = {name: merged[name] for name in ALL_FIELDS if merged.get(name) is not None}
        updates.update({
            "qc_status": qc.status,
            "confidence": qc.confidence,
            "flags": qc.flags,
            "status": "generated",
            "generated_at": now_utc(),
        })
        update_product(conn, product["id"], updates)
        logger.info(f"[Autopilot] Product {product['id']}: {qc.status} ({qc.confidence}%)")

    def _dispatch_next(self, run_id: int):
        if self.dispatch is None:
            logger.debug(f"[Autopilot] No dispatcher, run {run_id} continues on the next trigger")
            return
        try:
            self.dispatch(run_id)
        except Exception as e:
            # the stale-run sweep picks the run up again
            logger.error(f"[Autopilot] Failed to trigger next batch for run {run_id}: {e}")

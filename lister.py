#!/usr/bin/env python3
"""Main entry point for the vintage listing pipeline."""

import argparse
import json
import logging
import sys

from dotenv import load_dotenv
load_dotenv()

from autopilot import AutopilotOrchestrator
from config import AUTOPILOT_BATCH_SIZE
from db import get_connection, get_product, get_product_images, init_db, update_product
from listing import generate_listing, parse_voice, score_product
from listing.errors import InvalidRequest, ModelError
from listing.models import ATTRIBUTE_FIELDS, OUTPUT_FIELDS, GenerationRequest
from listing.provenance import merge_for_storage
from listing.sanitize import sanitize_value
from listing.voice import apply_voice_fields

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def _print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _load_product(conn, product_id: int) -> dict:
    product = get_product(conn, product_id)
    if product is None:
        raise InvalidRequest(f"Product {product_id} not found")
    return product


def generate_for_product(product_id: int, regenerate_only: str = None) -> dict:
    """Generate (or regenerate part of) a stored product's listing and save it."""
    conn = get_connection()
    try:
        product = _load_product(conn, product_id)
        known = {
            name: product[name]
            for name in (*ATTRIBUTE_FIELDS, *OUTPUT_FIELDS, "raw_input_text")
            if sanitize_value(product.get(name)) is not None
        }
        request = GenerationRequest.from_payload({
            "product": known,
            "imageUrls": get_product_images(conn, product_id),
            "regenerateOnly": regenerate_only,
        })
        result = generate_listing(request)

        merged = merge_for_storage(product, result.model_dump())
        updates = {k: v for k, v in merged.items() if v is not None}
        updates["status"] = "generated"
        update_product(conn, product_id, updates)
        conn.commit()
        logger.info(f"Listing generated for product {product_id}: {merged.get('title')}")
        return result.to_payload()
    finally:
        conn.close()


def voice_for_product(transcript: str, condition: str = None, product_id: int = None) -> dict:
    """Parse a voice note; with a product id the parsed fields are saved too."""
    if product_id is None:
        return parse_voice(transcript, condition)

    conn = get_connection()
    try:
        product = _load_product(conn, product_id)
        parsed = parse_voice(transcript, condition or product.get("condition"))
        updates = apply_voice_fields(product, parsed)
        update_product(conn, product_id, updates)
        conn.commit()
        logger.info(f"Voice note applied to product {product_id}: {', '.join(sorted(updates)) or 'nothing'}")
        return updates
    finally:
        conn.close()


def qc_product(product_id: int) -> dict:
    conn = get_connection()
    try:
        product = _load_product(conn, product_id)
        qc = score_product(product)
        update_product(conn, product_id, {
            "qc_status": qc.status,
            "confidence": qc.confidence,
            "flags": qc.flags,
        })
        conn.commit()
    finally:
        conn.close()
    logger.info(f"Product {product_id}: {qc.status} ({qc.confidence}%)")
    return {"qc_status": qc.status, "confidence": qc.confidence, "flags": qc.flags}


def main():
    parser = argparse.ArgumentParser(description="Vintage clothing listing generator")
    parser.add_argument(
        "--generate", type=int, metavar="PRODUCT_ID", help="Generate the listing for one product"
    )
    parser.add_argument(
        "--regenerate", choices=["title", "style_a", "style_b", "all"],
        help="With --generate, only regenerate this part",
    )
    parser.add_argument(
        "--voice", type=str, metavar="TEXT", help="Parse a voice transcript into listing fields"
    )
    parser.add_argument(
        "--condition", type=str, help="Current condition, for --voice"
    )
    parser.add_argument(
        "--product", type=int, metavar="PRODUCT_ID", help="With --voice, save the parsed fields to this product"
    )
    parser.add_argument(
        "--qc", type=int, metavar="PRODUCT_ID", help="Run the automatic quality check on one product"
    )
    parser.add_argument(
        "--start-autopilot", type=str, metavar="BATCH_ID", help="Start or resume autopilot for a batch"
    )
    parser.add_argument(
        "--batch-size", type=int, default=AUTOPILOT_BATCH_SIZE, help="Products per autopilot batch"
    )
    parser.add_argument(
        "--run-batch", type=int, metavar="RUN_ID", help="Process a single batch of an autopilot run"
    )
    parser.add_argument(
        "--stop", type=int, metavar="RUN_ID", help="Stop an autopilot run after its current batch"
    )
    parser.add_argument(
        "--worker", action="store_true", help="Run the autopilot worker (scheduler)"
    )
    args = parser.parse_args()

    init_db()

    try:
        if args.generate is not None:
            _print_json(generate_for_product(args.generate, args.regenerate))
        elif args.voice is not None:
            _print_json(voice_for_product(args.voice, args.condition, args.product))
        elif args.qc is not None:
            _print_json(qc_product(args.qc))
        elif args.run_batch is not None:
            outcome = AutopilotOrchestrator().run_batch(args.run_batch)
            _print_json(outcome.__dict__)
        elif args.stop is not None:
            if not AutopilotOrchestrator().stop_run(args.stop):
                logger.warning(f"Run {args.stop} was not running")
        elif args.start_autopilot or args.worker:
            from scheduler import build_scheduler, run_scheduler
            dispatcher = build_scheduler() if args.worker else None
            if args.start_autopilot:
                orchestrator = dispatcher.orchestrator if dispatcher else AutopilotOrchestrator()
                _print_json(orchestrator.start_run(args.start_autopilot, args.batch_size))
                if not dispatcher:
                    logger.info("Run created. Start a worker (--worker) to process it.")
            if dispatcher:
                run_scheduler(dispatcher)
        else:
            parser.print_help()
    except InvalidRequest as e:
        logger.error(f"Invalid request: {e}")
        sys.exit(2)
    except ModelError as e:
        logger.error(f"Model call failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""Delete runner entry point.

Usage:
    python -m services.deletion.delete_runner <document_id> [<document_id> ...] [--owner-id <id>]
"""

import argparse
import asyncio

from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from services.bootstrap import Pipeline


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Delete documents with their vectors, blobs and chunks.")
    parser.add_argument("document_ids", nargs="+")
    parser.add_argument("--owner-id", default=None, help="Only delete documents of this owner")
    return parser.parse_args()


async def main() -> int:
    args = parse_args()
    logger = setup_logging()
    pipeline = Pipeline(HelperConfig(logger=logger))
    try:
        await pipeline.boot()
        outcomes = await pipeline.deletion.do_delete_many(args.document_ids, owner_id=args.owner_id)
        for outcome in outcomes:
            if outcome.deleted:
                logger.info("%s: deleted (%d vectors).", outcome.document_id, outcome.vectors_deleted, color="green")
            else:
                logger.error("%s: %s %s", outcome.document_id, outcome.error_code, outcome.error_message)
        return 0 if all(o.deleted for o in outcomes) else 1
    finally:
        await pipeline.close()


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))

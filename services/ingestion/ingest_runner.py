"""Ingestion runner entry point.

Chunks and embeds the extracted text of one document, or re-embeds the
stored chunks of a FAILED document.

Usage:
    python -m services.ingestion.ingest_runner <document_id> <text_file>
    python -m services.ingestion.ingest_runner <document_id> --reembed
"""

import argparse
import asyncio
from pathlib import Path

from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.errors import PipelineError
from services.bootstrap import Pipeline


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chunk and embed one document.")
    parser.add_argument("document_id", help="Id of the document row")
    parser.add_argument("text_file", nargs="?", help="UTF-8 file holding the extracted plain text")
    parser.add_argument("--reembed", action="store_true", help="Re-embed the stored chunks of a FAILED document")
    args = parser.parse_args()
    if not args.reembed and not args.text_file:
        parser.error("text_file is required unless --reembed is given")
    return args


async def main() -> int:
    args = parse_args()
    logger = setup_logging()
    pipeline = Pipeline(HelperConfig(logger=logger))
    try:
        await pipeline.boot()
        if args.reembed:
            report = await pipeline.ingestion.do_reembed(args.document_id)
        else:
            text = Path(args.text_file).read_text(encoding="utf-8")
            report = await pipeline.ingestion.do_ingest(args.document_id, text)
        logger.info(
            "Document %s ingested: %d chunks in %d batches.",
            args.document_id, report.embedded_chunks, report.total_batches, color="green",
        )
        return 0
    except PipelineError as e:
        logger.error("Ingestion of document %s failed: %s", args.document_id, e)
        return 1
    finally:
        await pipeline.close()


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))

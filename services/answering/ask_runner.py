"""Ask runner entry point.

Retrieves context for a question about one document and streams the answer
to stdout.

Usage:
    python -m services.answering.ask_runner <document_id> <owner_id> "<question>" [--top-k 5]
"""

import argparse
import asyncio
import sys

from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.answer import AnswerTranscript
from shared.models.errors import PipelineError, RetrievalError
from shared.models.retrieval import RetrievalOptions
from services.bootstrap import Pipeline


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ask a question about a document.")
    parser.add_argument("document_id")
    parser.add_argument("owner_id")
    parser.add_argument("question")
    parser.add_argument("--top-k", type=int, default=None)
    parser.add_argument("--min-score", type=float, default=None)
    parser.add_argument("--no-cache", action="store_true")
    return parser.parse_args()


async def main() -> int:
    args = parse_args()
    logger = setup_logging()
    pipeline = Pipeline(HelperConfig(logger=logger))
    try:
        await pipeline.boot()
        options = RetrievalOptions(
            top_k=args.top_k or pipeline.settings.default_top_k,
            min_score=args.min_score if args.min_score is not None else pipeline.settings.default_min_score,
            use_cache=not args.no_cache,
        )
        try:
            result = await pipeline.retrieval.do_retrieve(args.question, args.document_id, args.owner_id, options)
        except RetrievalError as e:
            if e.is_no_content:
                print("The document does not contain anything relevant to this question.")
                return 0
            raise

        transcript = AnswerTranscript()
        async for fragment in pipeline.answering.stream_answer(args.question, result.chunks, transcript=transcript):
            sys.stdout.write(fragment)
            sys.stdout.flush()
        sys.stdout.write("\n")
        return 0 if transcript.completed else 1
    except PipelineError as e:
        logger.error("Question on document %s failed: %s", args.document_id, e)
        return 1
    finally:
        await pipeline.close()


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))

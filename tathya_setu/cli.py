"""
Command-line entry points: an interactive query loop and batch processing of
a file with one claim per line.
"""

import argparse
import asyncio
import json
import logging
import os
import time
from typing import Callable, List, Optional

from dotenv import load_dotenv

from .channels.report import format_console_report
from .errors import EmptyInputError, UpstreamError
from .languages import Language, resolve_language
from .pipeline import FactCheckPipeline

load_dotenv()

logger = logging.getLogger(__name__)


async def _query_loop(
    pipeline: FactCheckPipeline,
    language: Language,
    input_fn: Callable[[str], str],
    output_fn: Callable[[str], None],
) -> None:
    output_fn("\n===== TathyaSetu Fact-Checking =====\n")
    output_fn("Enter text or a link to fact-check (or 'exit' to quit):\n")

    while True:
        try:
            content = input_fn("> ")
        except EOFError:
            break

        if content.strip().lower() in ["exit", "quit", "q"]:
            output_fn("\nThank you for using TathyaSetu.")
            break

        # Skip empty inputs
        if not content.strip():
            continue

        output_fn("\nAnalyzing, please wait...\n")
        start_time = time.time()
        try:
            outcome = await pipeline.analyze(content, language)
        except UpstreamError as e:
            output_fn(f"Analysis failed: {e}")
            continue
        processing_time = time.time() - start_time

        output_fn("\n" + "=" * 80)
        output_fn(format_console_report(content.strip(), outcome))
        output_fn("-" * 80)
        output_fn(f"Processing time: {processing_time:.2f} seconds")
        output_fn("=" * 80)


def run_manual_query(
    pipeline: FactCheckPipeline,
    language: Language = Language.EN,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
) -> None:
    """Analyze claims typed at the prompt until the user exits."""
    asyncio.run(_query_loop(pipeline, language, input_fn, output_fn))


async def _process_claims(pipeline: FactCheckPipeline, claims: List[str], language: Language) -> List[dict]:
    results = []
    for i, claim in enumerate(claims):
        logger.info(f"Processing claim {i + 1}/{len(claims)}: {claim[:50]}...")
        start_time = time.time()
        try:
            outcome = await pipeline.analyze(claim, language)
        except (EmptyInputError, UpstreamError) as e:
            logger.error(f"Claim {i + 1} failed: {e}")
            results.append({"claim": claim, "error": str(e)})
            continue
        results.append({
            "claim": claim,
            "result": outcome.result.to_json_dict(),
            "sources": [s.model_dump() for s in outcome.sources],
            "report": format_console_report(claim, outcome),
            "processing_time": time.time() - start_time,
        })
    return results


def process_file(
    file_path: str,
    output_dir: Optional[str] = None,
    pipeline: Optional[FactCheckPipeline] = None,
    language: Language = Language.EN,
) -> Optional[str]:
    """
    Process multiple claims from a file.

    Args:
        file_path: Path to text file with one claim per line
        output_dir: Directory to save results (defaults to 'results')

    Returns:
        Path of the JSON results file, or None when there was nothing to do.
    """
    if not os.path.exists(file_path):
        logger.error(f"File {file_path} not found.")
        return None

    output_dir = output_dir or "results"
    os.makedirs(output_dir, exist_ok=True)

    with open(file_path, "r", encoding="utf-8") as f:
        claims = [line.strip() for line in f if line.strip()]

    if not claims:
        logger.warning("No claims found in the file.")
        return None

    pipeline = pipeline or FactCheckPipeline()
    results = asyncio.run(_process_claims(pipeline, claims, language))

    timestamp = time.strftime("%Y%m%d-%H%M%S")
    base_filename = os.path.splitext(os.path.basename(file_path))[0]
    json_path = os.path.join(output_dir, f"{base_filename}_{timestamp}_results.json")
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(results, f, indent=2, ensure_ascii=False)

    logger.info(f"Processed {len(claims)} claims; results saved to {json_path}")
    return json_path


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    parser = argparse.ArgumentParser(description="TathyaSetu misinformation checks from the command line.")
    parser.add_argument("--language", "-l", default="en", help="Reply language code (e.g. en, hi, bn)")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("query", help="Interactive fact-checking prompt")
    batch = subparsers.add_parser("batch", help="Process multiple claims from a file")
    batch.add_argument("file_path", help="Path to text file with one claim per line")
    batch.add_argument("--output", "-o", help="Directory to save results (defaults to 'results')")

    args = parser.parse_args(argv)
    language = resolve_language(args.language)

    if args.command == "batch":
        process_file(args.file_path, args.output, language=language)
    else:
        run_manual_query(FactCheckPipeline(), language)


if __name__ == "__main__":
    main()

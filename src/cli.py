"""Command-line interface for the estimate analysis pipeline."""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from estimator import (
    AnalysisRequest,
    EstimateAnalysisPipeline,
    EstimatorError,
    OperationSupervisor,
    ReviewAnalysis,
    VisionExtractionClient,
    classify_estimate,
    process_batch,
)
from estimator.classifier import handle_classify_request
from estimator.storage import FileSystemDocumentSource, InMemoryAnalysisStore
from estimator.storage.base import dump_json

DOCUMENT_SUFFIXES = (".pdf", ".png", ".jpg", ".jpeg")


def build_pipeline(documents_dir: Path, max_runtime_ms: int) -> EstimateAnalysisPipeline:
    """Pipeline over local files, keeping results in memory."""
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise SystemExit("OPENAI_API_KEY is not set")

    return EstimateAnalysisPipeline(
        extractor=VisionExtractionClient(
            api_key=api_key,
            model_name=os.getenv("VISION_MODEL", "gpt-4o"),
            base_url=os.getenv("OPENAI_BASE_URL") or None,
        ),
        document_source=FileSystemDocumentSource(documents_dir),
        analysis_store=InMemoryAnalysisStore(),
        supervisor=OperationSupervisor(),
        max_runtime_ms=max_runtime_ms,
    )


def print_review(review: ReviewAnalysis) -> None:
    """Print one analysis.

    Args:
        review: Completed analysis
    """
    summary = review.analysis.summary
    verdict = review.classification
    confidence = verdict.confidence.value if verdict.confidence else "-"
    print(f"\n{review.review_id}")
    print(f"  Classification: {verdict.classification.value} (confidence: {confidence})")
    print(f"  Scores: {verdict.scores.model_dump()}")
    print(f"  Line items: {summary.item_count}, total: ${summary.total_amount:,.2f}")
    print(f"  Trades: {', '.join(sorted(summary.trades)) or '-'}")
    for item in review.analysis.line_items:
        print(f"    - [{item.trade}] {item.description}: {item.qty:g} {item.unit} "
              f"@ {item.unit_price} = {item.total}")


def save_results(results: list[ReviewAnalysis], output_path: Path) -> None:
    """Save analyses to a JSON file.

    Args:
        results: Completed analyses
        output_path: Path to output JSON file
    """
    with open(output_path, 'w') as f:
        json.dump([json.loads(dump_json(result)) for result in results], f, indent=2)


def analyze_command(args: argparse.Namespace) -> int:
    directory = Path(args.directory)
    files = sorted(p for p in directory.iterdir() if p.suffix.lower() in DOCUMENT_SUFFIXES)
    if not files:
        print(f"No estimate documents found in {directory}")
        return 1

    pipeline = build_pipeline(directory, args.max_runtime_ms)
    requests = [
        AnalysisRequest(review_id=path.stem, document_reference=path.name, document_type=args.document_type)
        for path in files
    ]

    print("=" * 80)
    print(f"Analyzing {len(requests)} document(s) from {directory}")
    print("=" * 80)

    results, metrics = process_batch(pipeline, requests, max_workers=args.workers, clear_log=False)

    for review in results:
        print_review(review)

    print("\n" + "=" * 80)
    print("SUMMARY")
    print("=" * 80)
    print(f"Documents: {metrics.requests}, succeeded: {metrics.succeeded}, "
          f"failed: {metrics.failed}, rejected: {metrics.rejected}, retries: {metrics.retries}")
    for error in metrics.errors:
        print(f"  ! {error['review_id']}: {error['error']}")
    ops = metrics.supervisor
    print(f"Operations: {ops.total_operations} ({ops.failed_operations} failed), "
          f"avg {ops.avg_duration_ms:.0f}ms, max {ops.max_duration_ms:.0f}ms")

    if args.output:
        save_results(results, Path(args.output))
        print(f"\nResults saved to: {args.output}")

    return 0 if metrics.failed == 0 else 2


def classify_command(args: argparse.Namespace) -> int:
    text = Path(args.file).read_text() if args.file else sys.stdin.read()
    if args.json:
        status, payload = handle_classify_request({"text": text})
        print(json.dumps(payload, indent=2))
        return 0 if status == 200 else 1

    try:
        verdict = classify_estimate(text)
    except EstimatorError as e:
        print(f"Rejected: {e.message} {e.details}")
        return 1
    print(f"{verdict.classification.value} ({verdict.confidence.value}) {verdict.scores.model_dump()}")
    return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(description="Estimate analysis pipeline")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "WARNING"))
    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="Analyze estimate documents in a directory")
    analyze.add_argument("directory")
    analyze.add_argument("--document-type", choices=["contractor", "carrier"], default="contractor")
    analyze.add_argument("--workers", type=int, default=4)
    analyze.add_argument("--max-runtime-ms", type=int, default=20000)
    analyze.add_argument("--output", help="Write results JSON here")
    analyze.set_defaults(handler=analyze_command)

    classify = commands.add_parser("classify", help="Classify estimate text (file or stdin)")
    classify.add_argument("file", nargs="?")
    classify.add_argument("--json", action="store_true", help="Print the service response payload")
    classify.set_defaults(handler=classify_command)

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper())
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())

"""CLI entry point for running FHIR server conformance tests."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from fhir_sprinkler.client import FhirClient
from fhir_sprinkler.config import RunConfig
from fhir_sprinkler.discovery import DiscoveredModule, discover
from fhir_sprinkler.engine import TestRunner
from fhir_sprinkler.fixtures import FixtureProvider
from fhir_sprinkler.models.result import TestResult
from fhir_sprinkler.reporting import ResultLogger, TestResults

STATUS_SYMBOLS = {
    "success": "✓",
    "fail": "✗",
    "skipped": "-",
}


def log_results_summary(log: logging.Logger, results: Sequence[TestResult]) -> None:
    """Log a formatted summary of test results."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for result in results:
        symbol = STATUS_SYMBOLS.get(result.outcome, "?")
        log.info(
            "%s %s/%s %s: %s (%.2fs)",
            symbol,
            result.category,
            result.code,
            result.title,
            result.outcome,
            result.duration,
        )
        if result.message:
            log.info("  Message: %s", result.message)


def format_output(results: Sequence[TestResult]) -> dict[str, Any]:
    """Format test results for JSON output."""
    all_results: list[dict[str, Any]] = []
    for result in results:
        all_results.append(
            {
                "category": result.category,
                "code": result.code,
                "title": result.title,
                "outcome": result.outcome,
                "duration": result.duration,
                "message": result.message,
                "status": result.error.status if result.error else None,
                "diagnostics": list(result.error.diagnostics) if result.error else [],
            }
        )

    return {
        "total": len(all_results),
        "passed": sum(1 for r in all_results if r["outcome"] == "success"),
        "failed": sum(1 for r in all_results if r["outcome"] == "fail"),
        "skipped": sum(1 for r in all_results if r["outcome"] == "skipped"),
        "results": all_results,
    }


def format_listing(modules: Sequence[DiscoveredModule]) -> dict[str, Any]:
    """Format discovered modules and their cases for JSON output."""
    return {
        "modules": [
            {
                "name": module.name,
                "cases": [
                    {"code": case.descriptor.code, "title": case.descriptor.title}
                    for case in module.cases
                ],
            }
            for module in modules
        ]
    }


def fixtures_for(config: RunConfig) -> FixtureProvider:
    """Fixture set of a run."""
    if config.fixtures_path is None:
        return FixtureProvider.default()
    return FixtureProvider.from_path(config.fixtures_path)


async def run(
    config: RunConfig,
    codes: Sequence[str] = (),
    output_path: Path | None = None,
) -> int:
    """Run the selected tests against the configured server and return exit code."""
    log = logging.getLogger("fhir_sprinkler")

    fixtures = fixtures_for(config)
    log.info("Discovering tests in %s", ", ".join(config.sources))
    modules = discover(config.sources, codes, fixtures=fixtures)

    if not modules:
        log.info("No test cases selected")
        print(json.dumps(format_output([])))
        return 0

    log.info("Running tests against %s", config.server_url)
    results = TestResults()
    results.subscribe(ResultLogger())

    async with FhirClient.from_config(config) as client:
        runner = TestRunner(
            client=client,
            results=results,
            fixtures=fixtures,
            report_suppressed_cases=config.report_suppressed_cases,
        )
        await runner.run(modules)

    log_results_summary(log, results.results)

    output = format_output(results.results)
    rendered = json.dumps(output, indent=2)
    if output_path is not None:
        output_path.write_text(rendered, encoding="utf-8")
        log.info("Report written to %s", output_path)
    print(rendered)

    return 1 if results.has_failures else 0


def list_tests(sources: Sequence[str], fixtures_path: Path | None = None) -> int:
    """Print the available modules and cases and return exit code."""
    fixtures = (
        FixtureProvider.from_path(fixtures_path)
        if fixtures_path is not None
        else FixtureProvider.default()
    )
    modules = discover(sources, fixtures=fixtures)
    print(json.dumps(format_listing(modules), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Argument parser of the CLI."""
    parser = argparse.ArgumentParser(
        description="Run conformance tests on a FHIR server"
    )
    parser.add_argument(
        "--source",
        action="append",
        dest="sources",
        help="Test set entry point or importable module (repeatable, default: default)",
    )
    parser.add_argument(
        "--fixtures",
        type=Path,
        help="Directory or zip archive of example resources",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    test_parser = subparsers.add_parser("test", help="Run tests against a server")
    test_parser.add_argument("url", help="Base URL of the FHIR server")
    test_parser.add_argument(
        "codes",
        nargs="*",
        help="Test code prefixes or module names to run (case-insensitive), "
        "all when omitted",
    )
    test_parser.add_argument(
        "--format",
        choices=["json", "xml"],
        default="json",
        help="Preferred resource format",
    )
    test_parser.add_argument(
        "--format-param",
        action="store_true",
        help="Request the format with the _format parameter instead of Accept",
    )
    test_parser.add_argument(
        "--timeout",
        type=float,
        default=30,
        help="Request timeout in seconds",
    )
    test_parser.add_argument(
        "--token",
        help="Bearer token for the server",
    )
    test_parser.add_argument(
        "--output",
        type=Path,
        help="Also write the JSON report to this file",
    )
    test_parser.add_argument(
        "--report-suppressed",
        action="store_true",
        help="Report cases skipped by a failed module initialization",
    )

    subparsers.add_parser("list", help="List available test modules and cases")
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    sources = tuple(args.sources or ("default",))

    if args.command == "list":
        sys.exit(list_tests(sources, args.fixtures))

    config = RunConfig(
        server_url=args.url,
        auth_token=SecretStr(args.token) if args.token else None,
        preferred_format=args.format,
        use_format_param=args.format_param,
        timeout=args.timeout,
        sources=sources,
        fixtures_path=args.fixtures,
        report_suppressed_cases=args.report_suppressed,
    )
    exit_code = asyncio.run(run(config, codes=args.codes, output_path=args.output))
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()

"""
Main entry point for shiptrace.
"""

import argparse
import asyncio
import json
import sys

from shiptrace.crawler.cascade import CascadeController
from shiptrace.crawler.models import ExtractionRequest, ExtractionResult
from shiptrace.utils.config import get_settings
from shiptrace.utils.logging import configure_logging, get_logger


def _parse_pairs(values: list[str], flag: str) -> dict[str, str]:
    """Parse repeated KEY=VALUE options into a dict."""
    pairs: dict[str, str] = {}
    for value in values:
        key, sep, rest = value.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"{flag} expects KEY=VALUE, got {value!r}")
        pairs[key.strip()] = rest.strip()
    return pairs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shiptrace",
        description="shiptrace - extract vessel records from a web page",
    )
    parser.add_argument("url", help="Page to load")
    parser.add_argument(
        "--response-match",
        help="Substring identifying the network response that carries the data",
    )
    parser.add_argument("--referer", help="Referer header sent with page requests")
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="K=V",
        help="Extra request header (repeatable)",
    )
    parser.add_argument("--row-selector", help="CSS selector for one record row")
    parser.add_argument(
        "--field",
        action="append",
        default=[],
        metavar="NAME=SEL",
        help="Field name to CSS selector within a row (repeatable)",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        default=None,
        help="Return the canned mock result without a browser",
    )
    parser.add_argument("--timeout-ms", type=int, help="Overall deadline in milliseconds")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument(
        "--console-log",
        action="store_true",
        help="Human-readable logs instead of JSON",
    )
    return parser


def build_request(args: argparse.Namespace) -> ExtractionRequest:
    """Build an ExtractionRequest from parsed arguments.

    Raises:
        argparse.ArgumentTypeError: If a --header or --field value is malformed.
        pydantic.ValidationError: If the request is invalid.
    """
    fields = _parse_pairs(args.field, "--field")
    return ExtractionRequest(
        url=args.url,
        referer=args.referer,
        extra_headers=_parse_pairs(args.header, "--header"),
        response_match=args.response_match,
        dom_row_selector=args.row_selector,
        dom_field_map=fields or None,
        use_mock=args.mock,
        timeout_ms=args.timeout_ms,
    )


async def run(request: ExtractionRequest) -> ExtractionResult:
    """Run one request through a fresh controller."""
    return await CascadeController().run(request)


def main(argv: list[str] | None = None) -> int:
    """Main entry point. Returns 0 when records were extracted, 1 otherwise."""
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(
        log_level=args.log_level or settings.general.log_level,
        json_format=not args.console_log,
        to_file=False,
    )
    logger = get_logger(__name__)

    try:
        request = build_request(args)
    except (argparse.ArgumentTypeError, ValueError) as e:
        parser.error(str(e))

    logger.info("shiptrace starting", version=settings.general.version, url=request.url)
    result = asyncio.run(run(request))

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())

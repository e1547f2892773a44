"""Command line entry point: invoke one operation from a descriptor file."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from aws_invoker.client import Client
from aws_invoker.config import load_settings
from aws_invoker.descriptor import load_descriptor
from aws_invoker.domain.anomalies import is_anomaly
from aws_invoker.errors import UnknownOperation
from aws_invoker.logging_utils import configure_logging
from aws_invoker.utils.serialization import dumps

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aws-invoker",
        description="Invoke an AWS operation described by a service-2.json descriptor",
    )
    parser.add_argument("descriptor", help="Path to the service descriptor JSON")
    parser.add_argument("operation", nargs="?", help="Operation name, e.g. ListBuckets")
    parser.add_argument("--params", default="{}", help="Operation parameters as a JSON object")
    parser.add_argument("--region", help="Region (default: AWS_REGION / AWS_DEFAULT_REGION)")
    parser.add_argument("--endpoint-url", help="Endpoint override, e.g. http://localhost:4566")
    parser.add_argument("--timeout", type=float, help="Overall deadline in seconds")
    parser.add_argument(
        "--validate", action="store_true", help="Validate parameters against the input schema"
    )
    parser.add_argument(
        "--list-operations", action="store_true", help="Print operation names and exit"
    )
    return parser


async def _run(args: argparse.Namespace, params: dict[str, object]) -> int:
    service = load_descriptor(args.descriptor)
    async with Client(
        service,
        region=args.region,
        endpoint_override=args.endpoint_url,
        validate_requests=True if args.validate else None,
        settings=load_settings(),
    ) as client:
        if args.list_operations:
            print("\n".join(client.operation_names()))
            return 0
        result = await client.invoke(args.operation, params, timeout=args.timeout)
    print(dumps(dict(result)))
    return 1 if is_anomaly(result) else 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.list_operations and not args.operation:
        parser.error("operation is required (unless using --list-operations)")
    try:
        params = json.loads(args.params)
    except json.JSONDecodeError as exc:
        parser.error(f"--params is not valid JSON: {exc}")
    if not isinstance(params, dict):
        parser.error("--params must be a JSON object")

    configure_logging()
    try:
        return asyncio.run(_run(args, params))
    except UnknownOperation as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Could not load descriptor %s: %s", args.descriptor, exc)
        return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

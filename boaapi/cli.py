from __future__ import annotations

import argparse
import json
import logging
import sys

from .auth import load_credentials
from .client import BoaClient
from .config import DEFAULT_CONFIG_PATH
from .errors import BoaException
from .job import JobHandle
from .transport import TransportError
from .utils import admin_filter, name_filter
from .wire import RpcFault, WireProtocolError


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[boaapi] %(message)s",
        stream=sys.stderr,
    )


def _read_query(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r", encoding="utf-8") as fp:
        return fp.read()


def _emit_job(job: JobHandle) -> None:
    sys.stdout.write(
        "%d\t%s\t%s\tcompiler=%s\texecution=%s\n"
        % (
            job.id,
            job.submitted,
            job.input.name,
            job.compiler_status.value,
            job.exec_status.value,
        )
    )


def _add_verbose_argument(
    parser: argparse.ArgumentParser, *, default: object = False
) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=default,
        help="Enable debug logging of RPC traffic",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="boa-client",
        description="Command line client for the Boa API.",
    )
    _add_verbose_argument(parser, default=False)
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to client config (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--endpoint",
        default=None,
        help="Boa API endpoint URL override (must be HTTPS)",
    )
    parser.add_argument(
        "--username",
        default=None,
        help="Boa username (default: $BOA_USERNAME or prompt)",
    )
    parser.add_argument(
        "--password",
        default=None,
        help="Boa password (default: $BOA_PASSWORD or prompt)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="HTTP timeout in seconds",
    )

    subparsers = parser.add_subparsers(dest="action", required=True)

    datasets = subparsers.add_parser("datasets", help="List available datasets")
    _add_verbose_argument(datasets, default=argparse.SUPPRESS)
    datasets.add_argument("--no-admin", action="store_true", help="Hide [admin] datasets")
    datasets.add_argument("--match", help="Only datasets whose name contains TEXT")
    datasets.add_argument("--format", choices=["text", "json"], default="text")

    jobs = subparsers.add_parser("jobs", help="List submitted jobs")
    _add_verbose_argument(jobs, default=argparse.SUPPRESS)
    jobs.add_argument("--public", action="store_true", help="Only public jobs")
    jobs.add_argument("--offset", type=int, default=0)
    jobs.add_argument("--length", type=int, default=20)

    count = subparsers.add_parser("count", help="Count submitted jobs")
    _add_verbose_argument(count, default=argparse.SUPPRESS)
    count.add_argument("--public", action="store_true", help="Only public jobs")

    job = subparsers.add_parser("job", help="Show one job")
    _add_verbose_argument(job, default=argparse.SUPPRESS)
    job.add_argument("job_id", type=int)
    job.add_argument("--format", choices=["text", "json"], default="text")

    query = subparsers.add_parser("query", help="Submit a query")
    _add_verbose_argument(query, default=argparse.SUPPRESS)
    query.add_argument("query_file", help="File containing the query, or - for stdin")
    query.add_argument("--dataset", help="Dataset name (default: first available)")
    query.add_argument("--wait", action="store_true", help="Wait for the job to finish")

    output = subparsers.add_parser("output", help="Print job output")
    _add_verbose_argument(output, default=argparse.SUPPRESS)
    output.add_argument("job_id", type=int)
    output.add_argument("--full", action="store_true", help="Fetch the complete output")
    output.add_argument("--limit", type=int, default=None, help="Output size cap in bytes")

    source = subparsers.add_parser("source", help="Print job source")
    _add_verbose_argument(source, default=argparse.SUPPRESS)
    source.add_argument("job_id", type=int)

    return parser


def _run(client: BoaClient, ns: argparse.Namespace) -> int:
    if ns.action == "datasets":
        filters = []
        if ns.no_admin:
            filters.append(admin_filter)
        if ns.match:
            filters.append(name_filter(ns.match))
        datasets = client.datasets(filters)
        if ns.format == "json":
            payload = [dataset.to_wire() for dataset in datasets]
            sys.stdout.write(json.dumps(payload, indent=2) + "\n")
        else:
            for dataset in datasets:
                sys.stdout.write("%d\t%s\n" % (dataset.id, dataset.name))
        return 0

    if ns.action == "jobs":
        for job in client.job_list(ns.public, ns.offset, ns.length):
            _emit_job(job)
        return 0

    if ns.action == "count":
        sys.stdout.write("%d\n" % client.job_count(ns.public))
        return 0

    if ns.action == "job":
        job = client.get_job(ns.job_id)
        if ns.format == "json":
            sys.stdout.write(json.dumps(job.to_dict(), indent=2, default=str) + "\n")
        else:
            _emit_job(job)
        return 0

    if ns.action == "query":
        job = client.query(_read_query(ns.query_file), ns.dataset)
        _emit_job(job)
        if ns.wait:
            ok = job.wait()
            _emit_job(job)
            if not ok:
                errors = job.compiler_errors
                if errors:
                    sys.stderr.write(errors.rstrip("\n") + "\n")
                return 1
        return 0

    if ns.action == "output":
        job = client.get_job(ns.job_id)
        if ns.full:
            job.write_output(sys.stdout.buffer)
            return 0
        if ns.limit is not None:
            job.output_size_limit = ns.limit
        sys.stdout.write(job.output())
        return 0

    job = client.get_job(ns.job_id)
    sys.stdout.write(job.source)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    _configure_logging(bool(getattr(ns, "verbose", False)))

    try:
        credentials = load_credentials(username=ns.username, password=ns.password)
        with BoaClient(ns.endpoint, config_path=ns.config, timeout=ns.timeout) as client:
            client.login(credentials.username, credentials.password)
            return _run(client, ns)
    except (ValueError, BoaException, RpcFault, TransportError, WireProtocolError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2

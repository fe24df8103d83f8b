from __future__ import annotations

import argparse
import logging
import math
import sys

from scanport.scanner import ScanRequest, scan
from scanport.targets import InvalidSubnet, parse_subnet


def _timeout(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid floating point number '{value}'") from None
    if seconds < 0 or not math.isfinite(seconds):
        raise argparse.ArgumentTypeError(f"Invalid floating point number '{value}'")
    return seconds


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'") from None
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"Invalid integer '{value}'")
    return port


def _subnet(value: str) -> str:
    try:
        return parse_subnet(value)
    except InvalidSubnet as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="scanport",
        description="Try connecting to a TCP port on every host of one or more /24 subnets "
        "in parallel and print the addresses that accept.",
        epilog="example: scanport 0.5 80 10.60.3.0/24",
    )
    p.add_argument("--debug", action="store_true", help="Log every probe outcome to stderr")
    p.add_argument("timeout", type=_timeout, help="Seconds to wait for each connection, e.g. 0.5")
    p.add_argument("port", type=_port, help="TCP port to probe")
    p.add_argument("subnets", type=_subnet, nargs="+", metavar="subnet", help="IPv4 subnet of the form A.B.C.0/24")
    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        stream=sys.stderr,
        format="%(message)s",
    )

    request = ScanRequest(timeout=args.timeout, port=args.port, subnets=args.subnets)
    try:
        hosts = scan(request)
    except (OSError, RuntimeError) as exc:
        print(f"{parser.prog}: {exc}", file=sys.stderr)
        return 1

    for host in hosts:
        print(host, flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())

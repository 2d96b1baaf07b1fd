from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from dnslib import QTYPE, DNSRecord

from eyrie import __version__
from eyrie.config.config_parser import (
    load_resolvers,
    load_zone_providers,
    load_zone_transfer_config,
    parse_config_file,
)
from eyrie.config.logging_config import init_logging
from eyrie.errors import ConfigError
from eyrie.resolvers.chain import ResolverChain
from eyrie.zones.catalog import ZoneCatalog
from eyrie.zones.provider import BaseZoneProvider
from eyrie.zones.transfer import ZoneTransferDriver

logger = logging.getLogger("eyrie.main")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eyrie",
        description="Authoritative and forwarding DNS resolution core",
    )
    parser.add_argument("--config", default="config.yaml", help="Path to YAML config")
    parser.add_argument(
        "--query",
        metavar="NAME",
        help="Resolve NAME once through the resolver chain, print the reply and exit",
    )
    parser.add_argument(
        "--qtype",
        default="A",
        help="Record type used with --query (default: A)",
    )
    parser.add_argument(
        "--refresh-once",
        action="store_true",
        help="Run a single secondary zone transfer cycle and exit",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _unload(providers: List[BaseZoneProvider]) -> None:
    for provider in providers:
        try:
            provider.unload()
        except Exception:
            logger.exception("Error unloading zone provider %s", provider.name)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Brief: CLI entry point.

    Inputs:
      - argv: Command-line arguments (defaults to sys.argv[1:]).

    Outputs:
      - int exit code: 0 on success, 1 on configuration errors or an
        unknown --qtype.

    Example use:
        PYTHONPATH=src python -m eyrie.main --config config.yaml --query example.com
    """
    args = _build_parser().parse_args(argv)

    try:
        cfg = parse_config_file(args.config)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    init_logging(cfg.get("logging"))
    logger.info("Loaded config from %s", args.config)

    providers: List[BaseZoneProvider] = []
    try:
        providers = load_zone_providers(cfg)
        catalog = ZoneCatalog()
        chain = ResolverChain(load_resolvers(cfg, catalog))
        transfer_cfg = load_zone_transfer_config(cfg)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        _unload(providers)
        return 1

    logger.info(
        "Loaded %d zone providers and %d resolvers: %s",
        len(providers),
        len(chain.resolvers),
        [r.name for r in chain.resolvers],
    )

    driver = ZoneTransferDriver(
        providers,
        timeout=transfer_cfg.timeout,
        honor_refresh=transfer_cfg.honor_refresh,
        on_refresh=lambda: catalog.load(providers),
    )
    catalog.load(providers)

    try:
        if args.refresh_once:
            counts = driver.refresh_all()
            print(" ".join(f"{k}={v}" for k, v in counts.items()))
            return 0

        if args.query:
            qtype = args.qtype.upper()
            if qtype not in QTYPE.reverse:
                print(f"Unknown query type {args.qtype!r}", file=sys.stderr)
                return 1
            reply = chain.resolve_or_servfail(DNSRecord.question(args.query, qtype))
            print(reply)
            return 0

        shutdown_event = threading.Event()

        def _request_shutdown(signum, _frame):
            logger.info("Received %s, shutting down", signal.Signals(signum).name)
            shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                signal.signal(sig, _request_shutdown)
            except (ValueError, OSError):  # pragma: no cover - non-main thread
                logger.warning("Could not install %s handler", sig.name)

        if transfer_cfg.enabled:
            driver.start(transfer_cfg.interval)
            logger.info("Zone transfer loop started (every %.0fs)", transfer_cfg.interval)

        while not shutdown_event.wait(1.0):
            pass
        driver.stop(timeout=5.0)
        return 0
    finally:
        chain.shutdown()
        _unload(providers)


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover

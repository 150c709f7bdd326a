from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import List, Optional

from .config.config_parser import build_profiles, parse_config, parse_config_file
from .config.logging_config import init_logging
from .discovery import ServiceDiscovery
from .transports.multicast import MulticastError, MulticastService


def _install_signal_handlers(shutdown_event: threading.Event) -> None:
    def _handler(signum, frame):  # type: ignore[no-untyped-def]
        logging.getLogger("dnssd.main").info(
            "Received signal %s, shutting down", signum
        )
        shutdown_event.set()

    # signal.signal only works from the main thread (tests may call main()
    # from a worker thread).
    if threading.current_thread() is not threading.main_thread():
        return
    for name in ("SIGTERM", "SIGINT"):
        sig = getattr(signal, name, None)
        if sig is not None:
            signal.signal(sig, _handler)


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point: advertise configured services and browse the link.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        Process exit code: 0 on clean shutdown, 1 on configuration or
        transport errors.

    Example use:
        dnssd --config dnssd.yaml --browse
        dnssd --config dnssd.yaml --duration 30
    """
    parser = argparse.ArgumentParser(
        description="Advertise and browse DNS-SD services over multicast DNS"
    )
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument(
        "--browse",
        action="store_true",
        help="Send a service-enumeration query at startup and log the answers",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override logging.level from the config (debug, info, warn, error)",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0.0,
        help="Exit after this many seconds (0 runs until SIGINT/SIGTERM)",
    )
    args = parser.parse_args(argv)

    try:
        cfg = parse_config_file(args.config) if args.config else parse_config({})
    except (OSError, ValueError) as exc:
        print(str(exc))
        return 1

    log_cfg = {
        k: getattr(cfg.logging, k) for k in ("level", "stderr", "file", "syslog")
    }
    if args.log_level:
        log_cfg["level"] = args.log_level
    init_logging(log_cfg)
    logger = logging.getLogger("dnssd.main")
    if args.config:
        logger.info("Loaded config from %s", args.config)

    try:
        profiles = build_profiles(cfg)
    except ValueError as exc:
        logger.error("Invalid service definition: %s", exc)
        return 1

    transport = MulticastService(cfg.multicast)
    try:
        transport.start()
    except MulticastError as exc:
        logger.error("Unable to start mDNS transport: %s", exc)
        transport.dispose()
        return 1

    shutdown_event = threading.Event()
    _install_signal_handlers(shutdown_event)

    sd = ServiceDiscovery(transport)
    sd.service_discovered.subscribe(
        lambda name: logger.info("Discovered service type %s", name)
    )
    sd.service_instance_discovered.subscribe(
        lambda name: logger.info("Discovered service instance %s", name)
    )

    exit_code = 0
    try:
        for profile in profiles:
            sd.advertise(profile)
            sd.announce(profile)
        if args.browse or cfg.browse:
            sd.query_all_services()

        timeout = args.duration if args.duration > 0 else None
        shutdown_event.wait(timeout)
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
    except MulticastError as exc:
        logger.error("mDNS transport failure: %s", exc)
        exit_code = 1
    finally:
        sd.dispose()
        transport.dispose()

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover

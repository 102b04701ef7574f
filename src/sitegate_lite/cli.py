"""sitegate-lite CLI entry point.

Usage: sitegate-lite [command]
"""
import argparse
import logging
import sys

from sitegate_lite.session import DEFAULT_TTL_SECONDS

log = logging.getLogger(__name__)

BOOTSTRAP_ADDR = "127.0.0.1"
WILDCARD_HOSTS = ("0.0.0.0", "::", "")


def _add_serve_parser(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "serve",
        help="Serve the admin pages behind the access gate.",
    )
    p.add_argument(
        "--port", type=int, default=8181,
        help="Port to listen on (default: 8181)",
    )
    p.add_argument(
        "--host", default="127.0.0.1",
        help="Bind address (default: 127.0.0.1)",
    )
    p.add_argument(
        "--root", default=".",
        help="Document root for static admin pages (default: current directory)",
    )
    p.add_argument(
        "--allow-remote", action="store_true",
        help="Accept requests from non-loopback addresses.",
    )
    p.add_argument(
        "--session-addr", action="append", dest="session_addrs", metavar="ADDR",
        help="Client address to mint a startup session for; repeatable "
             f"(default: {BOOTSTRAP_ADDR}). Remote addresses also need --allow-remote.",
    )
    p.add_argument(
        "--password", default="",
        help="Initial admin password (default: none, password changes refused)",
    )
    p.add_argument(
        "--session-ttl", type=float, default=DEFAULT_TTL_SECONDS,
        help=f"Session lifetime in seconds (default: {DEFAULT_TTL_SECONDS})",
    )
    p.add_argument(
        "--read-timeout", type=float, default=10.0,
        help="Seconds a client may take to send its request (default: 10)",
    )
    p.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )


def _add_hash_password_parser(subparsers: argparse._SubParsersAction) -> None:
    p = subparsers.add_parser(
        "hash-password",
        help="Print the stored (salted hash) form of a password.",
    )
    p.add_argument("password")


def _build_server(args: argparse.Namespace):
    """Wire settings, sessions, app and listener from serve arguments.

    Returns (listener, app, sessions), where sessions are the startup
    sessions minted for each --session-addr. The listener is the
    process-wide one; callers own its teardown.
    """
    from sitegate_lite.app import AdminApplication
    from sitegate_lite.security.gate import AccessGate, is_loopback
    from sitegate_lite.server.listener import create_listener
    from sitegate_lite.session import SessionManager
    from sitegate_lite.settings import SettingStore

    settings = SettingStore(allow_remote=args.allow_remote)
    if args.password:
        settings.set_password(args.password)
    registry = SessionManager(ttl=args.session_ttl)
    app = AdminApplication(settings, registry, args.root)

    listener = create_listener(
        AccessGate(registry, settings),
        host=args.host,
        read_timeout=args.read_timeout,
    )
    url_host = BOOTSTRAP_ADDR if args.host in WILDCARD_HOSTS else args.host
    minted = []
    for addr in args.session_addrs or [BOOTSTRAP_ADDR]:
        if not args.allow_remote and not is_loopback(addr):
            log.warning("Session for %s will be refused without --allow-remote", addr)
        session = registry.create(addr)
        minted.append(session)
        log.info(
            "Open http://%s:%d/?sid=%s from %s to administer",
            url_host, args.port, session.session_id, addr,
        )
    return listener, app, minted


def _run_serve(args: argparse.Namespace) -> int:
    from sitegate_lite.server.listener import teardown_listener

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    listener, app, _ = _build_server(args)
    try:
        ok = listener.start(args.port, app, single_thread=True)
    except KeyboardInterrupt:
        ok = True
    finally:
        teardown_listener()
    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitegate-lite",
        description="Embedded admin HTTP front end with session, address and path gating.",
    )
    subparsers = parser.add_subparsers(dest="command")

    _add_serve_parser(subparsers)
    _add_hash_password_parser(subparsers)
    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "serve":
        sys.exit(_run_serve(args))

    if args.command == "hash-password":
        from sitegate_lite.security.gate import hash_password

        print(hash_password(args.password))

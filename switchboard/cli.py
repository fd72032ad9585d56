#!/usr/bin/env python3
"""
Switchboard CLI: patch the call through.

Named after the operator's switchboard: one line in, and the operator tries
each trunk in turn until somebody picks up.

Every command has a phreaker name and a standard alias:

    PHREAKER        STANDARD        WHAT IT DOES
    --------        --------        ----------------------------------
    dial            start, serve    Start the Switchboard API server
    call            ask, send       Send one message through the provider chain
    book            list, ls        List stored conversations
    tap             log, tail       Live wiretap: watch the wire
    ring            status, ping    Ping a running instance
    dump            export          Export a conversation (json/markdown/text)
    flash           info, stats     Show stats and provider config at a glance
    tone            banner          Print the Switchboard banner
"""

import argparse
import asyncio
import sys

from switchboard import __version__

BANNER = r"""
    ╔══════════════════════════════════════════════════╗
    ║                                                  ║
    ║   ███████ ██     ██ ██ ████████  ██████ ██   ██  ║
    ║   ██      ██     ██ ██    ██    ██      ██   ██  ║
    ║   ███████ ██  █  ██ ██    ██    ██      ███████  ║
    ║        ██ ██ ███ ██ ██    ██    ██      ██   ██  ║
    ║   ███████  ███ ███  ██    ██     ██████ ██   ██  ║
    ║                                                  ║
    ║   Patch the call through.              v""" + __version__ + r"""   ║
    ║                                                  ║
    ╚══════════════════════════════════════════════════╝
"""


async def _with_engine(fn):
    """Build an engine from config, run fn(engine), always close it."""
    from switchboard.config import get_config
    from switchboard.main import _setup_logging, create_engine

    cfg = get_config()
    _setup_logging(cfg)
    engine = await create_engine(cfg)
    try:
        return await fn(engine)
    finally:
        await engine.aclose()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_dial(args):
    """Start the Switchboard API server."""
    import uvicorn
    from switchboard.config import get_config
    from switchboard.providers.router import PROVIDER_ORDER

    cfg = get_config()
    host = args.host or cfg.get("server", {}).get("host", "127.0.0.1")
    port = args.port or cfg.get("server", {}).get("port", 8765)
    configured = cfg.get("providers") or {}
    chain = [name for name in PROVIDER_ORDER if name in configured]

    print(BANNER)
    print(f"  Dialing up on {host}:{port}")
    print(f"  Storage: {cfg.get('storage', {}).get('backend', 'sqlite')}")
    print(f"  Chain: {' → '.join(chain) or 'no providers'}")
    print()

    uvicorn.run(
        "switchboard.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )


def cmd_call(args):
    """Send one message through the chain and print the reply."""
    from switchboard.errors import SwitchboardError

    content = " ".join(args.message)
    options = {}
    if args.model:
        options["model"] = args.model
    if args.temperature is not None:
        options["temperature"] = args.temperature

    async def _run(engine):
        return await engine.pipeline.send_message(content, conversation_id=args.conversation, **options)

    try:
        result = asyncio.run(_with_engine(_run))
    except SwitchboardError as e:
        print(f"  ✗  {e}")
        sys.exit(1)
    except ValueError as e:
        print(f"  ✗  {e}")
        sys.exit(2)

    reply = result.assistant_message
    meta = reply.metadata
    print(f"  ☎  {meta.get('provider', '?')} [{meta.get('model', '?')}] "
          f"{meta.get('processing_time_ms', 0):.0f}ms, {meta.get('retries', 0)} retries")
    print("  " + "─" * 56)
    print(reply.content)


def cmd_book(args):
    """List stored conversations."""

    async def _run(engine):
        return engine.store.active_conversation_id, engine.store.list_conversations(args.all)

    active_id, conversations = asyncio.run(_with_engine(_run))
    if not conversations:
        print("  No conversations on the books.")
        return

    for conv in conversations:
        marker = "●" if conv.id == active_id else " "
        flags = ("★" if conv.metadata.starred else "") + ("⌫" if conv.metadata.archived else "")
        print(f"  {marker} {conv.id}  {conv.metadata.message_count:>4} msgs  {flags:2} {conv.title}")


def cmd_tap(args):
    """Live wiretap: watch messages on the wire."""
    from switchboard.wiretap import live_tap
    live_tap(
        log_path=args.log,
        follow=not args.no_follow,
        last_n=args.last,
        role_filter=args.role,
        raw=args.raw,
    )


def cmd_ring(args):
    """Ping a running Switchboard instance."""
    import httpx

    url = args.url or "http://127.0.0.1:8765"
    try:
        resp = httpx.get(f"{url}/api/v1/status", timeout=5)
        if resp.status_code == 200:
            status = resp.json()
            print(f"  ☎  Ring ring... {url} is UP (v{status.get('version', '?')})")
            print(f"  📞 Active conversation: {status.get('active_conversation_id')}")
            print(f"  ⏳ Queue depth: {status.get('queue_depth', 0)}"
                  f"{' (send in flight)' if status.get('processing') else ''}")
            configured = status.get("providers_configured", [])
            print(f"  🔌 Providers: {', '.join(configured) if configured else 'none configured'}")
        else:
            print(f"  ✗  No answer: got HTTP {resp.status_code}")
    except httpx.ConnectError:
        print(f"  ✗  Dead line: nothing at {url}")
    except httpx.HTTPError as e:
        print(f"  ✗  Error: {e}")


def cmd_dump(args):
    """Export a conversation."""

    async def _run(engine):
        conv_id = args.conversation or engine.store.active_conversation_id
        return conv_id, engine.store.export_conversation(conv_id, args.format)

    try:
        conv_id, content = asyncio.run(_with_engine(_run))
    except ValueError as e:
        print(f"  ✗  {e}")
        sys.exit(2)

    if content is None:
        print(f"  ✗  No conversation {conv_id}")
        sys.exit(1)

    if args.output == "-":
        print(content)
        return
    with open(args.output, "w", encoding="utf-8") as f:
        f.write(content)
    print(f"  📦 Dumped {conv_id} ({args.format}) to {args.output}")


def cmd_flash(args):
    """Show stats at a glance."""

    async def _run(engine):
        return engine.store.get_stats(), await engine.router.health()

    stats, health = asyncio.run(_with_engine(_run))

    print(BANNER)
    print("  Conversations")
    print("  " + "─" * 40)
    print(f"  Total:     {stats['total_conversations']}")
    print(f"  Messages:  {stats['total_messages']}")
    print(f"  Tokens:    {stats['total_tokens']:,}")
    print(f"  Starred:   {stats['starred_conversations']}")
    print(f"  Archived:  {stats['archived_conversations']}")
    print()
    print("  Provider chain")
    print("  " + "─" * 40)
    if not health:
        print("  (none)")
    for name, info in health.items():
        mark = "✓" if info["configured"] else "✗"
        print(f"  {mark} {info['priority']}. {name:<8} timeout {info['timeout']}s, "
              f"{info['max_attempts']} attempts")
    print()


def cmd_tone(args):
    """Print the banner."""
    print(BANNER)


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under multiple names (phreaker + standard)."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="switchboard",
        description="Switchboard: patch the call through.",
        epilog=(
            "Each command has a phreaker name and standard aliases.\n"
            "Example: 'switchboard dial' and 'switchboard serve' do the same thing.\n"
            "Run 'switchboard <command> --help' for command-specific options."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"switchboard {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    # dial / start / serve
    def setup_dial(p):
        p.add_argument("--host", default=None, help="Override listen host")
        p.add_argument("--port", "-p", type=int, default=None, help="Override listen port")
        p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")

    _add_command(sub, ["dial", "start", "serve"],
                 "Start the Switchboard API server", cmd_dial, setup_dial)

    # call / ask / send
    def setup_call(p):
        p.add_argument("message", nargs="+", help="Message to send")
        p.add_argument("--conversation", "-c", default=None, help="Conversation id (default: active)")
        p.add_argument("--model", "-m", default=None, help="Override the model for this send")
        p.add_argument("--temperature", "-t", type=float, default=None, help="Override the temperature")

    _add_command(sub, ["call", "ask", "send"],
                 "Send one message through the provider chain", cmd_call, setup_call)

    # book / list / ls
    def setup_book(p):
        p.add_argument("--all", "-a", action="store_true", help="Include archived conversations")

    _add_command(sub, ["book", "list", "ls"],
                 "List stored conversations", cmd_book, setup_book)

    # tap / log / tail
    def setup_tap(p):
        p.add_argument("--log", default=None, help="Path to wire.jsonl (default: from config)")
        p.add_argument("--last", "-n", type=int, default=20, help="Show last N entries before following")
        p.add_argument("--role", "-r", choices=["user", "assistant", "error"], default=None,
                       help="Filter by role")
        p.add_argument("--no-follow", action="store_true", help="Don't follow, just show last entries")
        p.add_argument("--raw", action="store_true", help="Raw JSONL output, no formatting")

    _add_command(sub, ["tap", "log", "tail"],
                 "Live wiretap: watch messages on the wire", cmd_tap, setup_tap)

    # ring / status / ping
    def setup_ring(p):
        p.add_argument("--url", "-u", default=None, help="Switchboard URL (default: http://127.0.0.1:8765)")

    _add_command(sub, ["ring", "status", "ping"],
                 "Ping a running Switchboard instance", cmd_ring, setup_ring)

    # dump / export
    def setup_dump(p):
        p.add_argument("conversation", nargs="?", default=None, help="Conversation id (default: active)")
        p.add_argument("--format", "-f", default="json", help="json, markdown (md) or text (txt)")
        p.add_argument("--output", "-o", default="-", help="Output file ('-' for stdout)")

    _add_command(sub, ["dump", "export"],
                 "Export a conversation", cmd_dump, setup_dump)

    # flash / info / stats
    _add_command(sub, ["flash", "info", "stats"],
                 "Show stats and provider config at a glance", cmd_flash)

    # tone / banner
    _add_command(sub, ["tone", "banner"],
                 "Print the Switchboard banner", cmd_tone)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        cmd_tone(args)
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()

"""GOVKB CLI -- knowledgebase lookups, learning, admin, import/export, servers."""

import argparse
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path


def _context_args(args) -> dict:
    return {
        "country": args.country or "",
        "state": args.state or "",
        "sector": args.sector or "",
        "intent": args.intent or "",
    }


def _add_context_arguments(parser) -> None:
    parser.add_argument("--country", default="", help="Session country (e.g. India)")
    parser.add_argument("--state", default="", help="Session state (e.g. Maharashtra)")
    parser.add_argument("--sector", default="", help="Business sector (e.g. Manufacturing)")
    parser.add_argument("--intent", default="", help="Session intent (stored with learned entries)")


def _format_age(ms: int) -> str:
    """Format a millisecond timestamp as a relative age."""
    delta = time.time() - ms / 1000
    if delta < 60:
        return "just now"
    if delta < 3600:
        return f"{int(delta // 60)}m ago"
    if delta < 86400:
        return f"{int(delta // 3600)}h ago"
    return f"{int(delta // 86400)}d ago"


def cmd_match(args):
    """Look up a cached answer for a question."""
    question = " ".join(args.question)
    if not question.strip():
        print("Usage: govkb match <question> [--country ...]", file=sys.stderr)
        sys.exit(1)

    from govkb.bridge import find_match

    start = time.monotonic()
    result = find_match(question, _context_args(args))
    elapsed = time.monotonic() - start

    if args.json:
        print(json.dumps({"match": result, "elapsed_s": round(elapsed, 4)}, indent=2))
        return
    if result is None:
        print(f'No cached answer for "{question}" ({elapsed:.3f}s)')
        sys.exit(2)
    print(f"CACHED ({result['confidence'] * 100:.0f}% match, entry {result['id']})")
    print(f"Q: {result['question']}")
    print()
    print(result["answerText"])


def cmd_learn(args):
    """Offer a question/answer pair to the knowledgebase."""
    question = args.question
    answer = args.answer
    if answer == "-":
        answer = sys.stdin.read()

    from govkb.bridge import learn

    if learn(question, answer, _context_args(args), args.source):
        print(f"Learned: {question.strip()[:80]}")
    else:
        print("Not learned (too short, error-like answer, or near-duplicate)", file=sys.stderr)
        sys.exit(1)


def cmd_stats(args):
    """Show entry count, size and hit/miss counters."""
    from govkb.bridge import stats

    st = stats()
    if args.json:
        print(json.dumps(st, indent=2))
        return
    lookups = st["hits"] + st["misses"]
    rate = f"{st['hits'] / lookups * 100:.0f}%" if lookups else "n/a"
    print("GOVKB Stats")
    print(f"  Entries:  {st['totalEntries']}")
    print(f"  Size:     {st['storageSizeKB']:.2f} KB")
    print(f"  Hits:     {st['hits']}")
    print(f"  Misses:   {st['misses']}")
    print(f"  Hit rate: {rate}")


def cmd_list(args):
    """List entries, most recently learned first."""
    from govkb.bridge import list_entries

    entries = list_entries(limit=args.limit)
    if args.json:
        print(json.dumps(entries, indent=2, ensure_ascii=False))
        return
    if not entries:
        print("Knowledgebase is empty.")
        return
    for e in entries:
        ctx = e.get("context", {})
        where = "/".join(v for v in (ctx.get("country"), ctx.get("state"), ctx.get("sector")) if v) or "any"
        preview = e["question"][:70].replace("\n", " ")
        print(f"{e['id']:<16} {e['usageCount']:>4}x  {_format_age(e['lastUsed']):>9}  [{where}] {preview}")
    print(f"\n{len(entries)} entr{'y' if len(entries) == 1 else 'ies'}")


def cmd_export(args):
    """Export entries as JSON to a file or stdout."""
    from govkb.bridge import export_entries, export_json

    text = export_json(indent=2)
    if args.output in (None, "-"):
        print(text)
        return
    path = Path(args.output).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    # Exports are plaintext even when encryption at rest is on
    fd = os.open(str(path), os.O_CREAT | os.O_WRONLY | os.O_TRUNC, 0o600)
    try:
        os.write(fd, text.encode("utf-8"))
    finally:
        os.close(fd)
    count = len(export_entries())
    stamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
    print(f"Exported {count} entries to {path} at {stamp}")


def cmd_import(args):
    """Merge entries from a JSON export file."""
    path = Path(args.input).expanduser()
    if path.is_symlink():
        print("Import file must not be a symlink", file=sys.stderr)
        sys.exit(1)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Cannot read {path}: {e}", file=sys.stderr)
        sys.exit(1)

    from govkb.bridge import import_json

    count = import_json(text)
    print(f"Imported {count} entries from {path}")


def cmd_remove(args):
    """Remove one entry by id."""
    from govkb.bridge import remove_entry

    if remove_entry(args.entry_id):
        print(f"Removed {args.entry_id}")
    else:
        print(f"Entry {args.entry_id} not found", file=sys.stderr)
        sys.exit(1)


def cmd_clear(args):
    """Delete every entry and reset counters."""
    if not args.yes:
        reply = input("Delete every knowledgebase entry and reset hit/miss counters? [y/N] ")
        if reply.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return

    from govkb.bridge import clear

    clear()
    print("Knowledgebase cleared.")


def cmd_serve(args):
    """Run the MCP server (stdio) or the HTTP API."""
    import asyncio

    if args.http:
        from govkb.server.http_server import get_or_create_api_key, run_http

        api_key = None if args.no_auth else get_or_create_api_key()
        asyncio.run(run_http(args.host, args.port, api_key))
    else:
        from govkb.server.mcp_server import main

        asyncio.run(main())


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="govkb",
        description="GOVKB — Local knowledgebase cache for compliance-assistant answers",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    match_parser = subparsers.add_parser("match", help="Look up a cached answer for a question")
    match_parser.add_argument("question", nargs="+", help="Question text")
    _add_context_arguments(match_parser)
    match_parser.add_argument("--json", action="store_true", help="Output as JSON")

    learn_parser = subparsers.add_parser("learn", help="Teach a question/answer pair")
    learn_parser.add_argument("question", help="Question text")
    learn_parser.add_argument("answer", help="Answer text ('-' reads stdin)")
    _add_context_arguments(learn_parser)
    learn_parser.add_argument(
        "--source", choices=["user-chat", "ai-response"], default="ai-response", help="Provenance tag"
    )

    stats_parser = subparsers.add_parser("stats", help="Show entry count, size, hits and misses")
    stats_parser.add_argument("--json", action="store_true", help="Output as JSON")

    list_parser = subparsers.add_parser("list", help="List entries, newest first")
    list_parser.add_argument("--limit", type=int, default=50, help="Max entries (default: 50)")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    export_parser = subparsers.add_parser("export", help="Export entries as JSON")
    export_parser.add_argument("output", nargs="?", default=None, help="Output file (default: stdout)")

    import_parser = subparsers.add_parser("import", help="Merge entries from a JSON export")
    import_parser.add_argument("input", help="JSON file produced by 'govkb export'")

    remove_parser = subparsers.add_parser("remove", help="Remove one entry by id")
    remove_parser.add_argument("entry_id")

    clear_parser = subparsers.add_parser("clear", help="Delete every entry and reset counters")
    clear_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")

    serve_parser = subparsers.add_parser("serve", help="Run MCP server (stdio) or HTTP API (--http)")
    serve_parser.add_argument("--http", action="store_true", help="Serve the HTTP API instead of stdio MCP")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8077, help="HTTP port (default: 8077)")
    serve_parser.add_argument("--no-auth", action="store_true", help="Disable API key check")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=os.environ.get("GOVKB_LOG_LEVEL", "WARNING").upper(),
        stream=sys.stderr,
    )

    commands = {
        "match": cmd_match,
        "learn": cmd_learn,
        "stats": cmd_stats,
        "list": cmd_list,
        "export": cmd_export,
        "import": cmd_import,
        "remove": cmd_remove,
        "clear": cmd_clear,
        "serve": cmd_serve,
    }

    if args.command in commands:
        commands[args.command](args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()

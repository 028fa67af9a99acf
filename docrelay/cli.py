from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from .bridge import FileKeyValueStore, ResultBridge
from .config import Settings
from .errors import DocRelayError
from .extraction import extract_text
from .history import HistoryEntry, HistoryStore, JsonHistoryRepository
from .operations import (
    Operation,
    PromptValidationError,
    Request,
    Response,
    Tone,
    result_path_for,
    write_result,
)
from .pipeline import DocumentPipeline, create_pipeline


def load_settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = args.data_dir.expanduser()
    if args.namespace:
        overrides["namespace"] = args.namespace
    return dataclasses.replace(settings, **overrides) if overrides else settings


def open_history(settings: Settings) -> HistoryStore:
    return HistoryStore(JsonHistoryRepository(settings.history_path))


def open_bridge(settings: Settings) -> ResultBridge:
    store = FileKeyValueStore.for_namespace(settings.shared_dir, settings.namespace)
    store.provision()
    return ResultBridge(store)


def format_history_table(entries: Sequence[HistoryEntry]) -> tuple[str, list[str]]:
    header = "ID        Created           Op         Fav  Source"
    lines: list[str] = []
    for entry in entries:
        created = entry.created_at.strftime("%Y-%m-%d %H:%M")
        star = "*" if entry.favorite else " "
        lines.append(f"{entry.id[:8]}  {created}  {entry.operation.value:<9}  {star:^3}  {entry.source_name}")
    return header, lines


def resolve_entry_id(history: HistoryStore, candidate: str) -> Optional[str]:
    """Accept a full id or a unique prefix as printed by ``history list``."""
    matches = [entry.id for entry in history.entries if entry.id.startswith(candidate)]
    return matches[0] if len(matches) == 1 else None


def operation_parameters(args: argparse.Namespace) -> Dict[str, object]:
    return {
        "sentence_limit": args.sentences,
        "target_language": args.target_language,
        "tone": Tone(args.tone) if args.tone else None,
        "source_name": args.source_name,
    }


async def run_operation(args: argparse.Namespace, pipeline: DocumentPipeline) -> Tuple[Response, bool]:
    """Run the requested operation; returns the response and whether it was delivered."""
    operation = Operation(args.operation)
    parameters = operation_parameters(args)
    if args.text:
        request = Request(text=args.input, operation=operation, **parameters)
        if args.share:
            return await pipeline.share(request)
        return await pipeline.process_text(request), True

    path = Path(args.input)
    if args.share:
        return await pipeline.share_file(path, operation, **parameters)
    return await pipeline.process_file(path, operation, **parameters), True


def render_response(response: Response) -> str:
    return response.formatted or response.text


async def run_process(args: argparse.Namespace, settings: Settings) -> int:
    pipeline, engine = create_pipeline(settings, simulate=args.simulate)
    try:
        response, delivered = await run_operation(args, pipeline)
    finally:
        if engine is not None:
            await engine.aclose()
    if not delivered:
        print("Result could not be handed to the shared inbox.", file=sys.stderr)
        return 1

    if args.output or not args.stdout:
        output_path = args.output or result_path_for(settings.results_dir, response.source_name, response.operation)
        record = write_result(output_path, response)
        status = "shared" if args.share else "recorded"
        print(f"[{status}] {response.operation.value} -> {record.path} ({response.elapsed_seconds:.2f}s)")
    if args.stdout:
        output_text = render_response(response)
        sys.stdout.write(output_text)
        if not output_text.endswith("\n"):
            sys.stdout.write("\n")
    return 0


def handle_inbox(settings: Settings) -> int:
    # Collecting never invokes an engine.
    pipeline, _ = create_pipeline(settings, simulate=True)
    delivery = pipeline.collect_shared_result()
    if delivery is None:
        print("No shared result pending.")
        return 0
    response, entry = delivery.response, delivery.entry
    if entry is None:
        print(f"Shared {response.operation.value} result was already recorded recently.")
    else:
        print(f"Recorded shared {response.operation.value} result as {entry.id[:8]} ({entry.source_name}).")
    sys.stdout.write(render_response(response).rstrip("\n") + "\n")
    return 0


def handle_bridge(args: argparse.Namespace, parser: argparse.ArgumentParser, settings: Settings) -> int:
    bridge = open_bridge(settings)
    if args.bridge_cmd == "status":
        pending = bridge.peek_has_result()
        print("pending" if pending else "empty")
        return 0
    if args.bridge_cmd == "clear":
        if not bridge.clear():
            parser.error("Shared namespace is unavailable.")
        print("Shared result slot cleared.")
        return 0
    parser.error("Unknown bridge subcommand")
    return 2


def handle_history(args: argparse.Namespace, parser: argparse.ArgumentParser, settings: Settings) -> int:
    history = open_history(settings)

    if args.history_cmd == "list":
        if args.limit < 1:
            parser.error("--limit must be at least 1")
        entries = history.entries[: args.limit]
        if not entries:
            print("History is empty.")
            return 0
        header, lines = format_history_table(entries)
        print(header)
        for line in lines:
            print(line)
        return 0

    if args.history_cmd == "purge":
        removed = history.purge_expired(retention_days=args.retention_days)
        print(f"Removed {len(removed)} expired entries.")
        return 0

    if args.history_cmd in ("favorite", "delete"):
        entry_id = resolve_entry_id(history, args.id)
        if entry_id is None:
            parser.error(f"No unique history entry matches '{args.id}'.")
            return 2
        if args.history_cmd == "favorite":
            entry = history.toggle_favorite(entry_id)
            print(f"{entry.id[:8]} {'favorited' if entry.favorite else 'unfavorited'}.")
        else:
            history.delete(entry_id)
            print(f"{entry_id[:8]} deleted.")
        return 0

    parser.error("Unknown history subcommand")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="docrelay",
        description="Summarize, translate or rewrite documents and hand results between processes.",
    )
    p.add_argument(
        "--data-dir",
        type=Path,
        help="Directory holding history, shared results and exports (default: ~/.local/share/docrelay)",
    )
    p.add_argument("--namespace", help="Shared namespace identifier used by the result inbox")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="cmd", required=True)

    p_extract = sub.add_parser("extract", help="Print the plain text of a .txt, .pdf or .docx file")
    p_extract.add_argument("input", type=Path, help="Path of the document")

    p_process = sub.add_parser("process", help="Run an operation on a document or text")
    p_process.add_argument("input", help="Document path, or literal text with --text")
    p_process.add_argument("--text", action="store_true", help="Treat INPUT as literal text")
    p_process.add_argument(
        "--operation",
        choices=[op.value for op in Operation],
        default=Operation.SUMMARIZE.value,
        help="Operation to run (default: summarize)",
    )
    p_process.add_argument("--sentences", type=int, help="Sentence limit for summaries (default: 5)")
    p_process.add_argument("--target-language", help="Target language code for translations, e.g. en")
    p_process.add_argument("--tone", choices=[tone.value for tone in Tone], help="Tone for rewrites (default: formal)")
    p_process.add_argument("--source-name", help="Name recorded in history (default: file name)")
    p_process.add_argument("--simulate", action="store_true", help="Use the simulated engine")
    p_process.add_argument(
        "--share",
        action="store_true",
        help="Hand the result to the shared inbox instead of recording it in history",
    )
    p_process.add_argument("--stdout", action="store_true", help="Print the result instead of exporting it")
    p_process.add_argument("-o", "--output", type=Path, help="Markdown file to export the result to")

    sub.add_parser("inbox", help="Collect a pending shared result into history")

    p_bridge = sub.add_parser("bridge", help="Inspect the shared result slot")
    bridge_sub = p_bridge.add_subparsers(dest="bridge_cmd", required=True)
    bridge_sub.add_parser("status", help="Report whether a result is pending")
    bridge_sub.add_parser("clear", help="Drop any pending result")

    p_history = sub.add_parser("history", help="List and manage processed results")
    history_sub = p_history.add_subparsers(dest="history_cmd", required=True)
    p_list = history_sub.add_parser("list", help="List history entries, newest first")
    p_list.add_argument("--limit", type=int, default=20, help="Limit number of entries (default: 20)")
    p_fav = history_sub.add_parser("favorite", help="Toggle the favorite flag of an entry")
    p_fav.add_argument("id", help="Entry id or unique prefix")
    p_delete = history_sub.add_parser("delete", help="Delete an entry")
    p_delete.add_argument("id", help="Entry id or unique prefix")
    p_purge = history_sub.add_parser("purge", help="Remove expired, non-favorite entries")
    p_purge.add_argument("--retention-days", type=int, default=7, help="Retention period in days (default: 7)")

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    settings = load_settings(args)

    try:
        if args.cmd == "extract":
            sys.stdout.write(extract_text(args.input).rstrip("\n") + "\n")
            return 0
        if args.cmd == "process":
            return asyncio.run(run_process(args, settings))
        if args.cmd == "inbox":
            return handle_inbox(settings)
        if args.cmd == "bridge":
            return handle_bridge(args, parser, settings)
        if args.cmd == "history":
            return handle_history(args, parser, settings)
    except (DocRelayError, PromptValidationError) as exc:
        parser.error(str(exc))
        return 2

    parser.error("Unknown command")
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

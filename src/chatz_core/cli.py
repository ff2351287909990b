"""CLI entry point for chatz-core."""

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console

from chatz_core.core.input_validator import validate_message
from chatz_core.core.post_processing import post_process
from chatz_core.core.segmentation import CodeSegment, ParsedMessage, parse_message
from chatz_core.display import LiveSink, render_message
from chatz_core.pipeline.orchestrator import ChatPipeline
from chatz_core.pipeline.response_assembler import RecordingSink, assemble_response
import chatz_core.io.logging_setup

logger = logging.getLogger(__name__)

REPLAY_CHUNK_SIZE = 64


def _read_source(path: str | None) -> str:
    if path is None or path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _parsed_to_json(parsed: ParsedMessage) -> dict:
    return {
        "has_code": parsed.has_code,
        "is_coding_related": parsed.is_coding_related,
        "segments": [
            {
                "kind": segment.kind.value,
                "content": segment.content,
                "language": segment.language if isinstance(segment, CodeSegment) else None,
                "span": [segment.span.start, segment.span.end],
            }
            for segment in parsed.segments
        ],
    }


def _iter_chunks(data: bytes, size: int):
    for i in range(0, len(data), size):
        yield data[i:i + size]


def cmd_parse(args, console: Console) -> int:
    text = _read_source(args.file)
    if args.post_process:
        text = post_process(text)
    parsed = parse_message(text)
    if args.json:
        print(json.dumps(_parsed_to_json(parsed), indent=2))
    else:
        console.print(render_message(parsed))
    return 0


def cmd_replay(args, console: Console) -> int:
    data = Path(args.file).read_bytes()
    recorder = RecordingSink()
    sinks = [recorder] if args.json else [recorder, LiveSink(console)]
    response = assemble_response(
        _iter_chunks(data, args.chunk_size),
        sinks,
        protocol_family=args.family,
    )
    if args.json:
        payload = _parsed_to_json(response.parsed)
        payload["phase"] = response.phase.value
        payload["updates"] = len(recorder.updates)
        print(json.dumps(payload, indent=2))
    return 0


def cmd_validate(args, console: Console) -> int:
    result = validate_message(args.text)
    payload = {
        "is_valid": result.is_valid,
        "reason": result.reason,
        "injection_category": result.injection_category.value if result.injection_category else None,
        "sanitized": result.sanitized,
    }
    print(json.dumps(payload, indent=2))
    return 0 if result.is_valid else 1


def cmd_chat(args, console: Console) -> int:
    pipeline = ChatPipeline.from_settings()
    result = pipeline.respond(
        [{"role": "user", "content": args.text}],
        sinks=[LiveSink(console)],
    )
    logger.info("chat turn finished provider=%s phase=%s", result.provider, result.phase.value)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatz-core",
        description="Segment, reassemble and screen chat assistant text",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_parse = sub.add_parser("parse", help="Segment a message into text/code")
    p_parse.add_argument("file", nargs="?", default=None, help="Input file (default: stdin)")
    p_parse.add_argument("--json", action="store_true", help="Print segments as JSON")
    p_parse.add_argument(
        "--post-process", action="store_true", help="Run response post-processing first"
    )
    p_parse.set_defaults(handler=cmd_parse)

    p_replay = sub.add_parser("replay", help="Feed a captured SSE byte stream through the reassembler")
    p_replay.add_argument("file", help="File holding raw `data: {...}` frames")
    p_replay.add_argument(
        "--family",
        choices=("openai", "anthropic"),
        default="openai",
        help="Delta format of the frames (default: openai)",
    )
    p_replay.add_argument(
        "--chunk-size",
        type=int,
        default=REPLAY_CHUNK_SIZE,
        help=f"Bytes per simulated network chunk (default: {REPLAY_CHUNK_SIZE})",
    )
    p_replay.add_argument("--json", action="store_true", help="Print the final document as JSON")
    p_replay.set_defaults(handler=cmd_replay)

    p_validate = sub.add_parser("validate", help="Screen user text for injection")
    p_validate.add_argument("text")
    p_validate.set_defaults(handler=cmd_validate)

    p_chat = sub.add_parser("chat", help="Send one message through the live provider chain")
    p_chat.add_argument("text")
    p_chat.set_defaults(handler=cmd_chat)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "replay" and args.chunk_size < 1:
        print("--chunk-size must be positive", file=sys.stderr)
        return 2

    # [LAW:single-enforcer] Runtime logger configuration is centralized in io.logging_setup.
    log_runtime = chatz_core.io.logging_setup.configure(run_name=args.command)
    logger.info(
        "logging configured level=%s file=%s",
        log_runtime.level_name,
        log_runtime.file_path,
    )
    return args.handler(args, Console())


if __name__ == "__main__":
    sys.exit(main())

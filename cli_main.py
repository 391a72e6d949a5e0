# cli_main.py
"""
Command-line front end: import a Figma file, pick frames, generate stories.

    python cli_main.py import  "https://www.figma.com/design/<key>/..."
    python cli_main.py preview "https://www.figma.com/design/<key>/..." --limit 5
    python cli_main.py generate "https://www.figma.com/design/<key>/..." --frames 1:2,1:3 --context "B2B app"
    python cli_main.py health
    python cli_main.py serve --port 8000
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from storylab.config import load_config
from storylab.errors import InvalidInputError, StoryLabError
from storylab.figma_client import FigmaClient
from storylab.figma_urls import parse_figma_url
from storylab.import_service import FrameImporter
from storylab.llm_client import build_llm_client
from storylab.presentation import (
    render_frame_checklist,
    render_import_notice,
    render_stories,
    render_summary,
)
from storylab.session import SessionController
from storylab.story_service import StoryGenerator

logger = logging.getLogger("storylab_backend")


def _location(url: str):
    location = parse_figma_url(url)
    if location is None:
        raise InvalidInputError("Please enter a valid Figma file URL")
    return location


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def _split_ids(raw: Optional[str]) -> List[str]:
    return [i.strip() for i in (raw or "").split(",") if i.strip()]


def cmd_import(args: argparse.Namespace) -> None:
    config = load_config()
    location = _location(args.url)
    with FigmaClient(config) as figma:
        result = FrameImporter(figma, config).import_frames(location.file_id, location.node_id)
    if args.json:
        _print_json(result.model_dump(by_alias=True, mode="json", exclude_none=True))
        return
    print(render_import_notice(result))
    print(render_frame_checklist(result.frames))


def cmd_preview(args: argparse.Namespace) -> None:
    config = load_config()
    location = _location(args.url)
    with FigmaClient(config) as figma:
        frames = FrameImporter(figma, config).preview(location.file_id, args.limit)
    if args.json:
        _print_json([f.model_dump(by_alias=True, mode="json", exclude_none=True) for f in frames])
        return
    print(render_frame_checklist(frames))


def cmd_generate(args: argparse.Namespace) -> None:
    config = load_config()
    location = _location(args.url)
    controller = SessionController()

    with FigmaClient(config) as figma:
        result = FrameImporter(figma, config).import_frames(location.file_id, location.node_id)
        controller.import_frames(location.file_id, result.frames, context=args.context)
        if not args.json:
            print(render_import_notice(result))

        wanted = _split_ids(args.frames) or [f.id for f in result.frames]
        controller.set_selection(wanted)
        if not args.json:
            print(render_frame_checklist(result.frames, wanted))

        with build_llm_client(config) as llm:
            generator = StoryGenerator(llm, figma)
            session = controller.generate(lambda frames: generator.generate_for_frames(frames, args.context))

    if args.json:
        _print_json({
            "session": session.model_dump(by_alias=True, mode="json", exclude_none=True),
            "summary": controller.summary().model_dump(by_alias=True),
        })
        return
    print()
    print(render_stories(session.user_stories, color=sys.stdout.isatty()))
    print()
    print(render_summary(controller.summary()))


def cmd_health(args: argparse.Namespace) -> None:
    config = load_config()
    with build_llm_client(config) as llm:
        _print_json({"healthy": llm.is_healthy(), "url": llm.url, "provider": llm.provider})


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn
    uvicorn.run("server:app", host=args.host, port=args.port, reload=args.reload)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Generate agile user stories from Figma frames")
    p.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "WARNING"))
    sub = p.add_subparsers(dest="cmd", required=True)

    i = sub.add_parser("import", help="Import frames from a Figma URL")
    i.add_argument("url")
    i.add_argument("--json", action="store_true")
    i.set_defaults(func=cmd_import)

    v = sub.add_parser("preview", help="Quick preview of the first frames of a file, with images")
    v.add_argument("url")
    v.add_argument("--limit", type=int)
    v.add_argument("--json", action="store_true")
    v.set_defaults(func=cmd_preview)

    g = sub.add_parser("generate", help="Import, select frames and generate user stories")
    g.add_argument("url")
    g.add_argument("--frames", help="Comma separated frame ids (default: every imported frame)")
    g.add_argument("--context", help="Extra product context passed to the model")
    g.add_argument("--json", action="store_true")
    g.set_defaults(func=cmd_generate)

    h = sub.add_parser("health", help="Check the story generation backend")
    h.set_defaults(func=cmd_health)

    s = sub.add_parser("serve", help="Run the HTTP API")
    s.add_argument("--host", default="0.0.0.0")
    s.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    s.add_argument("--reload", action="store_true")
    s.set_defaults(func=cmd_serve)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n",
    )
    try:
        args.func(args)
    except StoryLabError as e:
        print(f"[ERROR] {e.message}" + (f" ({e.details})" if e.details else ""), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from .config import AppConfig, load_config
from .entities import Blob, ScreenshotSet
from .gateway import HttpGateway
from .model import ErrorReport, ScreenshotsModel


def _make_gateway(cfg: AppConfig) -> HttpGateway:
    return HttpGateway(cfg.api.base_url, cfg.project_id)


def _describe(shot: ScreenshotSet) -> Dict[str, Any]:
    return {
        "id": shot.id,
        "name": shot.name,
        "files": {platform: f.id for platform, f in shot.files.items() if not f.is_empty},
    }


async def _run(args: argparse.Namespace, cfg: AppConfig) -> int:
    model = ScreenshotsModel(args.test_id, _make_gateway(cfg), waiting_delay=cfg.waiting_delay)
    errors: List[ErrorReport] = []
    model.on("error", errors.append)
    model.on("waiting", lambda: print("Waiting for server...", file=sys.stderr))

    await model.load_screenshots()
    if not errors:
        if args.cmd == "upload":
            blobs = [Blob.from_path(p) for p in args.files]
            await model.add_uploaded_files(blobs, args.index, args.platform)
        elif args.cmd == "rename":
            model.set_name(args.index, args.name)
        elif args.cmd == "delete":
            model.delete_file(args.index, args.platform)
    if not errors and args.cmd != "list" and model.has_unsaved_changes():
        await model.save()

    if errors:
        for err in errors:
            print(f"Failed to {err.error_for}: {err.message}", file=sys.stderr)
        return 1
    print(json.dumps([_describe(s) for s in model.get_screenshots()], indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="shotsets", description="Manage the screenshots attached to a test")
    sub = parser.add_subparsers(dest="cmd")

    p_list = sub.add_parser("list", help="List screenshot sets for a test")
    p_list.add_argument("test_id")

    p_up = sub.add_parser("upload", help="Upload PNG files for one platform")
    p_up.add_argument("test_id")
    p_up.add_argument("platform")
    p_up.add_argument("files", nargs="+")
    p_up.add_argument("--index", type=int, default=None, help="First row to replace; new rows if omitted")

    p_ren = sub.add_parser("rename", help="Rename a screenshot set")
    p_ren.add_argument("test_id")
    p_ren.add_argument("index", type=int)
    p_ren.add_argument("name")

    p_del = sub.add_parser("delete", help="Remove one platform's image from a set")
    p_del.add_argument("test_id")
    p_del.add_argument("index", type=int)
    p_del.add_argument("platform")

    args = parser.parse_args(argv)
    if not args.cmd:
        parser.print_help()
        sys.exit(1)

    code = asyncio.run(_run(args, load_config()))
    if code:
        sys.exit(code)

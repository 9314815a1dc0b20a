"""Command-line entry point for importing, pushing and serving collection trees."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Mapping, Sequence, TextIO

from .api import FileStoreApiSettings, create_app
from .engine import SyncEngine
from .file_store import LocalFileStore
from .records import CollectionStore
from .settings import SyncSettings


def main(argv: Sequence[str] | None = None, *, output: TextIO | None = None) -> int:
    """CLI entry point. Returns the process exit code."""

    parser = _build_parser()
    args = parser.parse_args(argv)
    stream = output or sys.stdout

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "import":
            return asyncio.run(_import(args, stream))
        if args.command == "push":
            return asyncio.run(_push(args, stream))
        return _serve(args)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


def _settings(args: argparse.Namespace) -> SyncSettings:
    base = SyncSettings.from_env()
    return SyncSettings(
        project_dir_name=args.project_dir_name or base.project_dir_name,
        sync_interval=base.sync_interval,
        auto_sync=False,
        include_modules=args.modules_root is not None,
        max_attempts=base.max_attempts,
        operation_timeout=base.operation_timeout,
    )


async def _import(args: argparse.Namespace, stream: TextIO) -> int:
    file_store = LocalFileStore(Path(args.root), modules_root=_optional_path(args.modules_root))
    engine = SyncEngine(file_store, CollectionStore(), settings=_settings(args))
    report = await engine.import_project(args.project)
    if not report.success:
        print(f"error: could not list project '{args.project}'", file=sys.stderr)
        return 1

    json.dump(engine.store.snapshot(), stream, indent=2, sort_keys=True, ensure_ascii=False)
    stream.write("\n")
    return 0


async def _push(args: argparse.Namespace, stream: TextIO) -> int:
    collections = _load_collections(Path(args.input))
    store = CollectionStore(args.project, collections=collections)
    engine = SyncEngine(LocalFileStore(Path(args.root)), store, settings=_settings(args))
    engine.discovery.load_definitions()

    written, failed = await engine.save_project()
    print(f"Wrote {written} objects ({failed} failed) to {engine.project_root}", file=stream)
    return 0 if failed == 0 else 1


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    env_settings = FileStoreApiSettings.from_env()
    settings = FileStoreApiSettings(
        projects_root=Path(args.root) if args.root else env_settings.projects_root,
        modules_root=_optional_path(args.modules_root) or env_settings.modules_root,
    )
    uvicorn.run(create_app(settings=settings), host=args.host, port=args.port)
    return 0


def _load_collections(path: Path) -> Mapping[str, Mapping[str, Any]]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON ({exc.msg})") from exc
    if not isinstance(payload, dict) or not all(
        isinstance(records, dict) for records in payload.values()
    ):
        raise ValueError(f"{path} must map collection ids to objects keyed by id")
    return payload


def _optional_path(value: str | None) -> Path | None:
    return Path(value) if value else None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="collectionsync",
        description="Synchronize typed collections with a project folder tree.",
    )
    parser.add_argument(
        "--log-level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
        help="Logging verbosity. Defaults to 'warning'.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser(
        "import", help="Read a project tree and print its collections as JSON."
    )
    import_parser.add_argument("--root", required=True, help="Directory holding projects.")
    import_parser.add_argument("--project", required=True, help="Project identifier.")
    import_parser.add_argument(
        "--modules-root", help="Optional directory of shared modules imported first."
    )
    import_parser.add_argument(
        "--project-dir-name", help="Folder below the project holding collections."
    )

    push_parser = subparsers.add_parser(
        "push", help="Write a JSON dump of collections into a project tree."
    )
    push_parser.add_argument("--root", required=True, help="Directory holding projects.")
    push_parser.add_argument("--project", required=True, help="Project identifier.")
    push_parser.add_argument(
        "--input",
        required=True,
        help="JSON file mapping collection ids to objects keyed by id.",
    )
    push_parser.add_argument(
        "--project-dir-name", help="Folder below the project holding collections."
    )
    push_parser.set_defaults(modules_root=None)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP file service.")
    serve_parser.add_argument(
        "--root", help="Projects directory (defaults to COLLECTIONSYNC_PROJECTS_ROOT)."
    )
    serve_parser.add_argument("--modules-root", help="Shared modules directory.")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind.")
    return parser


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

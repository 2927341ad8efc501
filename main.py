from __future__ import annotations

import argparse
from pathlib import Path
import sys

from PySide6.QtCore import QCoreApplication
from loguru import logger

from app.debounce import QtDebounceScheduler
from app.viewmodels.storyboard_vm import StoryboardVM
from infrastructure.logging import find_latest_log_file, init_logging
from infrastructure.settings import JsonSettings


BASE_DIR = Path(__file__).parent


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storyboard project tools")
    parser.add_argument("--settings", type=Path, default=BASE_DIR / "settings.json")
    parser.add_argument("-v", "--verbose", action="store_true", help="log warnings to stderr")
    sub = parser.add_subparsers(dest="command", required=True)

    info = sub.add_parser("info", help="print pages and shot numbers")
    info.add_argument("project", type=Path)

    reconcile = sub.add_parser("reconcile", help="repair page layout and numbering")
    reconcile.add_argument("project", type=Path)
    reconcile.add_argument("-o", "--output", type=Path, help="write to this file instead")
    reconcile.add_argument("--format", dest="number_format", help="renumber with this format")
    reconcile.add_argument("--grid", nargs=2, type=int, metavar=("ROWS", "COLS"))

    export = sub.add_parser("export", help="write the shot list as CSV")
    export.add_argument("project", type=Path)
    export.add_argument("csv", type=Path)

    imp = sub.add_parser("import", help="append shots from a CSV shot list")
    imp.add_argument("project", type=Path, help="created when missing")
    imp.add_argument("csv", type=Path)
    return parser


def _print_info(vm: StoryboardVM) -> None:
    name = vm.project_name or "(untitled)"
    print(f"{name}: {len(vm.shot_order)} shots on {len(vm.pages)} pages, format {vm.number_format!r}")
    active = vm.page_repo.get_active_page()
    for page in vm.page_views():
        numbers = ", ".join(item.number for item in page.items) or "-"
        marker = "*" if active is not None and page.page_id == active.id else " "
        print(f"{marker} {page.name} [{page.grid_rows}x{page.grid_cols}] {numbers}")


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = JsonSettings(args.settings)
    init_logging(settings.get("logging.dir"), str(settings.get("logging.level", "INFO")), args.verbose)

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    scheduler = QtDebounceScheduler(settings.get_int("scheduling.settle_delay_ms", 16), parent=app)
    vm = StoryboardVM.from_settings(settings, scheduler)

    try:
        if args.command == "import":
            if args.project.exists():
                vm.load_project(args.project)
            created = vm.import_shot_list(args.csv)
            vm.save_project(args.project)
            print(f"Imported {len(created)} shots into {args.project}")
            return 0

        report = vm.load_project(args.project)
        if args.command == "info":
            _print_info(vm)
        elif args.command == "reconcile":
            if args.grid:
                vm.update_grid_size(*args.grid)
            if args.number_format:
                vm.set_number_format(args.number_format)
            vm.reconcile(force=True)
            vm.save_project(args.output or args.project)
            state = "repaired drift" if report.has_drift else "no drift"
            print(f"Reconciled {args.project}: {state}")
        elif args.command == "export":
            rows = vm.export_shot_list(args.csv)
            print(f"Exported {rows} shots to {args.csv}")
    except (OSError, ValueError) as ex:
        logger.error("{} failed: {}", args.command, ex)
        print(f"error: {ex}", file=sys.stderr)
        log_file = find_latest_log_file(settings.get("logging.dir"))
        if log_file is not None:
            print(f"details in {log_file}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

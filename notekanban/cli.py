"""
notekanban: command line entry point

Usage:
    notekanban show  --db notes.db --config-note <id>    # print the board once
    notekanban watch --db notes.db --config-note <id>    # reprint on every change
    notekanban --settings settings.yaml show ...          # custom engine settings
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config import ConfigError, Settings
from .controller import Host, KanbanController
from .markdown import render_summary
from .schema import Action, ActionType, BoardState, Severity
from .store import SQLiteNoteStore
from .watcher import DatabaseVersion, watch_database

logger = logging.getLogger(__name__)


def format_board(controller: KanbanController, state: Optional[BoardState]) -> str:
    board = controller.board
    if board is None or state is None:
        return "(no board)"
    lines = [f"# {state.name}", ""]
    for message in state.messages:
        marker = "!" if message.severity == Severity.ERROR else "*"
        lines.append(f"{marker} {message.title}")
        if message.details:
            lines.append(f"  {message.details}")
    if state.messages:
        lines.append("")
    if board.is_valid:
        lines.append(render_summary(state, board.parsed_config.display_markdown))
    return "\n".join(lines)


class ConsoleHost(Host):
    """Prints the board to stdout whenever a refresh is posted."""

    def __init__(self):
        self.controller: Optional[KanbanController] = None

    async def post_refresh(self) -> None:
        if self.controller is None:
            return
        state = await self.controller.handle_action(Action(ActionType.POLL))
        print(format_board(self.controller, state))
        print()

    async def hide_board(self) -> None:
        print("(board closed: the config note no longer has a kanban block)")


async def _open(store: SQLiteNoteStore, settings: Settings, config_note_id: str,
                host: Optional[Host] = None) -> KanbanController:
    controller = KanbanController(store, host=host, settings=settings)
    await controller.handle_note_selected(config_note_id)
    if controller.board is None:
        raise ConfigError(f"Note {config_note_id} is not a kanban config note")
    return controller


async def show(settings: Settings, config_note_id: str) -> None:
    store = SQLiteNoteStore(settings.db_path)
    controller = await _open(store, settings, config_note_id)
    state = await controller.handle_action(Action(ActionType.LOAD))
    print(format_board(controller, state))


async def watch(settings: Settings, config_note_id: str) -> None:
    store = SQLiteNoteStore(settings.db_path)
    host = ConsoleHost()
    controller = await _open(store, settings, config_note_id, host=host)
    host.controller = controller

    await host.post_refresh()
    version = DatabaseVersion(settings.db_path)
    observer = watch_database(settings.db_path, asyncio.get_running_loop(), controller.refresh_ui, version)
    try:
        await asyncio.Event().wait()
    finally:
        observer.stop()
        observer.join()
        version.close()


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(
        prog="notekanban",
        description="Kanban boards derived from notes in a note database",
    )
    ap.add_argument("--settings", default=None, help="Path to settings.yaml")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("show", "Print the board once"),
        ("watch", "Print the board and reprint it on every database change"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--db", default=None, help="Note database (default: from settings)")
        p.add_argument("--config-note", required=True, help="Id of the board's config note")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [notekanban] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    try:
        settings = Settings.load(args.settings)
        if args.db:
            settings.db_path = args.db
            settings.resolve_paths()
        if args.command == "show":
            asyncio.run(show(settings, args.config_note))
        else:
            asyncio.run(watch(settings, args.config_note))
    except ConfigError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        print("\nStopping...")
    return 0


if __name__ == "__main__":
    sys.exit(main())

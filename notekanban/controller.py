"""
Kanban controller: wires the open board to the note store and the host UI.

Every state-changing action goes through one single-flight queue, so the
board's cache and the store never see interleaved mutations from two
gestures. Read-only actions (opening notes) skip the queue.

Flow for a queued action:
    current state -> compile action -> apply queries to store + cache
    -> search store -> evict confirmed cache entries -> merge -> new state
"""
import asyncio
import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from .board import Board
from .cache import NoteCache
from .config import ColumnConfig, BoardConfig, Settings, get_yaml_config, parse_config_note, write_config_body
from .markdown import render_summary
from .rules import get_rule_editor_types
from .schema import (
    Action,
    ActionType,
    BoardState,
    Note,
    RELOAD_MESSAGE_ID,
    now_ms,
    reload_message,
)
from .scheduling import AbortedError, AsyncQueue, Debouncer, wait_until
from .store import ConfigNote, NoteStore

logger = logging.getLogger(__name__)

NEW_COLUMN_TARGET = "columnnew"


class Host:
    """
    Callbacks into whatever displays the board.

    The defaults are what a headless host needs: nothing to show, every
    confirmation accepted, no config editor, and notes created directly
    in the store.
    """

    async def open_note(self, note_id: str) -> None:
        pass

    async def show_board(self) -> None:
        pass

    async def hide_board(self) -> None:
        pass

    async def post_refresh(self) -> None:
        pass

    async def post_hover(self, column_name: Optional[str]) -> None:
        pass

    async def confirm(self, message: str) -> bool:
        return True

    async def edit_config(self, data: Dict[str, Any]) -> Optional[str]:
        """Show the config editor; return the new YAML, or None if cancelled."""
        return None

    async def create_note(self) -> Optional[str]:
        """Create an untitled note and return its id, or None to let the store do it."""
        return None


def _log_debounced_failure(waiter: asyncio.Future) -> None:
    if waiter.cancelled():
        return
    exc = waiter.exception()
    if exc is not None and not isinstance(exc, AbortedError):
        logger.error(f"Error posting to host: {exc}")


class KanbanController:
    """Owns the single open board and serializes every action against it."""

    def __init__(self, store: NoteStore, host: Optional[Host] = None,
                 settings: Optional[Settings] = None, clock=None):
        self.store = store
        self.host = host or Host()
        self.settings = settings or Settings()
        self.clock = clock
        self.board: Optional[Board] = None
        self.queue = AsyncQueue()
        self.refresh_debouncer = Debouncer(self.settings.refresh_debounce_ms)
        self.hover_debouncer = Debouncer(self.settings.hover_debounce_ms)

    # ── Config handling ──────────────────────────────────────

    def _new_board(self, note: ConfigNote) -> Board:
        cache = NoteCache(
            ttl_secs=self.settings.cache_ttl_secs,
            max_entries=self.settings.cache_max_entries,
        )
        return Board(note.id, note.notebook_id, note.title, self.store, cache=cache, clock=self.clock)

    async def reload_config(self, note_id: str) -> Optional[Board]:
        """
        Build a board from the config note `note_id` and swap it in if valid.

        An invalid config never replaces a board that is already open; it
        is only opened (to show its errors) when nothing else is.
        """
        note = await self.store.get_config_note(note_id)
        if note is None:
            return self.board
        yaml_text = get_yaml_config(note.body)
        if yaml_text is None:
            return self.board

        board = self._new_board(note)
        if await board.load_config(yaml_text):
            self.board = board
        elif self.board is None:
            self.board = board
        return self.board

    async def _write_config(self, board: Board, yaml_text: str) -> None:
        note = await self.store.get_config_note(board.config_note_id)
        body = write_config_body(note.body if note else "", yaml_text=yaml_text)
        await self.store.set_config_note(board.config_note_id, body)

    async def _edit_config(self, board: Board, target: str) -> Optional[str]:
        config = board.parsed_config
        if config is None:
            return None
        if target == NEW_COLUMN_TARGET:
            config = BoardConfig(
                columns=config.columns + [ColumnConfig(name="New Column")],
                filters=config.filters,
                sort_by=config.sort_by,
                display_markdown=config.display_markdown,
            )
            target = f"columns.{len(config.columns) - 1}"
        elif target.startswith("columns."):
            _, col_name = target.split(".", 1)
            names = [c.name for c in config.columns]
            target = f"columns.{names.index(col_name) if col_name in names else -1}"

        data = {
            "config": config.to_dict(),
            "targetPath": target,
            "ruleEditorTypes": get_rule_editor_types(target),
            "allTags": await self.store.get_all_tags(),
            "allNotebooks": [nb.title for nb in await self.store.get_all_notebooks()],
        }
        return await self.host.edit_config(data)

    # ── Actions ──────────────────────────────────────────────

    async def handle_action(self, action: Action) -> Optional[BoardState]:
        """
        Entry point for messages from the board view.

        Returns the refreshed board state, or None when there is nothing to
        show or the action was dropped by an abort.
        """
        board = self.board
        if board is None:
            return None

        if action.type == ActionType.OPEN_NOTE:
            await self.host.open_note(action.get("note_id"))
            return None
        if action.type == ActionType.OPEN_KANBAN_CONFIG_NOTE:
            await self.host.open_note(board.config_note_id)
            return None

        try:
            return await self.queue.enqueue(self._handle_queued, action)
        except AbortedError:
            logger.debug(f"Action {action.type} aborted before it started")
            return None

    async def _handle_queued(self, action: Action) -> Optional[BoardState]:
        board = self.board
        if board is None:
            return None

        if action.type in (ActionType.SETTINGS, ActionType.ADD_COLUMN):
            target = NEW_COLUMN_TARGET if action.type == ActionType.ADD_COLUMN else action.get("target", "")
            new_yaml = await self._edit_config(board, target)
            if new_yaml:
                await self._write_config(board, new_yaml)
                await self.reload_config(board.config_note_id)

        elif action.type == ActionType.DELETE_COL:
            col_name = action.get("col_name")
            if board.parsed_config is not None and await self.host.confirm(
                f'Are you sure you want to delete the column "{col_name}"?'
            ):
                await self._write_config(board, board.parsed_config.without_column(col_name).to_yaml())
                await self.reload_config(board.config_note_id)

        elif action.type == ActionType.MESSAGE_ACTION:
            if action.get("message_id") == RELOAD_MESSAGE_ID and action.get("action_name") == "reload":
                await self.reload_config(board.config_note_id)

        elif action.type == ActionType.NEW_NOTE:
            await self._new_note(board, action)

        elif action.type == ActionType.REMOVE_NOTE_FROM_KANBAN:
            if await self.host.confirm("Are you sure you want to remove this note from the kanban board?"):
                await self._update_board_by_action(board, action)

        elif action.type in (ActionType.LOAD, ActionType.POLL):
            pass

        elif action.type == ActionType.CLOSE:
            await self.close()
            return None

        else:
            await self._update_board_by_action(board, action)
            if action.type == ActionType.INSERT_NOTE_TO_COLUMN:
                await self._cache_inserted_note(board, action.get("note_id"))

        return await self._refresh_state(action)

    async def _current_state(self, board: Board) -> BoardState:
        fetched = await self.store.search_notes(board.root_notebook_id, board.base_tags)
        return board.get_board_state(board.merge_cached_notes(fetched))

    async def _update_board_by_action(self, board: Board, action: Action) -> None:
        old_state = await self._current_state(board)
        for query in board.get_board_update(action, old_state):
            await self.store.execute_update_query(query)
            board.execute_update_query(query)

    async def _cache_inserted_note(self, board: Board, note_id: str) -> None:
        note = await self.store.get_note(note_id)
        if note is not None:
            board.append_note_cache(replace(note, order=now_ms()))

    async def _new_note(self, board: Board, action: Action) -> None:
        old_state = await self._current_state(board)
        note_id = await self.host.create_note()
        if note_id is None:
            note_id = await self.store.create_note(board.root_notebook_id or "")

        async def note_exists() -> bool:
            return await self.store.get_note(note_id) is not None

        await wait_until(
            note_exists,
            timeout=self.settings.new_note_wait_timeout,
            interval=self.settings.new_note_wait_interval,
        )

        action = Action(type=action.type, payload={**action.payload, "note_id": note_id})
        note = Note.new(note_id)
        for query in board.get_board_update(action, old_state):
            await self.store.execute_update_query(query)
            note = note.apply_update_query(query)

        # Tags may not be searchable yet; show the note from the cache meanwhile
        timestamp = now_ms()
        board.append_note_cache(replace(note, order=timestamp, created_time=timestamp))
        logger.info(f"Created note {note_id} in column '{action.get('col_name')}'")

    async def _refresh_state(self, action: Action) -> Optional[BoardState]:
        board = self.board
        if board is None:
            return None

        searched = await self.store.search_notes(board.root_notebook_id, board.base_tags)
        board.remove_note_cache([n.id for n in searched])
        state = board.get_board_state(board.merge_cached_notes(searched))

        config_note = await self.store.get_config_note(board.config_note_id)
        current_yaml = get_yaml_config(config_note.body) if config_note else None
        if current_yaml != board.config_yaml:
            if not current_yaml:
                await self.host.hide_board()
                return None
            result = parse_config_note(current_yaml)
            state.messages.append(result.error or reload_message())

        if action.type != ActionType.POLL and board.is_valid and config_note is not None:
            summary = render_summary(state, board.parsed_config.display_markdown)
            body = write_config_body(config_note.body, after_text=summary)
            if body != config_note.body:
                await self.store.set_config_note(board.config_note_id, body)

        return state

    async def close(self) -> None:
        """Drop the open board and everything still waiting to run against it."""
        if self.board is not None:
            logger.info(f"Closing board '{self.board.board_name}'")
        self.board = None
        self.queue.abort()
        self.refresh_debouncer.abort()
        self.hover_debouncer.abort()
        await self.host.hide_board()

    # ── Note events ──────────────────────────────────────────

    def refresh_ui(self) -> asyncio.Future:
        """Ask the host to redraw, collapsing bursts of requests into one."""
        waiter = self.refresh_debouncer.debounce(self.host.post_refresh)
        waiter.add_done_callback(_log_debounced_failure)
        return waiter

    def drag_hover(self, column_name: Optional[str]) -> asyncio.Future:
        """Report the column under a dragged note; only the last one in a burst is posted."""
        waiter = self.hover_debouncer.debounce(self.host.post_hover, column_name)
        waiter.add_done_callback(_log_debounced_failure)
        return waiter

    async def handle_note_selected(self, note_id: str) -> None:
        """Open a board when its config note is selected, or switch boards."""
        if self.board is not None:
            if self.board.config_note_id == note_id:
                return
            if await self.board.is_note_id_on_board(note_id):
                return
            previous = self.board
            await self.reload_config(note_id)
            if self.board is not None and self.board.is_valid and self.board is not previous:
                self.refresh_ui()
            return

        await self.reload_config(note_id)
        if self.board is not None:
            await self.host.show_board()

    async def handle_note_changed(self, note_id: str) -> None:
        board = self.board
        if board is None:
            return
        if board.config_note_id == note_id:
            if not board.is_valid:
                await self.reload_config(note_id)
            self.refresh_ui()
        elif await board.is_note_id_on_board(note_id):
            self.refresh_ui()

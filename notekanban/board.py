"""
Board: the state engine behind one kanban config note.

Column membership is never stored. It is derived from rules every time
the board is projected, and user actions are compiled back into the
mutations that make the rules produce the desired layout.

Lifecycle:
  Board(...)            bound to one config note and its notebook
  await load_config()   builds a BoardLayout; the board is valid after success
  get_board_state()     projects notes into columns
  get_board_update()    compiles an Action into UpdateQueries

A board whose config note is deleted or moved away is simply dropped by
its owner; a new config replaces the layout in one assignment.
"""
import functools
import logging
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from .cache import NoteCache
from .config import BoardConfig, parse_config_note
from .rules import RULES, Rule, exclude_note_id_rule, join_notebook_path, normalize_rule_value
from .schema import (
    Action,
    ActionType,
    BoardState,
    BoardStateColumn,
    Message,
    Note,
    QueryType,
    UpdateQuery,
    now_ms,
    set_order_query,
)
from .store import NoteStore
from .template import TemplateRenderer

logger = logging.getLogger(__name__)

# Config-facing attribute names accepted by `sort.by`
_SORT_ALIASES = {
    "createdTime": "created_time",
    "notebookId": "notebook_id",
    "isTodo": "is_todo",
    "isCompleted": "is_completed",
}
_NOTE_FIELDS = {f.name for f in fields(Note)}

# Filter keys handled by the board itself rather than by a rule
_BOARD_FILTER_KEYS = {"rootNotebookPath"}


@dataclass
class Column:
    name: str
    rules: List[Rule]
    new_note_title: Optional[str] = None

    def matches(self, note: Note) -> bool:
        return all(rule.filter_note(note) for rule in self.rules)

    def set(self, note_id: str) -> List[UpdateQuery]:
        return [q for rule in self.rules for q in rule.set(note_id)]

    def unset(self, note_id: str) -> List[UpdateQuery]:
        return [q for rule in self.rules for q in rule.unset(note_id)]

    def has_rule(self, name: str) -> bool:
        return any(rule.name == name for rule in self.rules)


@dataclass(frozen=True)
class BoardLayout:
    """Everything derived from one valid config. Replaced as a whole on reload."""
    parsed_config: BoardConfig
    root_notebook_path: str
    root_notebook_id: Optional[str]
    base_filters: Tuple[Rule, ...]
    all_columns: Tuple[Column, ...]
    non_backlog_columns: Tuple[Column, ...]
    backlog_column: Optional[Column]
    hidden_tags: Tuple[str, ...]
    base_tags: Tuple[str, ...]

    @property
    def root_notebook_name(self) -> str:
        return self.root_notebook_path.rstrip("/").split("/")[-1]

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.all_columns]

    def column(self, name: str) -> Optional[Column]:
        for col in self.all_columns:
            if col.name == name:
                return col
        return None


def _rule_tags(key: str, value) -> List[str]:
    if key == "tag":
        return [str(value)]
    if key == "tags":
        return [value] if isinstance(value, str) else [str(t) for t in value]
    return []


def _sort_attribute(sort_by: Optional[str]) -> Tuple[Optional[str], int]:
    """Turn `sort.by` ("title", "-due", ...) into (attribute, direction)."""
    if not sort_by:
        return None, 1
    direction = 1
    if sort_by.startswith("-"):
        direction = -1
        sort_by = sort_by[1:]
    attr = _SORT_ALIASES.get(sort_by, sort_by)
    if attr not in _NOTE_FIELDS:
        logger.warning(f"Cannot sort by unknown note attribute '{sort_by}'")
        return None, 1
    return attr, direction


def _compare_values(a, b) -> int:
    if isinstance(a, str) and isinstance(b, str):
        a, b = a.casefold(), b.casefold()
    return (a > b) - (a < b)


def _compare_user_order(a: Note, b: Note) -> int:
    """Higher order first, newer note first on ties."""
    if a.order != b.order:
        return -1 if a.order > b.order else 1
    if a.created_time != b.created_time:
        return -1 if a.created_time > b.created_time else 1
    return 0


class Board:
    """Kanban board bound to one config note."""

    def __init__(
        self,
        config_note_id: str,
        board_notebook_id: str,
        board_name: str,
        store: NoteStore,
        cache: Optional[NoteCache] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config_note_id = config_note_id
        self.board_notebook_id = board_notebook_id
        self.board_name = board_name
        self.store = store
        self.cache = cache if cache is not None else NoteCache()
        self.clock = clock

        # False until load_config succeeds, and after a failed reload
        self.is_valid = False
        self.error_messages: List[Message] = []
        self.config_yaml = ""
        self.layout: Optional[BoardLayout] = None

    # -------------------- derived views --------------------

    @property
    def parsed_config(self) -> Optional[BoardConfig]:
        return self.layout.parsed_config if self.layout else None

    @property
    def hidden_tags(self) -> List[str]:
        return list(self.layout.hidden_tags) if self.layout else []

    @property
    def base_tags(self) -> List[str]:
        return list(self.layout.base_tags) if self.layout else []

    @property
    def column_names(self) -> List[str]:
        return self.layout.column_names if self.layout else []

    @property
    def root_notebook_name(self) -> str:
        return self.layout.root_notebook_name if self.layout else ""

    @property
    def root_notebook_id(self) -> Optional[str]:
        return self.layout.root_notebook_id if self.layout else None

    # -------------------- config --------------------

    async def load_config(self, config_yaml: str) -> bool:
        """
        Parse `config_yaml` and rebuild filters and columns from it.

        Returns False on an invalid config. The previous layout is not
        touched in that case, but the board reports itself invalid.
        """
        result = parse_config_note(config_yaml)
        if result.config is None:
            self.config_yaml = config_yaml
            self.is_valid = False
            self.error_messages = [result.error]
            logger.warning(f"Board '{self.board_name}' has an invalid config: {result.error.title}")
            return False

        layout = await self._build_layout(result.config)
        self.layout = layout
        self.config_yaml = config_yaml
        self.error_messages = []
        self.cache.clear()
        self.is_valid = True
        logger.info(
            f"Board '{self.board_name}' loaded: {len(layout.all_columns)} columns, "
            f"root {layout.root_notebook_path}"
        )
        return True

    def _is_known_rule(self, key: str, where: str) -> bool:
        if key in RULES:
            return True
        logger.warning(f"Board '{self.board_name}': ignoring unknown rule '{key}' in {where}")
        return False

    async def _build_layout(self, config: BoardConfig) -> BoardLayout:
        root_path = config.root_notebook_path
        if not root_path:
            root_path = await self.store.get_notebook_path(self.board_notebook_id)
        root_path = join_notebook_path("", str(root_path))

        # Column and filter rules may create notebooks below the root, so
        # they are built before the root rule takes its subtree snapshot
        all_columns: List[Column] = []
        non_backlog: List[Column] = []
        backlog: Optional[Column] = None
        column_tags: List[str] = []
        for col_cfg in config.columns:
            column = Column(name=col_cfg.name, rules=[], new_note_title=col_cfg.new_note_title)
            all_columns.append(column)
            if col_cfg.backlog:
                backlog = column
                continue
            for key, raw in col_cfg.rules.items():
                value = normalize_rule_value(raw)
                if value is None or not self._is_known_rule(key, f"column '{col_cfg.name}'"):
                    continue
                column.rules.append(await RULES[key](value, root_path, config, self.store))
                column_tags += _rule_tags(key, value)
            non_backlog.append(column)

        filter_rules: List[Rule] = []
        base_tags: List[str] = []
        for key, raw in config.filters.items():
            value = normalize_rule_value(raw)
            if key in _BOARD_FILTER_KEYS:
                continue
            if value is None or not self._is_known_rule(key, "filters"):
                continue
            filter_rules.append(await RULES[key](value, root_path, config, self.store))
            base_tags += _rule_tags(key, value)

        base_filters: List[Rule] = [
            await exclude_note_id_rule(self.config_note_id, root_path, config, self.store),
        ]
        root_id: Optional[str] = None
        if root_path != "/":
            base_filters.append(await RULES["notebookPath"](root_path, "", config, self.store))
            root_id = await self.store.find_notebook_by_path(root_path)
        base_filters += filter_rules
        hidden_tags = base_tags + column_tags

        return BoardLayout(
            parsed_config=config,
            root_notebook_path=root_path,
            root_notebook_id=root_id,
            base_filters=tuple(base_filters),
            all_columns=tuple(all_columns),
            non_backlog_columns=tuple(non_backlog),
            backlog_column=backlog,
            hidden_tags=tuple(hidden_tags),
            base_tags=tuple(base_tags),
        )

    # -------------------- classification --------------------

    def sort_note_into_column(self, note: Note) -> Optional[str]:
        """
        Name of the column `note` belongs to, or None if it is off the board.
        The leftmost matching column wins; the backlog takes the rest.
        """
        layout = self.layout
        if layout is None:
            return None
        if not all(rule.filter_note(note) for rule in layout.base_filters):
            return None
        for column in layout.non_backlog_columns:
            if column.matches(note):
                return column.name
        if layout.backlog_column is not None:
            return layout.backlog_column.name
        return None

    async def is_note_id_on_board(self, note_id: str) -> bool:
        if not self.is_valid:
            return False
        note = await self.store.get_note(note_id)
        if note is None:
            # Not readable yet, e.g. still being created
            return True
        return self.sort_note_into_column(note) is not None

    # -------------------- projection --------------------

    def get_board_state(self, all_notes: List[Note]) -> BoardState:
        """Sort every note into its column and order each column."""
        state = BoardState(name=self.board_name)
        if not self.is_valid or self.layout is None:
            state.messages = list(self.error_messages)
            return state

        sorted_notes: Dict[str, List[Note]] = {name: [] for name in self.column_names}
        for note in all_notes:
            col_name = self.sort_note_into_column(note)
            if col_name is not None:
                sorted_notes[col_name].append(note)

        attr, direction = _sort_attribute(self.layout.parsed_config.sort_by)
        if attr is not None:
            def compare(a: Note, b: Note) -> int:
                return _compare_values(getattr(a, attr), getattr(b, attr)) * direction
        else:
            compare = _compare_user_order

        state.columns = [
            BoardStateColumn(name=name, notes=sorted(notes, key=functools.cmp_to_key(compare)))
            for name, notes in sorted_notes.items()
        ]
        state.hidden_tags = self.hidden_tags
        return state

    # -------------------- compilation --------------------

    def get_board_update(self, action: Action, board_state: BoardState) -> List[UpdateQuery]:
        """
        Queries that take the store from `board_state` to the state the
        action asks for. Unknown or non-mutating actions yield nothing.
        """
        if self.layout is None:
            return []
        if action.type == ActionType.NEW_NOTE:
            return self.new_note(action.get("col_name"), action.get("note_id") or "")
        if action.type == ActionType.MOVE_NOTE:
            return self.move_note(
                action.get("note_id"),
                action.get("old_column_name"),
                action.get("new_column_name"),
                int(action.get("new_index", 0)),
                board_state,
            )
        if action.type == ActionType.INSERT_NOTE_TO_COLUMN:
            return self.insert_note_to_column(
                action.get("note_id"),
                action.get("column_name"),
                int(action.get("index", 0)),
                board_state,
            )
        if action.type == ActionType.REMOVE_NOTE_FROM_KANBAN:
            return self.remove_note_from_kanban(action.get("note_id"), board_state)
        return []

    def _column_or_none(self, name: str) -> Optional[Column]:
        column = self.layout.column(name) if self.layout else None
        if column is None:
            logger.warning(f"Board '{self.board_name}' has no column '{name}'")
        return column

    def move_note(
        self,
        note_id: str,
        old_column_name: str,
        new_column_name: str,
        new_index: int,
        board_state: BoardState,
    ) -> List[UpdateQuery]:
        old_col = self._column_or_none(old_column_name)
        new_col = self._column_or_none(new_column_name)
        if old_col is None or new_col is None:
            return []

        # Unset first: a rule shared by both columns must survive the move
        queries = old_col.unset(note_id) + new_col.set(note_id)

        others = [n for n in board_state.notes_in_column(new_column_name) if n.id != note_id]
        if not others:
            return queries
        if new_index <= 0:
            queries.append(set_order_query(note_id, others[0].order + 1))
        elif new_index >= len(others):
            queries.append(set_order_query(note_id, others[-1].order - 1))
        else:
            new_order = others[new_index - 1].order - 1
            queries.append(set_order_query(note_id, new_order))
            for offset, note in enumerate(others[new_index:]):
                queries.append(set_order_query(note.id, new_order - 1 - offset))
        return queries

    def insert_note_to_column(
        self,
        note_id: str,
        column_name: str,
        index: int,
        board_state: BoardState,
    ) -> List[UpdateQuery]:
        """
        Put a note into a column without knowing where it came from.
        The note goes to the top: its order is the current timestamp.
        """
        new_col = self._column_or_none(column_name)
        if new_col is None:
            return []

        queries: List[UpdateQuery] = []
        existing_note, existing_column = board_state.find_note(note_id)
        old_col = self.layout.column(existing_column.name) if existing_column else None
        if existing_note is not None and old_col is not None:
            queries += old_col.unset(note_id)
        else:
            queries += [q for rule in self.layout.base_filters for q in rule.set(note_id)]
        queries += new_col.set(note_id)
        queries.append(set_order_query(note_id, now_ms()))
        return queries

    def remove_note_from_kanban(self, note_id: str, board_state: BoardState) -> List[UpdateQuery]:
        """Detach a note from its column and from the board's scope."""
        existing_note, existing_column = board_state.find_note(note_id)
        if existing_note is None or existing_column is None:
            return []
        old_col = self.layout.column(existing_column.name)
        queries = old_col.unset(note_id) if old_col else []
        queries += [q for rule in self.layout.base_filters for q in rule.unset(note_id)]
        return queries

    def new_note(self, col_name: str, note_id: str) -> List[UpdateQuery]:
        col = self._column_or_none(col_name)
        if col is None:
            return []

        # The column's own notebook wins over the board's root notebook
        skip_notebook = col.has_rule("notebookPath")
        queries = [
            q for rule in self.layout.base_filters
            if not (skip_notebook and rule.name == "notebookPath")
            for q in rule.set(note_id)
        ]
        queries += col.set(note_id)

        if col.new_note_title:
            title = self.render_new_note_title(col.new_note_title)
            queries.append(UpdateQuery(
                type=QueryType.PUT,
                path=["notes", note_id],
                body={"title": title, "body": title},
            ))
        return queries

    def render_new_note_title(self, template: str) -> str:
        return TemplateRenderer(str(template), clock=self.clock).render()

    # -------------------- optimistic cache --------------------

    def append_note_cache(self, note: Note) -> None:
        self.cache.append(note)

    def remove_note_cache(self, note_ids: List[str]) -> None:
        self.cache.remove(note_ids)

    def merge_cached_notes(self, notes: List[Note]) -> List[Note]:
        return self.cache.merge(notes)

    def execute_update_query(self, query: UpdateQuery) -> None:
        self.cache.apply(query)

    @property
    def cached_notes(self) -> List[Note]:
        return self.cache.notes

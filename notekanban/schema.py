"""
Board data model.

Notes are owned by the note store; the board only ever holds read-only
snapshots. Every change to the store is described by an UpdateQuery, and
the same vocabulary is interpreted locally by Note.apply_update_query so
the optimistic cache stays in lockstep with what was sent to the store.
"""
import re
import time
from dataclasses import dataclass, field, fields, replace
from typing import Optional, List, Dict, Any, Tuple


def now_ms() -> int:
    """Wall-clock timestamp in milliseconds (the store's time unit)."""
    return int(time.time() * 1000)


# ═══════════════════════════════════════════════════════════════
# UPDATE QUERIES (CLOSED SET)
# ═══════════════════════════════════════════════════════════════

class QueryType:
    """All valid UpdateQuery.type values."""

    PUT    = "put"
    POST   = "post"
    DELETE = "delete"

    @classmethod
    def is_valid(cls, query_type: str) -> bool:
        return query_type in (cls.PUT, cls.POST, cls.DELETE)


@dataclass
class UpdateQuery:
    """
    Declarative description of one mutation against the note store.

    Shapes understood by the store and the local cache:
        put    notes/{id}                body: note fields to overwrite
        post   tags/{tagId}/notes        body: {"id": noteId}, info.tags
        delete tags/{tagId}/notes/{id}   info.tags
    """
    type: str
    path: List[str]
    body: Optional[Dict[str, Any]] = None
    info: Optional[Dict[str, Any]] = None

    @property
    def info_tags(self) -> List[str]:
        return list((self.info or {}).get("tags") or [])

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "path": list(self.path)}
        if self.body is not None:
            data["body"] = dict(self.body)
        if self.info is not None:
            data["info"] = dict(self.info)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UpdateQuery":
        return cls(
            type=data["type"],
            path=list(data.get("path", [])),
            body=data.get("body"),
            info=data.get("info"),
        )


def set_order_query(note_id: str, order: int) -> UpdateQuery:
    return UpdateQuery(type=QueryType.PUT, path=["notes", note_id], body={"order": order})


# ═══════════════════════════════════════════════════════════════
# NOTES
# ═══════════════════════════════════════════════════════════════

@dataclass
class Note:
    """Transient snapshot of one note as seen by the board."""

    id: str
    title: str = ""
    tags: Tuple[str, ...] = ()
    notebook_id: str = ""
    is_todo: bool = False
    is_completed: bool = False
    due: int = 0                   # ms timestamp, 0 = no due date
    order: int = 0                 # user sort key, higher = nearer the top
    created_time: int = 0          # ms timestamp

    @classmethod
    def new(cls, note_id: str) -> "Note":
        """Empty snapshot for a note that was just created."""
        return cls(id=note_id, created_time=now_ms())

    @classmethod
    def from_row(cls, row: Dict[str, Any], tags: Optional[List[str]] = None) -> "Note":
        """Build from a store record; an unset order falls back to creation time."""
        created = int(row.get("created_time") or 0)
        order = int(row.get("order") or 0)
        return cls(
            id=row["id"],
            title=row.get("title") or "",
            tags=tuple(tags or ()),
            notebook_id=row.get("notebook_id") or "",
            is_todo=bool(row.get("is_todo")),
            is_completed=bool(row.get("is_completed")),
            due=int(row.get("due") or 0),
            order=created if order == 0 else order,
            created_time=created,
        )

    def with_tags(self, tags: List[str]) -> "Note":
        return replace(self, tags=tuple(tags))

    def apply_update_query(self, query: UpdateQuery) -> "Note":
        """
        Return the snapshot as it looks after `query` has been applied.

        Queries that target another note, or have an unknown shape, return
        the snapshot unchanged. Applying the same query twice gives the same
        result as applying it once.
        """
        path = query.path
        if query.type == QueryType.PUT:
            if len(path) == 2 and path[0] == "notes" and path[1] == self.id:
                known = {f.name for f in fields(self)} - {"id"}
                changes = {k: v for k, v in (query.body or {}).items() if k in known}
                if "tags" in changes:
                    changes["tags"] = tuple(changes["tags"])
                return replace(self, **changes)

        elif query.type == QueryType.POST:
            if (len(path) == 3 and path[0] == "tags" and path[2] == "notes"
                    and (query.body or {}).get("id") == self.id and query.info_tags):
                merged = list(self.tags)
                for tag in query.info_tags:
                    if tag not in merged:
                        merged.append(tag)
                return replace(self, tags=tuple(merged))

        elif query.type == QueryType.DELETE:
            if (len(path) == 4 and path[0] == "tags" and path[2] == "notes"
                    and path[3] == self.id and query.info_tags):
                removed = set(query.info_tags)
                return replace(self, tags=tuple(t for t in self.tags if t not in removed))

        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "tags": list(self.tags),
            "notebook_id": self.notebook_id,
            "is_todo": self.is_todo,
            "is_completed": self.is_completed,
            "due": self.due,
            "order": self.order,
            "created_time": self.created_time,
        }


# ═══════════════════════════════════════════════════════════════
# MESSAGES
# ═══════════════════════════════════════════════════════════════

class Severity:
    INFO    = "info"
    WARNING = "warning"
    ERROR   = "error"


@dataclass
class Message:
    """Notice shown above the board, with follow-up actions the user can pick."""
    id: str
    title: str
    severity: str = Severity.INFO
    details: Optional[str] = None
    actions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "severity": self.severity,
            "actions": list(self.actions),
        }
        if self.details is not None:
            data["details"] = self.details
        return data


RELOAD_MESSAGE_ID = "reload"


def reload_message() -> Message:
    return Message(
        id=RELOAD_MESSAGE_ID,
        title="The configuration has changed, would you like to reload the board?",
        severity=Severity.WARNING,
        actions=["reload"],
    )


# ═══════════════════════════════════════════════════════════════
# BOARD STATE
# ═══════════════════════════════════════════════════════════════

@dataclass
class BoardStateColumn:
    name: str
    notes: List[Note] = field(default_factory=list)


@dataclass
class BoardState:
    """Recomputed view of the board; never persisted."""
    name: str
    columns: Optional[List[BoardStateColumn]] = None
    hidden_tags: List[str] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)

    def find_note(self, note_id: str) -> Tuple[Optional[Note], Optional[BoardStateColumn]]:
        """Locate a note and the column currently showing it."""
        for column in self.columns or []:
            for note in column.notes:
                if note.id == note_id:
                    return note, column
        return None, None

    def notes_in_column(self, column_name: str) -> List[Note]:
        for column in self.columns or []:
            if column.name == column_name:
                return column.notes
        return []

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "hiddenTags": list(self.hidden_tags),
            "messages": [m.to_dict() for m in self.messages],
        }
        if self.columns is not None:
            data["columns"] = [
                {"name": c.name, "notes": [n.to_dict() for n in c.notes]}
                for c in self.columns
            ]
        return data


# ═══════════════════════════════════════════════════════════════
# ACTIONS (CLOSED SET)
# ═══════════════════════════════════════════════════════════════

class ActionType:
    """Every action kind the UI may send. Nothing else is accepted."""

    LOAD                    = "load"
    POLL                    = "poll"
    SETTINGS                = "settings"
    MESSAGE_ACTION          = "messageAction"
    OPEN_NOTE               = "openNote"
    REMOVE_NOTE_FROM_KANBAN = "removeNoteFromKanban"
    ADD_COLUMN              = "addColumn"
    DELETE_COL              = "deleteCol"
    NEW_NOTE                = "newNote"
    CLOSE                   = "close"
    OPEN_KANBAN_CONFIG_NOTE = "openKanbanConfigNote"
    MOVE_NOTE               = "moveNote"
    INSERT_NOTE_TO_COLUMN   = "insertNoteToColumn"

    _ALL = None

    @classmethod
    def all_types(cls) -> set:
        if cls._ALL is None:
            cls._ALL = {
                v for k, v in vars(cls).items()
                if isinstance(v, str) and not k.startswith("_")
            }
        return cls._ALL

    @classmethod
    def is_valid(cls, action_type: str) -> bool:
        return action_type in cls.all_types()


_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


@dataclass
class Action:
    """
    One user intent. Payload keys are snake_case:
        moveNote             note_id, old_column_name, new_column_name, new_index
        insertNoteToColumn   note_id, column_name, index
        removeNoteFromKanban note_id
        newNote              col_name, note_id (filled in once the note exists)
        deleteCol            col_name
        settings             target
        messageAction        message_id, action_name
        openNote             note_id
    """
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        """Accept the UI's camelCase message shape."""
        payload = {_snake(k): v for k, v in (data.get("payload") or {}).items()}
        return cls(type=data.get("type", ""), payload=payload)

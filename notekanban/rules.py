"""
Rule factory.

A rule is a predicate over a note plus two mutation generators: `set`
returns the queries that make the predicate true for a note, `unset` the
ones that make it false. Rules never touch the store once built; they
only describe changes.

Rules are built by RULES[key](value, root_notebook_path, config, store).
Building may create a missing tag or notebook, which is idempotent.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .config import BoardConfig
from .schema import Note, QueryType, UpdateQuery
from .store import NoteStore

RuleValue = Union[str, List[str]]


@dataclass
class Rule:
    name: str
    filter_note: Callable[[Note], bool]
    set: Callable[[str], List[UpdateQuery]]
    unset: Callable[[str], List[UpdateQuery]]
    editor_type: str


def _no_queries(note_id: str) -> List[UpdateQuery]:
    return []


def join_notebook_path(root_path: str, value: str) -> str:
    """Resolve a rule path; absolute paths stay as they are."""
    if value.startswith("/"):
        return value
    parts = [p for p in root_path.split("/") if p] + [p for p in value.split("/") if p]
    return "/" + "/".join(parts)


# ═══════════════════════════════════════════════════════════════
# Tag rules
# ═══════════════════════════════════════════════════════════════

async def _tags_rule(name: str, tags: List[str], store: NoteStore) -> Rule:
    tag_ids = [(tag, await store.get_or_create_tag(tag)) for tag in tags]
    wanted = {t.lower() for t in tags}

    def filter_note(note: Note) -> bool:
        return wanted <= {t.lower() for t in note.tags}

    def set_(note_id: str) -> List[UpdateQuery]:
        return [
            UpdateQuery(
                type=QueryType.POST,
                path=["tags", tag_id, "notes"],
                body={"id": note_id},
                info={"tags": [tag]},
            )
            for tag, tag_id in tag_ids
        ]

    def unset(note_id: str) -> List[UpdateQuery]:
        return [
            UpdateQuery(
                type=QueryType.DELETE,
                path=["tags", tag_id, "notes", note_id],
                info={"tags": [tag]},
            )
            for tag, tag_id in tag_ids
        ]

    return Rule(name=name, filter_note=filter_note, set=set_, unset=unset, editor_type="tags")


async def tag_rule(value: RuleValue, root_path: str, config: BoardConfig, store: NoteStore) -> Rule:
    return await _tags_rule("tag", [str(value)], store)


async def tags_rule(value: RuleValue, root_path: str, config: BoardConfig, store: NoteStore) -> Rule:
    tags = [value] if isinstance(value, str) else [str(t) for t in value]
    return await _tags_rule("tags", tags, store)


# ═══════════════════════════════════════════════════════════════
# Notebook rule
# ═══════════════════════════════════════════════════════════════

async def notebook_path_rule(value: RuleValue, root_path: str, config: BoardConfig, store: NoteStore) -> Rule:
    """
    Match notes in the target notebook or any notebook below it.

    `unset` moves the note to the target's parent notebook.
    """
    path = join_notebook_path(root_path, str(value))
    target_id = await store.find_notebook_by_path(path, create=True)
    notebooks = await store.get_all_notebooks()
    parents = {nb.id: nb.parent_id for nb in notebooks}

    subtree = {target_id}
    changed = True
    while changed:
        changed = False
        for nb_id, parent_id in parents.items():
            if parent_id in subtree and nb_id not in subtree:
                subtree.add(nb_id)
                changed = True
    parent_of_target = parents.get(target_id, "")

    def filter_note(note: Note) -> bool:
        return note.notebook_id in subtree

    def set_(note_id: str) -> List[UpdateQuery]:
        return [UpdateQuery(type=QueryType.PUT, path=["notes", note_id], body={"notebook_id": target_id})]

    def unset(note_id: str) -> List[UpdateQuery]:
        return [UpdateQuery(type=QueryType.PUT, path=["notes", note_id], body={"notebook_id": parent_of_target})]

    return Rule(name="notebookPath", filter_note=filter_note, set=set_, unset=unset, editor_type="notebook")


# ═══════════════════════════════════════════════════════════════
# Completion and exclusion rules
# ═══════════════════════════════════════════════════════════════

async def completed_rule(value: RuleValue, root_path: str, config: BoardConfig, store: NoteStore) -> Rule:
    want = str(value).lower() == "true"

    def filter_note(note: Note) -> bool:
        return note.is_todo and note.is_completed == want

    def set_(note_id: str) -> List[UpdateQuery]:
        return [UpdateQuery(type=QueryType.PUT, path=["notes", note_id],
                            body={"is_todo": True, "is_completed": want})]

    def unset(note_id: str) -> List[UpdateQuery]:
        return [UpdateQuery(type=QueryType.PUT, path=["notes", note_id],
                            body={"is_completed": not want})]

    return Rule(name="completed", filter_note=filter_note, set=set_, unset=unset, editor_type="checkbox")


async def exclude_note_id_rule(value: RuleValue, root_path: str, config: Optional[BoardConfig], store: NoteStore) -> Rule:
    excluded = str(value)
    return Rule(
        name="excludeNoteId",
        filter_note=lambda note: note.id != excluded,
        set=_no_queries,
        unset=_no_queries,
        editor_type="",
    )


RuleFactory = Callable[[RuleValue, str, BoardConfig, NoteStore], Awaitable[Rule]]

# There is no "due" rule; "due" only works as a sort attribute.
# Unknown keys are skipped by the board with a warning.
RULES: Dict[str, RuleFactory] = {
    "tag": tag_rule,
    "tags": tags_rule,
    "notebookPath": notebook_path_rule,
    "completed": completed_rule,
    "excludeNoteId": exclude_note_id_rule,
}


def normalize_rule_value(value: Any) -> Optional[RuleValue]:
    """Booleans become "true"/"false" so `completed: false` is still a rule."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None or value == "" or value == []:
        return None
    return value


def get_rule_editor_types(target_path: str) -> Dict[str, str]:
    """Editor widget per config key, for the config editor at `target_path`."""
    if target_path.startswith("filters"):
        return {
            "rootNotebookPath": "notebook",
            "tag": "tags",
            "tags": "tags",
            "completed": "checkbox",
        }
    return {
        "notebookPath": "notebook",
        "tag": "tags",
        "tags": "tags",
        "completed": "checkbox",
        "backlog": "checkbox",
        "newNoteTitle": "text",
    }

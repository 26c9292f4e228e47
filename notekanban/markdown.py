# Markdown summary of a board
#
# Written below the config fence of the config note after every change,
# so the note itself shows the board when opened outside the kanban view.

from typing import List

from .schema import BoardState, Note

EMPTY_CELL = ""


def _escape(text: str) -> str:
    return text.replace("|", "\\|").replace("[", "\\[").replace("]", "\\]").replace("\n", " ")


def note_link(note: Note) -> str:
    return f"[{_escape(note.title) or '(untitled)'}](:/{note.id})"


def get_md_table(state: BoardState) -> str:
    columns = state.columns or []
    if not columns:
        return ""
    header = "| " + " | ".join(_escape(c.name) for c in columns) + " |"
    separator = "| " + " | ".join("---" for _ in columns) + " |"
    rows: List[str] = []
    depth = max(len(c.notes) for c in columns)
    for i in range(depth):
        cells = [note_link(c.notes[i]) if i < len(c.notes) else EMPTY_CELL for c in columns]
        rows.append("| " + " | ".join(cells) + " |")
    return "\n".join([header, separator] + rows)


def get_md_list(state: BoardState) -> str:
    sections: List[str] = []
    for column in state.columns or []:
        lines = [f"## {column.name}", ""]
        lines += [f"- {note_link(n)}" for n in column.notes]
        sections.append("\n".join(lines))
    return "\n\n".join(sections)


def render_summary(state: BoardState, mode: str) -> str:
    if mode == "list":
        return get_md_list(state)
    return get_md_table(state)

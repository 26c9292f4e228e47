"""Tests for the command line entry point."""
import asyncio

from notekanban.cli import main
from notekanban.schema import QueryType, UpdateQuery
from notekanban.store import SQLiteNoteStore

CONFIG = "columns:\n  - name: Todo\n    tag: todo\n  - name: Later\n    backlog: true\n"


async def _seed(db_path):
    store = SQLiteNoteStore(db_path)
    notebook_id = await store.find_notebook_by_path("/Projects", create=True)
    config_id = await store.create_note(notebook_id, "Board", f"```kanban\n{CONFIG}```")
    note_id = await store.create_note(notebook_id, "Write tests")
    tag_id = await store.get_or_create_tag("todo")
    await store.execute_update_query(UpdateQuery(
        type=QueryType.POST, path=["tags", tag_id, "notes"], body={"id": note_id}, info={"tags": ["todo"]},
    ))
    return config_id, note_id


def test_show_prints_board(tmp_path, capsys):
    """Test show prints the board name and a table summary"""
    db_path = str(tmp_path / "notes.db")
    config_id, note_id = asyncio.run(_seed(db_path))
    assert main(["show", "--db", db_path, "--config-note", config_id]) == 0
    out = capsys.readouterr().out
    assert "# Board" in out
    assert "| Todo | Later |" in out
    assert f"[Write tests](:/{note_id})" in out


def test_show_list_mode(tmp_path, capsys):
    """Test show honours the list display mode"""
    db_path = str(tmp_path / "notes.db")
    config_id, _ = asyncio.run(_seed(db_path))

    async def switch_to_list():
        store = SQLiteNoteStore(db_path)
        await store.set_config_note(
            config_id, f"```kanban\n{CONFIG}display:\n  markdown: list\n```")

    asyncio.run(switch_to_list())
    assert main(["show", "--db", db_path, "--config-note", config_id]) == 0
    assert "## Todo" in capsys.readouterr().out


def test_show_rejects_plain_note(tmp_path):
    """Test show fails on a note without a kanban block"""
    db_path = str(tmp_path / "notes.db")
    _, note_id = asyncio.run(_seed(db_path))
    assert main(["show", "--db", db_path, "--config-note", note_id]) == 1


def test_missing_settings_file(tmp_path):
    """Test an explicit settings path that does not exist is an error"""
    db_path = str(tmp_path / "notes.db")
    assert main(["--settings", str(tmp_path / "nope.yaml"), "show", "--db", db_path,
                 "--config-note", "x"]) == 1

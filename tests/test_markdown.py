"""Tests for the markdown board summary."""
from notekanban.markdown import get_md_list, get_md_table, note_link, render_summary
from notekanban.schema import BoardState, BoardStateColumn, Note


def _state():
    return BoardState(name="Board", columns=[
        BoardStateColumn(name="Todo", notes=[Note(id="a", title="First"), Note(id="b", title="Second")]),
        BoardStateColumn(name="Done", notes=[Note(id="c", title="Third")]),
    ])


def test_note_link_escapes():
    """Test note links escape markdown characters"""
    assert note_link(Note(id="x", title="a|b [c]")) == "[a\\|b \\[c\\]](:/x)"
    assert note_link(Note(id="x")) == "[(untitled)](:/x)"


def test_table():
    """Test the table summary"""
    assert get_md_table(_state()) == "\n".join([
        "| Todo | Done |",
        "| --- | --- |",
        "| [First](:/a) | [Third](:/c) |",
        "| [Second](:/b) |  |",
    ])


def test_list():
    """Test the list summary"""
    assert get_md_list(_state()) == "\n".join([
        "## Todo",
        "",
        "- [First](:/a)",
        "- [Second](:/b)",
        "",
        "## Done",
        "",
        "- [Third](:/c)",
    ])


def test_render_summary_modes():
    """Test picking the summary layout by display mode"""
    assert render_summary(_state(), "list") == get_md_list(_state())
    assert render_summary(_state(), "table") == get_md_table(_state())


def test_invalid_board_renders_nothing():
    """Test a board without columns renders no summary"""
    assert get_md_table(BoardState(name="Board")) == ""
    assert get_md_list(BoardState(name="Board")) == ""

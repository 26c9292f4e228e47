"""
Tests for the data model: update query application, board state lookup, actions.
"""
from notekanban.schema import (
    Action,
    ActionType,
    BoardState,
    BoardStateColumn,
    Message,
    Note,
    QueryType,
    UpdateQuery,
    reload_message,
    set_order_query,
)


def _post_tag(note_id, tag):
    return UpdateQuery(type=QueryType.POST, path=["tags", f"id-{tag}", "notes"],
                       body={"id": note_id}, info={"tags": [tag]})


def _delete_tag(note_id, tag):
    return UpdateQuery(type=QueryType.DELETE, path=["tags", f"id-{tag}", "notes", note_id],
                       info={"tags": [tag]})


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Note.apply_update_query
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestApplyUpdateQuery:

    def test_put_merges_fields(self):
        """Test put merges body fields into the note"""
        note = Note(id="n1", title="Old", order=5)
        updated = note.apply_update_query(
            UpdateQuery(type=QueryType.PUT, path=["notes", "n1"], body={"title": "New", "is_todo": True})
        )
        assert updated.title == "New"
        assert updated.is_todo is True
        assert updated.order == 5
        assert note.title == "Old"

    def test_put_ignores_unknown_fields(self):
        """Test put ignores fields a note does not have"""
        note = Note(id="n1")
        updated = note.apply_update_query(
            UpdateQuery(type=QueryType.PUT, path=["notes", "n1"], body={"body": "text", "order": 3})
        )
        assert updated.order == 3
        assert not hasattr(updated, "body")

    def test_put_for_other_note_is_noop(self):
        """Test put for another note changes nothing"""
        note = Note(id="n1", title="Same")
        assert note.apply_update_query(set_order_query("n2", 99)) is note

    def test_post_adds_tags(self):
        """Test post adds tags"""
        note = Note(id="n1", tags=("a",))
        assert note.apply_update_query(_post_tag("n1", "b")).tags == ("a", "b")

    def test_post_for_other_note_is_noop(self):
        """Test post for another note changes nothing"""
        note = Note(id="n1", tags=("a",))
        assert note.apply_update_query(_post_tag("n2", "b")).tags == ("a",)

    def test_delete_removes_tags(self):
        """Test delete removes tags"""
        note = Note(id="n1", tags=("a", "b"))
        assert note.apply_update_query(_delete_tag("n1", "a")).tags == ("b",)

    def test_unknown_shape_is_noop(self):
        """Test unrecognized query paths change nothing"""
        note = Note(id="n1", title="x")
        query = UpdateQuery(type=QueryType.PUT, path=["folders", "n1"], body={"title": "y"})
        assert note.apply_update_query(query) is note
        query = UpdateQuery(type="patch", path=["notes", "n1"], body={"title": "y"})
        assert note.apply_update_query(query) is note

    def test_idempotent(self):
        """Applying the same query twice equals applying it once"""
        note = Note(id="n1", tags=("a",), order=1)
        for query in (_post_tag("n1", "b"), _delete_tag("n1", "a"), set_order_query("n1", 7)):
            once = note.apply_update_query(query)
            twice = once.apply_update_query(query)
            assert once == twice

    def test_sequential_tag_swap(self):
        """Test removing one tag and adding another in sequence"""
        note = Note(id="n1", tags=("todo",))
        note = note.apply_update_query(_delete_tag("n1", "todo"))
        note = note.apply_update_query(_post_tag("n1", "done"))
        assert note.tags == ("done",)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Note construction
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_from_row_defaults_order_to_created_time():
    """Test order falls back to created time"""
    note = Note.from_row({"id": "n1", "title": "T", "order": 0, "created_time": 1234}, ["x"])
    assert note.order == 1234
    assert note.tags == ("x",)


def test_from_row_keeps_explicit_order():
    """Test an explicit order is kept"""
    note = Note.from_row({"id": "n1", "order": 50, "created_time": 1234})
    assert note.order == 50


def test_update_query_dict_round_trip():
    """Test to_dict and from_dict round-trip"""
    query = _post_tag("n1", "done")
    assert UpdateQuery.from_dict(query.to_dict()) == query


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Board state and messages
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_find_note():
    """Test finding a note and its column in the board state"""
    a, b = Note(id="a"), Note(id="b")
    state = BoardState(name="B", columns=[
        BoardStateColumn(name="Todo", notes=[a]),
        BoardStateColumn(name="Done", notes=[b]),
    ])
    note, column = state.find_note("b")
    assert note is b
    assert column.name == "Done"
    assert state.find_note("zzz") == (None, None)


def test_board_state_without_columns():
    """Test serializing a board state without columns"""
    state = BoardState(name="B", messages=[Message(id="parseError", title="bad")])
    data = state.to_dict()
    assert "columns" not in data
    assert data["messages"][0]["id"] == "parseError"
    assert state.notes_in_column("Todo") == []


def test_reload_message():
    """Test the reload message"""
    msg = reload_message()
    assert msg.id == "reload"
    assert msg.severity == "warning"
    assert msg.actions == ["reload"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Actions
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestActionType:

    def test_closed_set(self):
        """Test the closed set of action types"""
        assert len(ActionType.all_types()) == 13
        assert ActionType.is_valid("moveNote")
        assert ActionType.is_valid("insertNoteToColumn")
        assert not ActionType.is_valid("dragNote")

    def test_from_dict_converts_payload_keys(self):
        """Test camelCase payload keys become snake_case"""
        action = Action.from_dict({
            "type": "moveNote",
            "payload": {"noteId": "n1", "oldColumnName": "A", "newColumnName": "B", "newIndex": 2},
        })
        assert action.type == ActionType.MOVE_NOTE
        assert action.get("note_id") == "n1"
        assert action.get("old_column_name") == "A"
        assert action.get("new_index") == 2

    def test_from_dict_without_payload(self):
        """Test an action without a payload"""
        action = Action.from_dict({"type": "load"})
        assert action.payload == {}
        assert action.get("note_id") is None

# Kanban boards over a note store: column membership derived from note metadata
#
# Components:
#   schema.py     - Data model (Note, UpdateQuery, BoardState, Action, Message)
#   rules.py      - Rule factory (tag, tags, notebookPath, completed, excludeNoteId)
#   config.py     - Config note parsing and engine settings
#   board.py      - Board engine: classification, projection, action compilation
#   cache.py      - Optimistic note overlay
#   template.py   - New note title templates
#   scheduling.py - Single-flight action queue, debouncer, bounded wait
#   store.py      - NoteStore interface and SQLite backend
#   markdown.py   - Markdown summary written into the config note
#   controller.py - Action dispatch between the board, the store and the host UI
#   watcher.py    - Database change notifications
#   cli.py        - Command line entry point

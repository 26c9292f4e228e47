# Board configuration
#
# A board is defined by a YAML block fenced with ```kanban inside its
# configuration note. Parsing never raises: problems come back as a
# Message so the UI can show them instead of the columns.
#
# Engine settings (timeouts, debounce delays, cache limits) live in a
# separate optional settings.yaml.

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .schema import Message, Severity

logger = logging.getLogger(__name__)

SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

FENCE_OPEN = "```kanban"
FENCE_CLOSE = "```"
_FENCE_RE = re.compile(r"^```kanban[ \t]*\n(.*?)^```[ \t]*$", re.MULTILINE | re.DOTALL)

PARSE_ERROR_ID = "parseError"
DISPLAY_MODES = ("table", "list")


class ConfigError(Exception):
    """Raised when settings or CLI configuration are invalid."""
    pass


# ═══════════════════════════════════════════════════════════════
# Board config model
# ═══════════════════════════════════════════════════════════════

@dataclass
class ColumnConfig:
    """One configured column. `rules` maps rule names to their raw values."""
    name: str
    backlog: bool = False
    new_note_title: Optional[str] = None
    rules: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        if self.backlog:
            data["backlog"] = True
        data.update(self.rules)
        if self.new_note_title is not None:
            data["newNoteTitle"] = self.new_note_title
        return data


@dataclass
class BoardConfig:
    columns: List[ColumnConfig]
    filters: Dict[str, Any] = field(default_factory=dict)
    sort_by: Optional[str] = None
    display_markdown: str = "table"

    @property
    def root_notebook_path(self) -> Optional[str]:
        return self.filters.get("rootNotebookPath")

    def column(self, name: str) -> Optional[ColumnConfig]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def without_column(self, name: str) -> "BoardConfig":
        return BoardConfig(
            columns=[c for c in self.columns if c.name != name],
            filters=dict(self.filters),
            sort_by=self.sort_by,
            display_markdown=self.display_markdown,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.filters:
            data["filters"] = dict(self.filters)
        if self.sort_by:
            data["sort"] = {"by": self.sort_by}
        data["columns"] = [c.to_dict() for c in self.columns]
        data["display"] = {"markdown": self.display_markdown}
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)


@dataclass
class ParseResult:
    """Either `config` or `error` is set, never both."""
    config: Optional[BoardConfig] = None
    error: Optional[Message] = None


# ═══════════════════════════════════════════════════════════════
# Config note handling
# ═══════════════════════════════════════════════════════════════

def get_yaml_config(body: str) -> Optional[str]:
    """Return the YAML inside the ```kanban fence, or None if there is no fence."""
    match = _FENCE_RE.search(body or "")
    if not match:
        return None
    return match.group(1)


def write_config_body(
    body: str,
    yaml_text: Optional[str] = None,
    after_text: Optional[str] = None,
) -> str:
    """
    Rebuild a config note body.

    `yaml_text` replaces the fenced config, `after_text` replaces everything
    after the fence. Either may be None to keep the current content.
    """
    match = _FENCE_RE.search(body or "")
    if match:
        before = body[:match.start()]
        current_yaml = match.group(1)
        after = body[match.end():]
    else:
        before, current_yaml, after = "", "", body or ""

    new_yaml = current_yaml if yaml_text is None else yaml_text
    if new_yaml and not new_yaml.endswith("\n"):
        new_yaml += "\n"
    if after_text is not None:
        after = "\n\n" + after_text if after_text else ""
    return f"{before}{FENCE_OPEN}\n{new_yaml}{FENCE_CLOSE}{after}"


def _error(title: str, details: Optional[str] = None) -> ParseResult:
    return ParseResult(error=Message(
        id=PARSE_ERROR_ID,
        title=title,
        severity=Severity.ERROR,
        details=details,
    ))


def parse_config_note(yaml_text: str) -> ParseResult:
    """Parse and validate the YAML of a board config."""
    try:
        raw = yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        return _error("YAML parse error", str(e))

    if not isinstance(raw, dict):
        return _error("Configuration is empty or not a mapping")

    filters = raw.get("filters") or {}
    if not isinstance(filters, dict):
        return _error("'filters' must be a mapping")

    sort = raw.get("sort") or {}
    if not isinstance(sort, dict):
        return _error("'sort' must be a mapping")
    sort_by = sort.get("by")
    if sort_by is not None and not isinstance(sort_by, str):
        return _error("'sort.by' must be a string")

    display = raw.get("display") or {}
    if not isinstance(display, dict):
        return _error("'display' must be a mapping")
    markdown = display.get("markdown", "table")
    if markdown not in DISPLAY_MODES:
        return _error(f"'display.markdown' must be one of {list(DISPLAY_MODES)}")

    raw_columns = raw.get("columns")
    if not isinstance(raw_columns, list) or not raw_columns:
        return _error("There must be at least one column")

    columns: List[ColumnConfig] = []
    seen = set()
    backlogs = 0
    for idx, col in enumerate(raw_columns):
        if not isinstance(col, dict):
            return _error(f"Column #{idx + 1} must be a mapping")
        name = col.get("name")
        if not isinstance(name, str) or not name.strip():
            return _error(f"Column #{idx + 1} has no name")
        if name in seen:
            return _error(f"Duplicate column name '{name}'")
        seen.add(name)
        backlog = bool(col.get("backlog", False))
        backlogs += backlog
        title = col.get("newNoteTitle")
        rules = {
            k: v for k, v in col.items()
            if k not in ("name", "backlog", "newNoteTitle")
        }
        columns.append(ColumnConfig(
            name=name,
            backlog=backlog,
            new_note_title=None if title is None else str(title),
            rules=rules,
        ))

    if backlogs > 1:
        return _error("Only one column can be the backlog")

    return ParseResult(config=BoardConfig(
        columns=columns,
        filters=filters,
        sort_by=sort_by,
        display_markdown=markdown,
    ))


# ═══════════════════════════════════════════════════════════════
# Engine settings
# ═══════════════════════════════════════════════════════════════

@dataclass
class Settings:
    """Runtime settings for the board engine."""

    # Storage
    db_path: str = "~/.local/share/notekanban/notes.db"

    # Debouncing
    refresh_debounce_ms: int = 100
    hover_debounce_ms: int = 100

    # New note confirmation
    new_note_wait_timeout: float = 40.0
    new_note_wait_interval: float = 1.0

    # Optimistic cache
    cache_ttl_secs: float = 60.0
    cache_max_entries: int = 256

    def resolve_paths(self):
        self.db_path = str(Path(self.db_path).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Settings":
        """Load settings from YAML, falling back to defaults."""
        cfg_path = Path(path) if path else SETTINGS_PATH
        if path and not cfg_path.exists():
            raise ConfigError(f"Settings file not found: {cfg_path}")
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                settings = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
            except Exception as e:
                logger.warning(f"Ignoring invalid settings file {cfg_path}: {e}")
                settings = cls()
        else:
            settings = cls()
        settings.resolve_paths()
        return settings

# Undo/redo history
HISTORY_MAX_SIZE: int = 100
HISTORY_DEBOUNCE_MS: int = 500

# Entity auto-linking
AUTOLINK_THRESHOLD: float = 0.8
AUTOLINK_DEBOUNCE_MS: int = 500
AUTOLINK_SPACE_DELAY_MS: int = 50

# Search surface
SEARCH_DEFAULT_MODE: str = "all"          # "all" | "dialogues" | "narration"
SEARCH_DEBOUNCE_MS: int = 0               # 0 = recompute on every keystroke

# /* ~~~ dialogue heuristics enabled out of the box ~~~ */
DIALOGUE_DOUBLE_QUOTES: bool = True
DIALOGUE_SINGLE_QUOTES: bool = True
DIALOGUE_EM_DASH: bool = True

# Host store used by the CLI and the web adapter when no --db is given
DEFAULT_DSN: str = "memory://"

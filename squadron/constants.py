"""Constants used across squadron.

Values here are internal and not user-configurable.
"""

# Instances
GLOBAL_INSTANCE_LIMIT = 10
MAX_TITLE_LENGTH = 32
PRIMARY_PANE_INDEX = 1  # AI program pane; pane 0 is the plain shell
TERMINAL_PANE_INDEX = 0
TMUX_SESSION_PREFIX = "squadron_"
RELOAD_OPTION = "@squadron_reload"  # tmux user option set by the reload key binding

# Git
BOOKMARK_PREFIX = "[BOOKMARK] "
BOOKMARK_GREP = r"^\[BOOKMARK\]"
COMMIT_MESSAGE_PREFIX = "[squadron]"
UNKNOWN_BOOKMARK = "Unknown bookmark"
HISTORY_COMMIT_COUNT = 50

# Pull requests
GEMINI_REVIEW_COMMAND = "/gemini review"
COMMENT_SEND_DELAY_S = 2.0

# Timers (seconds)
MESSAGE_DURATION_S = 3.0
KEYUP_DELAY_S = 0.5
ERROR_PREFIX_TIME_FORMAT = "%H:%M:%S"
BRANCH_TITLE_TIME_FORMAT = "%H%M%S"
UPDATE_CHECK_INTERVAL_S = 30 * 60

# Executor
COMMAND_WORKERS = 8

# Layout
LIST_TOP_ROW = 2  # first screen row of the instance list

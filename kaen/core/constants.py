"""Application constants.

Supabase table names and discussion defaults shared across services.
"""

# ---------------------------------------------------------------------------
# Supabase tables
# ---------------------------------------------------------------------------
COMMENTS_TABLE: str = "comments"
COMMENT_VOTES_TABLE: str = "comment_votes"
POSTS_TABLE: str = "posts"

# ---------------------------------------------------------------------------
# Discussion defaults
# ---------------------------------------------------------------------------
# Polling cadence of the inline comment section.
SECTION_POLL_INTERVAL_SECONDS: float = 5.0

# How often open discussions are checked for idleness.
IDLE_SWEEP_INTERVAL_SECONDS: float = 30.0
IDLE_SWEEP_JOB_ID: str = "discussion_idle_sweep"

# Fallback display name when the viewer has none.
ANONYMOUS_DISPLAY_NAME: str = "User"

# Headers the host page uses to pass the current viewer through.
VIEWER_ID_HEADER: str = "X-Viewer-Id"
VIEWER_NAME_HEADER: str = "X-Viewer-Name"
VIEWER_AVATAR_HEADER: str = "X-Viewer-Avatar"

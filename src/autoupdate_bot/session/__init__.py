"""Update session models.

The state machine lives in :mod:`autoupdate_bot.session.manager`.
"""

from .models import CommitState, CommitStatus, SessionState, SubmoduleRecord, UpdateSession

__all__ = [
    "CommitState",
    "CommitStatus",
    "SessionState",
    "SubmoduleRecord",
    "UpdateSession",
]

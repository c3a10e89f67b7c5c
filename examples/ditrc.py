"""dit Configuration - Python Example

Copy to your data directory (default ~/.dit) as .ditrc.py.

Convention:
- CONFIG dict for static configuration (same structure as TOML)
- Functions named hook_* become hooks
"""

import subprocess
from datetime import datetime

# =============================================================================
# Static Configuration (same structure as TOML)
# =============================================================================

CONFIG = {
    "storage": {
        "index_file": ".index",
        "lock_timeout": 10,
    },
    "status": {
        "limit": 10,
    },
    "hooks": {
        "enabled": True,
        # Fail the operation when a hook raises
        "check": False,
    },
}


# =============================================================================
# Hooks - Called during engine operations
# =============================================================================

def hook_fetch_title(task_id: str) -> str:
    """Called by task_new with fetch=true when no title is given.

    Here the title of a task 'issues/1234' is looked up with the
    GitHub CLI; any other key falls back to the key itself.
    """
    group, _, number = task_id.rpartition("/")
    if group != "issues" or not number.isdigit():
        return task_id

    result = subprocess.run(
        ["gh", "issue", "view", number, "--json", "title", "--jq", ".title"],
        capture_output=True,
        text=True,
        timeout=10,
        check=True,
    )
    return result.stdout.strip()


def hook_post_clock_in(task_id: str, at: datetime) -> None:
    """Called after clocking in to a task."""
    subprocess.run(["notify-send", "dit", f"Working on {task_id}"], check=False)


def hook_post_clock_out(task_id: str, at: datetime) -> None:
    """Called after clocking out of a task."""
    subprocess.run(["notify-send", "dit", f"Halted {task_id}"], check=False)

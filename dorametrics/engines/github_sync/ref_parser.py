"""Parse commit messages for pull request references."""

from __future__ import annotations

import re

# first "#123" anywhere in the message
PR_NUMBER_PATTERN = re.compile(r"#(\d+)")


def extract_pr_number(message: str | None) -> int | None:
    """Return the first ``#<digits>`` reference in *message*, if any.

    Squash merges put ``(#123)`` in the title, merge commits put
    ``Merge pull request #123``; both resolve to 123.
    """
    if not message:
        return None
    match = PR_NUMBER_PATTERN.search(message)
    return int(match.group(1)) if match else None

# summary.py
# Fallback scan for a task summary the model wrote inline instead of
# calling finalizeTask. Pure function, advisory only.

import re

_SUMMARY_RE = re.compile(r"<task_summary>(.*?)</task_summary>", re.IGNORECASE | re.DOTALL)


def extract_task_summary(text: str) -> str | None:
    """Return the trimmed content of the first <task_summary> block, or None."""
    match = _SUMMARY_RE.search(text or "")
    if not match:
        return None
    return match.group(1).strip() or None

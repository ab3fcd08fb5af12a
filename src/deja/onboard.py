"""Add deja usage instructions to Claude Code's global CLAUDE.md."""

from __future__ import annotations

import logging
import re
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

CLAUDE_MD = Path.home() / ".claude" / "CLAUDE.md"

MARKER = "<!-- deja:onboard -->"
LEGACY_MARKER = "<!-- ran:onboard -->"

DEJA_SECTION = f"""{MARKER}
<deja>
Use `deja` to search bash commands from previous Claude Code sessions.

<commands>
- `deja search <pattern>` - Search by substring (or `--regex`)
- `deja list` - Recent commands
- `deja list --here` - Recent commands in current project
- `deja search <pattern> --here` - Search in current project
</commands>

<when-to-use>
- "Deploy like we did last time"
- "Run the same build command"
- "What was that curl/docker/git command?"
- "Set it up like we did on the other project"
- "Show me the failed builds"
- Looking up commands from previous sessions
</when-to-use>

<when-not-to-use>
- Finding files -> use Glob
- Searching file contents -> use Grep
- Commands from current session -> already in context
</when-not-to-use>
</deja>
"""

_NEXT_SECTION_RE = re.compile(r"\n## ")


class OnboardStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    MIGRATED = "migrated"
    EXISTS = "exists"


def remove_section(content: str, marker: str) -> str:
    """Drop the section starting at ``marker`` up to the next ``## `` heading."""
    start = content.find(marker)
    if start == -1:
        return content
    after = start + len(marker)
    match = _NEXT_SECTION_RE.search(content, after)
    if match:
        return content[:start] + content[match.start():]
    return content[:start]


def onboard(target: Path = CLAUDE_MD, force: bool = False) -> OnboardStatus:
    """Write the deja section into ``target``, replacing an older one when asked."""
    target.parent.mkdir(parents=True, exist_ok=True)
    existing = target.read_text(encoding="utf-8") if target.exists() else ""

    status = OnboardStatus.UPDATED if existing else OnboardStatus.CREATED
    if MARKER in existing:
        if not force:
            return OnboardStatus.EXISTS
        existing = remove_section(existing, MARKER)
    elif LEGACY_MARKER in existing:
        existing = remove_section(existing, LEGACY_MARKER)
        status = OnboardStatus.MIGRATED

    content = existing.rstrip() + "\n\n" + DEJA_SECTION if existing.strip() else DEJA_SECTION
    target.write_text(content, encoding="utf-8")
    logger.info("Onboarding section written to %s (%s)", target, status.value)
    return status

"""
Security probe parsing.

The probe is a single shell command run on the remote host whose output is a
series of sections separated by ``---`` markers, each introduced by a label:

    ---SSH_FAILURES---
    12
    ---ZOMBIE---
    0
    ...

Each counter is the first decimal integer found after its label. A section
that is present but has no integer counts as 0; a section that is missing
leaves the counter unset so its check is skipped.
"""

import re

from hostwatch.domain.models import SecurityProbeCounts

SECTION_DELIMITER = "---"

SSH_FAILURES_LABEL = "SSH_FAILURES"
ZOMBIE_LABEL = "ZOMBIE"
OOM_KILLS_LABEL = "OOM_KILLS"
# Emitted by the probe command but not evaluated
OPEN_FILES_LABEL = "OPEN_FILES"
DISK_IO_WAIT_LABEL = "DISK_IO_WAIT"

SECURITY_PROBE_COMMAND = (
    'echo "---SSH_FAILURES---"; '
    'grep -c "Failed password" /var/log/auth.log 2>/dev/null '
    '|| grep -c "Failed password" /var/log/secure 2>/dev/null || echo "0"; '
    'echo "---ZOMBIE---"; ps aux | awk \'$8=="Z"\' | wc -l; '
    'echo "---OPEN_FILES---"; cat /proc/sys/fs/file-nr 2>/dev/null || echo "0 0 0"; '
    'echo "---OOM_KILLS---"; dmesg 2>/dev/null | grep -c "Out of memory" || echo "0"; '
    'echo "---DISK_IO_WAIT---"; cat /proc/stat 2>/dev/null | grep cpu | head -1 '
    "| awk '{total=$2+$3+$4+$5+$6+$7+$8; if(total>0) printf \"%.1f\", $6*100/total; "
    "else print \"0\"}'"
)

_INTEGER = re.compile(r"\d+")


def _split_sections(text: str) -> list[str]:
    return text.split(SECTION_DELIMITER)


def extract_count(sections: list[str], label: str) -> int | None:
    """Count for ``label``: first integer after the label, in its section or the next one."""
    for index, section in enumerate(sections):
        position = section.find(label)
        if position < 0:
            continue

        match = _INTEGER.search(section, position + len(label))
        if match is None and index + 1 < len(sections):
            match = _INTEGER.search(sections[index + 1])
        return int(match.group()) if match else 0
    return None


def parse_security_probe(text: str | None) -> SecurityProbeCounts | None:
    """Parse raw probe output. Empty output means the probe did not run."""
    if not text or not text.strip():
        return None

    sections = _split_sections(text)
    return SecurityProbeCounts(
        ssh_failures=extract_count(sections, SSH_FAILURES_LABEL),
        zombies=extract_count(sections, ZOMBIE_LABEL),
        oom_kills=extract_count(sections, OOM_KILLS_LABEL),
    )

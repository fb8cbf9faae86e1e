"""Tests for security probe parsing."""

import pytest

from hostwatch.domain.models import SecurityProbeCounts
from hostwatch.services.probe_parser import (
    SECURITY_PROBE_COMMAND,
    extract_count,
    parse_security_probe,
)

FULL_OUTPUT = """---SSH_FAILURES---
12
---ZOMBIE---
3
---OPEN_FILES---
4512 0 9223372036854775807
---OOM_KILLS---
0
---DISK_IO_WAIT---
2.4"""


def test_parses_every_counter() -> None:
    counts = parse_security_probe(FULL_OUTPUT)

    assert counts == SecurityProbeCounts(ssh_failures=12, zombies=3, oom_kills=0)


def test_label_only_section_reads_next_section() -> None:
    counts = parse_security_probe("---ZOMBIE---\n5\n")

    assert counts is not None
    assert counts.zombies == 5


def test_missing_section_leaves_counter_unset() -> None:
    counts = parse_security_probe("---ZOMBIE---\n2\n")

    assert counts is not None
    assert counts.ssh_failures is None
    assert counts.oom_kills is None


def test_section_without_integer_counts_as_zero() -> None:
    counts = parse_security_probe("---OOM_KILLS---")

    assert counts is not None
    assert counts.oom_kills == 0


@pytest.mark.parametrize("text", ["", "   \n", None])
def test_empty_output_means_no_probe(text: str | None) -> None:
    assert parse_security_probe(text) is None


def test_extract_count_takes_first_integer_after_label() -> None:
    sections = ["", "SSH_FAILURES 7 of 9", ""]

    assert extract_count(sections, "SSH_FAILURES") == 7
    assert extract_count(sections, "ZOMBIE") is None


def test_probe_command_emits_every_label() -> None:
    for label in ("SSH_FAILURES", "ZOMBIE", "OPEN_FILES", "OOM_KILLS", "DISK_IO_WAIT"):
        assert f"---{label}---" in SECURITY_PROBE_COMMAND

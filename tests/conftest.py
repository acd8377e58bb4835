"""
Pytest configuration and fixtures for vault-bridge tests.
"""

import pytest
from pathlib import Path

from vault_bridge.acl import PathAccessChecker
from vault_bridge.models import PathACL
from vault_bridge.protocol import ProtocolHandler
from vault_bridge.store import FileNoteStore
from vault_bridge.tools import ToolRegistry


def write_note(vault_path: Path, rel_path: str, content: str) -> None:
    target = vault_path / rel_path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")


@pytest.fixture
def temp_vault(tmp_path: Path):
    """Create a temporary vault with test notes."""
    vault_path = tmp_path / "vault"
    vault_path.mkdir()

    # Concept with frontmatter tags, headings and a list block id
    write_note(vault_path, "Concepts/Python.md", """---
title: Python
tags:
  - programming
---

# Python

Python is a programming language. #language

## Features

- Dynamic typing ^typing
- Rich standard library

## History

Created by Guido.
""")

    # Concept linking by basename and by alias
    write_note(vault_path, "Concepts/JavaScript.md", """# JavaScript

JavaScript is a #web #programming language.

It links to [[Python|the Python language]] and [[Docker]].
""")

    # Reference note embedding a forbidden note
    write_note(vault_path, "References/Docker.md", """# Docker

Related: [[Python]]

![[Secrets/keys]]
""")

    write_note(vault_path, "Secrets/keys.md", "top secret\n")
    write_note(vault_path, "Archive/old.md", "# Old\n\nArchived note.\n")
    write_note(vault_path, "Plain.md", "Just text.\n")

    # Embed graph: A -> B (block + link), C -> B#Section, D -> E -> F
    write_note(vault_path, "Embeds/A.md", "Intro\n\n![[B#^blk1]]\n\nSee [[B]].\n")
    write_note(vault_path, "Embeds/B.md", "# B\n\nFirst paragraph ^blk1\n\n## Section\n\nSection text.\n")
    write_note(vault_path, "Embeds/C.md", "C body\n\n![[B#Section]]\n![[D]]\n")
    write_note(vault_path, "Embeds/D.md", "D body\n\n![[E]]\n")
    write_note(vault_path, "Embeds/E.md", "E body\n\n![[F]]\n")
    write_note(vault_path, "Embeds/F.md", "F body\n")
    write_note(vault_path, "Embeds/G.md", "G body\n\n![[missing-note]]\n![[Secrets/keys]]\n")

    # Cycle
    write_note(vault_path, "Cycle/X.md", "X body ![[Y]]\n")
    write_note(vault_path, "Cycle/Y.md", "Y body ![[X]]\n")

    write_note(vault_path, "_Templates/Daily.md", "# {{title}}\n\nCreated {{date:%Y}}\n")

    # Hidden folder is never listed or searched
    write_note(vault_path, ".obsidian/workspace.md", "programming\n")

    yield vault_path


@pytest.fixture
def acl():
    return PathACL(forbidden=["Secrets/**"], read_only=["Archive/**"], writable=[])


@pytest.fixture
def store(temp_vault):
    """Create a FileNoteStore over the temp vault."""
    return FileNoteStore(temp_vault)


@pytest.fixture
def checker(acl):
    return PathAccessChecker(acl)


@pytest.fixture
def registry(store, checker):
    return ToolRegistry(store, checker)


@pytest.fixture
def handler(registry):
    return ProtocolHandler(registry)

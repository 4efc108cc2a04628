"""Utility functions for contact intake."""

import json
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple, Union

from .models import Contact, ReviewedContact


def load_input_text(source: Union[str, Path]) -> str:
    """Load the free text to process.

    Args:
        source: Path to a text, markdown or JSON file, or ``"-"`` for stdin.
            A JSON file must hold an object with a ``text`` field.

    Returns:
        The text content

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file format is not supported
    """
    if str(source) == "-":
        return sys.stdin.read()

    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {source}")

    if path.suffix == ".json":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict) or "text" not in data:
            raise ValueError("JSON input must be an object with a 'text' field")
        return str(data["text"])

    if path.suffix in ("", ".txt", ".md", ".csv"):
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    raise ValueError(f"Unsupported file format: {path.suffix}")


def parse_edit(command: str) -> Tuple[int, str, str]:
    """Parse an edit command of the form ``<row> <field> <value>``.

    Rows are numbered from 1 as shown in the table; the returned index is
    zero-based. The value may contain spaces.
    """
    parts = command.strip().split(None, 2)
    if len(parts) < 2:
        raise ValueError("Expected: <row> <field> [value]")
    try:
        row = int(parts[0])
    except ValueError:
        raise ValueError(f"Row must be a number, got {parts[0]!r}")
    if row < 1:
        raise ValueError("Rows are numbered from 1")
    value = parts[2] if len(parts) == 3 else ""
    return row - 1, parts[1], value


def submission_overview(reviewed: Iterable[ReviewedContact]) -> List[str]:
    """One line per contact: ``+ email`` to insert, ``- email`` to skip."""
    return [f"{'-' if c.isDuplicate else '+'} {c.Email}" for c in reviewed]


def save_contacts(contacts: Iterable[Contact], output_path: Union[str, Path]):
    """Save contact records to a JSON file."""
    data: List[Dict[str, Any]] = [c.model_dump(exclude_none=True) for c in contacts]

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

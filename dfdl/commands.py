"""Parsing and presenting the interactive client's commands."""

from __future__ import annotations

import re
from enum import Enum
from typing import Mapping, Optional, Union

_MAX_U64 = 2**64 - 1
_NUMBER = re.compile(r"\s*([+-]?)(\d+)")


class Command(Enum):
    """A command the interactive client understands."""

    EXIT = "exit"
    LIST = "list"
    HELP = "help"
    INDEX = "index"
    DROP = "drop"
    DOWNLOAD = "download"
    CRASH = "crash"


class CommandError(ValueError):
    """A command line could not be understood."""


_NO_ARGUMENT = (
    ("exit", Command.EXIT),
    ("list", Command.LIST),
    ("help", Command.HELP),
    ("crash", Command.CRASH),
)

_HELP = (
    "Available commands:\n"
    "  list                - List all currently indexed files\n"
    "  index <filename>    - Register/share <filename>\n"
    "  download <filename> - Download <filename> from a peer\n"
    "  drop <filename>     - Remove <filename> from the server\n"
    "  help                - Show this message\n"
    "  exit                - Quit the client\n"
)


def _split(command: str) -> list[str]:
    # A space only ends a non-empty word; a leading space joins the next word.
    words = []
    current = ""
    for char in command:
        if char == " " and current:
            words.append(current)
            current = ""
        else:
            current += char
    if current:
        words.append(current)
    return words


def _argument(command: str, usage: str) -> str:
    words = _split(command)
    if len(words) != 2:
        raise CommandError(f"Invalid command: {command}\nUsage: {usage}")
    return words[1]


def _uuid(command: str, text: str) -> int:
    match = _NUMBER.match(text)
    value = int(match.group(2)) if match else None
    if value is None or value > _MAX_U64:
        raise CommandError(
            "Invalid UUID: Please provide a numeric UUID!\n"
            f"Invalid command: {command}\nUsage: download <uuid>"
        )
    if match.group(1) == "-":
        value = -value % (_MAX_U64 + 1)
    return value


def parse_command(command: str) -> tuple[Command, Optional[Union[int, str]]]:
    """Return the command on a line and its argument, if it takes one.

    ``index`` and ``drop`` take a file path; ``download`` takes a numeric
    uuid. Raises CommandError for an unknown or malformed command.
    """
    for word, code in _NO_ARGUMENT:
        if command == word or command.startswith(word + " "):
            return code, None
    if command.startswith("index"):
        return Command.INDEX, _argument(command, "index <path to file>")
    if command.startswith("drop"):
        return Command.DROP, _argument(command, "drop <path to file>")
    if command.startswith("download"):
        return Command.DOWNLOAD, _uuid(command, _argument(command, "download <uuid>"))
    raise CommandError("Unknown command. Type 'help' for usage.")


def format_file_list(indexed_files: Mapping[int, str]) -> str:
    """Describe the indexed files, one per line in uuid order."""
    if not indexed_files:
        return "No files indexed."
    return "\n".join(
        f"UUID: {uuid}, Filename: {name}"
        for uuid, name in sorted(indexed_files.items())
    )


def help_text() -> str:
    """Return the list of available commands."""
    return _HELP
"""
Shared plumbing for the codebase miners.

Each miner walks one family of source files, extracts facts with regular
expressions and keeps them in in-memory tables. A file that fails to parse
is logged and skipped; mining never raises.
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

logger = logging.getLogger("query_engine.miners")


def iter_source_files(base: Path, pattern: str) -> Iterator[Tuple[str, Path]]:
    """Yield (relative posix path, absolute path) for files under base matching pattern."""
    if not base.is_dir():
        logger.debug(f"Source directory not found, skipping: {base}")
        return
    for path in sorted(base.glob(pattern)):
        if path.is_file():
            yield path.relative_to(base).as_posix(), path


def read_sources(base: Path, pattern: str) -> Dict[str, str]:
    """Read every matching file; unreadable files are logged and skipped."""
    sources: Dict[str, str] = {}
    for rel_path, path in iter_source_files(base, pattern):
        try:
            sources[rel_path] = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read {path}: {e}")
    return sources


def balanced_block(content: str, start: int, open_char: str = "{", close_char: str = "}") -> Optional[str]:
    """
    Return the text between an already-consumed opening brace at start-1
    and its matching closing brace, or None when unbalanced.
    """
    depth = 1
    idx = start
    in_string = ""
    while idx < len(content):
        char = content[idx]
        if in_string:
            if char == "\\":
                idx += 2
                continue
            if char == in_string:
                in_string = ""
        elif char in "\"'`":
            in_string = char
        elif char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return content[start:idx]
        idx += 1
    return None


def top_level_comma(content: str) -> int:
    """Index of the first comma outside braces, parens and strings (-1 if none)."""
    depth = 0
    in_string = ""
    prev = ""
    for i, char in enumerate(content):
        if char in "\"'" and prev != "\\":
            if not in_string:
                in_string = char
            elif char == in_string:
                in_string = ""
            prev = char
            continue
        prev = char
        if in_string:
            continue
        if char in "{(":
            depth += 1
        elif char in "})":
            depth -= 1
        elif char == "," and depth == 0:
            return i
    return -1


def split_quoted_list(raw: str):
    """'"a", "b", c' -> ["a", "b", "c"]"""
    return [v.strip().strip("\"'`") for v in raw.split(",") if v.strip().strip("\"'`")]

"""
Lightweight content metadata stored alongside each version.

Counts for every kind, plus a few heuristics per artifact kind:
code → language guess, function-like lines, import lines;
text → markdown headings and links; image → format from data URI / URL.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List

_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_IMPORT_PREFIXES = ("import ", "from ", "#include", "using ", "require(")
_FUNCTION_PREFIXES = ("def ", "async def ", "function ", "fn ", "func ")


def extract_content_metadata(content: str, kind: str = "text") -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "line_count": len(content.split("\n")) if content else 0,
        "char_count": len(content),
        "word_count": len(content.split()),
    }

    if kind == "code":
        metadata["language"] = detect_language(content)
        metadata["functions"] = _matching_lines(content, _FUNCTION_PREFIXES, contains=(") => ",))
        metadata["imports"] = _matching_lines(content, _IMPORT_PREFIXES)
    elif kind == "text":
        metadata["headings"] = [
            line.strip() for line in content.split("\n") if line.strip().startswith("#")
        ]
        metadata["links"] = [m.group(0) for m in _LINK.finditer(content)]
    elif kind == "image":
        metadata["format"] = detect_image_format(content)

    return metadata


def _matching_lines(content: str, prefixes, contains=()) -> List[str]:
    found = []
    for line in content.split("\n"):
        stripped = line.strip()
        if stripped.startswith(prefixes) or any(token in stripped for token in contains):
            found.append(stripped)
    return found


def detect_language(code: str) -> str:
    # Order matters: the checks overlap
    if "import React" in code or "export default" in code:
        return "javascript"
    if re.search(r"^\s*(async\s+)?def \w+\(.*\)\s*(->.*)?:", code, re.MULTILINE):
        return "python"
    if "fn main" in code and "let " in code:
        return "rust"
    if "package main" in code:
        return "go"
    if "public class" in code or "public static void" in code:
        return "java"
    if "function" in code and "{" in code:
        return "javascript"
    return "unknown"


def detect_image_format(content: str) -> str:
    if content.startswith("data:image/"):
        return content.split(";", 1)[0].split("/", 1)[1]
    if content.startswith(("http://", "https://")):
        tail = content.rsplit("/", 1)[-1]
        if "." in tail:
            return tail.rsplit(".", 1)[-1].split("?", 1)[0].lower()
    return "unknown"

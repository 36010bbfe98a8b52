"""
Truncation marker protocol

An update snippet mixes literal replacement lines with single-line comments of
the form ``// ... existing code ...`` that stand for unchanged spans of the
original file.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from edit_applier.models.edit import EditWarning, Segment

from .errors import AmbiguousEditError

MARKER_PHRASE = "... existing code ..."

# Closing delimiter for block-style comment prefixes
_BLOCK_CLOSERS = {"<!--": "-->", "/*": "*/"}

ALL_PREFIXES = ("//", "#", "--", "<!--", "/*", ";", "%")

LANGUAGE_COMMENTS: dict[str, tuple[str, ...]] = {
    "python": ("#",),
    "ruby": ("#",),
    "shell": ("#",),
    "yaml": ("#",),
    "toml": ("#",),
    "r": ("#",),
    "perl": ("#",),
    "dockerfile": ("#",),
    "makefile": ("#",),
    "javascript": ("//",),
    "typescript": ("//",),
    "java": ("//",),
    "c": ("//", "/*"),
    "cpp": ("//", "/*"),
    "csharp": ("//",),
    "go": ("//",),
    "rust": ("//",),
    "swift": ("//",),
    "kotlin": ("//",),
    "scala": ("//",),
    "dart": ("//",),
    "php": ("//", "#"),
    "scss": ("//", "/*"),
    "css": ("/*",),
    "sql": ("--",),
    "lua": ("--",),
    "haskell": ("--",),
    "html": ("<!--",),
    "xml": ("<!--",),
    "markdown": ("<!--",),
    "vue": ("<!--", "//"),
    "svelte": ("<!--", "//"),
    "clojure": (";",),
    "lisp": (";",),
    "latex": ("%",),
    "erlang": ("%",),
}

EXTENSION_LANGUAGES = {
    ".py": "python",
    ".pyi": "python",
    ".rb": "ruby",
    ".sh": "shell",
    ".bash": "shell",
    ".zsh": "shell",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".toml": "toml",
    ".r": "r",
    ".pl": "perl",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".go": "go",
    ".rs": "rust",
    ".swift": "swift",
    ".kt": "kotlin",
    ".kts": "kotlin",
    ".scala": "scala",
    ".dart": "dart",
    ".php": "php",
    ".css": "css",
    ".scss": "scss",
    ".less": "scss",
    ".sql": "sql",
    ".lua": "lua",
    ".hs": "haskell",
    ".html": "html",
    ".htm": "html",
    ".xml": "xml",
    ".svg": "xml",
    ".md": "markdown",
    ".mdx": "markdown",
    ".vue": "vue",
    ".svelte": "svelte",
    ".clj": "clojure",
    ".lisp": "lisp",
    ".tex": "latex",
    ".erl": "erlang",
}

_MARKER_RE = re.compile(
    r"^\s*(?P<prefix>//|#|--|<!--|/\*|;|%)\s*\.{3}\s*existing code\b.*$",
    re.IGNORECASE,
)


def language_for_path(path: str) -> str:
    """Guess the language of a file from its name"""
    name = PurePosixPath(path.replace("\\", "/")).name
    if name.lower() == "dockerfile":
        return "dockerfile"
    if name.lower() == "makefile":
        return "makefile"
    return EXTENSION_LANGUAGES.get(PurePosixPath(name).suffix.lower(), "text")


def comment_prefixes(language: str | None) -> tuple[str, ...]:
    """Single-line comment prefixes accepted for a language (all of them if unknown)"""
    if not language:
        return ALL_PREFIXES
    return LANGUAGE_COMMENTS.get(language.lower(), ALL_PREFIXES)


def canonical_marker(language: str | None) -> str:
    prefix = comment_prefixes(language)[0]
    closer = _BLOCK_CLOSERS.get(prefix)
    if closer:
        return f"{prefix} {MARKER_PHRASE} {closer}"
    return f"{prefix} {MARKER_PHRASE}"


def marker_prefix(line: str) -> str | None:
    """Comment prefix of a marker line, or None when the line is not a marker"""
    match = _MARKER_RE.match(line.rstrip("\r\n"))
    if not match:
        return None
    return match.group("prefix")


def is_marker(line: str) -> bool:
    return marker_prefix(line) is not None


def split_segments(update: str) -> list[Segment]:
    """Split a snippet into alternating literal-edit and marker segments"""
    segments: list[Segment] = []
    pending: list[str] = []

    for line in update.splitlines(keepends=True):
        if is_marker(line):
            if pending:
                segments.append(Segment(kind="edit", text="".join(pending)))
                pending = []
            segments.append(Segment(kind="marker", text=line))
        else:
            pending.append(line)

    if pending:
        segments.append(Segment(kind="edit", text="".join(pending)))
    return segments


def is_noop_snippet(update: str) -> bool:
    """True when the snippet holds markers and nothing else"""
    segments = split_segments(update)
    has_marker = any(s.kind == "marker" for s in segments)
    has_edit = any(s.kind == "edit" and s.text.strip() for s in segments)
    return has_marker and not has_edit


def check_snippet(original: str, update: str, language: str | None = None) -> list[EditWarning]:
    """Advisory checks on an update snippet.

    Flags markers written with another language's comment syntax, and
    snippets that are shorter than the original yet carry no marker at all,
    since those cannot be told apart from an accidentally dropped middle
    section.
    """
    warnings: list[EditWarning] = []
    expected = comment_prefixes(language)
    marker_count = 0

    for lineno, line in enumerate(update.splitlines(), start=1):
        prefix = marker_prefix(line)
        if prefix is None:
            continue
        marker_count += 1
        if prefix not in expected:
            warnings.append(
                EditWarning(
                    code="marker_syntax",
                    message=(
                        f"Marker uses '{prefix}' but {language} comments start with "
                        f"{' or '.join(repr(p) for p in expected)}; expected '{canonical_marker(language)}'"
                    ),
                    line=lineno,
                )
            )

    if marker_count == 0 and original and len(update) < len(original):
        warnings.append(
            EditWarning(
                code=AmbiguousEditError.category,
                message=(
                    "Possible unmarked omission: the edit is shorter than the file and has no "
                    f"'{canonical_marker(language)}' markers, so it will replace the whole file"
                ),
            )
        )

    return warnings

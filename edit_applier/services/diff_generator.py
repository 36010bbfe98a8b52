"""
Diff Generator Service - Describe what an applied edit changed
"""

from __future__ import annotations

from difflib import SequenceMatcher, unified_diff

from edit_applier.models.diff import DiffHunk, DiffResult

from .markers import split_segments


def _lines(content: str) -> list[str]:
    lines = content.splitlines(keepends=True)
    # A missing final newline is not reported as a change
    if lines and not lines[-1].endswith("\n"):
        lines[-1] += "\n"
    return lines


def snippet_lines(code_edit: str) -> set[str]:
    """Stripped, non-blank literal lines of an update snippet (markers excluded)"""
    return {
        line.strip()
        for segment in split_segments(code_edit)
        if segment.kind == "edit"
        for line in segment.text.splitlines()
        if line.strip()
    }


class DiffGenerator:
    """Compare pre-edit and merged content.

    When the update snippet is supplied, each hunk is checked against the
    snippet's literal lines: a hunk introducing lines that appear nowhere in
    the snippet was not asked for.
    """

    def generate_diff(
        self,
        original_content: str,
        new_content: str,
        file_path: str,
        code_edit: str | None = None,
    ) -> DiffResult:
        original_lines = _lines(original_content)
        new_lines = _lines(new_content)
        requested_lines = snippet_lines(code_edit) if code_edit is not None else None

        matcher = SequenceMatcher(None, original_lines, new_lines, autojunk=False)
        hunks: list[DiffHunk] = []
        added = removed = 0
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                continue
            removed += i2 - i1
            added += j2 - j1
            inserted = new_lines[j1:j2]
            hunks.append(
                DiffHunk(
                    start_line=i1 + 1,
                    end_line=i2,
                    new_start_line=j1 + 1,
                    new_end_line=j2,
                    original_content="".join(original_lines[i1:i2]),
                    new_content="".join(inserted),
                    change_type={"insert": "add", "delete": "delete"}.get(tag, "modify"),
                    requested=self._is_requested(inserted, requested_lines),
                )
            )

        unified = unified_diff(original_lines, new_lines, fromfile=f"a/{file_path}", tofile=f"b/{file_path}")
        return DiffResult(
            file_path=file_path,
            hunks=hunks,
            unified_diff="".join(unified),
            lines_added=added,
            lines_removed=removed,
        )

    def _is_requested(self, inserted: list[str], requested_lines: set[str] | None) -> bool:
        if requested_lines is None:
            return True
        # Pure deletions have no new lines to check
        return all(line.strip() in requested_lines for line in inserted if line.strip())

    def summarize(self, diff: DiffResult) -> str:
        """One-line change summary, e.g. '2 hunks, +3 -1 lines'"""
        if not diff.changed:
            return "no changes"
        noun = "hunk" if len(diff.hunks) == 1 else "hunks"
        return f"{len(diff.hunks)} {noun}, +{diff.lines_added} -{diff.lines_removed} lines"

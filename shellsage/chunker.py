"""Boundary-aware splitting of large inputs into line-range segments."""

from dataclasses import dataclass
from typing import List, Optional, Sequence

__all__ = [
    "Segment", "split_segments", "split_lines",
    "MAX_SEGMENT_LINES", "BOUNDARY_SEARCH_LINES", "CONTEXT_OVERLAP_LINES",
]

MAX_SEGMENT_LINES = 200
BOUNDARY_SEARCH_LINES = 30
CONTEXT_OVERLAP_LINES = 5

_CLOSING_TOKENS = frozenset({
    "}", "};", "})", "});", "]", "];", ")", ");",
    "end", "end;", "fi", "done", "esac", "endif", "endfunction",
})

_DECLARATION_PREFIXES = (
    "fn ", "pub fn ", "pub(crate) fn ", "async fn ", "pub async fn ",
    "def ", "async def ", "class ", "@",
    "func ", "function ", "async function ",
    "export ", "module ", "package ", "namespace ",
    "const ", "let ", "var ", "type ",
    "struct ", "pub struct ", "enum ", "pub enum ",
    "impl ", "impl<", "trait ", "pub trait ", "interface ",
    "mod ", "pub mod ", "public ", "private ", "protected ",
)


@dataclass(frozen=True)
class Segment:
    """A 1-based, inclusive ``[start_line, end_line]`` slice of the input.

    ``context_prefix`` repeats a few lines from before ``start_line`` so the
    model can follow the thread; it is never part of ``content``.
    """
    start_line: int
    end_line: int
    content: str
    context_prefix: str = ""

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


def split_lines(text: str) -> List[str]:
    return text.splitlines()


def _is_blank(line: str) -> bool:
    return not line.strip()


def _is_closing(line: str) -> bool:
    return line.strip() in _CLOSING_TOKENS


def _is_declaration(line: str) -> bool:
    # Top-level only: indented definitions are nested and a bad place to cut.
    return bool(line) and not line[0].isspace() and line.startswith(_DECLARATION_PREFIXES)


def _find_break(lines: Sequence[str], start: int, end: int, search: int) -> Optional[int]:
    """Best exclusive end index in ``(start, end]``, or None.

    Candidates are looked for in priority order over the last ``search``
    lines of the window: after a blank line, after a closing-block line,
    then before a top-level declaration.
    """
    floor = max(start, end - search)
    window = range(end - 1, floor - 1, -1)

    for i in window:
        if _is_blank(lines[i]):
            return i + 1
    for i in window:
        if _is_closing(lines[i]):
            return i + 1
    for i in window:
        if i > start and _is_declaration(lines[i]):
            return i
    return None


def _context_block(lines: Sequence[str], start: int, overlap: int) -> str:
    first = max(0, start - overlap)
    excerpt = "\n".join(lines[first:start])
    return (
        f"[Context: lines {first + 1}-{start} from the previous part, "
        f"for continuity only; do not explain]\n"
        f"{excerpt}\n"
        f"[End of context]"
    )


def split_segments(text: str, max_lines: int = MAX_SEGMENT_LINES,
                   overlap: int = CONTEXT_OVERLAP_LINES,
                   search: int = BOUNDARY_SEARCH_LINES) -> List[Segment]:
    """Split ``text`` into contiguous segments of at most ``max_lines`` lines.

    Input with no lines yields no segments. Output is a pure
    function of the arguments.
    """
    if max_lines < 1:
        raise ValueError("max_lines must be positive")

    lines = split_lines(text)
    if not lines:
        return []

    total = len(lines)
    if total <= max_lines:
        return [Segment(start_line=1, end_line=total, content="\n".join(lines))]

    segments: List[Segment] = []
    start = 0
    while start < total:
        end = min(start + max_lines, total)
        if end < total:
            end = _find_break(lines, start, end, search) or end
        if end <= start:
            end = min(start + max_lines, total)

        prefix = _context_block(lines, start, overlap) if start > 0 and overlap > 0 else ""
        segments.append(Segment(
            start_line=start + 1,
            end_line=end,
            content="\n".join(lines[start:end]),
            context_prefix=prefix,
        ))
        start = end

    return segments

"""Comment and string-literal regions of a file, for context classification.

A single regex pass splits content into comment and string regions. The
lexer is shallow: it knows each language family's comment
markers and quote characters, nothing more.
"""

from __future__ import annotations

import bisect
import functools
import re
from dataclasses import dataclass

COMMENT = "comment"
STRING = "string"


@dataclass(frozen=True)
class _Syntax:
    line_comments: tuple[str, ...] = ()
    block_comments: tuple[tuple[str, str], ...] = ()
    quotes: tuple[str, ...] = ('"', "'")
    triple_quotes: bool = False
    backticks: bool = False


_C_STYLE = _Syntax(
    line_comments=("//",),
    block_comments=(("/*", "*/"),),
)
_HASH = _Syntax(line_comments=("#",))

_SYNTAX_BY_EXTENSION: dict[str, _Syntax] = {}


def _register(syntax: _Syntax, *extensions: str) -> None:
    for ext in extensions:
        _SYNTAX_BY_EXTENSION[ext] = syntax


_register(
    _C_STYLE,
    ".java", ".c", ".h", ".cpp", ".hpp", ".cc", ".cs", ".swift", ".rs",
    ".dart", ".json5",
)
_register(
    _Syntax(line_comments=("//",), block_comments=(("/*", "*/"),), triple_quotes=True),
    ".kt", ".kts", ".scala", ".groovy", ".gradle",
)
_register(
    _Syntax(line_comments=("//",), block_comments=(("/*", "*/"),), backticks=True),
    ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".go",
)
_register(
    _Syntax(line_comments=("//", "#"), block_comments=(("/*", "*/"),)),
    ".php",
)
_register(_Syntax(line_comments=("#",), triple_quotes=True), ".py", ".pyi")
_register(_Syntax(line_comments=("#",), backticks=True), ".sh", ".bash", ".zsh")
_register(
    _HASH,
    ".rb", ".yml", ".yaml", ".toml", ".properties", ".conf", ".cfg", ".env",
    ".tf", ".r", ".pl", ".dockerfile", ".mk", ".ps1",
)
_register(_Syntax(line_comments=("#", ";")), ".ini")
_register(_Syntax(line_comments=("--",), block_comments=(("/*", "*/"),)), ".sql")
_register(_Syntax(quotes=('"',)), ".json")
_register(
    _Syntax(block_comments=(("<!--", "-->"),), quotes=('"', "'")),
    ".xml", ".html", ".htm", ".svg",
)
_register(_Syntax(block_comments=(("<!--", "-->"),), quotes=()), ".md")
_register(_Syntax(quotes=()), ".txt")

_DEFAULT_SYNTAX = _Syntax(
    line_comments=("#", "//"),
    block_comments=(("/*", "*/"),),
)

_LINE_COMMENT_REGEX = {
    # '#' opens a comment only at line start or after whitespace
    "#": r"(?:(?<=\s)|^)#[^\n]*",
    # '//' right after ':' is a URL scheme, not a comment
    "//": r"(?<!:)//[^\n]*",
    "--": r"--[^\n]*",
    ";": r"^[ \t]*;[^\n]*",
}


@functools.lru_cache(maxsize=64)
def _compile(syntax: _Syntax) -> re.Pattern[str]:
    comment_parts: list[str] = []
    for open_, close in syntax.block_comments:
        comment_parts.append(
            re.escape(open_) + r"[\s\S]*?(?:" + re.escape(close) + r"|\Z)"
        )
    for marker in syntax.line_comments:
        comment_parts.append(_LINE_COMMENT_REGEX[marker])

    string_parts: list[str] = []
    for quote in syntax.quotes:
        q = re.escape(quote)
        if syntax.triple_quotes:
            string_parts.append(q * 3 + r"[\s\S]*?(?:" + q * 3 + r"|\Z)")
        string_parts.append(q + r"(?:[^" + q + r"\\\n]|\\.)*(?:" + q + r"|$)")
    if syntax.backticks:
        string_parts.append(r"`[^`]*(?:`|\Z)")

    alternatives = []
    if comment_parts:
        alternatives.append("(?P<comment>" + "|".join(comment_parts) + ")")
    if string_parts:
        alternatives.append("(?P<string>" + "|".join(string_parts) + ")")
    if not alternatives:
        return re.compile(r"(?!)")
    return re.compile("|".join(alternatives), re.MULTILINE)


def syntax_for(extension: str) -> _Syntax:
    return _SYNTAX_BY_EXTENSION.get(extension.lower(), _DEFAULT_SYNTAX)


@dataclass(frozen=True)
class SyntaxMap:
    """Sorted, non-overlapping ``(start, end, kind)`` regions of a file."""

    regions: tuple[tuple[int, int, str], ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "_starts", tuple(r[0] for r in self.regions))

    def region_at(self, offset: int) -> str | None:
        index = bisect.bisect_right(self._starts, offset) - 1  # type: ignore[attr-defined]
        if index < 0:
            return None
        start, end, kind = self.regions[index]
        if start <= offset < end:
            return kind
        return None

    def in_comment(self, offset: int) -> bool:
        return self.region_at(offset) == COMMENT

    def in_string(self, offset: int) -> bool:
        return self.region_at(offset) == STRING

    def comment_spans(self) -> list[tuple[int, int]]:
        return [(s, e) for s, e, kind in self.regions if kind == COMMENT]


def build_syntax_map(content: str, extension: str) -> SyntaxMap:
    pattern = _compile(syntax_for(extension))
    regions = []
    for match in pattern.finditer(content):
        if match.end() == match.start():
            continue
        kind = COMMENT if match.lastgroup == "comment" else STRING
        regions.append((match.start(), match.end(), kind))
    return SyntaxMap(regions=tuple(regions))

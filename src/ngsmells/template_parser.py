# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Template structural analyzer producing normalized facts from markup.

Analysis runs in three phases. Phase 1 collects text-level signals and always
runs. Phase 2 performs a strict parse and walks elements and text for
structural directives and call expressions. When the strict parse fails,
phase 3 re-derives the same facts with regular expressions over the raw
markup. Phase 1 results are merged with whichever of phase 2 or 3 ran.
"""

import logging
import re
from dataclasses import dataclass
from html.parser import HTMLParser

from ngsmells.model import FunctionCallSite, StructuralDirective, StructuralFacts

logger = logging.getLogger(__name__)

SAFE_CALL_PREFIXES: tuple[str, ...] = (
    "async",
    "json",
    "trackBy",
    "index",
    "count",
    "first",
    "last",
    "even",
    "odd",
)

DYNAMIC_VALUE_MARKERS: tuple[str, ...] = (
    "Math.random()",
    "Date.now()",
    "new Date()",
    "performance.now()",
    "crypto.getRandomValues",
)

VOID_ELEMENTS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)

OPTIONAL_END_ELEMENTS = frozenset(
    {
        "p",
        "li",
        "dt",
        "dd",
        "option",
        "optgroup",
        "tr",
        "td",
        "th",
        "thead",
        "tbody",
        "tfoot",
        "colgroup",
        "rt",
        "rp",
    }
)

_TRACK_MARKER = re.compile(r"trackBy\s*:|@for\s*\([^)]*;\s*track\b")
_ANCHOR_TAG = re.compile(r"</?a\b[^>]*>", re.IGNORECASE)
_INTERPOLATION = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_FALLBACK_INTERPOLATION = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")
_FALLBACK_DIRECTIVE = re.compile(r"\*(\w+)=\"([^\"]*)\"")
_CALL = re.compile(r"([A-Za-z_$][\w$]*)\s*\(")
_STRING_LITERAL = re.compile(r"'(?:\\.|[^'\\])*'|\"(?:\\.|[^\"\\])*\"|`(?:\\.|[^`\\])*`")
_TAG_NAME_PREFIX = re.compile(r"^<\s*[^\s/>]+")
_RAW_ATTRIBUTE = re.compile(
    r"""([^\s"'<>/=]+)(?:\s*=\s*("[^"]*"|'[^']*'|[^\s"'=<>`]+))?"""
)


class TemplateParseError(ValueError):
    """Represent a strict template parse failure."""


@dataclass(frozen=True)
class _PhaseOneFacts:
    has_track_by: bool
    structural_directive_count: int
    unsafe_inner_html: bool
    nested_anchor_tags: bool
    dynamic_content_detected: bool


class TemplateAnalyzer:
    """Turn template markup into immutable structural facts."""

    def analyze(self, markup: str, source: str | None = None) -> StructuralFacts:
        """Analyze markup without ever raising on malformed input.

        Args:
            markup: Template text.
            source: Optional artifact path used in log messages.

        Returns:
            Structural facts for the template.
        """
        phase_one = scan_text_signals(markup)
        try:
            directives, call_sites = _strict_parse(markup)
            parse_mode = "strict"
            parse_error = None
        except TemplateParseError as exc:
            logger.warning(
                f"Template strict parse failed, using fallback extraction (file_path={source} error={exc})"
            )
            directives, call_sites = _fallback_extract(markup)
            parse_mode = "fallback"
            parse_error = str(exc)
        return StructuralFacts(
            has_track_by=phase_one.has_track_by,
            structural_directive_count=phase_one.structural_directive_count,
            structural_directives=tuple(directives),
            function_call_sites=tuple(call_sites),
            unsafe_inner_html=phase_one.unsafe_inner_html,
            nested_anchor_tags=phase_one.nested_anchor_tags,
            dynamic_content_detected=phase_one.dynamic_content_detected,
            parse_mode=parse_mode,
            parse_error=parse_error,
        )


def scan_text_signals(markup: str) -> _PhaseOneFacts:
    """Collect phase-one signals that do not need a parse."""
    return _PhaseOneFacts(
        has_track_by=bool(_TRACK_MARKER.search(markup)),
        structural_directive_count=markup.count("*ngFor"),
        unsafe_inner_html="[innerHTML]" in markup,
        nested_anchor_tags=has_nested_anchors(markup),
        dynamic_content_detected=any(
            marker in markup for marker in DYNAMIC_VALUE_MARKERS
        ),
    )


def has_nested_anchors(markup: str) -> bool:
    """Report whether an anchor element is opened inside another anchor."""
    normalized = re.sub(r">\s+<", "><", re.sub(r"\s+", " ", markup))
    depth = 0
    for match in _ANCHOR_TAG.finditer(normalized):
        tag = match.group(0)
        if tag.startswith("</"):
            depth = max(0, depth - 1)
            continue
        if tag.endswith("/>"):
            continue
        depth += 1
        if depth > 1:
            return True
    return False


def find_call_names(expression: str) -> list[str]:
    """Return called identifiers in an expression that are not allow-listed.

    String literals are blanked first so text such as ``'a (b)'`` is not
    mistaken for a call.
    """
    stripped = _STRING_LITERAL.sub("''", expression)
    return [
        match.group(1)
        for match in _CALL.finditer(stripped)
        if not match.group(1).startswith(SAFE_CALL_PREFIXES)
    ]


def _strict_parse(
    markup: str,
) -> tuple[list[StructuralDirective], list[FunctionCallSite]]:
    """Parse markup strictly.

    Raises:
        TemplateParseError: If the markup is malformed or the base parser
            fails on it for any other reason.
    """
    parser = _StrictTemplateParser()
    try:
        parser.feed(markup)
        parser.finish()
    except TemplateParseError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise TemplateParseError(f"{type(exc).__name__}: {exc}") from exc
    return parser.directives, parser.call_sites


def _fallback_extract(
    markup: str,
) -> tuple[list[StructuralDirective], list[FunctionCallSite]]:
    call_sites: list[FunctionCallSite] = []
    for match in _FALLBACK_INTERPOLATION.finditer(markup):
        expression = match.group(1)
        if "(" not in expression or ")" not in expression:
            continue
        if not find_call_names(expression):
            continue
        offset = match.start()
        line = markup.count("\n", 0, offset) + 1
        column = offset - markup.rfind("\n", 0, offset)
        call_sites.append(
            FunctionCallSite(expression=expression.strip(), line=line, column=column)
        )
    directives = [
        StructuralDirective(name=f"*{match.group(1)}", raw_value=match.group(2))
        for match in _FALLBACK_DIRECTIVE.finditer(markup)
    ]
    return directives, call_sites


def _advance(line: int, column: int, text: str, offset: int) -> tuple[int, int]:
    """Move a (line, 0-based column) position forward over ``text[:offset]``."""
    consumed = text[:offset]
    newlines = consumed.count("\n")
    if newlines == 0:
        return line, column + offset
    return line + newlines, offset - consumed.rfind("\n") - 1


def _raw_attributes(start_tag_text: str) -> list[tuple[str, str, int]]:
    """Extract case-preserved attributes from a start tag.

    Returns:
        Tuples of ``(name, value, offset_in_tag_text)``.
    """
    prefix = _TAG_NAME_PREFIX.match(start_tag_text)
    body_start = prefix.end() if prefix else 0
    body_end = len(start_tag_text)
    if start_tag_text.endswith("/>"):
        body_end -= 2
    elif start_tag_text.endswith(">"):
        body_end -= 1
    attributes: list[tuple[str, str, int]] = []
    for match in _RAW_ATTRIBUTE.finditer(start_tag_text, body_start, body_end):
        value = match.group(2) or ""
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        attributes.append((match.group(1), value, match.start()))
    return attributes


class _StrictTemplateParser(HTMLParser):
    """HTML parser that rejects unbalanced markup instead of recovering."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._stack: list[tuple[str, int]] = []
        self._text: list[str] = []
        self._text_start: tuple[int, int] | None = None
        self.directives: list[StructuralDirective] = []
        self.call_sites: list[FunctionCallSite] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self._flush_text()
        self._collect_attributes()
        raw = self.get_starttag_text() or ""
        if tag not in VOID_ELEMENTS and not raw.endswith("/>"):
            self._stack.append((tag, self.getpos()[0]))

    def handle_startendtag(
        self, tag: str, attrs: list[tuple[str, str | None]]
    ) -> None:
        self._flush_text()
        self._collect_attributes()

    def handle_endtag(self, tag: str) -> None:
        self._flush_text()
        if tag in VOID_ELEMENTS:
            return
        line = self.getpos()[0]
        if tag not in {name for name, _ in self._stack}:
            raise TemplateParseError(f"unexpected closing tag </{tag}> at line {line}")
        while self._stack:
            name, opened_at = self._stack.pop()
            if name == tag:
                return
            if name not in OPTIONAL_END_ELEMENTS:
                raise TemplateParseError(
                    f"element <{name}> opened at line {opened_at} closed by </{tag}> at line {line}"
                )

    def handle_comment(self, data: str) -> None:
        self._flush_text()

    def handle_data(self, data: str) -> None:
        # The base parser may split one text run at '<' or '&'.
        if self._text_start is None:
            self._text_start = self.getpos()
        self._text.append(data)

    def finish(self) -> None:
        """Flush the parser and verify that all elements were closed.

        Raises:
            TemplateParseError: If markup is unterminated or elements remain open.
        """
        if self.rawdata.lstrip().startswith("<"):
            raise TemplateParseError(f"unterminated markup at line {self.getpos()[0]}")
        self.close()
        self._flush_text()
        unclosed = [
            (name, line)
            for name, line in self._stack
            if name not in OPTIONAL_END_ELEMENTS
        ]
        if unclosed:
            name, line = unclosed[-1]
            raise TemplateParseError(
                f"element <{name}> opened at line {line} is never closed"
            )

    def _flush_text(self) -> None:
        if self._text_start is None:
            return
        text = "".join(self._text)
        line, column = self._text_start
        self._text = []
        self._text_start = None
        self._collect_interpolations(text, line, column)

    def _collect_attributes(self) -> None:
        raw = self.get_starttag_text() or ""
        start_line, start_column = self.getpos()
        for name, value, offset in _raw_attributes(raw):
            if name.startswith("*"):
                self.directives.append(StructuralDirective(name=name, raw_value=value))
                continue
            value_offset = raw.find(value, offset) if value else offset
            line, column = _advance(start_line, start_column, raw, value_offset)
            if name.startswith("[") and not name.startswith("[(") and name.endswith("]"):
                self._record_expression(value, line, column)
            elif "{{" in value:
                self._collect_interpolations(value, line, column)

    def _collect_interpolations(self, text: str, line: int, column: int) -> None:
        for match in _INTERPOLATION.finditer(text):
            at_line, at_column = _advance(line, column, text, match.start())
            self._record_expression(match.group(1), at_line, at_column)

    def _record_expression(self, expression: str, line: int, column: int) -> None:
        if not expression.strip() or not find_call_names(expression):
            return
        self.call_sites.append(
            FunctionCallSite(expression=expression.strip(), line=line, column=column + 1)
        )

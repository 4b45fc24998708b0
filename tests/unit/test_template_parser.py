import logging

import pytest

from ngsmells import template_parser
from ngsmells.template_parser import (
    TemplateAnalyzer,
    find_call_names,
    has_nested_anchors,
    scan_text_signals,
)


def test_ph2_tpl_001_strict_parse_collects_directives_and_call_sites() -> None:
    markup = "\n".join(
        [
            "<ul>",
            '  <li *ngFor="let item of items">{{ format(item) }}</li>',
            "</ul>",
            '<span [title]="label()"></span>',
        ]
    )

    facts = TemplateAnalyzer().analyze(markup)

    assert facts.parse_mode == "strict"
    assert facts.parse_error is None
    assert facts.structural_directive_count == 1
    assert [directive.name for directive in facts.structural_directives] == ["*ngFor"]
    assert facts.structural_directives[0].raw_value == "let item of items"
    expressions = [site.expression for site in facts.function_call_sites]
    assert expressions == ["format(item)", "label()"]
    assert facts.function_call_sites[0].line == 2
    assert facts.function_call_sites[1].line == 4


def test_ph2_tpl_002_malformed_markup_falls_back_and_logs_warning(
    caplog: pytest.LogCaptureFixture,
) -> None:
    markup = "<div>\n  <span>{{ compute(value) }}</div>\n"

    with caplog.at_level(logging.WARNING):
        facts = TemplateAnalyzer().analyze(markup, source="broken.component.html")

    assert facts.parse_mode == "fallback"
    assert facts.parse_error
    assert [site.expression for site in facts.function_call_sites] == ["compute(value)"]
    assert facts.function_call_sites[0].line == 2
    assert "broken.component.html" in caplog.text


def test_ph2_tpl_003_text_signals_are_collected_even_when_parse_fails() -> None:
    markup = '<div [innerHTML]="html"><a href="/"><a href="/x">x</a></a>{{ Math.random() }}'

    facts = TemplateAnalyzer().analyze(markup)

    assert facts.parse_mode == "fallback"
    assert facts.unsafe_inner_html is True
    assert facts.nested_anchor_tags is True
    assert facts.dynamic_content_detected is True


def test_ph2_tpl_004_track_markers_cover_trackby_and_for_blocks() -> None:
    assert scan_text_signals('<li *ngFor="let i of items; trackBy: byId"></li>').has_track_by
    assert scan_text_signals("@for (item of items; track item.id) { <li></li> }").has_track_by
    assert not scan_text_signals('<li *ngFor="let i of items"></li>').has_track_by


def test_ph2_tpl_005_nested_anchor_detection_ignores_siblings() -> None:
    assert has_nested_anchors("<a><a></a></a>")
    assert has_nested_anchors("<a href='/'>\n  <span>\n    <a href='/b'>b</a>\n  </span>\n</a>")
    assert not has_nested_anchors("<a>1</a><a>2</a>")


def test_ph2_tpl_006_safe_calls_and_string_literals_are_not_call_sites() -> None:
    assert find_call_names("items | async") == []
    assert find_call_names("'text (with parens)'") == []
    assert find_call_names("trackByFn(index)") == []
    assert find_call_names("total() + count(x)") == ["total"]


def test_ph2_tpl_007_empty_template_yields_empty_facts() -> None:
    facts = TemplateAnalyzer().analyze("")

    assert facts.parse_mode == "strict"
    assert facts.structural_directive_count == 0
    assert facts.function_call_sites == ()
    assert not facts.unsafe_inner_html


def test_ph2_tpl_008_unknown_marked_section_never_escapes_analyze() -> None:
    facts = TemplateAnalyzer().analyze("<![foo]><div>{{ a() }}</div>")

    assert [site.expression for site in facts.function_call_sites] == ["a()"]


def test_ph2_tpl_009_base_parser_errors_switch_to_fallback(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def broken_feed(self, data: str) -> None:
        raise AssertionError("unknown status keyword 'foo' in marked section")

    monkeypatch.setattr(template_parser._StrictTemplateParser, "feed", broken_feed)

    facts = TemplateAnalyzer().analyze('<li *ngFor="let i of items">{{ label(i) }}</li>')

    assert facts.parse_mode == "fallback"
    assert "unknown status keyword" in facts.parse_error
    assert [site.expression for site in facts.function_call_sites] == ["label(i)"]
    assert [directive.name for directive in facts.structural_directives] == ["*ngFor"]

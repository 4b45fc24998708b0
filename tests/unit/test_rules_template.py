from ngsmells.model import Severity
from ngsmells.rules import RuleId

TEMPLATE = "src/app/list.component.html"
COMPANION = "src/app/list.component.ts"
COMPONENT = "src/app/list.component.ts"


def test_ph4_tpl_001_impure_call_inside_loop_is_critical(run_rule) -> None:
    markup = '<ul>\n  <li *ngFor="let item of items">{{ format(item) }}</li>\n</ul>'

    matches = run_rule(RuleId.IMPURE_TEMPLATE_CALL, TEMPLATE, markup)

    assert [(match.severity, match.line) for match in matches] == [(Severity.CRITICAL, 2)]
    assert "format(item)" in matches[0].message


def test_ph4_tpl_002_impure_call_outside_loop_is_high(run_rule) -> None:
    matches = run_rule(RuleId.IMPURE_TEMPLATE_CALL, TEMPLATE, "<p>{{ total() }}</p>")

    assert [match.severity for match in matches] == [Severity.HIGH]


def test_ph4_tpl_003_impure_call_in_inline_template(run_rule) -> None:
    content = "@Component({\n  template: '<p>{{ total() }}</p>'\n})\nexport class ListComponent {}"

    matches = run_rule(RuleId.IMPURE_TEMPLATE_CALL, COMPONENT, content)

    assert [(match.severity, match.line) for match in matches] == [(Severity.HIGH, 2)]


def test_ph4_tpl_004_method_call_in_property_binding(run_rule) -> None:
    assert run_rule(RuleId.TEMPLATE_METHOD_CALL, TEMPLATE, '<span [title]="label()"></span>')
    assert not run_rule(RuleId.TEMPLATE_METHOD_CALL, TEMPLATE, '<span [title]="label"></span>')


def test_ph4_tpl_005_missing_trackby_escalates_with_large_companion_data(run_rule) -> None:
    markup = '<ul>\n  <li *ngFor="let item of items">{{ item }}</li>\n</ul>'

    plain = run_rule(RuleId.MISSING_TRACKBY, TEMPLATE, markup)
    large = run_rule(
        RuleId.MISSING_TRACKBY, TEMPLATE, markup, companions={COMPANION: "items = new Array(5000);"}
    )
    tracked = run_rule(
        RuleId.MISSING_TRACKBY,
        TEMPLATE,
        '<li *ngFor="let item of items; trackBy: byId">{{ item }}</li>',
    )

    assert [(match.severity, match.line) for match in plain] == [(Severity.MEDIUM, 2)]
    assert [match.severity for match in large] == [Severity.HIGH]
    assert tracked == []


def test_ph4_tpl_006_large_list_severity_follows_estimated_size(run_rule) -> None:
    markup = '<li *ngFor="let item of items">{{ item }}</li>'

    huge = run_rule(
        RuleId.LARGE_LIST_WITHOUT_VIRTUALIZATION,
        TEMPLATE,
        markup,
        companions={COMPANION: "items = new Array(5000);"},
    )
    big = run_rule(
        RuleId.LARGE_LIST_WITHOUT_VIRTUALIZATION,
        TEMPLATE,
        markup,
        companions={COMPANION: "items = new Array(700);"},
    )
    unknown = run_rule(RuleId.LARGE_LIST_WITHOUT_VIRTUALIZATION, TEMPLATE, markup)
    virtual = run_rule(
        RuleId.LARGE_LIST_WITHOUT_VIRTUALIZATION,
        TEMPLATE,
        "<cdk-virtual-scroll-viewport>" + markup + "</cdk-virtual-scroll-viewport>",
        companions={COMPANION: "items = new Array(5000);"},
    )

    assert [match.severity for match in huge] == [Severity.CRITICAL]
    assert "5000" in huge[0].message
    assert [match.severity for match in big] == [Severity.HIGH]
    assert unknown == []
    assert virtual == []


def test_ph4_tpl_007_hydration_mismatch_from_structural_facts(run_rule) -> None:
    nested = run_rule(RuleId.HYDRATION_MISMATCH, TEMPLATE, '<a href="/"><a href="/x">x</a></a>')
    dynamic = run_rule(RuleId.HYDRATION_MISMATCH, TEMPLATE, "<p>{{ Date.now() }}</p>")

    assert [(match.severity, match.line) for match in nested] == [(Severity.CRITICAL, 1)]
    assert [match.severity for match in dynamic] == [Severity.HIGH]


def test_ph4_tpl_008_inner_html_severity_depends_on_sanitizer(run_rule) -> None:
    markup = '<div [innerHTML]="html"></div>'

    unsafe = run_rule(RuleId.UNSAFE_INNER_HTML, TEMPLATE, markup)
    sanitized = run_rule(
        RuleId.UNSAFE_INNER_HTML,
        TEMPLATE,
        markup,
        companions={COMPANION: "constructor(private sanitizer: DomSanitizer) {}"},
    )

    assert [match.severity for match in unsafe] == [Severity.CRITICAL]
    assert [match.severity for match in sanitized] == [Severity.HIGH]


def test_ph4_tpl_009_legacy_structural_directives(run_rule) -> None:
    markup = '<div *ngIf="a"><span *ngFor="let x of xs">{{ x }}</span></div>'

    matches = run_rule(RuleId.CONTROL_FLOW_DEPRECATED, TEMPLATE, markup)

    assert len(matches) == 1
    assert matches[0].severity is Severity.MEDIUM
    assert "*ngIf, *ngFor" in matches[0].message
    assert "@if, @for" in matches[0].remediation


def test_ph4_tpl_010_invalid_html_structures(run_rule) -> None:
    paragraph = run_rule(RuleId.HYDRATION_INVALID_HTML, TEMPLATE, "<p>\n  <div>x</div>\n</p>")
    table = run_rule(
        RuleId.HYDRATION_INVALID_HTML, TEMPLATE, "<table><tr><td>1</td></tr></table>"
    )
    buttons = run_rule(
        RuleId.HYDRATION_INVALID_HTML, TEMPLATE, "<button><button>x</button></button>"
    )
    valid = run_rule(
        RuleId.HYDRATION_INVALID_HTML,
        TEMPLATE,
        "<table><tbody><tr><td>1</td></tr></tbody></table>",
    )

    assert [(match.severity, match.line) for match in paragraph] == [(Severity.CRITICAL, 1)]
    assert [match.severity for match in table] == [Severity.CRITICAL]
    assert "nested <button>" in buttons[0].message
    assert valid == []


def test_ph4_tpl_011_client_hydration_without_event_replay(run_rule) -> None:
    path = "src/app/app.config.ts"

    missing = run_rule(
        RuleId.HYDRATION_MISSING_EVENT_REPLAY, path, "providers: [provideClientHydration()]"
    )
    replayed = run_rule(
        RuleId.HYDRATION_MISSING_EVENT_REPLAY,
        path,
        "providers: [provideClientHydration(withEventReplay())]",
    )

    assert [match.severity for match in missing] == [Severity.MEDIUM]
    assert replayed == []


def test_ph4_tpl_012_defer_without_error_block(run_rule) -> None:
    missing = run_rule(RuleId.DEFER_ERROR_BLOCKS, TEMPLATE, "@defer {\n  <big-chart />\n}\n")
    handled = run_rule(
        RuleId.DEFER_ERROR_BLOCKS,
        TEMPLATE,
        "@defer {\n  <big-chart />\n} @error {\n  <p>failed</p>\n}\n",
    )

    assert [(match.severity, match.line) for match in missing] == [(Severity.MEDIUM, 1)]
    assert handled == []


def test_ph4_tpl_013_async_pipe_stream_subscribed_twice(run_rule) -> None:
    markup = "<p>{{ user$ | async }}</p>\n<p>{{ (user$ | async)?.name }}</p>"

    matches = run_rule(RuleId.ASYNC_PIPE_MULTIPLE_SUBSCRIPTIONS, TEMPLATE, markup)

    assert [(match.severity, match.line) for match in matches] == [(Severity.MEDIUM, 2)]


def test_ph4_tpl_014_complex_expression_with_nested_ternaries(run_rule) -> None:
    complex_markup = "<p>{{ a ? b : c ? d : e }}</p>"

    assert run_rule(RuleId.COMPLEX_TEMPLATE_LOGIC, TEMPLATE, complex_markup)
    assert not run_rule(RuleId.COMPLEX_TEMPLATE_LOGIC, TEMPLATE, "<p>{{ name }}</p>")


def test_ph4_tpl_015_nested_conditionals_beyond_limit(run_rule) -> None:
    tags = "\n".join(
        [
            '<div *ngIf="a">',
            '  <div *ngIf="b">',
            '    <span *ngIf="c">x</span>',
            "  </div>",
            "</div>",
        ]
    )
    blocks = "\n".join(
        [
            "@if (a) {",
            "  @if (b) {",
            "    @if (c) {",
            "      <p>x</p>",
            "    }",
            "  }",
            "}",
        ]
    )

    tag_matches = run_rule(RuleId.NESTED_NGIF, TEMPLATE, tags)
    block_matches = run_rule(RuleId.NESTED_NGIF, TEMPLATE, blocks)
    relaxed = run_rule(
        RuleId.NESTED_NGIF, TEMPLATE, tags, overrides={"templateLogic.maxNestedIfDepth": 3}
    )

    assert [match.line for match in tag_matches] == [3]
    assert [match.line for match in block_matches] == [3]
    assert relaxed == []


def test_ph4_tpl_016_ngif_and_ngfor_on_same_element(run_rule) -> None:
    markup = '<li *ngFor="let x of xs" *ngIf="x.visible">{{ x }}</li>'

    matches = run_rule(RuleId.NGIF_NGFOR_SAME_ELEMENT, TEMPLATE, markup)

    assert [match.severity for match in matches] == [Severity.HIGH]


def test_ph4_tpl_017_accessibility_gaps(run_rule) -> None:
    markup = "\n".join(
        [
            '<img src="a.png">',
            '<img src="b.png" alt="">',
            '<div (click)="open()">Open</div>',
            '<button (click)="close()"><mat-icon>close</mat-icon></button>',
            '<button aria-label="Close" (click)="close()"><mat-icon>close</mat-icon></button>',
        ]
    )

    matches = run_rule(RuleId.MISSING_ACCESSIBILITY_ATTRIBUTES, TEMPLATE, markup)

    assert sorted(match.line for match in matches) == [1, 3, 4]
    assert {match.severity for match in matches} == {Severity.MEDIUM}


def test_ph4_tpl_018_hard_coded_text_without_i18n(run_rule) -> None:
    markup = "<h1>Welcome</h1>\n<p>Sign in to continue</p>\n<button>Submit</button>"

    plain = run_rule(RuleId.NO_I18N_INTEGRATION, TEMPLATE, markup)
    translated = run_rule(RuleId.NO_I18N_INTEGRATION, TEMPLATE, markup.replace("<h1>", "<h1 i18n>"))

    assert [(match.severity, match.line) for match in plain] == [(Severity.LOW, 1)]
    assert translated == []


def test_ph4_tpl_019_trusting_dynamic_urls(run_rule) -> None:
    bypass = run_rule(
        RuleId.TRUSTING_EXTERNAL_URLS,
        COMPONENT,
        "@Component({})\nexport class A {\n  u = this.sanitizer.bypassSecurityTrustResourceUrl(this.url);\n}",
    )
    literal = run_rule(
        RuleId.TRUSTING_EXTERNAL_URLS,
        COMPONENT,
        "@Component({})\nexport class A {\n  u = this.sanitizer.bypassSecurityTrustUrl('https://a.b');\n}",
    )
    bound = run_rule(RuleId.TRUSTING_EXTERNAL_URLS, TEMPLATE, '<a [href]="profileUrl">me</a>')
    static = run_rule(RuleId.TRUSTING_EXTERNAL_URLS, TEMPLATE, "<img [src]=\"'/logo.png'\">")

    assert [(match.severity, match.line) for match in bypass] == [(Severity.HIGH, 3)]
    assert literal == []
    assert [match.severity for match in bound] == [Severity.MEDIUM]
    assert static == []


def test_ph4_tpl_020_two_way_binding_heavy_use(run_rule) -> None:
    markup = "\n".join(f'<input [(ngModel)]="form.field{index}">' for index in range(4))
    component = "\n".join(
        [
            "@Component({})",
            "export class RatingComponent {",
            "  @Input() value: number;",
            "  @Output() valueChange = new EventEmitter<number>();",
            "}",
        ]
    )

    bindings = run_rule(RuleId.TWO_WAY_BINDING_HEAVY_USE, TEMPLATE, markup)
    manual = run_rule(RuleId.TWO_WAY_BINDING_HEAVY_USE, COMPONENT, component)

    assert [(match.severity, match.line) for match in bindings] == [(Severity.MEDIUM, 4)]
    assert [(match.severity, match.line) for match in manual] == [(Severity.MEDIUM, 4)]


def test_ph4_tpl_021_ngmodel_on_input_object_property(run_rule) -> None:
    markup = '<input [(ngModel)]="user.name">'

    bound = run_rule(
        RuleId.TWO_WAY_OBJECT_BINDING,
        TEMPLATE,
        markup,
        companions={COMPANION: "@Input() user: User;"},
    )
    local = run_rule(
        RuleId.TWO_WAY_OBJECT_BINDING,
        TEMPLATE,
        markup,
        companions={COMPANION: "user: User = { name: '' };"},
    )

    assert [match.severity for match in bound] == [Severity.HIGH]
    assert local == []


def test_ph4_tpl_022_member_access_on_optional_value(run_rule) -> None:
    markup = "<p>{{ user.name }}</p>"
    optional = {COMPANION: "export class A {\n  user?: User;\n}"}

    unguarded = run_rule(RuleId.TEMPLATE_NULL_SAFETY, TEMPLATE, markup, companions=optional)
    guarded = run_rule(
        RuleId.TEMPLATE_NULL_SAFETY,
        TEMPLATE,
        '<div *ngIf="user">' + markup + "</div>",
        companions=optional,
    )
    initialized = run_rule(
        RuleId.TEMPLATE_NULL_SAFETY,
        TEMPLATE,
        markup,
        companions={COMPANION: "export class A {\n  user: User = DEFAULT_USER;\n}"},
    )

    assert [match.severity for match in unguarded] == [Severity.MEDIUM]
    assert guarded == []
    assert initialized == []


def test_ph4_tpl_023_disabled_encapsulation_and_ng_deep(run_rule) -> None:
    content = "\n".join(
        [
            "@Component({",
            "  encapsulation: ViewEncapsulation.None,",
            "  styles: [':host ::ng-deep .x { color: red; }'],",
            "})",
        ]
    )

    matches = run_rule(RuleId.NO_COMPONENT_ENCAPSULATION, COMPONENT, content)

    assert [(match.severity, match.line) for match in matches] == [
        (Severity.MEDIUM, 2),
        (Severity.LOW, 3),
    ]


def test_ph4_tpl_024_multi_line_ngfor_attribute(run_rule) -> None:
    tracked = '<li *ngFor="let item of items;\n            trackBy: byId">\n  {{ item }}\n</li>'
    untracked = '<ul>\n  <li\n    *ngFor="let item of items;\n            let i = index">{{ item }}</li>\n</ul>'
    companions = {COMPANION: "items = new Array(5000);"}

    assert run_rule(RuleId.MISSING_TRACKBY, TEMPLATE, tracked) == []
    assert [
        (match.severity, match.line, match.column)
        for match in run_rule(RuleId.MISSING_TRACKBY, TEMPLATE, untracked)
    ] == [(Severity.MEDIUM, 3, 5)]
    assert [
        (match.severity, match.line)
        for match in run_rule(
            RuleId.LARGE_LIST_WITHOUT_VIRTUALIZATION, TEMPLATE, untracked, companions=companions
        )
    ] == [(Severity.CRITICAL, 3)]


def test_ph4_tpl_025_ngfor_text_outside_directives_is_ignored(run_rule) -> None:
    markup = "<p>Use *ngFor=\"let item of items\" to repeat rows.</p>"

    assert run_rule(RuleId.MISSING_TRACKBY, TEMPLATE, markup) == []

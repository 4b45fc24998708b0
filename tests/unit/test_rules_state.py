import pytest

from ngsmells.model import Severity
from ngsmells.rules import RuleId
from ngsmells.rules.state import entity_key

STORE = "src/app/store/user.reducer.ts"
SELECTORS = "src/app/store/user.selectors.ts"


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("users", "user"),
        ("selectedUser", "user"),
        ("userIds", "user"),
        ("userCount", "user"),
        ("loading", "loading"),
    ],
)
def test_ph4_st_001_entity_key_strips_collection_markers(name: str, expected: str) -> None:
    assert entity_key(name) == expected


def test_ph4_st_002_entity_stored_in_several_shapes(run_rule) -> None:
    content = "\n".join(
        [
            "export interface UserState {",
            "  users: User[];",
            "  selectedUser: User | null;",
            "  userIds: string[];",
            "  loading: boolean;",
            "}",
        ]
    )

    matches = run_rule(RuleId.ENTITY_DUPLICATION, STORE, content)

    assert [(match.severity, match.line) for match in matches] == [(Severity.HIGH, 1)]
    assert "user (users, selectedUser, userIds)" in matches[0].message


def test_ph4_st_003_selector_returning_whole_state(run_rule) -> None:
    content = "export const selectAll = createSelector(selectFeature, (state) => state);"

    matches = run_rule(RuleId.BROAD_SELECTORS, SELECTORS, content)

    assert [match.severity for match in matches] == [Severity.CRITICAL]


def test_ph4_st_004_selector_combining_many_inputs(run_rule) -> None:
    content = (
        "export const selectDashboard = createSelector(\n"
        "  selectA, selectB, selectC, selectD,\n"
        "  (a, b, c, d) => ({ a, b, c, d })\n"
        ");"
    )

    matches = run_rule(RuleId.BROAD_SELECTORS, SELECTORS, content)

    assert [(match.severity, match.line) for match in matches] == [(Severity.HIGH, 1)]


def test_ph4_st_005_focused_selector_is_clean(run_rule) -> None:
    content = "export const selectName = createSelector(selectUser, (user) => user.name);"

    assert run_rule(RuleId.BROAD_SELECTORS, SELECTORS, content) == []


def test_ph4_st_006_effect_without_error_handling(run_rule) -> None:
    effect = "\n".join(
        [
            "loadUsers$ = createEffect(() =>",
            "  this.actions$.pipe(",
            "    ofType(load),",
            "    switchMap(() => this.api.users().pipe(map((users) => loaded({ users }))))",
            "  )",
            ");",
        ]
    )
    guarded = effect.replace(
        "map((users) => loaded({ users }))",
        "map((users) => loaded({ users })), catchError(() => of(failed()))",
    )

    matches = run_rule(RuleId.NGRX_EFFECTS_ISSUES, "src/app/store/user.effects.ts", effect)

    assert [(match.severity, match.line) for match in matches] == [(Severity.HIGH, 1)]
    assert run_rule(RuleId.NGRX_EFFECTS_ISSUES, "src/app/store/user.effects.ts", guarded) == []


def test_ph4_st_007_plain_function_and_inline_selectors(run_rule) -> None:
    plain = run_rule(
        RuleId.NGRX_MISSING_MEMOIZATION,
        SELECTORS,
        "export const selectUsers = (state: AppState) => state.users;",
    )
    inline = run_rule(
        RuleId.NGRX_MISSING_MEMOIZATION,
        "src/app/users.component.ts",
        "@Component({})\nexport class A {\n  users$ = this.store.select(state => state.users);\n}",
    )

    assert [(match.severity, match.line) for match in plain] == [(Severity.MEDIUM, 1)]
    assert [(match.severity, match.line) for match in inline] == [(Severity.MEDIUM, 3)]


def test_ph4_st_008_nested_entities_in_state(run_rule) -> None:
    nested = "\n".join(
        [
            "export interface OrderState {",
            "  orders: Array<{ id: string; customer: { name: string } }>;",
            "}",
        ]
    )
    flat = "export interface OrderState {\n  orders: Order[];\n  loading: boolean;\n}"

    matches = run_rule(RuleId.NGRX_NON_NORMALIZED_STATE, STORE, nested)

    assert [(match.severity, match.line) for match in matches] == [(Severity.HIGH, 2)]
    assert run_rule(RuleId.NGRX_NON_NORMALIZED_STATE, STORE, flat) == []


def test_ph4_st_009_too_many_select_calls(run_rule) -> None:
    calls = [f"  s{index}$ = this.store.select(selectS{index});" for index in range(6)]
    content = "\n".join(["@Component({})", "export class A {", *calls, "}"])

    matches = run_rule(RuleId.NGRX_OVER_SELECTING, "src/app/a.component.ts", content)
    fewer = run_rule(
        RuleId.NGRX_OVER_SELECTING,
        "src/app/a.component.ts",
        "\n".join(["@Component({})", "export class A {", *calls[:5], "}"]),
    )

    assert [(match.severity, match.line) for match in matches] == [(Severity.MEDIUM, 3)]
    assert fewer == []


def test_ph4_st_010_direct_state_mutation_in_reducer(run_rule) -> None:
    mutating = "\n".join(
        [
            "export const reducer = createReducer(",
            "  initialState,",
            "  on(addUser, (state, { user }) => {",
            "    state.users.push(user);",
            "    return state;",
            "  })",
            ");",
        ]
    )
    immutable = "\n".join(
        [
            "export const reducer = createReducer(",
            "  initialState,",
            "  on(addUser, (state, { user }) => ({ ...state, users: [...state.users, user] }))",
            ");",
        ]
    )

    matches = run_rule(RuleId.NGRX_STATE_MUTATION, STORE, mutating)

    assert [(match.severity, match.line) for match in matches] == [(Severity.CRITICAL, 4)]
    assert run_rule(RuleId.NGRX_STATE_MUTATION, STORE, immutable) == []


def test_ph4_st_011_collection_with_parallel_ids_and_count(run_rule) -> None:
    content = "\n".join(
        [
            "export interface UserState {",
            "  users: User[];",
            "  userIds: string[];",
            "  userCount: number;",
            "}",
        ]
    )
    one_shape = "export interface UserState {\n  users: User[];\n  userList: User[];\n  loading: boolean;\n}"

    matches = run_rule(RuleId.ENTITY_DUPLICATION, "src/app/store/user.state.ts", content)

    assert [(match.severity, match.line) for match in matches] == [(Severity.HIGH, 1)]
    assert "user (users, userIds, userCount)" in matches[0].message
    assert run_rule(RuleId.ENTITY_DUPLICATION, STORE, one_shape) == []


def test_ph4_st_012_mutation_outside_reducer_is_ignored(run_rule) -> None:
    content = "\n".join(
        [
            "const handler = function(state) {",
            "  state.items.push(item);",
            "};",
            "track(subscription());",
        ]
    )

    assert run_rule(RuleId.NGRX_STATE_MUTATION, "src/app/store/items.ts", content) == []

"""Tests for outcome verification."""

from screen_tasks.prompts import ExpectedOutcome
from screen_tasks.verification import verify

from tests.conftest import DIALOG_PAGE, HOME_PAGE

MENU_CLOSED = '<button id="menu" aria-expanded="false">Menu</button>'
MENU_OPEN = """<button id="menu" aria-expanded="true">Menu</button>
<ul class="dropdown"><li role="listitem">Profile</li><li role="listitem">Logout</li></ul>"""


class TestElementClauses:
    """Tests for element existence and text clauses."""

    def test_element_should_exist_by_id(self) -> None:
        result = verify(HOME_PAGE, DIALOG_PAGE, {"elementShouldExist": "submitLogin"})

        assert result.passed is True
        assert result.clauses[0].detail == "'submitLogin' found by id"

    def test_element_should_exist_by_class_word(self) -> None:
        result = verify(HOME_PAGE, HOME_PAGE, {"elementShouldExist": "auth-link"})

        assert result.passed is True
        assert result.clauses[0].detail.endswith("class")

    def test_element_should_exist_by_visible_text(self) -> None:
        result = verify(HOME_PAGE, DIALOG_PAGE, {"elementShouldExist": "Continue"})

        assert result.passed is True

    def test_element_should_exist_missing(self) -> None:
        result = verify(HOME_PAGE, HOME_PAGE, {"elementShouldExist": "submitLogin"})

        assert result.passed is False
        assert result.reason == "element 'submitLogin' not found"

    def test_entity_encoded_selector_is_decoded(self) -> None:
        result = verify(HOME_PAGE, DIALOG_PAGE, {"elementShouldExist": "&#115;ubmitLogin"})

        assert result.passed is True

    def test_regex_metacharacters_are_literal(self) -> None:
        result = verify(HOME_PAGE, HOME_PAGE, {"elementShouldExist": "login(.*"})

        assert result.passed is False

    def test_element_should_not_exist(self) -> None:
        gone = verify(DIALOG_PAGE, HOME_PAGE, {"elementShouldNotExist": "submitLogin"})
        still_there = verify(DIALOG_PAGE, DIALOG_PAGE, {"elementShouldNotExist": "submitLogin"})

        assert gone.passed is True
        assert still_there.passed is False
        assert "still present" in still_there.reason

    def test_element_should_have_text(self) -> None:
        after = '<div><span id="status" class="badge">Saved</span></div>'

        passed = verify("", after, {"elementShouldHaveText": {"selector": "status", "text": "Saved"}})
        failed = verify("", after, {"elementShouldHaveText": {"selector": "status", "text": "Error"}})

        assert passed.passed is True
        assert failed.passed is False
        assert failed.reason == "text 'Error' not found for 'status'"


class TestRoleClauses:
    """Tests for elementsToAppear / elementsToDisappear."""

    def test_dialog_appears(self) -> None:
        result = verify(HOME_PAGE, DIALOG_PAGE, {"elementsToAppear": [{"role": "dialog"}]})

        assert result.passed is True

    def test_dialog_missing_names_the_role(self) -> None:
        result = verify(HOME_PAGE, HOME_PAGE, {"elementsToAppear": [{"role": "dialog"}]})

        assert result.passed is False
        assert result.reason == "dialog not found"

    def test_native_dialog_element_counts(self) -> None:
        result = verify("", "<dialog open><p>Hi</p></dialog>", {"elementsToAppear": [{"role": "dialog"}]})

        assert result.passed is True

    def test_menuitem_accepts_list_items(self) -> None:
        result = verify(MENU_CLOSED, MENU_OPEN, {"elementsToAppear": [{"role": "menuitem"}]})

        assert result.passed is True

    def test_closed_menu_disappears_despite_other_lists(self) -> None:
        open_menu = MENU_CLOSED + '<div role="menu"><a role="menuitem">Profile</a></div>'
        closed_menu = MENU_CLOSED + '<ul role="list"><li role="listitem">Recent orders</li></ul>'

        result = verify(open_menu, closed_menu, {"elementsToDisappear": [{"role": "menuitem"}]})

        assert result.passed is True
        assert result.reason == "All 1 expected outcome clause(s) passed"

    def test_every_entry_must_appear(self) -> None:
        result = verify(
            HOME_PAGE,
            DIALOG_PAGE,
            {"elementsToAppear": [{"role": "dialog"}, {"role": "alert"}]},
        )

        assert result.passed is False
        assert result.reason == "alert not found"

    def test_selector_entry(self) -> None:
        result = verify(HOME_PAGE, DIALOG_PAGE, {"elementsToAppear": [{"selector": "submitLogin"}]})

        assert result.passed is True

    def test_elements_to_disappear(self) -> None:
        closed = verify(DIALOG_PAGE, HOME_PAGE, {"elementsToDisappear": [{"role": "dialog"}]})
        still_open = verify(DIALOG_PAGE, DIALOG_PAGE, {"elementsToDisappear": [{"role": "dialog"}]})

        assert closed.passed is True
        assert still_open.passed is False
        assert still_open.reason == "dialog still present"


class TestAttributeAndUrlClauses:
    """Tests for attributeChanges and urlShouldChange."""

    def test_attribute_changes(self) -> None:
        expected = {"attributeChanges": [{"attribute": "aria-expanded", "expectedValue": "true"}]}

        assert verify(MENU_CLOSED, MENU_OPEN, expected).passed is True
        failed = verify(MENU_CLOSED, MENU_CLOSED, expected)
        assert failed.passed is False
        assert failed.reason == "attribute not set: aria-expanded=true"

    def test_url_change_on_path(self) -> None:
        result = verify(
            "", "<p>x</p>", {"urlShouldChange": True},
            before_url="https://app.example.com/home",
            after_url="https://app.example.com/dashboard",
        )

        assert result.passed is True

    def test_query_change_counts(self) -> None:
        result = verify(
            "", "<p>x</p>", {"urlShouldChange": True},
            before_url="https://app.example.com/home?tab=1",
            after_url="https://app.example.com/home?tab=2",
        )

        assert result.passed is True

    def test_fragment_change_does_not_count(self) -> None:
        result = verify(
            "", "<p>x</p>", {"urlShouldChange": True},
            before_url="https://app.example.com/home",
            after_url="https://app.example.com/home#section",
        )

        assert result.passed is False
        assert result.reason.startswith("URL did not change")

    def test_url_should_stay(self) -> None:
        result = verify(
            "", "<p>x</p>", {"urlShouldChange": False},
            before_url="https://app.example.com/home",
            after_url="https://app.example.com/home",
        )

        assert result.passed is True

    def test_missing_url_fails(self) -> None:
        result = verify("", "<p>x</p>", {"urlShouldChange": True}, before_url="https://app.example.com/")

        assert result.passed is False
        assert "unavailable" in result.reason


class TestOutcomeHandling:
    """Tests for empty, invalid and combined outcomes."""

    def test_empty_outcome_fails(self) -> None:
        assert verify(HOME_PAGE, DIALOG_PAGE, {}).passed is False
        assert verify(HOME_PAGE, DIALOG_PAGE, None).passed is False
        assert verify(HOME_PAGE, DIALOG_PAGE, ExpectedOutcome()).passed is False

    def test_invalid_outcome_fails(self) -> None:
        result = verify(HOME_PAGE, DIALOG_PAGE, {"elementsToAppear": "dialog"})

        assert result.passed is False
        assert result.reason.startswith("Invalid expected outcome")

    def test_snake_case_keys_are_accepted(self) -> None:
        result = verify(HOME_PAGE, DIALOG_PAGE, {"elements_to_appear": [{"role": "dialog"}]})

        assert result.passed is True

    def test_all_clauses_must_pass(self) -> None:
        result = verify(
            HOME_PAGE,
            DIALOG_PAGE,
            {
                "elementsToAppear": [{"role": "dialog"}],
                "elementShouldExist": "checkoutButton",
            },
        )

        assert result.passed is False
        assert [c.passed for c in result.clauses] == [False, True]
        assert result.reason == "element 'checkoutButton' not found"

    def test_passing_reason_counts_clauses(self) -> None:
        result = verify(
            HOME_PAGE,
            DIALOG_PAGE,
            {"elementsToAppear": [{"role": "dialog"}], "elementShouldExist": "submitLogin"},
        )

        assert result.reason == "All 2 expected outcome clause(s) passed"

    def test_dom_hashes(self) -> None:
        changed = verify(HOME_PAGE, DIALOG_PAGE, {"elementShouldExist": "submitLogin"})
        cosmetic = verify(
            '<p style="color: red">Hi</p>',
            '<p style="color: blue">Hi</p>',
            {"elementShouldExist": "Hi"},
        )

        assert changed.dom_changed is True
        assert cosmetic.dom_changed is False

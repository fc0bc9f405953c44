"""
Unit tests for Playwright code generation and locator building.
"""

import re

import pytest

from fakes import FakeElement, FakePage

from mimic.selector.codegen import (
    assertion_code,
    click_code,
    form_code,
    navigation_code,
    selector_to_code,
)
from mimic.selector.locator import build_locator, marker_locator
from mimic.selector.types import (
    AltTextSelector,
    CssSelector,
    LabelSelector,
    PlaceholderSelector,
    RoleSelector,
    TestIdSelector,
    TextSelector,
)


class TestSelectorToCode:
    """Test descriptor rendering."""

    def test_role(self):
        assert selector_to_code(RoleSelector(role="button", name="Submit")) == \
            "page.get_by_role('button', name='Submit')"

    def test_role_exact(self):
        assert selector_to_code(RoleSelector(role="button", name="Submit", exact=True)) == \
            "page.get_by_role('button', name='Submit', exact=True)"

    def test_role_without_name(self):
        assert selector_to_code(RoleSelector(role="navigation")) == "page.get_by_role('navigation')"

    def test_text_methods(self):
        assert selector_to_code(LabelSelector(value="Email", exact=True)) == "page.get_by_label('Email', exact=True)"
        assert selector_to_code(PlaceholderSelector(value="Search")) == "page.get_by_placeholder('Search')"
        assert selector_to_code(AltTextSelector(value="Logo")) == "page.get_by_alt_text('Logo')"
        assert selector_to_code(TestIdSelector(value="cart")) == "page.get_by_test_id('cart')"

    def test_pattern(self):
        """Test patterns render as re.compile and never get exact."""
        descriptor = TextSelector(value=re.compile("welcome", re.IGNORECASE), exact=True)

        assert selector_to_code(descriptor) == "page.get_by_text(re.compile('welcome', re.IGNORECASE))"

    def test_nth_and_child(self):
        descriptor = CssSelector(
            selector=".inventory_item",
            nth=1,
            child=RoleSelector(role="button", name="Add to cart", exact=True),
        )

        assert selector_to_code(descriptor) == (
            "page.locator('.inventory_item').nth(1)"
            ".get_by_role('button', name='Add to cart', exact=True)"
        )


class TestActionCode:
    """Test action rendering."""

    def test_click_types(self):
        assert click_code("btn") == "await btn.click()"
        assert click_code("btn", "double") == "await btn.dblclick()"
        assert click_code("btn", "right") == "await btn.click(button='right')"
        assert click_code("btn", "hover") == "await btn.hover()"

    def test_form_types(self):
        assert form_code("field", "fill", "bob") == "await field.fill('bob')"
        assert form_code("field", "type", "bob") == "await field.press_sequentially('bob')"
        assert form_code("field", "keypress", "Enter") == "await page.keyboard.press('Enter')"
        assert form_code("field", "check") == "await field.check()"

    def test_navigation(self):
        assert navigation_code("openPage", "https://shop.test") == "await page.goto('https://shop.test')"
        assert navigation_code("goBack") == "await page.go_back()"

        with pytest.raises(ValueError):
            navigation_code("teleport")

    def test_assertions(self):
        assert assertion_code(None, "url", "/inventory") == "await expect(page).to_have_url('/inventory')"
        assert assertion_code("item", "count", "3") == "await expect(item).to_have_count(3)"
        assert assertion_code("title", "text", "Products") == "await expect(title).to_have_text('Products')"

    def test_assertion_needs_selector(self):
        with pytest.raises(ValueError):
            assertion_code(None, "visible")

    def test_bad_count(self):
        with pytest.raises(ValueError):
            assertion_code("item", "count", "many")


class TestBuildLocator:
    """Test locator building against a mock page."""

    def test_role_exact(self, mock_page):
        build_locator(mock_page, RoleSelector(role="button", name="Login", exact=True))

        mock_page.get_by_role.assert_called_with("button", name="Login", exact=True)

    def test_role_pattern_drops_exact(self, mock_page):
        pattern = re.compile("log ?in", re.IGNORECASE)

        build_locator(mock_page, RoleSelector(role="button", name=pattern, exact=True))

        mock_page.get_by_role.assert_called_with("button", name=pattern)

    def test_text_exact_defaults_false(self, mock_page):
        build_locator(mock_page, TextSelector(value="Products"))

        mock_page.get_by_text.assert_called_with("Products", exact=False)

    def test_nth(self, mock_page):
        build_locator(mock_page, CssSelector(selector="li", nth=2))

        mock_page.locator.return_value.nth.assert_called_with(2)

    @pytest.mark.asyncio
    async def test_child_scoped_to_parent(self):
        """Test a child descriptor only matches inside its parent."""
        inner = FakeElement("input", role="textbox", label="Email")
        outer = FakeElement("input", role="textbox", label="Email")
        page = FakePage([FakeElement("form", children=[inner]), outer])

        locator = build_locator(page, CssSelector(selector="form", child=LabelSelector(value="Email")))

        assert await locator.count() == 1
        assert locator.elements() == [inner]
        assert await page.get_by_label("Email").count() == 2

    def test_marker_locator(self, mock_page):
        marker_locator(mock_page, 12)

        mock_page.locator.assert_called_with('[data-mimic-id="12"]')

    def test_unknown(self, mock_page):
        with pytest.raises(TypeError):
            build_locator(mock_page, {"type": "css"})

"""
Unit tests for the Playwright driver and match scoring.

Covers target resolution (primary descriptor, marker fallback, scoring of
ambiguous matches) and the primitive actions.
"""

import pytest

from fakes import FakeElement, FakePage

from mimic.core.driver import MARKER_SCRIPT, PlaywrightDriver
from mimic.errors import ElementNotFoundError
from mimic.selector.scoring import find_best_matching_element, score_element_match
from mimic.selector.types import ElementInfo, RoleSelector, TextSelector
from mimic.snapshot.models import TargetReference


def cart_buttons():
    return [
        FakeElement("button", text="Add to cart", role="button", name="add-to-cart-backpack"),
        FakeElement("button", text="Add to cart", role="button", name="add-to-cart-bike-light"),
    ]


class TestDriverInit:
    """Test PlaywrightDriver initialization."""

    def test_defaults(self):
        driver = PlaywrightDriver()

        assert driver.timeout == PlaywrightDriver.DEFAULT_TIMEOUT
        assert driver.wait_timeout == PlaywrightDriver.DEFAULT_WAIT_TIMEOUT
        assert driver.action_count == 0

    def test_set_page(self, mock_page):
        driver = PlaywrightDriver()
        driver.set_page(mock_page)

        assert driver.page == mock_page


class TestMarking:
    """Test the marker pass."""

    @pytest.mark.asyncio
    async def test_mark_elements(self, login_page):
        """Test marked elements come back as ElementInfo with ids."""
        driver = PlaywrightDriver(login_page)

        elements = await driver.mark_elements()

        assert [e.marker_id for e in elements] == [1, 2, 3]
        assert elements[2].text == "Login"
        assert elements[0].label == "Username"

    @pytest.mark.asyncio
    async def test_existing_ids_kept(self, login_page):
        """Test a second pass keeps the ids already assigned."""
        driver = PlaywrightDriver(login_page)

        first = await driver.mark_elements()
        second = await driver.mark_elements()

        assert [e.marker_id for e in first] == [e.marker_id for e in second]

    @pytest.mark.asyncio
    async def test_script_passed_to_page(self, mock_page):
        await PlaywrightDriver(mock_page).mark_elements()

        mock_page.evaluate.assert_called_once_with(MARKER_SCRIPT)


class TestResolveTarget:
    """Test re-resolution of stored targets."""

    @pytest.mark.asyncio
    async def test_primary_descriptor(self, login_page):
        """Test the stored descriptor is used when it matches one element."""
        driver = PlaywrightDriver(login_page, wait_timeout=50)
        reference = TargetReference.build(RoleSelector(role="button", name="Login", exact=True), marker_id=3)

        locator = await driver.resolve_target(reference)

        assert locator.elements() == [login_page.elements[2]]

    @pytest.mark.asyncio
    async def test_marker_fallback(self):
        """Test the data-mimic-id fallback when the descriptor finds nothing."""
        page = FakePage([FakeElement("button", text="Sign in", role="button", marker_id=5)])
        driver = PlaywrightDriver(page, wait_timeout=50)
        reference = TargetReference.build(RoleSelector(role="button", name="Login", exact=True), marker_id=5)

        locator = await driver.resolve_target(reference)

        assert locator.elements() == [page.elements[0]]

    @pytest.mark.asyncio
    async def test_marker_fallback_marks_page(self):
        """Test the page is marked again when markers were lost."""
        page = FakePage([
            FakeElement("a", text="Home", role="link"),
            FakeElement("button", text="Sign in", role="button"),
        ])
        driver = PlaywrightDriver(page, wait_timeout=50)
        reference = TargetReference(marker_id=2)

        locator = await driver.resolve_target(reference)

        assert locator.elements() == [page.elements[1]]

    @pytest.mark.asyncio
    async def test_ambiguous_match_scored(self):
        """Test stored attributes pick among several matches."""
        page = FakePage(cart_buttons())
        driver = PlaywrightDriver(page, wait_timeout=50)
        target = ElementInfo(tag="button", text="Add to cart", role="button", name_attr="add-to-cart-bike-light")
        reference = TargetReference.build(
            RoleSelector(role="button", name="Add to cart", exact=True),
            marker_id=99,
            element_info=target,
        )

        locator = await driver.resolve_target(reference)

        assert await locator.get_attribute("name") == "add-to-cart-bike-light"

    @pytest.mark.asyncio
    async def test_not_found(self, login_page):
        """Test ElementNotFoundError carries the selector code and marker."""
        driver = PlaywrightDriver(login_page, wait_timeout=50)
        reference = TargetReference.build(TextSelector(value="Logout", exact=True), marker_id=42)

        with pytest.raises(ElementNotFoundError) as exc_info:
            await driver.resolve_target(reference)

        assert exc_info.value.selector_code == "page.get_by_text('Logout', exact=True)"
        assert exc_info.value.marker_id == 42

    @pytest.mark.asyncio
    async def test_ambiguous_without_attributes(self):
        """Test several matches and no stored attributes is a failure."""
        page = FakePage(cart_buttons())
        driver = PlaywrightDriver(page, wait_timeout=50)
        reference = TargetReference.build(RoleSelector(role="button", name="Add to cart"), marker_id=None)

        with pytest.raises(ElementNotFoundError):
            await driver.resolve_target(reference)


class TestActions:
    """Test primitive actions."""

    @pytest.mark.asyncio
    async def test_navigate_with_base_url(self, mock_page):
        """Test relative URLs are joined to the base URL."""
        driver = PlaywrightDriver(mock_page, base_url="https://shop.test/app/")

        await driver.navigate("/inventory.html")

        mock_page.goto.assert_called_once_with(
            "https://shop.test/app/inventory.html", wait_until="load", timeout=driver.timeout
        )
        assert driver.action_count == 1

    def test_absolute_url_untouched(self):
        driver = PlaywrightDriver(base_url="https://shop.test")

        assert driver.absolute_url("https://other.test/x") == "https://other.test/x"
        assert driver.absolute_url("cart.html") == "https://shop.test/cart.html"

    @pytest.mark.asyncio
    async def test_click_options(self, mock_page):
        """Test click passes modifiers only when given."""
        driver = PlaywrightDriver(mock_page)
        locator = mock_page.locator("#x")

        await driver.click(locator, modifiers=["Shift"], click_count=2)

        locator.click.assert_called_once_with(
            button="left", click_count=2, timeout=driver.timeout, modifiers=["Shift"]
        )

    @pytest.mark.asyncio
    async def test_press_without_locator(self, mock_page):
        """Test key presses go to the keyboard when no element is given."""
        driver = PlaywrightDriver(mock_page)

        await driver.press("Enter")

        mock_page.keyboard.press.assert_called_once_with("Enter")

    @pytest.mark.asyncio
    async def test_fill_counts_action(self, login_page):
        driver = PlaywrightDriver(login_page)
        field = login_page.get_by_label("Username")

        await driver.fill(field, "standard_user")

        assert login_page.elements[0].value == "standard_user"
        assert driver.action_count == 1

    @pytest.mark.asyncio
    async def test_reads_do_not_count(self, login_page):
        driver = PlaywrightDriver(login_page)

        assert await driver.is_visible(login_page.get_by_text("Login")) is True
        assert await driver.title() == "Swag Labs"
        assert driver.url == "https://shop.test/login"
        assert driver.action_count == 0


class TestScoring:
    """Test attribute scoring."""

    def test_weights(self):
        target = ElementInfo(tag="button", id="login", role="button", text="Login", name_attr="login")

        exact = ElementInfo(tag="button", id="login", role="button", text="login", name_attr="login")
        partial = ElementInfo(tag="button", role="button", text="Login now")

        assert score_element_match(exact, target) == 10 + 30 + 15 + 20 + 15
        assert score_element_match(partial, target) == 10 + 15 + 10

    def test_dataset(self):
        target = ElementInfo(tag="div", dataset={"testid": "cart", "variant": "big"})
        element = ElementInfo(tag="div", dataset={"testid": "cart", "variant": "big"})

        assert score_element_match(element, target) == 10 + 10 + 5 + 5

    def test_none_scores_zero(self):
        assert score_element_match(None, ElementInfo(tag="div")) == 0

    @pytest.mark.asyncio
    async def test_best_match(self):
        """Test the best scoring element is returned."""
        page = FakePage(cart_buttons())
        target = ElementInfo(tag="button", text="Add to cart", name_attr="add-to-cart-backpack")

        best = await find_best_matching_element(page.get_by_role("button"), target)

        assert best.elements() == [page.elements[0]]

    @pytest.mark.asyncio
    async def test_single_match_returned_as_is(self, login_page):
        locator = login_page.get_by_text("Login")

        assert await find_best_matching_element(locator, ElementInfo(tag="button")) is locator

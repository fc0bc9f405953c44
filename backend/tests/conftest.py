"""
Pytest configuration and shared fixtures for mimic tests.
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import Mock, AsyncMock

# Add backend app to path
sys.path.insert(0, str(Path(__file__).parent.parent / "app"))
# Fakes live next to the mimic tests
sys.path.insert(0, str(Path(__file__).parent / "mimic"))

from mimic.config import MimicConfig


# ==================== Mock Page Fixture ====================

@pytest.fixture
def mock_page():
    """Create a mock Playwright page object."""
    page = AsyncMock()

    # Basic properties
    page.url = "https://example.com/test"
    page.is_closed = Mock(return_value=False)

    # Navigation
    page.goto = AsyncMock(return_value=None)
    page.reload = AsyncMock(return_value=None)
    page.go_back = AsyncMock(return_value=None)
    page.go_forward = AsyncMock(return_value=None)
    page.close = AsyncMock(return_value=None)

    # Content
    page.title = AsyncMock(return_value="Test Page")

    # Evaluation
    page.evaluate = AsyncMock(return_value=[])

    # Locators
    mock_locator = AsyncMock()
    mock_locator.page = page
    mock_locator.click = AsyncMock()
    mock_locator.fill = AsyncMock()
    mock_locator.clear = AsyncMock()
    mock_locator.press_sequentially = AsyncMock()
    mock_locator.press = AsyncMock()
    mock_locator.check = AsyncMock()
    mock_locator.uncheck = AsyncMock()
    mock_locator.hover = AsyncMock()
    mock_locator.wait_for = AsyncMock()
    mock_locator.count = AsyncMock(return_value=1)
    mock_locator.get_attribute = AsyncMock(return_value=None)
    mock_locator.is_visible = AsyncMock(return_value=True)
    mock_locator.is_checked = AsyncMock(return_value=False)
    mock_locator.is_enabled = AsyncMock(return_value=True)
    mock_locator.text_content = AsyncMock(return_value="Test Content")
    mock_locator.input_value = AsyncMock(return_value="test value")
    mock_locator.select_option = AsyncMock()
    mock_locator.set_input_files = AsyncMock()
    mock_locator.evaluate = AsyncMock(return_value={"tag": "div"})
    mock_locator.nth = Mock(return_value=mock_locator)
    mock_locator.first = mock_locator

    page.locator = Mock(return_value=mock_locator)
    page.get_by_text = Mock(return_value=mock_locator)
    page.get_by_label = Mock(return_value=mock_locator)
    page.get_by_placeholder = Mock(return_value=mock_locator)
    page.get_by_alt_text = Mock(return_value=mock_locator)
    page.get_by_title = Mock(return_value=mock_locator)
    page.get_by_role = Mock(return_value=mock_locator)
    page.get_by_test_id = Mock(return_value=mock_locator)
    mock_locator.locator = page.locator
    mock_locator.get_by_role = page.get_by_role
    mock_locator.get_by_text = page.get_by_text
    mock_locator.get_by_label = page.get_by_label
    mock_locator.get_by_placeholder = page.get_by_placeholder
    mock_locator.get_by_test_id = page.get_by_test_id

    # Keyboard
    page.keyboard = AsyncMock()
    page.keyboard.press = AsyncMock()

    # Screenshot
    page.screenshot = AsyncMock(return_value=b"fake_screenshot_data")

    return page


# ==================== Fake DOM Fixtures ====================

@pytest.fixture
def login_elements():
    """Elements of a small login page."""
    from fakes import FakeElement

    return [
        FakeElement("input", role="textbox", label="Username", name="user-name", id="user-name"),
        FakeElement("input", role="textbox", label="Password", name="password", type="password"),
        FakeElement("button", text="Login", role="button", id="login-button"),
    ]


@pytest.fixture
def login_page(login_elements):
    """Fake page showing the login form."""
    from fakes import FakePage

    return FakePage(login_elements, url="https://shop.test/login", title="Swag Labs")


# ==================== Config & Test File Fixtures ====================

@pytest.fixture
def fast_config():
    """Config without retry delays or screenshots."""
    return MimicConfig(
        retry_base_delay_ms=0,
        retry_max_delay_ms=0,
        replay_wait_timeout_ms=50,
        capture_baseline_screenshot=False,
    )


@pytest.fixture
def test_file(tmp_path):
    """Path of a test file; snapshots are written next to it."""
    path = tmp_path / "login.mimic.txt"
    path.write_text("open the login page\nclick Login\n", encoding="utf-8")
    return path

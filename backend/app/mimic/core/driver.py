"""
Playwright Driver

Thin wrapper over a Playwright page: resolves descriptors and stored targets
to live locators, runs the marker pass, and performs primitive actions.
The driver never retries; failures propagate to the caller's recovery policy.
"""

import logging
from typing import Dict, List, Optional
from urllib.parse import urljoin

from ..errors import ElementNotFoundError
from ..selector.codegen import selector_to_code
from ..selector.locator import build_locator, marker_locator
from ..selector.scoring import find_best_matching_element
from ..selector.types import ElementInfo, SelectorDescriptor
from ..snapshot.models import TargetReference

# Configure logging
logger = logging.getLogger(__name__)


# Assigns data-mimic-id to visible elements: interactive first, then
# display-only text holders, then structural anchors. Existing ids are kept.
MARKER_SCRIPT = """() => {
    const INTERACTIVE = 'a[href], button, input, select, textarea, summary, details, ' +
        '[role="button"], [role="link"], [role="checkbox"], [role="menuitem"], [role="option"], ' +
        '[tabindex]:not([tabindex="-1"])';
    const STRUCTURE = '[data-testid], main, section, article, nav, aside, header, footer';
    const INLINE = new Set(['B','I','STRONG','EM','U','S','SPAN','SMALL','MARK','CODE','KBD','SAMP','SUP','SUB','BR','WBR']);

    const isVisible = (el) => {
        const style = getComputedStyle(el);
        if (style.display === 'none' || style.visibility === 'hidden' || style.opacity === '0') return false;
        const rect = el.getBoundingClientRect();
        return rect.width > 0 && rect.height > 0;
    };
    const isDisplayOnly = (el, depth) => {
        if (depth >= 50) return false;
        if (el.matches(INTERACTIVE) || el.querySelector(INTERACTIVE)) return false;
        for (const node of el.childNodes) {
            if (node.nodeType === Node.TEXT_NODE) continue;
            if (node.nodeType !== Node.ELEMENT_NODE) return false;
            if (!INLINE.has(node.tagName) || !isDisplayOnly(node, depth + 1)) return false;
        }
        return (el.textContent || '').trim().length > 0;
    };
    const labelFor = (el) => {
        if (el.id) {
            const label = document.querySelector('label[for="' + CSS.escape(el.id) + '"]');
            if (label) return (label.textContent || '').trim();
        }
        const parent = el.closest('label');
        return parent ? (parent.textContent || '').trim() : null;
    };

    if (!window.__mimicNextId) window.__mimicNextId = 1;
    const markers = [];
    const mark = (el, type) => {
        let id = el.getAttribute('data-mimic-id');
        if (!id) {
            id = String(window.__mimicNextId++);
            el.setAttribute('data-mimic-id', id);
        }
        el.setAttribute('data-mimic-type', type);
        markers.push({
            mimicId: Number(id),
            markerType: type,
            tag: el.tagName.toLowerCase(),
            text: (el.textContent || '').trim().replace(/\\s+/g, ' ').substring(0, 100),
            id: el.id || null,
            role: el.getAttribute('role'),
            label: labelFor(el),
            ariaLabel: el.getAttribute('aria-label'),
            placeholder: el.getAttribute('placeholder'),
            typeAttr: el.getAttribute('type'),
            nameAttr: el.getAttribute('name'),
            href: el.getAttribute('href'),
        });
    };

    const all = Array.from(document.querySelectorAll('*')).filter(isVisible);
    for (const el of all) if (el.matches(INTERACTIVE)) mark(el, 'interactive');
    for (const el of all) if (!el.hasAttribute('data-mimic-type') && isDisplayOnly(el, 0)) mark(el, 'display');
    for (const el of all) if (!el.hasAttribute('data-mimic-type') && el.matches(STRUCTURE)) mark(el, 'structure');
    return markers;
}"""


class PlaywrightDriver:
    """
    Browser collaborator for the execution engine.

    Features:
    - Descriptor and marker-id resolution with a bounded wait
    - Navigation, mouse, keyboard and form primitives
    - Assertion reads and page metadata
    - Counts every primitive action performed
    """

    # Default timeouts in milliseconds
    DEFAULT_TIMEOUT = 30000
    DEFAULT_WAIT_TIMEOUT = 5000

    def __init__(
        self,
        page=None,
        timeout: int = DEFAULT_TIMEOUT,
        wait_timeout: int = DEFAULT_WAIT_TIMEOUT,
        base_url: Optional[str] = None
    ):
        """
        Initialize the driver.

        Args:
            page: Playwright page object
            timeout: Per-action timeout in milliseconds
            wait_timeout: Bounded wait when resolving stored targets
            base_url: Prefix for relative navigation URLs
        """
        self.page = page
        self.timeout = timeout
        self.wait_timeout = wait_timeout
        self.base_url = base_url
        self.action_count = 0

    def set_page(self, page):
        """Set the Playwright page object"""
        self.page = page

    # ==================== Resolution ====================

    def locate(self, descriptor: SelectorDescriptor):
        return build_locator(self.page, descriptor)

    async def count(self, descriptor: SelectorDescriptor) -> int:
        return await self.locate(descriptor).count()

    def marker_locator(self, marker_id: int):
        return marker_locator(self.page, marker_id)

    async def mark_elements(self) -> List[ElementInfo]:
        """Run the marker pass and return the marked elements"""
        markers = await self.page.evaluate(MARKER_SCRIPT) or []
        logger.debug(f"[DRIVER] Marked {len(markers)} elements")
        return [ElementInfo.from_dict(marker) for marker in markers]

    async def resolve_target(self, reference: TargetReference, timeout_ms: Optional[int] = None):
        """
        Resolve a stored target to exactly one live element.

        The primary descriptor is tried first with a bounded wait; the
        data-mimic-id fallback is used when it does not resolve uniquely.
        If the descriptor matched several elements and the marker is gone,
        the match scoring closest to the stored element attributes is used.

        Raises:
            ElementNotFoundError: if no single element can be chosen
        """
        timeout = timeout_ms if timeout_ms is not None else self.wait_timeout
        descriptor = reference.descriptor
        selector_code = selector_to_code(descriptor) if descriptor is not None else None
        primary, matches = None, 0

        if descriptor is not None:
            primary = self.locate(descriptor)
            try:
                await primary.first.wait_for(state="attached", timeout=timeout)
                matches = await primary.count()
            except Exception as e:
                logger.warning(f"[DRIVER] Stored selector {selector_code} did not resolve: {e}")
            if matches == 1:
                return primary

        if reference.marker_id is not None:
            locator = self.marker_locator(reference.marker_id)
            if await locator.count() == 0:
                # Markers are lost on navigation; mark the current page again
                await self.mark_elements()
            if await locator.count() == 1:
                logger.info(f"[DRIVER] Using marker fallback {reference.marker_id}")
                return locator

        target = reference.element_info
        if matches > 1 and target is not None:
            logger.info(f"[DRIVER] {selector_code} matched {matches} elements, scoring against stored attributes")
            return await find_best_matching_element(primary, target)

        raise ElementNotFoundError(
            f"Element not found: {selector_code or 'no selector'} (marker {reference.marker_id})",
            selector_code=selector_code,
            marker_id=reference.marker_id
        )

    # ==================== Navigation ====================

    def absolute_url(self, url: str) -> str:
        if self.base_url and not url.startswith(("http://", "https://", "about:", "data:", "file:")):
            return urljoin(self.base_url.rstrip("/") + "/", url.lstrip("/"))
        return url

    async def navigate(self, url: str, wait_until: str = "load"):
        self.action_count += 1
        target = self.absolute_url(url)
        logger.info(f"[DRIVER] goto {target}")
        await self.page.goto(target, wait_until=wait_until, timeout=self.timeout)

    async def go_back(self):
        self.action_count += 1
        await self.page.go_back(timeout=self.timeout)

    async def go_forward(self):
        self.action_count += 1
        await self.page.go_forward(timeout=self.timeout)

    async def reload(self):
        self.action_count += 1
        await self.page.reload(timeout=self.timeout)

    async def close(self):
        self.action_count += 1
        await self.page.close()

    # ==================== Mouse ====================

    async def click(
        self,
        locator,
        button: str = "left",
        modifiers: Optional[List[str]] = None,
        position: Optional[Dict[str, float]] = None,
        click_count: int = 1
    ):
        self.action_count += 1
        kwargs = {"button": button, "click_count": click_count, "timeout": self.timeout}
        if modifiers:
            kwargs["modifiers"] = modifiers
        if position:
            kwargs["position"] = position
        await locator.click(**kwargs)

    async def hover(self, locator, modifiers: Optional[List[str]] = None):
        self.action_count += 1
        if modifiers:
            await locator.hover(modifiers=modifiers, timeout=self.timeout)
        else:
            await locator.hover(timeout=self.timeout)

    # ==================== Keyboard & Forms ====================

    async def fill(self, locator, value: str):
        self.action_count += 1
        await locator.fill(value, timeout=self.timeout)

    async def type(self, locator, text: str, delay: int = 0):
        self.action_count += 1
        await locator.press_sequentially(text, delay=delay, timeout=self.timeout)

    async def press(self, key: str, locator=None):
        """Press a key on an element, or on the focused element when no locator is given"""
        self.action_count += 1
        if locator is not None:
            await locator.press(key, timeout=self.timeout)
        else:
            await self.page.keyboard.press(key)

    async def select(self, locator, value: str):
        self.action_count += 1
        await locator.select_option(value, timeout=self.timeout)

    async def check(self, locator):
        self.action_count += 1
        await locator.check(timeout=self.timeout)

    async def uncheck(self, locator):
        self.action_count += 1
        await locator.uncheck(timeout=self.timeout)

    async def set_input_files(self, locator, files):
        self.action_count += 1
        await locator.set_input_files(files, timeout=self.timeout)

    async def clear(self, locator):
        self.action_count += 1
        await locator.clear(timeout=self.timeout)

    # ==================== Reads ====================

    async def is_visible(self, locator) -> bool:
        return await locator.is_visible()

    async def text_content(self, locator) -> str:
        return (await locator.text_content(timeout=self.timeout)) or ""

    async def input_value(self, locator) -> str:
        return await locator.input_value(timeout=self.timeout)

    async def is_checked(self, locator) -> bool:
        return await locator.is_checked(timeout=self.timeout)

    async def is_enabled(self, locator) -> bool:
        return await locator.is_enabled(timeout=self.timeout)

    @property
    def url(self) -> str:
        return self.page.url

    async def title(self) -> str:
        return await self.page.title()

    async def screenshot(self, full_page: bool = True) -> bytes:
        return await self.page.screenshot(full_page=full_page)

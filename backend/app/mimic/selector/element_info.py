"""
Element Info Extraction

Reads the attributes of a live element in the browser so the strategy chain
can build a descriptor for it. Everything runs in a single evaluate() call.
"""

import logging

from .types import ElementInfo

# Configure logging
logger = logging.getLogger(__name__)


ELEMENT_INFO_SCRIPT = """(element) => {
    const style = window.getComputedStyle(element);
    const isVisible = style.display !== 'none' && style.visibility !== 'hidden' && style.opacity !== '0';
    const text = isVisible ? (element.textContent || '').trim().replace(/\\s+/g, ' ') : '';

    let label = null;
    const ariaLabel = element.getAttribute('aria-label');
    if (ariaLabel) {
        label = ariaLabel.trim();
    } else {
        const labelledBy = element.getAttribute('aria-labelledby');
        if (labelledBy) {
            const labelEl = document.getElementById(labelledBy);
            if (labelEl) label = (labelEl.textContent || '').trim();
        }
        if (!label && element.id) {
            const labelFor = document.querySelector('label[for="' + CSS.escape(element.id) + '"]');
            if (labelFor) label = (labelFor.textContent || '').trim();
        }
        if (!label) {
            const parentLabel = element.closest('label');
            if (parentLabel) label = (parentLabel.textContent || '').trim();
        }
    }

    const tag = element.tagName.toLowerCase();
    let role = element.getAttribute('role');
    if (!role) {
        if (tag === 'button') role = 'button';
        else if (tag === 'a') role = 'link';
        else if (tag === 'input') {
            const t = element.type;
            if (t === 'button' || t === 'submit' || t === 'reset') role = 'button';
            else if (t === 'checkbox') role = 'checkbox';
            else if (t === 'radio') role = 'radio';
            else role = 'textbox';
        }
        else if (tag === 'select') role = 'combobox';
        else if (tag === 'textarea') role = 'textbox';
        else if (tag === 'img') role = 'img';
    }

    const dataset = {};
    for (const attr of Array.from(element.attributes)) {
        if (attr.name.startsWith('data-')) {
            const key = attr.name.slice(5).replace(/-([a-z])/g, (m, c) => c.toUpperCase());
            dataset[key] = attr.value;
        }
    }

    let nthOfType = 1;
    let sibling = element.previousElementSibling;
    while (sibling) {
        if (sibling.tagName === element.tagName) nthOfType++;
        sibling = sibling.previousElementSibling;
    }

    return {
        tag: tag,
        text: text,
        id: element.id || null,
        role: role,
        label: label,
        ariaLabel: ariaLabel || null,
        placeholder: element.getAttribute('placeholder') || null,
        alt: element.getAttribute('alt') || null,
        title: element.getAttribute('title') || null,
        typeAttr: element.type || null,
        nameAttr: element.getAttribute('name') || null,
        href: element.getAttribute('href') || null,
        dataset: dataset,
        nthOfType: nthOfType,
        mimicId: element.getAttribute('data-mimic-id'),
    };
}"""


async def extract_element_info(locator, timeout: int = 30000) -> ElementInfo:
    """
    Extract element attributes from a Playwright locator.

    Args:
        locator: Locator pointing at exactly one element
        timeout: Milliseconds to wait for the element to attach

    Returns:
        ElementInfo (marker_id is filled when the element carries data-mimic-id)
    """
    if locator.page.is_closed():
        raise RuntimeError("Cannot extract element info: the page has been closed")

    await locator.wait_for(state="attached", timeout=timeout)
    data = await locator.evaluate(ELEMENT_INFO_SCRIPT)
    info = ElementInfo.from_dict(data or {})
    logger.debug(f"[SELECTOR] Extracted <{info.tag}> text='{info.text[:40]}' marker={info.marker_id}")
    return info

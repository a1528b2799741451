"""
Page inventory scanning.

Collects a best-effort snapshot of visible buttons, links and form controls.
The scan only reads from the page; any element that cannot be inspected is
skipped.
"""

from typing import List, Optional

from playwright.async_api import Locator, Page

from qualitypilot.config.settings import get_settings
from qualitypilot.core.types import InventoryElement, InventoryInput, PageInventory
from qualitypilot.monitoring.logger import get_logger

BUTTON_SELECTOR = (
    'button, [role="button"], input[type="button"], input[type="submit"], '
    '[class*="button"], [class*="btn"], [onclick]'
)
LINK_SELECTOR = "a"
INPUT_SELECTOR = "input, textarea, select"


async def _safe_attr(element: Locator, name: str) -> Optional[str]:
    try:
        return await element.get_attribute(name)
    except Exception:
        return None


async def _safe_inner_text(element: Locator) -> Optional[str]:
    try:
        return await element.inner_text()
    except Exception:
        return None


async def _is_visible(element: Locator) -> bool:
    try:
        return await element.is_visible()
    except Exception:
        return False


def _clean(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = " ".join(text.split())
    return text or None


def _dedupe_by_text(items: List[InventoryElement]) -> List[InventoryElement]:
    seen = set()
    unique = []
    for item in items:
        if item.text in seen:
            continue
        seen.add(item.text)
        unique.append(item)
    return unique


class PageInventoryScanner:
    """Extracts visible interactive elements from a live page."""

    def __init__(self, max_per_category: Optional[int] = None) -> None:
        settings = get_settings()
        self.max_per_category = max_per_category or settings.inventory_max_per_category
        self.logger = get_logger("browser.inventory")

    async def scan(self, page: Page) -> PageInventory:
        """Return buttons, links and inputs currently visible on the page."""
        inventory = PageInventory(
            buttons=_dedupe_by_text(await self._scan_buttons(page)),
            links=_dedupe_by_text(await self._scan_links(page)),
            inputs=await self._scan_inputs(page),
        )
        self.logger.debug(
            "Page inventory scanned",
            extra={
                "buttons": len(inventory.buttons),
                "links": len(inventory.links),
                "inputs": len(inventory.inputs),
            },
        )
        return inventory

    async def _query(self, page: Page, selector: str) -> List[Locator]:
        try:
            elements = await page.locator(selector).all()
        except Exception:
            self.logger.warning(
                "Inventory query failed", extra={"selector": selector}, exc_info=True
            )
            return []
        return elements[: self.max_per_category]

    async def _text_of(self, element: Locator) -> Optional[str]:
        text = _clean(await _safe_inner_text(element))
        if not text:
            text = _clean(await _safe_attr(element, "aria-label"))
        if not text:
            # input[type=submit] carries its caption in value
            text = _clean(await _safe_attr(element, "value"))
        return text

    async def _scan_buttons(self, page: Page) -> List[InventoryElement]:
        buttons = []
        for element in await self._query(page, BUTTON_SELECTOR):
            try:
                if not await _is_visible(element):
                    continue
                text = await self._text_of(element)
                if not text:
                    continue
                try:
                    tag = await element.evaluate("el => el.tagName.toLowerCase()")
                except Exception:
                    tag = "unknown"
                buttons.append(InventoryElement(text=text, tag=tag))
            except Exception:
                self.logger.debug("Skipping uninspectable button", exc_info=True)
        return buttons

    async def _scan_links(self, page: Page) -> List[InventoryElement]:
        links = []
        for element in await self._query(page, LINK_SELECTOR):
            try:
                if not await _is_visible(element):
                    continue
                text = await self._text_of(element)
                if not text:
                    continue
                href = await _safe_attr(element, "href")
                links.append(InventoryElement(text=text, tag="a", href=href or None))
            except Exception:
                self.logger.debug("Skipping uninspectable link", exc_info=True)
        return links

    async def _scan_inputs(self, page: Page) -> List[InventoryInput]:
        inputs = []
        for element in await self._query(page, INPUT_SELECTOR):
            try:
                if not await _is_visible(element):
                    continue
                input_id = await _safe_attr(element, "id")
                label = None
                if input_id:
                    try:
                        labels = page.locator(f'label[for="{input_id}"]')
                        if await labels.count():
                            label = await labels.first.inner_text()
                    except Exception:
                        label = None
                if not _clean(label):
                    label = await _safe_attr(element, "aria-label")
                if not _clean(label):
                    label = await _safe_attr(element, "title")
                try:
                    tag = await element.evaluate("el => el.tagName.toLowerCase()")
                except Exception:
                    tag = "input"
                inputs.append(
                    InventoryInput(
                        tag=tag,
                        type=await _safe_attr(element, "type"),
                        placeholder=_clean(await _safe_attr(element, "placeholder")),
                        label=_clean(label),
                        id=input_id or None,
                        name=await _safe_attr(element, "name"),
                    )
                )
            except Exception:
                self.logger.debug("Skipping uninspectable input", exc_info=True)
        return inputs

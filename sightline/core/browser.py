"""
Playwright Automation Handle

Executes the primitive UI actions requested by the model against a real
browser page:
- Context management for browser lifecycle
- Coordinate-based mouse and keyboard actions
- Screenshot capture after every state-changing action
- Step callbacks from the running test
"""

import asyncio
import base64
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence
from urllib.parse import urljoin

import structlog
from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
)

from sightline.config import settings
from sightline.schemas.cache import BrowserAction
from sightline.tools.base import ToolResult
from sightline.utils.hashing import fingerprint

logger = structlog.get_logger()

StepCallback = Callable[[], Awaitable[Any]]

SCROLL_STEP_PX = 100
MAX_SLEEP_MS = 60_000

# xdotool-style key names used by computer-use models -> Playwright names
KEY_ALIASES: dict[str, str] = {
    "return": "Enter",
    "enter": "Enter",
    "ctrl": "Control",
    "control": "Control",
    "alt": "Alt",
    "shift": "Shift",
    "super": "Meta",
    "cmd": "Meta",
    "meta": "Meta",
    "escape": "Escape",
    "esc": "Escape",
    "tab": "Tab",
    "backspace": "Backspace",
    "delete": "Delete",
    "space": "Space",
    "page_down": "PageDown",
    "page_up": "PageUp",
    "home": "Home",
    "end": "End",
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
}

# Actions after which the model gets a fresh screenshot
_SCREENSHOT_AFTER = frozenset(
    {
        BrowserAction.KEY,
        BrowserAction.TYPE,
        BrowserAction.LEFT_CLICK,
        BrowserAction.LEFT_CLICK_DRAG,
        BrowserAction.RIGHT_CLICK,
        BrowserAction.MIDDLE_CLICK,
        BrowserAction.DOUBLE_CLICK,
        BrowserAction.SCROLL,
        BrowserAction.NAVIGATE,
    }
)

_DESCRIBE_ELEMENT_JS = """
([x, y]) => {
    const el = document.elementFromPoint(x, y);
    if (!el) return null;
    const text = (el.innerText || el.value || "").trim().slice(0, 80);
    const role = el.getAttribute("role") || "";
    const label = el.getAttribute("aria-label") || "";
    return [el.tagName.toLowerCase(), role, label, text].filter(Boolean).join("|");
}
"""


def map_key_combo(combo: str) -> str:
    """Translate "ctrl+shift+Return" into Playwright's "Control+Shift+Enter"."""
    parts = []
    for key in combo.split("+"):
        mapped = KEY_ALIASES.get(key.strip().lower())
        parts.append(mapped if mapped else key.strip())
    return "+".join(parts)


class BrowserType(str, Enum):
    """Supported browser types."""

    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


@dataclass
class BrowserOptions:
    """Browser configuration options."""

    browser_type: BrowserType = BrowserType.CHROMIUM
    headless: bool = True
    slow_mo: int = 0
    timeout: int = 30000
    viewport_width: int = 1920
    viewport_height: int = 1080
    base_url: str | None = None
    locale: str = "en-US"


class BrowserTool:
    """
    Playwright-backed automation handle.

    Usage:
        async with BrowserTool() as browser:
            result = await browser.execute(BrowserAction.SCREENSHOT, {})
    """

    def __init__(self, options: BrowserOptions | None = None):
        self.options = options or BrowserOptions(
            headless=settings.playwright_headless,
            timeout=settings.playwright_timeout,
            slow_mo=settings.playwright_slow_mo,
            viewport_width=settings.display_width,
            viewport_height=settings.display_height,
            base_url=settings.base_url,
        )
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._cursor: tuple[int, int] = (0, 0)
        self._callbacks: list[StepCallback] = []

        self._handlers: dict[BrowserAction, Callable[[dict[str, Any]], Awaitable[ToolResult]]] = {
            BrowserAction.KEY: self._key,
            BrowserAction.TYPE: self._type,
            BrowserAction.MOUSE_MOVE: self._mouse_move,
            BrowserAction.LEFT_CLICK: self._left_click,
            BrowserAction.LEFT_CLICK_DRAG: self._left_click_drag,
            BrowserAction.RIGHT_CLICK: self._right_click,
            BrowserAction.MIDDLE_CLICK: self._middle_click,
            BrowserAction.DOUBLE_CLICK: self._double_click,
            BrowserAction.SCREENSHOT: self._screenshot,
            BrowserAction.CURSOR_POSITION: self._cursor_position,
            BrowserAction.SCROLL: self._scroll,
            BrowserAction.NAVIGATE: self._navigate,
            BrowserAction.SLEEP: self._sleep,
            BrowserAction.RUN_CALLBACK: self._run_callback,
        }

    @property
    def page(self) -> Page:
        """Get current page, raise if not initialized."""
        if self._page is None:
            raise RuntimeError("Browser not initialized. Use 'async with' context.")
        return self._page

    async def __aenter__(self) -> "BrowserTool":
        await self._initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self._cleanup()

    async def _initialize(self) -> None:
        """Initialize Playwright browser and context."""
        log = logger.bind(browser=self.options.browser_type.value)
        log.info("initializing_browser")

        self._playwright = await async_playwright().start()

        browser_launcher = getattr(self._playwright, self.options.browser_type.value)
        self._browser = await browser_launcher.launch(
            headless=self.options.headless,
            slow_mo=self.options.slow_mo,
        )

        self._context = await self._browser.new_context(
            viewport={
                "width": self.options.viewport_width,
                "height": self.options.viewport_height,
            },
            locale=self.options.locale,
        )
        self._context.set_default_timeout(self.options.timeout)

        self._page = await self._context.new_page()

        log.info("browser_initialized")

    async def _cleanup(self) -> None:
        """Clean up browser resources."""
        logger.info("cleaning_up_browser")

        if self._context:
            await self._context.close()
        if self._browser:
            await self._browser.close()
        if self._playwright:
            await self._playwright.stop()

        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

    def set_callbacks(self, callbacks: Sequence[StepCallback]) -> None:
        """Queue the step callbacks the model may trigger via run_callback."""
        self._callbacks = list(callbacks)

    async def execute(self, action: BrowserAction, tool_input: dict[str, Any]) -> ToolResult:
        """
        Execute one primitive action.

        Failures are reported back to the model in ``ToolResult.error`` so it
        can correct course; they do not raise.
        """
        handler = self._handlers.get(action)
        if handler is None:
            return ToolResult(error=f"Unsupported action: {action.value}")

        start = time.time()
        log = logger.bind(action=action.value)

        try:
            result = await handler(tool_input)
            if action in _SCREENSHOT_AFTER and result.base64_image is None:
                result.base64_image = await self._take_screenshot()
        except Exception as e:
            log.error("browser_action_failed", error=str(e))
            return ToolResult(error=str(e))

        log.debug("browser_action_complete", duration_ms=round((time.time() - start) * 1000, 2))
        return result

    async def _take_screenshot(self) -> str:
        screenshot_bytes = await self.page.screenshot()
        return base64.b64encode(screenshot_bytes).decode("utf-8")

    def _coordinate(self, tool_input: dict[str, Any], field: str = "coordinate") -> tuple[int, int]:
        value = tool_input.get(field)
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValueError(f"{field} must be a [x, y] pair")
        x, y = int(value[0]), int(value[1])
        if not (0 <= x <= self.options.viewport_width and 0 <= y <= self.options.viewport_height):
            raise ValueError(f"{field} {x},{y} is outside the display")
        return x, y

    async def _move_to(self, x: int, y: int) -> None:
        await self.page.mouse.move(x, y)
        self._cursor = (x, y)

    async def _describe(self, x: int, y: int) -> str | None:
        return await self.page.evaluate(_DESCRIBE_ELEMENT_JS, [x, y])

    async def _click(self, tool_input: dict[str, Any], button: str, click_count: int = 1) -> ToolResult:
        if tool_input.get("coordinate") is not None:
            await self._move_to(*self._coordinate(tool_input))
        x, y = self._cursor

        metadata: dict[str, Any] = {}
        component = await self._describe(x, y)
        if component:
            metadata["component"] = component

        await self.page.mouse.click(x, y, button=button, click_count=click_count)
        return ToolResult(output=f"{button} click at ({x}, {y})", metadata=metadata)

    async def _left_click(self, tool_input: dict[str, Any]) -> ToolResult:
        return await self._click(tool_input, "left")

    async def _right_click(self, tool_input: dict[str, Any]) -> ToolResult:
        return await self._click(tool_input, "right")

    async def _middle_click(self, tool_input: dict[str, Any]) -> ToolResult:
        return await self._click(tool_input, "middle")

    async def _double_click(self, tool_input: dict[str, Any]) -> ToolResult:
        return await self._click(tool_input, "left", click_count=2)

    async def _mouse_move(self, tool_input: dict[str, Any]) -> ToolResult:
        x, y = self._coordinate(tool_input)
        await self._move_to(x, y)
        return ToolResult(output=f"moved mouse to ({x}, {y})")

    async def _left_click_drag(self, tool_input: dict[str, Any]) -> ToolResult:
        # Older protocol versions drag from the current cursor position.
        if tool_input.get("start_coordinate") is not None:
            start = self._coordinate(tool_input, "start_coordinate")
        else:
            start = self._cursor
        end = self._coordinate(tool_input)

        await self._move_to(*start)
        await self.page.mouse.down()
        await self._move_to(*end)
        await self.page.mouse.up()
        return ToolResult(output=f"dragged from {start} to {end}")

    async def _key(self, tool_input: dict[str, Any]) -> ToolResult:
        text = tool_input.get("text")
        if not text:
            raise ValueError("text is required for key")
        combo = map_key_combo(text)
        await self.page.keyboard.press(combo)
        return ToolResult(output=f"pressed {combo}")

    async def _type(self, tool_input: dict[str, Any]) -> ToolResult:
        text = tool_input.get("text")
        if text is None:
            raise ValueError("text is required for type")
        await self.page.keyboard.type(text)
        return ToolResult(output=f"typed {len(text)} characters")

    async def _screenshot(self, tool_input: dict[str, Any]) -> ToolResult:
        return ToolResult(base64_image=await self._take_screenshot())

    async def _cursor_position(self, tool_input: dict[str, Any]) -> ToolResult:
        x, y = self._cursor
        return ToolResult(output=f"X={x},Y={y}")

    async def _scroll(self, tool_input: dict[str, Any]) -> ToolResult:
        if tool_input.get("coordinate") is not None:
            await self._move_to(*self._coordinate(tool_input))

        direction = tool_input.get("scroll_direction", "down")
        amount = int(tool_input.get("scroll_amount", 3)) * SCROLL_STEP_PX
        delta = {
            "up": (0, -amount),
            "down": (0, amount),
            "left": (-amount, 0),
            "right": (amount, 0),
        }.get(direction)
        if delta is None:
            raise ValueError(f"Invalid scroll direction: {direction}")

        await self.page.mouse.wheel(*delta)
        return ToolResult(output=f"scrolled {direction} by {amount}px")

    async def _navigate(self, tool_input: dict[str, Any]) -> ToolResult:
        url = tool_input.get("url")
        if not url:
            raise ValueError("url is required for navigate")
        if self.options.base_url:
            url = urljoin(self.options.base_url, url)

        await self.page.goto(url, wait_until="domcontentloaded")
        return ToolResult(
            output=f"navigated to {url}",
            metadata={
                "url": url,
                "title": await self.page.title(),
                "dom_snapshot": "sha256:" + fingerprint(await self.page.content()),
            },
        )

    async def _sleep(self, tool_input: dict[str, Any]) -> ToolResult:
        duration = min(max(int(tool_input.get("duration", 1000)), 0), MAX_SLEEP_MS)
        await asyncio.sleep(duration / 1000)
        return ToolResult(output=f"slept {duration}ms")

    async def _run_callback(self, tool_input: dict[str, Any]) -> ToolResult:
        if not self._callbacks:
            return ToolResult(error="No callback available for this step")
        callback = self._callbacks.pop(0)
        await callback()
        return ToolResult(output="callback executed")

"""Protocol definition for browser adapters."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class BrowserAdapter(Protocol):
    """Thin abstraction over a browser automation library.

    Every method is async so the pipeline can ``await`` each interaction.
    Element handles follow Playwright's ``ElementHandle`` API
    (``query_selector``, ``query_selector_all``, ``text_content``,
    ``get_attribute``).
    """

    async def launch(self, headless: bool = True, timeout_ms: int = 30_000) -> None:
        """Start the browser process."""
        ...

    async def close(self) -> None:
        """Shut down the browser and free resources."""
        ...

    async def navigate(self, url: str, wait_until: str = "networkidle") -> None:
        """Navigate to *url* and wait for the specified load event."""
        ...

    async def query_all(self, selector: str) -> list[Any]:
        """Return every element matching *selector*."""
        ...

    async def wait_for_selector(
        self, selector: str, *, state: str = "visible", timeout: float = 10_000
    ) -> Any | None:
        """Wait until *selector* reaches the desired *state*, or return ``None``."""
        ...

    async def page_url(self) -> str:
        """Return the current page URL."""
        ...

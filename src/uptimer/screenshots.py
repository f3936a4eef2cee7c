"""
Failure screenshots for monitor incidents.

Capture is best effort: every failure is logged and swallowed. Logs tell
apart a host that cannot run a headless browser at all (RenderUnavailable)
from a target that could not be loaded (RenderFailed) and from a storage
problem (UploadFailed).
"""
import logging

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright
from sqlalchemy import select, update

from uptimer.config import get_settings
from uptimer.database import get_session_factory
from uptimer.errors import NotFound
from uptimer.models.incident import Incident
from uptimer.ownership import ResourceKind, resolve_resource

logger = logging.getLogger("uptimer.screenshots")
settings = get_settings()

SCREENSHOT_CONTENT_TYPE = "image/png"

# Launch failures that mean the browser cannot run on this host at all
_UNAVAILABLE_MARKERS = (
    "Executable doesn't exist",
    "playwright install",
    "shared libraries",
    "libnss3.so",
    "Failed to launch",
    "Host system is missing dependencies",
)


class ScreenshotError(Exception):
    pass


class RenderUnavailable(ScreenshotError):
    """No usable headless browser on this platform."""


class RenderFailed(ScreenshotError):
    """The target page could not be rendered (unreachable, timed out, ...)."""


class UploadFailed(ScreenshotError):
    pass


def _is_unavailable(message: str) -> bool:
    return any(marker in message for marker in _UNAVAILABLE_MARKERS)


class PlaywrightRenderer:
    """Renders pages with headless Chromium."""

    async def capture(
        self,
        url: str,
        *,
        timeout: int,
        viewport: tuple[int, int],
        full_page: bool = True,
    ) -> bytes:
        if not url.startswith(("http://", "https://")):
            raise RenderFailed("URL must start with http:// or https://")

        width, height = viewport
        try:
            async with async_playwright() as p:
                try:
                    browser = await p.chromium.launch(
                        headless=True,
                        timeout=timeout * 1000,
                        args=["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"],
                    )
                except PlaywrightError as e:
                    raise RenderUnavailable(str(e)[:500]) from e
                try:
                    page = await browser.new_page(viewport={"width": width, "height": height})
                    await page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
                    return await page.screenshot(
                        type="png", full_page=full_page, timeout=timeout * 1000
                    )
                finally:
                    await browser.close()
        except ScreenshotError:
            raise
        except PlaywrightTimeoutError as e:
            raise RenderFailed(f"Timed out after {timeout}s loading {url}") from e
        except PlaywrightError as e:
            if _is_unavailable(str(e)):
                raise RenderUnavailable(str(e)[:500]) from e
            raise RenderFailed(str(e)[:500]) from e
        except OSError as e:
            # The playwright driver itself could not be started
            raise RenderUnavailable(str(e)[:500]) from e


class HttpObjectStore:
    """Uploads files through the asset upload endpoint and returns public URLs."""

    def __init__(
        self,
        upload_url: str | None = None,
        public_url: str | None = None,
        timeout: int | None = None,
    ):
        self.upload_url = upload_url or settings.asset_upload_url
        self.public_url = public_url if public_url is not None else settings.asset_public_url
        self.timeout = timeout or settings.asset_upload_timeout

    def public_reference(self, path: str) -> str:
        base = self.public_url
        if not base:
            url = httpx.URL(self.upload_url)
            base = f"{url.scheme}://{url.host}" + (f":{url.port}" if url.port else "")
        return f"{base.rstrip('/')}/{path}"

    async def put(self, path: str, data: bytes, content_type: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                response = await client.post(
                    self.upload_url,
                    content=data,
                    headers={"Content-Type": content_type, "X-File-Path": path},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UploadFailed(
                f"Upload of {path} returned {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise UploadFailed(f"Upload of {path} failed: {str(e)[:200]}") from e
        return self.public_reference(path)


def screenshot_path(incident_id: str) -> str:
    return f"incidents/{incident_id}/screenshot.png"


async def capture_incident_screenshot(
    incident_id: str,
    renderer: PlaywrightRenderer | None = None,
    store: HttpObjectStore | None = None,
) -> str | None:
    """
    Capture and store a screenshot of the monitor behind an incident.

    Idempotent: an incident that already has a screenshot is returned as is
    without rendering. Returns the screenshot reference, or None when nothing
    could be captured.
    """
    async with get_session_factory()() as db:
        result = await db.execute(select(Incident).where(Incident.id == incident_id))
        incident = result.scalar_one_or_none()
        if incident is None:
            logger.warning(f"Screenshot requested for unknown incident {incident_id}")
            return None
        if incident.screenshot_ref:
            logger.info(f"Incident {incident_id} already has a screenshot")
            return incident.screenshot_ref
        if incident.kind != ResourceKind.monitor.value:
            logger.info(f"Skipping screenshot for {incident.kind} incident {incident_id}")
            return None
        if not settings.screenshot_enabled:
            logger.info("Screenshot capture is disabled")
            return None
        try:
            monitor = await resolve_resource(db, incident.kind, incident.resource_id)
        except NotFound:
            logger.warning(f"Monitor {incident.resource_id} for incident {incident_id} no longer exists")
            return None
        target_url = monitor.url

    # The database session is closed while the browser runs
    renderer = renderer or PlaywrightRenderer()
    store = store or HttpObjectStore()
    try:
        image = await renderer.capture(
            target_url,
            timeout=settings.screenshot_timeout,
            viewport=(settings.screenshot_viewport_width, settings.screenshot_viewport_height),
            full_page=settings.screenshot_full_page,
        )
        logger.info(f"Captured {len(image)} bytes from {target_url} for incident {incident_id}")
        reference = await store.put(screenshot_path(incident_id), image, SCREENSHOT_CONTENT_TYPE)
    except RenderUnavailable as e:
        logger.error(
            f"Screenshot capability unavailable on this platform "
            f"(incident {incident_id}): {e}"
        )
        return None
    except RenderFailed as e:
        logger.warning(
            f"Screenshot target unreachable: {target_url} "
            f"(incident {incident_id}): {e}"
        )
        return None
    except UploadFailed as e:
        logger.error(f"Screenshot upload failed for incident {incident_id}: {e}")
        return None

    async with get_session_factory()() as db:
        await db.execute(
            update(Incident)
            .where(Incident.id == incident_id, Incident.screenshot_ref.is_(None))
            .values(screenshot_ref=reference)
        )
        await db.commit()
    logger.info(f"Screenshot for incident {incident_id} stored at {reference}")
    return reference

"""Browser fingerprint randomization applied before the first navigation."""

from __future__ import annotations

import json
import logging
import random
from typing import Any, Dict, Optional

from playwright.sync_api import Browser, BrowserContext

from leadscraper.models import Identity, Viewport

logger = logging.getLogger(__name__)

USER_AGENTS = (
    # Chrome on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 11.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Chrome on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_6_1) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Firefox
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
    # Safari on macOS
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Safari/605.1.15",
    # Edge on Windows
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36 Edg/119.0.0.0",
    # Chrome on Linux
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

VIEWPORTS = (
    Viewport(1920, 1080),
    Viewport(1366, 768),
    Viewport(1536, 864),
    Viewport(1440, 900),
    Viewport(1280, 720),
    Viewport(1600, 900),
)

# Minutes west of UTC, as returned by Date.prototype.getTimezoneOffset.
TIMEZONE_OFFSETS = {
    "America/New_York": 300,
    "America/Los_Angeles": 480,
    "America/Chicago": 360,
    "Europe/London": 0,
    "Asia/Karachi": -300,
}

LOCALE = "en-US"
WEBGL_VENDOR = "Intel Inc."
WEBGL_RENDERER = "Intel Iris OpenGL Engine"

EXTRA_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Cache-Control": "max-age=0",
}

_INIT_SCRIPT = """
(() => {
  const identity = __IDENTITY__;
  const define = (target, key, value) => {
    try {
      Object.defineProperty(target, key, { get: () => value, configurable: true });
    } catch (e) {}
  };

  define(navigator, 'userAgent', identity.userAgent);
  define(navigator, 'platform', identity.platform);
  define(navigator, 'languages', [identity.locale]);
  define(navigator, 'language', identity.locale);
  define(navigator, 'webdriver', false);
  define(navigator, 'plugins', [1, 2, 3, 4, 5]);

  define(screen, 'width', identity.width);
  define(screen, 'height', identity.height);
  define(screen, 'availWidth', identity.width);
  define(screen, 'availHeight', identity.height - 40);

  Date.prototype.getTimezoneOffset = function () { return identity.timezoneOffset; };

  const toDataURL = HTMLCanvasElement.prototype.toDataURL;
  HTMLCanvasElement.prototype.toDataURL = function () {
    const context = this.getContext('2d');
    if (context && this.width && this.height) {
      const imageData = context.getImageData(0, 0, this.width, this.height);
      for (let i = 0; i < imageData.data.length; i += 4) {
        imageData.data[i] += Math.floor(Math.random() * 3) - 1;
      }
      context.putImageData(imageData, 0, 0);
    }
    return toDataURL.apply(this, arguments);
  };

  const getParameter = WebGLRenderingContext.prototype.getParameter;
  WebGLRenderingContext.prototype.getParameter = function (parameter) {
    if (parameter === 37445) return identity.webglVendor;
    if (parameter === 37446) return identity.webglRenderer;
    return getParameter.apply(this, arguments);
  };
})();
"""


def platform_for(user_agent: str) -> str:
    """Map the OS token of a user agent to the matching navigator.platform."""
    if "Windows" in user_agent:
        return "Win32"
    if "Mac" in user_agent:
        return "MacIntel"
    if "Linux" in user_agent:
        return "Linux x86_64"
    return "Win32"


def choose_identity(rng: Optional[random.Random] = None) -> Identity:
    rng = rng or random
    user_agent = rng.choice(USER_AGENTS)
    viewport = rng.choice(VIEWPORTS)
    timezone = rng.choice(sorted(TIMEZONE_OFFSETS))
    return Identity(
        user_agent=user_agent,
        viewport=viewport,
        timezone=timezone,
        platform=platform_for(user_agent),
        timezone_offset=TIMEZONE_OFFSETS[timezone],
        locale=LOCALE,
    )


def build_init_script(identity: Identity) -> str:
    payload: Dict[str, Any] = {
        "userAgent": identity.user_agent,
        "platform": identity.platform,
        "locale": identity.locale,
        "width": identity.viewport.width,
        "height": identity.viewport.height,
        "timezoneOffset": identity.timezone_offset,
        "webglVendor": WEBGL_VENDOR,
        "webglRenderer": WEBGL_RENDERER,
    }
    return _INIT_SCRIPT.replace("__IDENTITY__", json.dumps(payload))


def apply_identity(context: BrowserContext, identity: Identity) -> None:
    """Install the identity overrides on a context before any page loads."""
    context.set_extra_http_headers({**EXTRA_HEADERS, "User-Agent": identity.user_agent})
    context.add_init_script(script=build_init_script(identity))
    logger.info(
        "Using identity ua=%s... viewport=%dx%d tz=%s",
        identity.user_agent[:50],
        identity.viewport.width,
        identity.viewport.height,
        identity.timezone,
    )


def randomize_identity(context: BrowserContext, rng: Optional[random.Random] = None) -> Identity:
    identity = choose_identity(rng)
    apply_identity(context, identity)
    return identity


def new_identity_context(browser: Browser, identity: Identity) -> BrowserContext:
    """Open a browser context sized and labelled for ``identity`` with overrides applied."""
    context = browser.new_context(
        user_agent=identity.user_agent,
        viewport={"width": identity.viewport.width, "height": identity.viewport.height},
        locale=identity.locale,
        timezone_id=identity.timezone,
    )
    apply_identity(context, identity)
    return context

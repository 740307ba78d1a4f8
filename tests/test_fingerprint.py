import json
import random

import pytest

from leadscraper.maps import fingerprint
from leadscraper.models import Identity, Viewport


class DummyContext:
    def __init__(self):
        self.headers = None
        self.init_scripts = []

    def set_extra_http_headers(self, headers):
        self.headers = headers

    def add_init_script(self, script=None, path=None):
        self.init_scripts.append(script)


class DummyBrowser:
    def __init__(self):
        self.context_kwargs = None
        self.context = DummyContext()

    def new_context(self, **kwargs):
        self.context_kwargs = kwargs
        return self.context


IDENTITY = Identity(
    user_agent=fingerprint.USER_AGENTS[0],
    viewport=Viewport(1366, 768),
    timezone="Asia/Karachi",
    platform="Win32",
    timezone_offset=-300,
)


@pytest.mark.parametrize(
    "user_agent, platform",
    [
        ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", "Win32"),
        ("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)", "MacIntel"),
        ("Mozilla/5.0 (X11; Linux x86_64)", "Linux x86_64"),
        ("SomethingElse/1.0", "Win32"),
    ],
)
def test_platform_for(user_agent, platform):
    assert fingerprint.platform_for(user_agent) == platform


def test_choose_identity_draws_from_catalogs():
    rng = random.Random(7)
    for _ in range(25):
        identity = fingerprint.choose_identity(rng)
        assert identity.user_agent in fingerprint.USER_AGENTS
        assert identity.viewport in fingerprint.VIEWPORTS
        assert identity.timezone in fingerprint.TIMEZONE_OFFSETS
        assert identity.timezone_offset == fingerprint.TIMEZONE_OFFSETS[identity.timezone]
        assert identity.platform == fingerprint.platform_for(identity.user_agent)
        assert identity.locale == "en-US"


def test_choose_identity_is_reproducible_with_seed():
    assert fingerprint.choose_identity(random.Random(3)) == fingerprint.choose_identity(random.Random(3))


def test_timezone_catalog():
    assert fingerprint.TIMEZONE_OFFSETS == {
        "America/New_York": 300,
        "America/Los_Angeles": 480,
        "America/Chicago": 360,
        "Europe/London": 0,
        "Asia/Karachi": -300,
    }


def test_build_init_script_embeds_identity():
    script = fingerprint.build_init_script(IDENTITY)

    assert "__IDENTITY__" not in script
    assert json.dumps(IDENTITY.user_agent) in script
    assert '"timezoneOffset": -300' in script
    assert '"width": 1366' in script
    assert fingerprint.WEBGL_VENDOR in script
    assert "navigator, 'webdriver', false" in script


def test_apply_identity_sets_headers_and_script():
    context = DummyContext()

    fingerprint.apply_identity(context, IDENTITY)

    assert context.headers["User-Agent"] == IDENTITY.user_agent
    assert context.headers["Accept-Language"].startswith("en-US")
    assert len(context.init_scripts) == 1


def test_randomize_identity_returns_applied_identity():
    context = DummyContext()

    identity = fingerprint.randomize_identity(context, random.Random(11))

    assert context.headers["User-Agent"] == identity.user_agent
    assert len(context.init_scripts) == 1


def test_new_identity_context_applies_once():
    browser = DummyBrowser()

    context = fingerprint.new_identity_context(browser, IDENTITY)

    assert context is browser.context
    assert browser.context_kwargs == {
        "user_agent": IDENTITY.user_agent,
        "viewport": {"width": 1366, "height": 768},
        "locale": "en-US",
        "timezone_id": "Asia/Karachi",
    }
    assert len(context.init_scripts) == 1

"""
Concrete element lookup strategies

Each strategy is one independent signal for finding an element: its
accessibility role, its label, a CSS selector, its visible text, a structural
position relative to a text node, or a DOM script probe. The portal's markup
is unstable, so every semantic target carries several of these in order.

A strategy only answers "where is it". It never clicks or types; that is the
step executor's job.
"""

import re
from dataclasses import dataclass
from typing import ClassVar, Optional, Pattern, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

TextMatch = Union[str, Pattern[str]]

# Attribute a ScriptStrategy stamps on the element it found
PROBE_ATTRIBUTE = "data-lookup-probe"


def describe_match(value):
    """Readable form of a str/regex matcher for log lines"""
    if isinstance(value, re.Pattern):
        return f"/{value.pattern}/"
    return f'"{value}"'


@dataclass(frozen=True)
class LocatorStrategy:
    """Base class - subclasses build a Playwright locator for the target"""

    kind: ClassVar[str] = "base"

    def build(self, page):
        raise NotImplementedError

    def describe(self):
        return self.kind

    async def locate(self, page, timeout):
        """Return the first visible match, or None when nothing appears in time"""
        try:
            locator = self.build(page).first
            await locator.wait_for(state="visible", timeout=timeout)
            return locator
        except PlaywrightTimeoutError:
            return None
        except PlaywrightError as e:
            print(f"    {self.describe()} errored: {str(e)[:120]}")
            return None


@dataclass(frozen=True)
class RoleStrategy(LocatorStrategy):
    """Accessibility role + accessible name"""

    kind: ClassVar[str] = "role"
    role: str
    name: TextMatch
    exact: bool = False

    def build(self, page):
        if isinstance(self.name, re.Pattern):
            return page.get_by_role(self.role, name=self.name)
        return page.get_by_role(self.role, name=self.name, exact=self.exact)

    def describe(self):
        return f"role={self.role} name={describe_match(self.name)}"


@dataclass(frozen=True)
class LabelStrategy(LocatorStrategy):
    """Form control by its associated label or aria-label"""

    kind: ClassVar[str] = "label"
    label: TextMatch
    exact: bool = False

    def build(self, page):
        if isinstance(self.label, re.Pattern):
            return page.get_by_label(self.label)
        return page.get_by_label(self.label, exact=self.exact)

    def describe(self):
        return f"label={describe_match(self.label)}"


@dataclass(frozen=True)
class CssStrategy(LocatorStrategy):
    """CSS selector, optionally narrowed by contained text"""

    kind: ClassVar[str] = "css"
    selector: str
    has_text: Optional[TextMatch] = None

    def build(self, page):
        if self.has_text is not None:
            return page.locator(self.selector, has_text=self.has_text)
        return page.locator(self.selector)

    def describe(self):
        if self.has_text is not None:
            return f"css={self.selector} has_text={describe_match(self.has_text)}"
        return f"css={self.selector}"


@dataclass(frozen=True)
class TextStrategy(LocatorStrategy):
    """Element by its visible text content"""

    kind: ClassVar[str] = "text"
    text: TextMatch
    exact: bool = False

    def build(self, page):
        if isinstance(self.text, re.Pattern):
            return page.get_by_text(self.text)
        return page.get_by_text(self.text, exact=self.exact)

    def describe(self):
        return f"text={describe_match(self.text)}"


@dataclass(frozen=True)
class TraversalStrategy(LocatorStrategy):
    """Start at a text node and walk the DOM with an XPath axis expression

    Covers both "clickable ancestor of this label" and "value element that
    follows this caption" lookups.
    """

    kind: ClassVar[str] = "traversal"
    text: TextMatch
    xpath: str

    def build(self, page):
        if isinstance(self.text, re.Pattern):
            anchor = page.get_by_text(self.text)
        else:
            anchor = page.get_by_text(self.text, exact=True)
        return anchor.first.locator(f"xpath={self.xpath}")

    def describe(self):
        return f"text={describe_match(self.text)} >> xpath={self.xpath}"


@dataclass(frozen=True)
class ScriptStrategy(LocatorStrategy):
    """Raw DOM probe for elements Playwright's selectors cannot reach

    `script` is a JS function taking a marker string. It must find the
    element, set PROBE_ATTRIBUTE to the marker on it and return true, or
    return false when nothing matched.
    """

    kind: ClassVar[str] = "script"
    marker: str
    script: str

    def build(self, page):
        return page.locator(f'[{PROBE_ATTRIBUTE}="{self.marker}"]')

    def describe(self):
        return f"script={self.marker}"

    async def locate(self, page, timeout):
        try:
            found = await page.evaluate(self.script, self.marker)
        except PlaywrightError as e:
            print(f"    {self.describe()} errored: {str(e)[:120]}")
            return None
        if not found:
            return None
        return await super().locate(page, timeout)

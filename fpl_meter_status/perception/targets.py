"""Semantic targets for every control the lookup flow touches on the portal

Strategies are listed most-specific first. Parameterised targets (account
title, address, unit) are built by the factory functions at the bottom.
"""

import re

from fpl_meter_status.perception.resolver import SemanticTarget
from fpl_meter_status.perception.strategies import (
    PROBE_ATTRIBUTE,
    CssStrategy,
    LabelStrategy,
    RoleStrategy,
    ScriptStrategy,
    TextStrategy,
    TraversalStrategy,
)

# ========================================
# DOM PROBE SCRIPTS
# ========================================
# Each receives a marker, tags the element it finds with PROBE_ATTRIBUTE and
# returns true/false. Templates are formatted with the attribute name.

_CLICK_INPUT_SCRIPT = """(marker) => {{
    const el = document.querySelector('{selector}');
    if (!el) return false;
    el.setAttribute('{attribute}', marker);
    return true;
}}"""

_EXACT_TEXT_SCRIPT = """(marker) => {{
    const selectors = ['span.q-btn__content span.block', 'span.block', 'button', 'a'];
    for (const selector of selectors) {{
        for (const el of document.querySelectorAll(selector)) {{
            if (el.textContent?.trim() === '{text}' && el.offsetHeight > 0 && !el.disabled) {{
                el.setAttribute('{attribute}', marker);
                return true;
            }}
        }}
    }}
    return false;
}}"""

_FIRST_DROPDOWN_OPTION_TEMPLATE = """(marker) => {{
    const selectors = [
        'li[role="option"]',
        'div[role="option"]',
        '.q-menu .q-item',
        '.q-item',
        '.dropdown-item',
        '[data-testid*="option"]',
        '[data-testid*="suggestion"]',
        '.autocomplete-item',
        '.suggestion-item',
    ];
    for (const selector of selectors) {{
        for (const el of document.querySelectorAll(selector)) {{
            const style = window.getComputedStyle(el);
            const visible = style.display !== 'none' && style.visibility !== 'hidden' && el.offsetHeight > 0;
            if (visible && !el.disabled && el.textContent?.trim()) {{
                el.setAttribute('{attribute}', marker);
                return true;
            }}
        }}
    }}
    return false;
}}"""

_FIRST_DROPDOWN_OPTION_SCRIPT = _FIRST_DROPDOWN_OPTION_TEMPLATE.format(attribute=PROBE_ATTRIBUTE)


def _probe_input(marker, selector):
    script = _CLICK_INPUT_SCRIPT.format(attribute=PROBE_ATTRIBUTE, selector=selector)
    return ScriptStrategy(marker=marker, script=script)


def _probe_exact_text(marker, text):
    script = _EXACT_TEXT_SCRIPT.format(attribute=PROBE_ATTRIBUTE, text=text)
    return ScriptStrategy(marker=marker, script=script)


# ========================================
# LOGIN
# ========================================
COOKIE_ACCEPT = SemanticTarget(
    "cookie banner accept",
    (RoleStrategy("button", re.compile(r"accept|agree|got it|^ok$", re.I)),),
)

LOGIN_USERNAME = SemanticTarget(
    "username field",
    (
        LabelStrategy(re.compile(r"username", re.I)),
        CssStrategy('input[name*="user"]'),
        CssStrategy('input[type="text"]'),
    ),
)

LOGIN_PASSWORD = SemanticTarget(
    "password field",
    (
        LabelStrategy(re.compile(r"password", re.I)),
        CssStrategy('input[type="password"]'),
    ),
)

LOGIN_SUBMIT = SemanticTarget(
    "log in button",
    (
        RoleStrategy("button", re.compile(r"log ?in", re.I)),
        CssStrategy('button[type="submit"]'),
    ),
)

# ========================================
# NAVIGATION TO THE START-SERVICE FORM
# ========================================
SERVICES_MENU = SemanticTarget(
    "Services menu",
    (
        RoleStrategy("button", re.compile(r"^services$", re.I)),
        CssStrategy("a", has_text="Services"),
    ),
)

START_STOP_MOVE = SemanticTarget(
    "Start, Stop, Move link",
    (
        RoleStrategy("link", re.compile(r"Start, Stop, Move", re.I)),
        CssStrategy("a", has_text="Start, Stop, Move"),
    ),
)

REGION_FPL = SemanticTarget(
    "FPL region choice",
    (
        CssStrategy('a.nee-fpl-region-choice[data-region="fpl"]'),
        RoleStrategy("button", re.compile(r"FPL", re.I)),
    ),
)

REGION_CONTINUE = SemanticTarget(
    "region Continue button",
    (RoleStrategy("button", re.compile(r"continue", re.I)),),
)

ADDITIONAL_SERVICE = SemanticTarget(
    "Additional Service action",
    (
        RoleStrategy("link", re.compile(r"Additional Service", re.I)),
        RoleStrategy("button", re.compile(r"Additional Service", re.I)),
        CssStrategy('a.q-btn:has(span:has-text("Additional Service"))'),
        CssStrategy('a.nee-fpl-cta-btn-primary:has(span:has-text("Additional Service"))'),
        TraversalStrategy(re.compile(r"Additional Service", re.I), "ancestor::a|ancestor::button"),
        TraversalStrategy(re.compile(r"Additional", re.I), "ancestor::a|ancestor::button"),
        CssStrategy("a, button", has_text=re.compile(r"additional", re.I)),
    ),
)

# ========================================
# CUSTOMER DETAILS
# ========================================
BUSINESS_RADIO = SemanticTarget(
    "business customer-type radio",
    (
        CssStrategy('div.q-radio__inner:has(input[value="COMMERCIAL"])'),
        TraversalStrategy(
            re.compile(r"Business", re.I), 'ancestor::div[contains(@class, "q-radio__inner")]'
        ),
        LabelStrategy(re.compile(r"business", re.I)),
        _probe_input("business-radio", 'input[name="customerType"][value="COMMERCIAL"]'),
    ),
)

CONTINUE_BUTTON = SemanticTarget(
    "Continue button",
    (RoleStrategy("button", re.compile(r"continue", re.I)),),
)

NEXT_BUTTON = SemanticTarget(
    "Next button",
    (
        RoleStrategy("button", re.compile(r"^next$", re.I)),
        CssStrategy("span.q-btn__content span.block", has_text=re.compile(r"^Next$")),
    ),
)

MASTER_ACCOUNT_NO = SemanticTarget(
    "master account 'No' radio",
    (
        LabelStrategy(re.compile(r"^No$", re.I)),
        RoleStrategy("radio", "No", exact=True),
        CssStrategy('div.q-radio__inner input[type="radio"]'),
    ),
)

TIN_INPUT = SemanticTarget(
    "TIN field",
    (
        LabelStrategy(re.compile(r"^TIN$", re.I)),
        CssStrategy('input[aria-label="TIN"]'),
        CssStrategy('input[aria-label="*TIN"]'),
    ),
)

US_BUSINESS_RADIO = SemanticTarget(
    "U.S. Business radio",
    (
        RoleStrategy("radio", "U.S. Business", exact=True),
        CssStrategy("div.nee_fpl_us_business_radion_button"),
        TraversalStrategy(
            "U.S. Business",
            'preceding::*[local-name()="svg" and contains(@class, "q-radio__bg")][1]'
            ' | following::*[local-name()="svg" and contains(@class, "q-radio__bg")][1]',
        ),
        _probe_input("us-business-radio", "div.nee_fpl_us_business_radion_button"),
    ),
)

REQUESTOR_INPUT = SemanticTarget(
    "Person Making Request field",
    (
        LabelStrategy(re.compile(r"Person Making Request", re.I)),
        CssStrategy('input[aria-label*="Person Making Request"]'),
    ),
)

PROPERTY_USE_DROPDOWN = SemanticTarget(
    "Property Use dropdown",
    (
        CssStrategy('div.q-field__native:has(input[aria-label="*Property Use"])'),
        CssStrategy('input[aria-label="*Property Use"]'),
        LabelStrategy(re.compile(r"Property Use", re.I)),
        _probe_input("property-use", 'input[aria-label="*Property Use"]'),
    ),
)

MAILING_SAME_CHECKBOX = SemanticTarget(
    "mailing address same as service checkbox",
    (
        RoleStrategy("checkbox", re.compile(r"mailing address.*same.*service", re.I)),
        CssStrategy(".q-checkbox__bg"),
    ),
)

CONFIRM_PROPERTY_RADIO = SemanticTarget(
    "Confirm property radio",
    (
        LabelStrategy(re.compile(r"Confirm property", re.I)),
        CssStrategy(".q-radio__bg"),
    ),
)

# ========================================
# ADDRESS ENTRY & CONFIRMATION
# ========================================
ADDRESS_INPUT = SemanticTarget(
    "Address field",
    (
        LabelStrategy(re.compile(r"^\*?Address$", re.I)),
        CssStrategy('input[aria-label="*Address"]'),
        CssStrategy('input[aria-label="Address"]'),
    ),
)

UNIT_INPUT = SemanticTarget(
    "Unit/Apt field",
    (
        LabelStrategy(re.compile(r"Apt\.?|Unit#|\*Unit#", re.I)),
        CssStrategy('input[aria-label="*Unit#"]'),
    ),
)

UNIT_CONFIRM_INPUT = SemanticTarget(
    "Unit# field on the confirmation page",
    (CssStrategy('input[aria-label="*Unit#"]'),),
)

SEARCH_BUTTON = SemanticTarget(
    "address Search button",
    (
        CssStrategy('[data-testid="nee_fpl_connect_service_search_button"]'),
        CssStrategy("button.fplnw-tracking-connect-address-search-button"),
        CssStrategy("span.q-btn__content span.block", has_text=re.compile(r"^Search$")),
        RoleStrategy("button", re.compile(r"search", re.I)),
        _probe_exact_text("search-button", "Search"),
    ),
)

CONFIRM_BUTTON = SemanticTarget(
    "Confirm button",
    (
        CssStrategy('span.q-btn__content:has(span.block:has-text("Confirm"))'),
        CssStrategy("span.block", has_text=re.compile(r"^Confirm$")),
        RoleStrategy("button", re.compile(r"^confirm$", re.I)),
        _probe_exact_text("confirm-button", "Confirm"),
    ),
)

DIFFERENT_ADDRESS_LINK = SemanticTarget(
    "'Not the right address?' link",
    (
        CssStrategy("a.text-weight-bold.text-primary", has_text="Not the right address?"),
        CssStrategy("a.text-primary", has_text="Not the right address?"),
        CssStrategy("a", has_text="Not the right address?"),
        RoleStrategy("link", re.compile(r"Not the right address", re.I)),
    ),
)

# ========================================
# STATUS READOUT
# ========================================
METER_STATUS = SemanticTarget(
    "Meter Status value",
    (
        TraversalStrategy(re.compile(r"Meter Status", re.I), "following::*[1]"),
        TraversalStrategy(re.compile(r"Meter Status\s*:", re.I), "following-sibling::*"),
    ),
)

PROPERTY_STATUS = SemanticTarget(
    "Property Status value",
    (
        CssStrategy("p.nee-fpl-property-status"),
        TraversalStrategy(re.compile(r"Property Status", re.I), "following::*[1]"),
    ),
)


# ========================================
# PARAMETERISED TARGETS
# ========================================
def account_link(title):
    """Link for the customer account whose title contains `title`"""
    return SemanticTarget(
        f"account '{title}'",
        (
            CssStrategy(f'a[title*="{title}"]'),
            RoleStrategy("link", re.compile(re.escape(title), re.I)),
        ),
    )


def property_use_option(option_text):
    return SemanticTarget(
        f"Property Use option '{option_text}'",
        (
            RoleStrategy("option", re.compile(re.escape(option_text), re.I)),
            TextStrategy(re.compile(re.escape(option_text), re.I)),
        ),
    )


def address_suggestion(address):
    """Autocomplete option for `address` - its street line first, then any option"""
    street = address.split(",")[0].strip()
    return SemanticTarget(
        f"address suggestion '{street}'",
        (
            RoleStrategy("option", re.compile(re.escape(street), re.I)),
            CssStrategy('[role="listbox"] [role="option"]', has_text=re.compile(re.escape(street), re.I)),
            CssStrategy('[role="option"]'),
            ScriptStrategy(marker="address-suggestion", script=_FIRST_DROPDOWN_OPTION_SCRIPT),
        ),
    )


def unit_option(unit):
    """Autocomplete option that exactly matches `unit`"""
    return SemanticTarget(
        f"unit option '{unit}'",
        (RoleStrategy("option", re.compile(rf"^{re.escape(unit)}$", re.I)),),
    )


def unit_suggestion(unit):
    """Unit option on the confirmation page - exact match first, then the first option"""
    return SemanticTarget(
        f"unit suggestion '{unit}'",
        (
            RoleStrategy("option", re.compile(rf"^{re.escape(unit)}$", re.I)),
            CssStrategy('[role="option"]'),
            ScriptStrategy(marker="unit-suggestion", script=_FIRST_DROPDOWN_OPTION_SCRIPT),
        ),
    )

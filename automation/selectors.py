"""Selector chains for each step of the billing-card workflow.

Candidates are listed most specific first; the first one present on the page
is used.
"""

from __future__ import annotations

from driver.locator_utils import SelectorChain

SIGN_IN_PATH = "/account/signin"

SIGN_IN_LINK = SelectorChain.of(
    'a[href*="account"]',
    'button:has-text("Sign In")',
    '[data-testid="sign-in"]',
)

EMAIL_INPUT = SelectorChain.of('input[type="email"]', 'input[name="email"]')

PASSWORD_INPUT = SelectorChain.of('input[type="password"]', 'input[name="password"]')

LOGIN_BUTTON = SelectorChain.of(
    'button[type="submit"]',
    'button:has-text("Sign In")',
    'button:has-text("Log In")',
    'button:has-text("Submit")',
    '[data-testid="submit-button"]',
    '[data-testid="sign-in-button"]',
    '[data-testid="login-button"]',
    '[data-testid="submit"]',
    '[data-testid="sign-in"]',
)

ACCOUNT_LINK = SelectorChain.of(
    'a[href*="account"]',
    'button:has-text("Account")',
    '[aria-label="Account"]',
)

BILLING_LINK = SelectorChain.of(
    'a[href*="billing"]',
    'a[href*="payment"]',
    'button:has-text("Billing")',
)

OPEN_CARD_FORM = SelectorChain.of(
    'button:has-text("Add Card")',
    'button:has-text("Update")',
    'button:has-text("Add Payment")',
)

CARD_FORM_READY = SelectorChain.of(
    'input[name*="card"]',
    'input[placeholder*="Card number"]',
    'iframe[name*="card"]',
)

CARD_NUMBER = SelectorChain.of(
    'input[name*="cardnumber"]',
    'input[placeholder*="Card number"]',
    'input[name="number"]',
)

CARD_HOLDER = SelectorChain.of('input[name*="name"]', 'input[placeholder*="Name on card"]')

EXPIRY_MONTH = SelectorChain.of('input[name*="exp"]', 'input[placeholder*="MM"]', 'input[name="month"]')

EXPIRY_YEAR = SelectorChain.of('input[name*="exp"]', 'input[placeholder*="YY"]', 'input[name="year"]')

CVV = SelectorChain.of('input[name*="cvc"]', 'input[name*="cvv"]', 'input[placeholder*="CVV"]')

POSTAL_CODE = SelectorChain.of('input[name*="zip"]', 'input[name*="postal"]', 'input[placeholder*="ZIP"]')

SAVE_CARD = SelectorChain.of(
    'button[type="submit"]',
    'button:has-text("Save")',
    'button:has-text("Add Card")',
)

CARD_NUMBER_TYPING_DELAY_MS = 150

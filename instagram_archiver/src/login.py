"""
Interactive login
Only used when Instagram shows its login form to the primary session.
"""

import getpass
from typing import Dict

from loguru import logger

from .error_handler import AuthenticationError
from .utils import wait_ms

LOGIN_USERNAME_SELECTOR = 'input[name="username"]'
LOGIN_PASSWORD_SELECTOR = 'input[name="password"]'
LOGIN_SUBMIT_SELECTOR = 'button[type="submit"]'
LOGIN_ERROR_SELECTOR = 'p[data-testid="login-error-message"]'
TYPING_DELAY_MS = 100


class CredentialProvider:
    """Asks the user for Instagram credentials on the terminal"""

    def prompt_credentials(self) -> Dict[str, str]:
        print(
            "🔐 You need to login in order to use this tool. Enter your username/password below,\n"
            "or alternatively, launch with --no-headless and --user-data options and login directly "
            "into the browser window then restart the tool, keeping the --user-data option."
        )
        username = input("Enter Instagram username: ")
        password = getpass.getpass("Enter Instagram password: ")
        return {"username": username, "password": password}


async def needs_login(session) -> bool:
    return await session.page.query_selector(LOGIN_USERNAME_SELECTOR) is not None


async def login_if_needed(session, credentials: CredentialProvider) -> bool:
    """
    Submit the login form when it is present.
    Returns True if a login was performed; raises AuthenticationError when Instagram rejects it.
    """
    if not await needs_login(session):
        return False

    creds = credentials.prompt_credentials()
    logger.info("🔐 Logging into Instagram...")
    page = session.page
    await page.type(LOGIN_USERNAME_SELECTOR, creds["username"], delay=TYPING_DELAY_MS)
    await page.type(LOGIN_PASSWORD_SELECTOR, creds["password"], delay=TYPING_DELAY_MS)
    await page.click(LOGIN_SUBMIT_SELECTOR)
    await page.wait_for_load_state("networkidle", timeout=0)
    await wait_ms(3000, 1000)

    if await page.query_selector(LOGIN_ERROR_SELECTOR):
        raise AuthenticationError("Login failed. Please check your credentials.")
    return True

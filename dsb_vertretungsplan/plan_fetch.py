"""
Drive DSBmobile in Chrome via Selenium.

Workflow:
1. Open https://www.dsbmobile.de/ and log in with the school account
2. Click the "dsbmobile_schueler" tile to open the substitution plan
3. The plan viewer shows one or more <iframe>s per page, each with a day
4. Read every frame, click the viewer's next arrow, repeat (plan_merge)
"""
from __future__ import annotations

import logging
import time
from typing import List, Tuple

from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.common.by import By
from selenium.webdriver.support.ui import WebDriverWait
from selenium.webdriver.support import expected_conditions as EC
from selenium.common.exceptions import (
    NoSuchElementException,
    TimeoutException,
    WebDriverException,
)
from webdriver_manager.chrome import ChromeDriverManager

from .plan_merge import FRAME_PROBE_TIMEOUT


logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────
#  Constants
# ──────────────────────────────────────────────────────────────────

DSB_URL = "https://www.dsbmobile.de/"

PAGE_TIMEOUT = 10
PAGE_SETTLE_SECONDS = 2.0

USERNAME_SELECTOR = 'input[type="text"], input[name*="user"], input[id*="user"]'
PASSWORD_SELECTOR = 'input[type="password"]'
SUBMIT_SELECTOR = 'button[type="submit"], input[type="submit"]'
SUBMIT_XPATH = "//button[contains(., 'Login') or contains(., 'Anmelden')]"
LOGIN_SUCCESS_MARKER = "default.aspx"
STUDENT_TILE_XPATH = "//*[contains(text(), 'dsbmobile_schueler')]"
NEXT_PAGE_SELECTOR = "img.control-next"

FramePath = Tuple[int, ...]


# ──────────────────────────────────────────────────────────────────
#  Helpers
# ──────────────────────────────────────────────────────────────────

def _create_driver(headless: bool = True) -> webdriver.Chrome:
    """Create a Chrome WebDriver instance."""
    options = Options()
    if headless:
        options.add_argument("--headless=new")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-setuid-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--window-size=1400,1000")
    try:
        service = Service(ChromeDriverManager().install())
        return webdriver.Chrome(service=service, options=options)
    except Exception as e:
        raise RuntimeError(
            f"Could not start Chrome. Install Chrome and run again.\nError: {e}"
        ) from e


def _wait_settled(driver: webdriver.Chrome, timeout: float = PAGE_TIMEOUT) -> None:
    """Wait until document.readyState is 'complete', then give scripts a moment."""
    try:
        WebDriverWait(driver, timeout).until(
            lambda d: d.execute_script("return document.readyState") == "complete"
        )
    except TimeoutException:
        logger.debug("Page did not report readyState=complete in time")
    time.sleep(PAGE_SETTLE_SECONDS)


# ──────────────────────────────────────────────────────────────────
#  Driver
# ──────────────────────────────────────────────────────────────────

class DSBMobileDriver:
    """
    Selenium side of the scraper. Frames are addressed by their index
    path through nested <iframe>s; () is the top-level document.
    """

    def __init__(self, headless: bool = True, url: str = DSB_URL):
        self.headless = headless
        self.url = url
        self.driver: webdriver.Chrome | None = None

    def __enter__(self) -> "DSBMobileDriver":
        self.driver = _create_driver(self.headless)
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self.driver is not None:
            self.driver.quit()
            self.driver = None

    @property
    def _d(self) -> webdriver.Chrome:
        if self.driver is None:
            raise RuntimeError("Browser not started")
        return self.driver

    # ── Navigation / login ───────────────────────────────────────

    def open(self) -> None:
        logger.info(f"Navigating to {self.url}")
        self._d.get(self.url)
        _wait_settled(self._d)

    def login(self, username: str, password: str) -> bool:
        """Fill in the login form; True if we end up on default.aspx."""
        d = self._d
        WebDriverWait(d, PAGE_TIMEOUT).until(
            EC.presence_of_element_located((By.CSS_SELECTOR, USERNAME_SELECTOR))
        )
        d.find_element(By.CSS_SELECTOR, USERNAME_SELECTOR).send_keys(username)
        d.find_element(By.CSS_SELECTOR, PASSWORD_SELECTOR).send_keys(password)

        buttons = d.find_elements(By.CSS_SELECTOR, SUBMIT_SELECTOR) or d.find_elements(
            By.XPATH, SUBMIT_XPATH
        )
        if not buttons:
            raise NoSuchElementException("No login button found")
        buttons[0].click()
        _wait_settled(d)

        if LOGIN_SUCCESS_MARKER in d.current_url:
            logger.info(f"Login successful, now at {d.current_url}")
            return True
        logger.warning(f"Login may have failed, current URL: {d.current_url}")
        return False

    def open_student_plan(self) -> None:
        d = self._d
        tile = WebDriverWait(d, PAGE_TIMEOUT).until(
            EC.element_to_be_clickable((By.XPATH, STUDENT_TILE_XPATH))
        )
        tile.click()
        logger.info("Opened dsbmobile_schueler plan")
        _wait_settled(d)

    # ── Frames ───────────────────────────────────────────────────

    def _switch_to(self, path: FramePath) -> None:
        d = self._d
        d.switch_to.default_content()
        for idx in path:
            iframes = d.find_elements(By.TAG_NAME, "iframe")
            d.switch_to.frame(iframes[idx])

    def _walk_frames(self, path: FramePath) -> List[FramePath]:
        self._switch_to(path)
        count = len(self._d.find_elements(By.TAG_NAME, "iframe"))
        paths = [path]
        for idx in range(count):
            paths.extend(self._walk_frames(path + (idx,)))
        return paths

    def enumerate_frames(self) -> List[FramePath]:
        """All documents of the page, top-level first. Needs at least one iframe."""
        d = self._d
        d.switch_to.default_content()
        WebDriverWait(d, PAGE_TIMEOUT).until(
            EC.presence_of_element_located((By.TAG_NAME, "iframe"))
        )
        paths = self._walk_frames(())
        d.switch_to.default_content()
        return paths

    def frame_has_table(self, handle: FramePath, timeout: float = FRAME_PROBE_TIMEOUT) -> bool:
        try:
            self._switch_to(handle)
            WebDriverWait(self._d, timeout).until(
                EC.presence_of_element_located((By.TAG_NAME, "table"))
            )
            return True
        except (TimeoutException, IndexError):
            return False

    def frame_html(self, handle: FramePath) -> str:
        self._switch_to(handle)
        return self._d.page_source

    # ── Pagination ───────────────────────────────────────────────

    def next_page(self) -> bool:
        """Click the viewer's next arrow. False if missing, disabled or broken."""
        d = self._d
        d.switch_to.default_content()
        buttons = d.find_elements(By.CSS_SELECTOR, NEXT_PAGE_SELECTOR)
        if not buttons:
            logger.info("Next button not found")
            return False
        button = buttons[0]
        if "disabled" in (button.get_attribute("class") or "").split():
            logger.info("Next button is disabled")
            return False
        try:
            button.click()
        except WebDriverException as e:
            logger.warning(f"Failed to click next button: {e}")
            return False
        _wait_settled(d)
        return True

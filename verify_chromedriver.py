
from __future__ import annotations

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
import sys

from utils import find_chromedriver_binary, print_info, print_status, print_warning


def build_chrome(chromedriver_path: str) -> webdriver.Chrome:
    opts = Options()
    opts.add_argument("--headless=new")
    opts.add_argument("--no-first-run")
    opts.add_argument("--no-default-browser-check")
    service = Service(chromedriver_path)
    return webdriver.Chrome(service=service, options=opts)


def verify_driver(chromedriver_path: str) -> str | None:
    """Start headless Chrome through *chromedriver_path*.

    Returns the browser version Chrome reports, or ``None`` when the session
    cannot be started (usually a driver/browser version mismatch).
    """
    try:
        driver = build_chrome(chromedriver_path)
    except WebDriverException as e:
        print_warning(f"ChromeDriver could not start Chrome: {e.msg or e}")
        return None
    try:
        driver.get("about:blank")
        version = driver.capabilities.get("browserVersion")
    except WebDriverException as e:
        print_warning(f"Chrome session failed: {e.msg or e}")
        return None
    finally:
        driver.quit()
    print_status(f"ChromeDriver works with Chrome {version}")
    return version


def main():
    path = find_chromedriver_binary()
    if not path:
        print_warning("ChromeDriver not found. Run update_chromedriver.py first")
        return 1
    print_info(f"Checking {path}")
    return 0 if verify_driver(path) else 1


if __name__ == "__main__":
    sys.exit(main())

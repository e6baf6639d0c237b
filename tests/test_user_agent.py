import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from folio.user_agent import parse_user_agent

CHROME_WIN = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
EDGE_WIN = CHROME_WIN + " Edg/120.0"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
SAFARI_IPAD = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Version/17.0 Safari/604.1"
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
GOOGLEBOT = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


class TestUserAgent(unittest.TestCase):
    def test_chrome_on_windows(self) -> None:
        parsed = parse_user_agent(CHROME_WIN)
        self.assertEqual(parsed["browser"], "Chrome")
        self.assertEqual(parsed["os"], "Windows")
        self.assertEqual(parsed["device_type"], "Desktop")
        self.assertFalse(parsed["is_bot"])

    def test_edge_is_not_chrome(self) -> None:
        self.assertEqual(parse_user_agent(EDGE_WIN)["browser"], "Edge")

    def test_iphone_is_ios_mobile(self) -> None:
        parsed = parse_user_agent(SAFARI_IPHONE)
        self.assertEqual(parsed["browser"], "Safari")
        self.assertEqual(parsed["os"], "iOS")
        self.assertEqual(parsed["device_type"], "Mobile")

    def test_ipad_is_tablet(self) -> None:
        parsed = parse_user_agent(SAFARI_IPAD)
        self.assertEqual(parsed["os"], "iOS")
        self.assertEqual(parsed["device_type"], "Tablet")

    def test_firefox_on_linux(self) -> None:
        parsed = parse_user_agent(FIREFOX_LINUX)
        self.assertEqual(parsed["browser"], "Firefox")
        self.assertEqual(parsed["os"], "Linux")

    def test_bot_detection(self) -> None:
        self.assertTrue(parse_user_agent(GOOGLEBOT)["is_bot"])

    def test_missing_user_agent(self) -> None:
        self.assertEqual(
            parse_user_agent(None),
            {"browser": "Unknown", "os": "Unknown", "device_type": "Desktop", "is_bot": False},
        )


if __name__ == "__main__":
    unittest.main()

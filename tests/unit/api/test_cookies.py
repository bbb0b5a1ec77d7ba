from pathlib import Path
import time

from parcel_pulse.api.cookies import NetscapeCookieFile, StaticCookies


def _cookies_txt(path: Path, rows):
    lines = ["# Netscape HTTP Cookie File"]
    for domain, path_, name, value, expires in rows:
        include_sub = "TRUE" if domain.startswith(".") else "FALSE"
        lines.append("\t".join([domain, include_sub, path_, "TRUE", str(expires), name, value]))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def test_netscape_file_filters_domain_path_and_expiry(tmp_path: Path):
    future = int(time.time()) + 3600
    past = int(time.time()) - 3600
    f = tmp_path / "cookies.txt"
    _cookies_txt(f, [
        (".amazon.it", "/", "session-id", "123", future),
        ("www.amazon.it", "/", "ubid", "abc", future),
        (".amazon.it", "/", "old", "x", past),
        (".amazon.it", "/gp/cart", "cart", "y", future),
        (".amazon.de", "/", "other", "z", future),
    ])
    header = NetscapeCookieFile(f).cookie_header("www.amazon.it")
    parts = set(header.split("; "))
    assert parts == {"session-id=123", "ubid=abc"}


def test_netscape_file_reread_every_call(tmp_path: Path):
    future = int(time.time()) + 3600
    f = tmp_path / "cookies.txt"
    jar = NetscapeCookieFile(f)
    assert jar.cookie_header("www.amazon.it") == ""
    _cookies_txt(f, [(".amazon.it", "/", "session-id", "1", future)])
    assert jar.cookie_header("www.amazon.it") == "session-id=1"


def test_static_cookies():
    jar = StaticCookies({"www.amazon.it": {"a": "1"}})
    jar.set("www.amazon.it", "b", "2")
    assert jar.cookie_header("www.amazon.it") == "a=1; b=2"
    assert jar.cookie_header("www.amazon.de") == ""

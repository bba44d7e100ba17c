from __future__ import annotations

import json
from pathlib import Path

from ivs.config import SiteConfig
from ivs.controllers import HeaderController, link_matches
from ivs.dom import parse_html
from ivs.fetch import LocalFetcher
from ivs.language import LanguageSystem, TranslationRegistry
from ivs.page import SitePage, render_page
from ivs.preferences import JsonPreferenceStore

INDEX = """<!DOCTYPE html>
<html lang="vi">
<head><title data-lang-key="page_title">IVS</title></head>
<body>
  <div id="header-placeholder"></div>
  <h1 data-lang-key="hero_title">IVS</h1>
  <div id="footer-placeholder"></div>
  <div id="fab-container-placeholder"></div>
</body>
</html>
"""

HEADER = """<header id="ivs-main-header">
  <a class="nav-link" href="/" data-lang-key="nav_home">Trang chủ</a>
  <a class="nav-link" href="/about.html" data-lang-key="nav_about">Giới thiệu</a>
  <span id="current-lang-desktop">VI</span>
  <button data-lang="vi">VI</button>
  <button data-lang="en">EN</button>
  <nav id="ivs-mobile-main-nav">
    <button class="mobile-submenu-toggle" aria-expanded="false">+</button>
    <div class="mobile-submenu-content hidden">
      <a class="mobile-nav-link-sub" href="/about.html">About</a>
    </div>
  </nav>
</header>
"""

VI = {
    "page_title": "Trang chủ",
    "hero_title": "Học tập cùng IVS",
    "nav_home": "Trang chủ",
    "nav_about": "Giới thiệu",
    "footer_text": "Bảo lưu mọi quyền",
    "fab_call": "Gọi ngay",
}
EN = {
    "page_title": "Home",
    "hero_title": "Learn with IVS",
    "nav_home": "Home",
    "nav_about": "About",
    "footer_text": "All rights reserved",
}


def _write_site(root: Path, *, with_default: bool = True) -> Path:
    (root / "components").mkdir(parents=True)
    (root / "lang").mkdir()
    (root / "index.html").write_text(INDEX, encoding="utf-8")
    (root / "about.html").write_text(INDEX.replace("page_title", "about_title"), encoding="utf-8")
    (root / "components" / "header.html").write_text(HEADER, encoding="utf-8")
    (root / "components" / "footer.html").write_text(
        '<footer><p data-lang-key="footer_text">...</p></footer>', encoding="utf-8"
    )
    (root / "components" / "fab-container.html").write_text(
        '<div><a data-lang-key="fab_call">...</a></div>', encoding="utf-8"
    )
    if with_default:
        (root / "lang" / "vi.json").write_text(json.dumps(VI, ensure_ascii=False), encoding="utf-8")
    (root / "lang" / "en.json").write_text(json.dumps(EN), encoding="utf-8")
    return root


def test_render_page_in_browser_language(tmp_path: Path) -> None:
    site = _write_site(tmp_path / "site")
    fetcher = LocalFetcher(site)

    rendered = render_page(SiteConfig(root=site), fetcher, "/index.html", browser_language="en-US,en;q=0.9")

    document = parse_html(rendered.html)
    assert rendered.language == "en"
    assert document.html["lang"] == "en"
    assert document.h1.get_text() == "Learn with IVS"
    assert document.select_one("[data-lang-key=nav_home]").get_text() == "Home"
    assert document.select_one("footer p").get_text() == "All rights reserved"
    fab = document.select_one("[data-lang-key=fab_call]")
    assert fab.get_text() == "Gọi ngay"
    assert fab["data-lang-fallback"] == "true"
    assert document.select_one("#current-lang-desktop").get_text() == "EN"
    assert document.select_one('button[data-lang="en"]')["aria-pressed"] == "true"
    assert rendered.report is not None and rendered.report.fallbacks == ["fab_call"]
    assert all(result.status == "loaded" for result in rendered.components.values())


def test_tables_fetched_once_per_render(tmp_path: Path) -> None:
    site = _write_site(tmp_path / "site")
    fetcher = LocalFetcher(site)

    render_page(SiteConfig(root=site), fetcher, "/index.html", browser_language="en")

    assert fetcher.request_count("/lang/vi.json") == 1
    assert fetcher.request_count("/lang/en.json") == 1
    assert fetcher.request_count("/components/header.html") == 1


def test_requested_language_is_persisted(tmp_path: Path) -> None:
    site = _write_site(tmp_path / "site")
    prefs_path = tmp_path / "prefs.json"
    prefs = JsonPreferenceStore(prefs_path)

    rendered = render_page(
        SiteConfig(root=site),
        LocalFetcher(site),
        "/index.html",
        preferences=prefs,
        requested_language="en",
    )

    assert rendered.language == "en"
    assert rendered.change is not None and rendered.change.current == "en"
    assert json.loads(prefs_path.read_text(encoding="utf-8")) == {"userPreferredLanguage_v3": "en"}

    again = render_page(SiteConfig(root=site), LocalFetcher(site), "/index.html", preferences=prefs)
    assert again.language == "en"


def test_missing_default_table_renders_untranslated(tmp_path: Path) -> None:
    site = _write_site(tmp_path / "site", with_default=False)

    rendered = render_page(SiteConfig(root=site), LocalFetcher(site), "/index.html", browser_language="en")

    document = parse_html(rendered.html)
    assert rendered.report is None
    assert document.h1.get_text() == "IVS"
    assert document.select_one("[data-lang-key=nav_home]").get_text() == "Trang chủ"


def test_active_links_follow_current_path(tmp_path: Path) -> None:
    site = _write_site(tmp_path / "site")

    rendered = render_page(SiteConfig(root=site), LocalFetcher(site), "/about.html")

    document = parse_html(rendered.html)
    home = document.select_one('a.nav-link[href="/"]')
    about = document.select_one('a.nav-link[href="/about.html"]')
    assert "active" in about["class"]
    assert about["aria-current"] == "page"
    assert "active" not in home["class"]
    submenu = document.select_one(".mobile-submenu-content")
    assert "hidden" not in submenu["class"]
    assert document.select_one(".mobile-submenu-toggle")["aria-expanded"] == "true"


def test_components_callback_runs_once(tmp_path: Path) -> None:
    site = _write_site(tmp_path / "site")
    (site / "index.html").write_text(INDEX.replace('<div id="footer-placeholder"></div>', ""), encoding="utf-8")
    fetcher = LocalFetcher(site)
    seen = []

    page = SitePage(
        SiteConfig(root=site),
        fetcher,
        fetcher.fetch_text("/index.html"),
        on_components_loaded=seen.append,
    )
    page.build()

    assert len(seen) == 1
    assert seen[0]["Footer"].status == "skipped"
    assert fetcher.request_count("/components/footer.html") == 0


def test_header_controller_without_header_is_inert(tmp_path: Path) -> None:
    site = _write_site(tmp_path / "site")
    document = parse_html("<html><body><p>No header</p></body></html>")
    registry = TranslationRegistry()
    registry.mount("page", document)
    language = LanguageSystem(LocalFetcher(site), registry=registry)

    assert HeaderController(document, "/").attach(language) is False


def test_link_matching_rules() -> None:
    assert link_matches("/", "/")
    assert not link_matches("/", "/about.html")
    assert link_matches("/courses/", "/courses/english.html")
    assert link_matches("about.html", "/about.html")
    assert not link_matches(None, "/")

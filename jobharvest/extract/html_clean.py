from __future__ import annotations

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from jobharvest.utils.text import normalize_whitespace

ALLOWED_TAGS = {"p", "ul", "ol", "li", "h1", "h2", "h3", "h4", "h5", "h6", "strong", "b", "em", "i", "br"}
DROPPED_TAGS = {"script", "style", "noscript", "template", "iframe", "svg", "button", "form", "input", "select"}


def _as_soup(fragment: str | Tag) -> BeautifulSoup:
    if isinstance(fragment, Tag):
        return BeautifulSoup(str(fragment), "html.parser")
    return BeautifulSoup(fragment or "", "html.parser")


def clean_description_html(fragment: str | Tag | list[Tag] | None) -> str | None:
    """Reduce markup to a small set of text tags.

    Allowed tags keep their children but lose every attribute; any other
    element is unwrapped so only its contents survive.
    """
    if fragment is None:
        return None
    if isinstance(fragment, list):
        parts = [clean_description_html(item) for item in fragment]
        joined = "".join(part for part in parts if part)
        return joined or None

    soup = _as_soup(fragment)
    for node in soup.find_all(string=lambda text: isinstance(text, Comment)):
        node.extract()
    for tag in soup.find_all(DROPPED_TAGS):
        if not tag.decomposed:
            tag.decompose()
    for tag in soup.find_all(True):
        if tag.name in ALLOWED_TAGS:
            tag.attrs = {}
        else:
            tag.unwrap()
    for tag in reversed(soup.find_all(True)):
        if tag.name != "br" and not tag.get_text(strip=True):
            tag.decompose()

    html = normalize_whitespace(str(soup))
    return html or None


def html_to_text(html: str | None) -> str | None:
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(DROPPED_TAGS):
        if not tag.decomposed:
            tag.decompose()
    text = normalize_whitespace(soup.get_text(" "))
    return text or None


def text_to_html(text: str | None) -> str | None:
    """Wrap plain text in a paragraph so it can stand in as description HTML."""
    value = normalize_whitespace(text or "")
    if not value:
        return None
    paragraph = BeautifulSoup("", "html.parser").new_tag("p")
    paragraph.append(NavigableString(value))
    return str(paragraph)

"""
Queryable markup documents.

A thin capability layer over BeautifulSoup: documents and elements are
queried with CSS selectors, element queries are relative to the element,
and values are read as text, inner HTML or attributes.
"""

from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag
from soupsieve import SelectorSyntaxError

from harvest.exceptions import SelectorError


def _select(node: Tag, selector: str) -> List["MarkupElement"]:
    try:
        return [MarkupElement(tag) for tag in node.select(selector)]
    except SelectorSyntaxError as e:
        raise SelectorError(selector, str(e).splitlines()[0]) from e


class MarkupElement:
    """One element of a parsed document."""

    def __init__(self, tag: Tag):
        self._tag = tag

    @property
    def name(self) -> str:
        return self._tag.name

    def query(self, selector: str) -> List["MarkupElement"]:
        """Descendants of this element matching a CSS selector."""
        return _select(self._tag, selector)

    def text(self) -> str:
        """Text content with runs of whitespace collapsed."""
        return " ".join(self._tag.get_text().split())

    def html(self) -> str:
        """Inner HTML."""
        return self._tag.decode_contents()

    def attr(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if isinstance(value, list):
            # Multi-valued attributes such as class
            return " ".join(value)
        return value


class MarkupDocument:
    """A parsed HTML document."""

    def __init__(self, soup: BeautifulSoup):
        self._soup = soup

    def query(self, selector: str) -> List[MarkupElement]:
        """All elements matching a CSS selector."""
        return _select(self._soup, selector)

    @property
    def title(self) -> str:
        return self._soup.title.get_text(strip=True) if self._soup.title else ""


def parse_document(html: str) -> MarkupDocument:
    """Parse an HTML string into a queryable document."""
    return MarkupDocument(BeautifulSoup(html or "", "html.parser"))

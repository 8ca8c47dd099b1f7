"""HTML to readable text for ``dump``."""

import re

from bs4 import BeautifulSoup

_DROPPED_TAGS = ("script", "style", "noscript", "template", "svg")
_BLANK_LINES = re.compile(r"\n{3,}")


def html_to_text(html: str) -> str:
    """
    Convert page HTML into plain text.

    Scripts and styles are dropped, links keep their target as
    ``text (href)``, and runs of blank lines are collapsed.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_DROPPED_TAGS):
        tag.decompose()

    for link in soup.find_all("a", href=True):
        label = link.get_text(" ", strip=True)
        href = link["href"]
        if label and not href.startswith(("#", "javascript:")):
            link.replace_with(f"{label} ({href})")

    text = soup.get_text("\n", strip=True)
    return _BLANK_LINES.sub("\n\n", text)

"""Markdown to themed HTML conversion with Mermaid placeholders and link footnotes."""

from __future__ import annotations

import html
from typing import Protocol

from bs4 import BeautifulSoup
from markdown_it import MarkdownIt

from .config import DIAGRAM_CLASS, DIAGRAM_LANGUAGE, MERMAID_SCRIPT_URL

FALLBACK_CSS = """
.mdpaste-content { font-size: 16px; line-height: 1.75; color: #333; word-wrap: break-word; }
.mdpaste-content img { max-width: 100%; height: auto; }
.mdpaste-content pre { overflow-x: auto; padding: 12px; background: #f6f8fa; border-radius: 4px; }
.mdpaste-content .footnote-ref { font-size: 0.75em; vertical-align: super; color: #576b95; }
.mdpaste-content .footnotes { margin-top: 2em; font-size: 0.85em; color: #888; }
"""

DOCUMENT_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<style>
{css}
</style>
{scripts}
</head>
<body>
<div class="mdpaste-content">
{body}
</div>
</body>
</html>"""

MERMAID_BOOTSTRAP = """<script src="{src}"></script>
<script>
if (window.mermaid) {{
  window.mermaid.initialize({{ startOnLoad: true, securityLevel: "loose" }});
}}
</script>"""


class MarkdownConverter(Protocol):
    def convert(self, markdown: str, theme_css: str) -> str: ...


def links_to_footnotes(fragment: str) -> str:
    """Replace each hyperlink with its text plus a numbered footnote listing the URL."""
    soup = BeautifulSoup(fragment, "html.parser")
    urls = []
    for link in soup.find_all("a", href=True):
        href = link["href"]
        if href.startswith("#"):
            continue
        urls.append(href)
        marker = soup.new_tag("span", attrs={"class": "footnote-ref"})
        marker.string = str(len(urls))
        link.insert_after(marker)
        link.insert_after(" ")
        link.unwrap()
    if not urls:
        return fragment

    footnotes = soup.new_tag("div", attrs={"class": "footnotes"})
    items = soup.new_tag("ol")
    for url in urls:
        item = soup.new_tag("li")
        url_span = soup.new_tag("span", attrs={"class": "footnote-url"})
        url_span.string = url
        item.append(url_span)
        items.append(item)
    footnotes.append(items)
    soup.append(footnotes)
    return soup.decode()


class MarkdownItConverter:
    """CommonMark converter that turns diagram fences into renderable placeholders."""

    def __init__(self, mermaid_script: str = MERMAID_SCRIPT_URL, footnote_links: bool = True) -> None:
        self.mermaid_script = mermaid_script
        self.footnote_links = footnote_links
        self._md = MarkdownIt("commonmark", {"html": True}).enable("table").enable("strikethrough")
        default_fence = self._md.renderer.rules["fence"]

        def diagram_fence(tokens, idx, options, env):
            token = tokens[idx]
            info = token.info.strip().split(maxsplit=1)[0].lower() if token.info else ""
            if info != DIAGRAM_LANGUAGE:
                return default_fence(tokens, idx, options, env)
            env["diagram_count"] = env.get("diagram_count", 0) + 1
            return f'<div class="{DIAGRAM_CLASS}">{html.escape(token.content)}</div>\n'

        self._md.renderer.rules["fence"] = diagram_fence

    def render_fragment(self, markdown: str) -> tuple:
        """Return the body HTML and the number of diagram placeholders in it."""
        env: dict = {}
        body = self._md.render(markdown, env)
        if self.footnote_links:
            body = links_to_footnotes(body)
        return body, env.get("diagram_count", 0)

    def convert(self, markdown: str, theme_css: str) -> str:
        body, diagram_count = self.render_fragment(markdown)
        scripts = MERMAID_BOOTSTRAP.format(src=self.mermaid_script) if diagram_count else ""
        css = FALLBACK_CSS.strip() + "\n" + (theme_css or "")
        return DOCUMENT_TEMPLATE.format(css=css, scripts=scripts, body=body)

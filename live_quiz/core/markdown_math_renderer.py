"""Markdown rendering for question text pushed to student browsers.

Math is left as ``$...$`` / ``$$...$$`` in the output and typeset by MathJax
on the student page.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from markdown_it import MarkdownIt

MATHJAX_SCRIPT_URL = "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math question text into HTML fragments."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        """Render question text into a block-level HTML fragment."""
        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return "<p><em>No question text.</em></p>"
        return self._markdown.render(sanitized)

    def render_inline(self, markdown_text: str) -> str:
        """Render a short label (an option or an ordering item) without a wrapping paragraph."""
        return self._markdown.renderInline((markdown_text or "").strip())


# MarkdownIt is safe to share for read-only renders across request threads.
renderer = MarkdownMathRenderer()

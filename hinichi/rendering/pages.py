"""HTML page rendering with Jinja2."""

from typing import List, Optional, Sequence

from jinja2 import Environment, PackageLoader, select_autoescape

from ..models import AISummaryResult, Category, ListingEntry, OutputFormat

env = Environment(
    loader=PackageLoader("hinichi", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)

SUMMARY_OPTIONS = [
    ("", "なし"),
    ("ai", "要約付き"),
    ("aiOnly", "要約のみ"),
]


def build_copy_text(summary: AISummaryResult) -> str:
    """Plain-text version of the summary for the copy button."""
    lines = [summary.overview, ""]
    for article in summary.articles:
        lines.append(f"- {article.title}: {article.summary}")
        lines.append(f"  {article.url}")
    return "\n".join(lines)


def render_html_page(
    entries: Sequence[ListingEntry],
    category: Category,
    date_str: str,
    *,
    current_format: str = OutputFormat.HTML.value,
    current_date: str,
    current_summary: Optional[str] = None,
    summary: Optional[AISummaryResult] = None,
) -> str:
    template = env.get_template("page.html")
    return template.render(
        title=f"はてなブックマーク - {category.label} - {date_str}",
        entries=entries,
        category=category,
        categories=list(Category),
        date_str=date_str,
        formats=[f.value for f in OutputFormat],
        summary_options=SUMMARY_OPTIONS,
        current_format=current_format,
        current_summary=current_summary or "",
        current_date=current_date,
        summary=summary,
        copy_text=build_copy_text(summary) if summary else "",
    )


def render_error_page(
    message: str,
    date_str: str,
    category: Category,
    details: Optional[List[str]] = None,
    link_href: Optional[str] = None,
    link_label: Optional[str] = None,
) -> str:
    template = env.get_template("error.html")
    return template.render(
        message=message,
        date_str=date_str,
        category=category,
        details=details or [],
        link_href=link_href or f"/{category.value}?format=html",
        link_label=link_label or "最新のエントリーを見る",
    )

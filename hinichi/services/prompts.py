"""
Prompts for the daily summary.

Kept in one place so the wording can be versioned independently of the
request code.
"""

from typing import Sequence

from ..models import ArticleContent

MAX_PROMPT_ARTICLES = 20
BODY_EXCERPT_LENGTH = 500


class SummaryPrompts:
    """Prompt builders for the AI overview."""

    @staticmethod
    def format_article(index: int, article: ArticleContent) -> str:
        entry = article.entry
        return (
            f"### {index}. {entry.title} ({entry.users} users)\n"
            f"URL: {entry.url}\n"
            f"本文: {article.body_text[:BODY_EXCERPT_LENGTH]}"
        )

    @staticmethod
    def daily_summary(articles: Sequence[ArticleContent], date_str: str) -> str:
        article_texts = "\n\n".join(
            SummaryPrompts.format_article(i + 1, article)
            for i, article in enumerate(articles[:MAX_PROMPT_ARTICLES])
        )

        return f"""今日は{date_str}です。以下ははてなブックマークの人気エントリー一覧とその本文抜粋です。

{article_texts}

上記の記事群について:
- overviewは全記事を俯瞰した日本語の概要（3-5文）。共通するテーマがあればまとめ、なければジャンルごとに簡潔に紹介する。これらは単にその日の人気記事であり、必ずしも一つのトレンドを示すものではないため、「○月のトレンドは〜」のような断定的なフレーミングは避けること
- articlesは全記事分生成すること
- summaryは記事の本文内容に基づく具体的な要約（タイトルの繰り返しではなく、1-2文）"""

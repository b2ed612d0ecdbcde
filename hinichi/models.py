"""Data structures shared across the pipeline."""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field


class Category(str, Enum):
    """Hotentry categories."""
    ALL = "all"
    GENERAL = "general"
    SOCIAL = "social"
    ECONOMICS = "economics"
    LIFE = "life"
    KNOWLEDGE = "knowledge"
    IT = "it"
    FUN = "fun"
    ENTERTAINMENT = "entertainment"
    GAME = "game"

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]


CATEGORY_LABELS = {
    Category.ALL: "総合",
    Category.GENERAL: "一般",
    Category.SOCIAL: "世の中",
    Category.ECONOMICS: "政治と経済",
    Category.LIFE: "暮らし",
    Category.KNOWLEDGE: "学び",
    Category.IT: "テクノロジー",
    Category.FUN: "おもしろ",
    Category.ENTERTAINMENT: "エンタメ",
    Category.GAME: "アニメとゲーム",
}


class OutputFormat(str, Enum):
    """Response formats."""
    RSS = "rss"
    ATOM = "atom"
    JSON = "json"
    HTML = "html"


class SummaryMode(str, Enum):
    """Summary query modes."""
    AI = "ai"
    AI_ONLY = "aiOnly"


@dataclass
class ListingEntry:
    """One entry of a hotentry listing page."""
    title: str
    url: str
    description: str = ""
    users: int = 0
    domain: str = ""
    category: str = ""
    date: str = ""
    tags: List[str] = field(default_factory=list)
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "description": self.description,
            "users": self.users,
            "domain": self.domain,
            "category": self.category,
            "date": self.date,
            "tags": list(self.tags),
            "imageUrl": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListingEntry":
        """Rebuild a cached entry; raises ValueError when the record is malformed."""
        if not isinstance(data, dict):
            raise ValueError(f"entry record must be an object, got {type(data).__name__}")
        title = data.get("title")
        url = data.get("url")
        if not isinstance(title, str) or not title or not isinstance(url, str) or not url:
            raise ValueError("entry record needs a non-empty title and url")
        users = data.get("users", 0)
        if isinstance(users, bool) or not isinstance(users, int):
            raise ValueError(f"users must be an integer, got {users!r}")
        tags = data.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags):
            raise ValueError("tags must be a list of strings")
        image_url = data.get("imageUrl")
        if image_url is not None and not isinstance(image_url, str):
            raise ValueError("imageUrl must be a string")
        text_fields = {}
        for name in ("description", "domain", "category", "date"):
            value = data.get(name) or ""
            if not isinstance(value, str):
                raise ValueError(f"{name} must be a string")
            text_fields[name] = value
        return cls(title=title, url=url, users=users, tags=list(tags), image_url=image_url, **text_fields)


@dataclass
class ArticleContent:
    """Listing entry paired with its fetched body text."""
    entry: ListingEntry
    body_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"entry": self.entry.to_dict(), "bodyText": self.body_text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArticleContent":
        if not isinstance(data, dict):
            raise ValueError(f"article record must be an object, got {type(data).__name__}")
        body_text = data.get("bodyText") or ""
        if not isinstance(body_text, str):
            raise ValueError("bodyText must be a string")
        return cls(entry=ListingEntry.from_dict(data.get("entry")), body_text=body_text)


class ArticleSummary(BaseModel):
    title: str = Field(description="記事タイトル")
    url: str = Field(description="記事URL")
    summary: str = Field(description="記事の本文内容に基づく具体的な要約（1-2文）")


class AISummaryResult(BaseModel):
    """Structured summary returned by the model and stored in the ai-summary tier."""
    overview: str = Field(
        description=(
            "全記事を俯瞰した日本語の概要（3-5文。共通するテーマがあればまとめ、"
            "なければジャンルごとに簡潔に紹介する。「○月のトレンド」のような断定的なフレーミングは避ける）"
        )
    )
    articles: List[ArticleSummary]


@dataclass
class RenderedResponse:
    """Status, headers and text body of an HTTP response."""
    body: str
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.headers = {name.lower(): value for name, value in self.headers.items()}

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    def json(self) -> Any:
        return json.loads(self.body)

    def with_header(self, name: str, value: str) -> "RenderedResponse":
        headers = dict(self.headers)
        headers[name.lower()] = value
        return RenderedResponse(body=self.body, status=self.status, headers=headers)

    def without_headers(self, names: Iterable[str]) -> "RenderedResponse":
        drop = {name.lower() for name in names}
        return RenderedResponse(
            body=self.body,
            status=self.status,
            headers={name: value for name, value in self.headers.items() if name not in drop},
        )

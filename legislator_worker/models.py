"""Data models for the legislator site worker."""

from dataclasses import asdict, dataclass, field
from datetime import datetime

# Activity types; also used as card icon keys
PROPOSE = "propose"
COSIGN = "cosign"
MEET = "meet"

ICON_NEWSPAPER = "newspaper"
ICON_BLOG = "blog"
ICON_TRANSPAL = "transpal"
CARD_ICONS = frozenset({ICON_NEWSPAPER, PROPOSE, COSIGN, MEET, ICON_BLOG, ICON_TRANSPAL})

LANG_ZH = "zh-TW"
LANG_EN = "en"
LANGUAGES = (LANG_ZH, LANG_EN)


@dataclass
class FeedItem:
    """Represents a single RSS feed item."""

    id: str
    title: str
    link: str
    description: str = ""
    pub_date: str | None = None
    category: str | None = None
    author: str | None = None


@dataclass
class ActivityItem:
    """A normalized legislative action (bill proposal, co-sign or meeting)."""

    id: str
    type: str
    title: str
    date: datetime | None = None
    url: str | None = None
    details: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize for the JSON API; empty details are omitted."""
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "date": self.date.isoformat().replace("+00:00", "Z") if self.date else None,
            "url": self.url,
            "details": {key: value for key, value in self.details.items() if value},
        }


@dataclass
class CardItem:
    """Source-agnostic teaser for a homepage feed section."""

    title: str
    href: str
    icon: str
    description: str = ""
    date: str = ""

    def __post_init__(self):
        if self.icon not in CARD_ICONS:
            raise ValueError(f"Unsupported card icon: {self.icon}")


@dataclass
class NewsItem:
    """One article returned by the news search API."""

    url: str
    title: str = ""
    title_en: str = ""
    summary: str = ""
    summary_en: str = ""
    source: str = ""
    time: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "NewsItem":
        def text(key: str) -> str:
            value = data.get(key)
            return value if isinstance(value, str) else ""

        return cls(
            url=text("url"),
            title=text("title"),
            title_en=text("title_en"),
            summary=text("summary"),
            summary_en=text("summary_en"),
            source=text("source"),
            time=text("time"),
        )

    def display_title(self, lang: str = LANG_ZH) -> str:
        if lang == LANG_EN:
            return self.title_en or self.title
        return self.title or self.title_en


@dataclass
class NewsPage:
    """A page of news search results."""

    items: list[NewsItem]
    total_pages: int | None = None


@dataclass
class PaginationMeta:
    """Pagination metadata for a merged, sliced result."""

    page: int
    page_size: int
    total_items: int
    total_pages: int

    def to_dict(self) -> dict:
        return {
            "page": self.page,
            "pageSize": self.page_size,
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
        }


@dataclass
class IndexCards:
    """Homepage card payload with one error flag per fetched source."""

    newsCards: list[CardItem] = field(default_factory=list)
    newsFetchError: bool = False
    blogCards: list[CardItem] = field(default_factory=list)
    blogFetchError: bool = False
    transpalCards: list[CardItem] = field(default_factory=list)
    transpalFetchError: bool = False
    legislatorCards: list[CardItem] = field(default_factory=list)
    legislatorFetchError: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

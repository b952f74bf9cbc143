"""
News Feed Fetcher

Fetches candidate articles from a fixed, ordered list of RSS/Atom feeds,
cleans their bodies and keeps only entries with enough text to embed.
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import feedparser
import requests
from bs4 import BeautifulSoup

from ..exceptions import FetchError
from ..models import Article

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedSource:
    """A named feed URL."""
    name: str
    url: str


DEFAULT_FEEDS = (
    FeedSource(
        name='Reuters',
        url='https://www.reuters.com/arc/outboundfeeds/news-sitemap-index/?outputType=xml',
    ),
    FeedSource(
        name='BBC World',
        url='https://feeds.bbci.co.uk/news/world/rss.xml',
    ),
    FeedSource(
        name='NY Times World',
        url='https://rss.nytimes.com/services/xml/rss/nyt/World.xml',
    ),
)

_WHITESPACE_RE = re.compile(r'\s+')


def clean_content(content: Optional[str]) -> str:
    """
    Strip markup tags, collapse whitespace and trim.

    Args:
        content: Raw entry body, possibly HTML

    Returns:
        Cleaned plain text ('' for missing input)
    """
    if not content:
        return ""

    text = BeautifulSoup(content, 'html.parser').get_text()
    return _WHITESPACE_RE.sub(' ', text).strip()


class NewsFetcher:
    """
    Collects articles across feed sources in order until a limit is reached.

    A source that fails (network error, malformed feed) is logged and
    skipped; the remaining sources are still fetched.
    """

    def __init__(
        self,
        feeds: Optional[Sequence[FeedSource]] = None,
        min_content_length: int = 100,
        timeout: int = 30,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the fetcher.

        Args:
            feeds: Ordered feed sources (default: Reuters, BBC World, NY Times World)
            min_content_length: Articles must have strictly more cleaned characters than this
            timeout: HTTP timeout per feed in seconds
            user_agent: User-Agent header sent with feed requests
            session: Optional requests session (a new one is created otherwise)
        """
        self.feeds = list(feeds) if feeds is not None else list(DEFAULT_FEEDS)
        self.min_content_length = min_content_length
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': user_agent or 'news-rag/0.1 (RSS reader)'
        })

        logger.info(f"Configured {len(self.feeds)} news sources")

    def fetch_articles(self, limit: int = 50) -> List[Article]:
        """
        Fetch up to `limit` cleaned articles across all sources.

        Args:
            limit: Maximum number of articles to return (positive)

        Returns:
            Articles in source-list order, possibly fewer than `limit`

        Raises:
            ValueError: If limit is not positive
        """
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")

        logger.info(f"Fetching news articles (target: {limit})")
        articles: List[Article] = []

        for feed in self.feeds:
            if len(articles) >= limit:
                logger.info("Reached article limit, stopping fetch")
                break

            try:
                entries = self._fetch_entries(feed)
            except FetchError as e:
                logger.error(f"✗ Error fetching from {feed.name}: {e}")
                continue

            logger.info(f"✓ Retrieved {len(entries)} items from {feed.name}")

            for entry in entries:
                if len(articles) >= limit:
                    break

                article = self._build_article(entry, feed)
                if len(article.content) > self.min_content_length:
                    articles.append(article)
                    logger.debug(f"Added article: {article.title[:50]}")
                else:
                    logger.debug(f"Skipped article (content too short): {article.title[:50]}")

        logger.info(f"✓ Fetched {len(articles)} articles total")
        return articles

    def _fetch_entries(self, feed: FeedSource) -> list:
        """
        Download and parse a single feed.

        Raises:
            FetchError: If the feed cannot be downloaded or parsed
        """
        logger.debug(f"Fetching {feed.name} from {feed.url}")

        try:
            response = self.session.get(feed.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise FetchError(f"{feed.name} unreachable: {e}") from e

        parsed = feedparser.parse(response.content)

        # feedparser is lenient: only treat the feed as broken if nothing parsed
        if parsed.get('bozo') and not parsed.get('entries'):
            reason = parsed.get('bozo_exception', 'unknown parse error')
            raise FetchError(f"{feed.name} returned a malformed feed: {reason}")

        return list(parsed.get('entries', []))

    def _build_article(self, entry, feed: FeedSource) -> Article:
        """Build a cleaned Article from a parsed feed entry."""
        return Article(
            title=(entry.get('title') or '').strip(),
            content=clean_content(self._extract_body(entry)),
            source=feed.name,
            published_at=entry.get('published') or entry.get('updated'),
            url=entry.get('link') or '',
        )

    @staticmethod
    def _extract_body(entry) -> Optional[str]:
        """Best available body text: content, else description, else summary."""
        content = entry.get('content')
        if content:
            first = content[0]
            value = first.get('value') if hasattr(first, 'get') else first
            if value:
                return value

        return entry.get('description') or entry.get('summary')

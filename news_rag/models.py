"""
Data model for articles, indexed points and generated answers.
"""

from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional, Any


EmbeddingVector = List[float]


@dataclass(frozen=True)
class Article:
    """A cleaned news article produced by the feed fetcher."""
    title: str
    content: str
    source: str
    published_at: Optional[str]
    url: str

    def to_payload(self) -> Dict[str, Any]:
        """Payload stored alongside the article's vector in the index."""
        return {
            'content': self.content,
            'source': self.source,
            'title': self.title,
            'date': self.published_at,
            'url': self.url,
        }


@dataclass
class IndexedPoint:
    """A single (id, vector, payload) point written to the vector index."""
    id: int
    vector: EmbeddingVector
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchHit:
    """A point returned by a similarity search, with its score (higher = closer)."""
    id: int
    score: float
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RetrievedArticle:
    """Search-result projection of an indexed article."""
    title: str
    source: str
    content: str
    date: Optional[str]
    url: str
    score: float

    @classmethod
    def from_hit(cls, hit: SearchHit) -> 'RetrievedArticle':
        payload = hit.payload
        return cls(
            title=payload.get('title', 'Unknown'),
            source=payload.get('source', 'Unknown'),
            content=payload.get('content', ''),
            date=payload.get('date'),
            url=payload.get('url', ''),
            score=float(hit.score),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class GeneratedAnswer:
    """Generated answer text plus the articles it was conditioned on."""
    text: str
    cited_articles: List[RetrievedArticle] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'response': self.text,
            'articles': [article.to_dict() for article in self.cited_articles],
        }

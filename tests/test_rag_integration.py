"""
Integration Tests for the RAG Chat Backend

Feed XML -> NewsFetcher -> pipeline -> FAISS -> ChatHandler, with only
the network and the models replaced.
"""

import shutil
import tempfile

import pytest
import requests
from unittest.mock import Mock

from conftest import DIMENSION, EchoGenerationClient, HashingEmbedder
from news_rag.ingestion.feed_fetcher import FeedSource, NewsFetcher
from news_rag.main_pipeline import RAGPipeline
from news_rag.query.broadcast import InMemoryBroadcaster
from news_rag.query.handler import ChatHandler
from news_rag.storage.vector_store import FaissIndexClient


WORLD_FEED = FeedSource(name="World Desk", url="https://world.example.com/rss")
DOWN_FEED = FeedSource(name="Down Desk", url="https://down.example.com/rss")

STORIES = {
    "Floods hit coastal towns": "Heavy rain caused floods across coastal towns, "
                                "forcing evacuations and closing roads for days. " * 2,
    "Central bank raises rates": "The central bank raised interest rates again to "
                                 "fight inflation, surprising many market analysts. " * 2,
    "Election results announced": "Officials announced the election results after a "
                                  "long count, with turnout reaching a record high. " * 2,
}


def feed_xml() -> bytes:
    items = ''.join(
        f"<item><title>{title}</title><link>https://world.example.com/{i}</link>"
        f"<description><![CDATA[<p>{body}</p>]]></description></item>"
        for i, (title, body) in enumerate(STORIES.items())
    )
    teaser = "<item><title>Teaser</title><description>Too short.</description></item>"
    return (
        '<?xml version="1.0"?><rss version="2.0"><channel><title>World</title>'
        + items + teaser + '</channel></rss>'
    ).encode('utf-8')


def make_session() -> Mock:
    session = Mock()
    session.headers = {}

    def get(url, timeout=None):
        if url == DOWN_FEED.url:
            raise requests.exceptions.Timeout("timed out")
        response = Mock()
        response.content = feed_xml()
        return response

    session.get.side_effect = get
    return session


@pytest.fixture
def temp_dir():
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir)


@pytest.fixture
def pipeline(temp_dir):
    return RAGPipeline(
        fetcher=NewsFetcher(feeds=[DOWN_FEED, WORLD_FEED], session=make_session()),
        embedder=HashingEmbedder(),
        index_client=FaissIndexClient(persist_dir=temp_dir),
        generation_client=EchoGenerationClient("Rates went up."),
        dimension=DIMENSION,
        persist=True
    )


class TestRAGIntegration:
    """Test the complete chat flow over freshly fetched feeds."""

    def test_ingests_only_usable_entries(self, pipeline):
        count = pipeline.initialize()

        assert count == 3
        assert pipeline.get_stats()['total_articles'] == 3

    def test_chat_turn_end_to_end(self, pipeline):
        pipeline.initialize()
        events = []
        broadcaster = InMemoryBroadcaster()
        broadcaster.subscribe(lambda event, payload: events.append(payload))
        handler = ChatHandler(pipeline, broadcaster=broadcaster)
        session_id = handler.create_session()

        result = handler.process_message(session_id, "Why did the central bank raise interest rates?")

        assert result['response'] == "Rates went up."
        assert result['articles'][0]['title'] == "Central bank raises rates"
        assert result['articles'][0]['source'] == "World Desk"
        assert result['articles'][0]['url'] == "https://world.example.com/1"
        assert len(result['articles']) == 3
        assert events[0]['session_id'] == session_id
        assert len(handler.get_session_history(session_id)) == 2

        prompt = pipeline.generation_client.prompts[0]
        assert 'Article from World Desk titled "Central bank raises rates":' in prompt

    def test_saved_index_serves_a_new_process(self, pipeline, temp_dir):
        pipeline.initialize()

        restarted = RAGPipeline(
            fetcher=NewsFetcher(feeds=[], session=make_session()),
            embedder=HashingEmbedder(),
            index_client=FaissIndexClient(persist_dir=temp_dir),
            generation_client=EchoGenerationClient(),
            dimension=DIMENSION,
            persist=True
        )

        assert restarted.restore() is True
        answer = restarted.answer_query("floods and evacuations on the coast")
        assert answer.cited_articles[0].title == "Floods hit coastal towns"

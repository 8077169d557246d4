import asyncio

import pytest

from newsreel.collectors import CollectionConfig, NewsdataCollector, TextUtils
from newsreel.shared.types.errors import ArticleSourceError, ConfigurationError


def entry(article_id, image=True, **overrides):
    data = {
        'article_id': article_id,
        'title': f"Title {article_id}",
        'description': f"<p>Body of <b>{article_id}</b></p>",
        'image_url': f"https://img.example.com/{article_id}.jpg" if image else None,
        'link': f"https://news.example.com/{article_id}",
    }
    data.update(overrides)
    return data


class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self._payload = payload

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, pages):
        self.pages = list(pages)
        self.requests = []
        self.closed = False

    def get(self, url, params=None):
        self.requests.append((url, dict(params or {})))
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        status, payload = page
        return FakeResponse(status, payload)

    async def close(self):
        self.closed = True


def test_missing_api_key_fails_before_any_request():
    with pytest.raises(ConfigurationError, match="NEWSDATA_API_KEY"):
        NewsdataCollector("")


async def test_paginates_until_no_next_page():
    session = FakeSession([
        (200, {'status': 'success', 'results': [entry('a'), entry('b')], 'nextPage': 'p2'}),
        (200, {'status': 'success', 'results': [entry('c')], 'nextPage': None}),
    ])
    collector = NewsdataCollector("key", session=session)

    result = await collector.collect()

    assert [a.id for a in result.articles] == ['a', 'b', 'c']
    assert result.stats.pages == 2
    assert result.stats.total_fetched == 3
    assert 'page' not in session.requests[0][1]
    assert session.requests[1][1]['page'] == 'p2'
    assert session.closed is False


async def test_request_parameters():
    session = FakeSession([(200, {'status': 'success', 'results': [], 'nextPage': None})])
    await NewsdataCollector("secret", session=session).collect()

    url, params = session.requests[0]
    assert url == "https://newsdata.io/api/1/latest"
    assert params == {'apikey': 'secret', 'country': 'BD', 'language': 'en', 'q': 'Bangladesh',
                      'prioritydomain': 'top', 'image': '1', 'size': '10'}


async def test_stops_at_page_cap():
    pages = [(200, {'status': 'success', 'results': [entry(f"x{i}")], 'nextPage': f"p{i + 1}"})
             for i in range(5)]
    session = FakeSession(pages)
    result = await NewsdataCollector("key", CollectionConfig(max_pages=3), session=session).collect()

    assert result.stats.pages == 3
    assert len(session.requests) == 3


async def test_filters_dedupes_and_truncates():
    results = [entry('a'), entry('a', title="Duplicate"), entry('b', image=False),
               entry('c', title=''), entry('d', image_url='not-a-url')] + [entry(f"n{i}") for i in range(5)]
    session = FakeSession([(200, {'status': 'success', 'results': results, 'nextPage': None})])
    collector = NewsdataCollector("key", CollectionConfig(max_articles=4), session=session)

    result = await collector.collect()

    assert [a.id for a in result.articles] == ['a', 'n0', 'n1', 'n2']
    assert result.articles[0].title == "Title a"
    assert result.articles[0].description == "Body of a"
    assert result.stats.duplicates == 1
    assert result.stats.with_images == 7


async def test_non_200_status_raises():
    session = FakeSession([(401, {'status': 'error'})])
    with pytest.raises(ArticleSourceError, match=r"status 401"):
        await NewsdataCollector("key", session=session).collect()


async def test_error_payload_raises_with_message():
    session = FakeSession([(200, {'status': 'error', 'results': {'message': 'quota exceeded'}})])
    with pytest.raises(ArticleSourceError, match="quota exceeded"):
        await NewsdataCollector("key", session=session).collect()


async def test_timeout_raises_article_source_error():
    session = FakeSession([asyncio.TimeoutError()])
    with pytest.raises(ArticleSourceError, match="timed out"):
        await NewsdataCollector("key", session=session).collect()


def test_clean_html_truncates_on_word_boundary():
    text = TextUtils.clean_html("<div>one two   three four</div>", max_length=12)
    assert text == "one two..."
    assert TextUtils.clean_html("") == ""

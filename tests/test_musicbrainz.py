import pytest
import responses as rsps

from showscrape.errors import EnrichmentFailure
from showscrape.musicbrainz import SEARCH_URL, ArtistLookup, extract_genres

USER_AGENT = "showscrape-tests/0.1 (ops@example.com)"

KHRUANGBIN = {
    "artists": [{
        "id": "a1b2",
        "name": "Khruangbin",
        "disambiguation": "Houston trio",
        "genres": [{"name": "psychedelic rock", "count": 4}],
        "tags": [{"name": "Psychedelic Rock", "count": 2}, {"name": "funk", "count": 1}],
    }]
}


@pytest.fixture
def lookup(store):
    return ArtistLookup(store, USER_AGENT)


def test_extract_genres():
    assert extract_genres(KHRUANGBIN["artists"][0]) == ["psychedelic rock", "funk"]
    assert extract_genres({}) == []


@rsps.activate
def test_lookup_is_cached(lookup):
    rsps.add(rsps.GET, SEARCH_URL, json=KHRUANGBIN)

    first = lookup.lookup("Khruangbin")
    second = lookup.lookup("  khruangbin ")

    assert first == second
    assert first["genres"] == ["psychedelic rock", "funk"]
    assert len(rsps.calls) == 1
    request = rsps.calls[0].request
    assert request.headers["User-Agent"] == USER_AGENT
    assert "fmt=json" in request.url


@rsps.activate
def test_negative_lookup_is_cached(lookup):
    rsps.add(rsps.GET, SEARCH_URL, json={"artists": []})

    assert lookup.lookup("Totally Unknown Band") is None
    assert lookup.lookup("Totally Unknown Band") is None
    assert len(rsps.calls) == 1


@rsps.activate
def test_http_error_is_an_enrichment_failure(lookup, store):
    rsps.add(rsps.GET, SEARCH_URL, status=503)

    with pytest.raises(EnrichmentFailure):
        lookup.lookup("Khruangbin")
    assert store.get_cached_profile("khruangbin") == (False, None)


@rsps.activate
def test_enrich_merges_genres(lookup, make_event):
    rsps.add(rsps.GET, SEARCH_URL, json=KHRUANGBIN)
    event = make_event(artists=["Khruangbin"], tags=["Funk"])

    enriched = lookup.enrich(event)

    assert enriched.tags == ["Funk", "psychedelic rock"]
    assert enriched.extra["musicbrainz"]["id"] == "a1b2"
    assert enriched.id == event.id
    assert event.tags == ["Funk"]


@rsps.activate
def test_enrich_skips_unknown_performer(lookup, make_event):
    event = make_event(artists=["unknown performer"])

    assert lookup.enrich(event) is event
    assert len(rsps.calls) == 0


@pytest.mark.parametrize("body", [{"artists": ["Khruangbin"]}, {"artists": {"0": "x"}}, ["not", "an", "object"]])
@rsps.activate
def test_odd_response_shapes_are_enrichment_failures(lookup, body):
    rsps.add(rsps.GET, SEARCH_URL, json=body)

    with pytest.raises(EnrichmentFailure):
        lookup.lookup("Khruangbin")

"""Tests for the source adapters against mocked upstream responses."""

from __future__ import annotations

import json
import logging

import httpx
import pytest

from ingest.sources.eventbrite import (
    EventbriteBackfillScraper,
    EventbriteScraper,
    find_event_nodes,
    parse_jsonld_events,
)
from ingest.sources.nyc_parks import NYCParksScraper
from ingest.sources.nyc_permitted import NYCPermittedScraper
from ingest.sources.ticketmaster import TicketmasterScraper
from tests.conftest import day, json_transport, make_settings


def jsonld_page(*blocks) -> str:
    scripts = "".join(
        f'<script type="application/ld+json">{json.dumps(b) if not isinstance(b, str) else b}</script>'
        for b in blocks
    )
    return f"<html><head>{scripts}</head><body></body></html>"


def event_node(name: str, start: str, url: str = "https://www.eventbrite.com/e/x-1", **extra):
    return {"@type": "Event", "name": name, "startDate": start, "url": url, **extra}


def html_response(pages: dict[int, str | int], request: httpx.Request) -> httpx.Response:
    """HTML for ``?page=``; an int value is an error status."""
    page = int(request.url.params.get("page", "1"))
    body = pages.get(page, jsonld_page())
    if isinstance(body, int):
        return httpx.Response(body)
    return httpx.Response(200, text=body, headers={"content-type": "text/html"})


def html_transport(pages: dict[int, str | int]) -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: html_response(pages, request))


class TestJsonLd:
    def test_bare_event(self):
        node = event_node("A", day(1))
        assert find_event_nodes(node) == [node]

    def test_item_list(self):
        inner = event_node("A", day(1))
        doc = {
            "@type": "ItemList",
            "itemListElement": [{"@type": "ListItem", "position": 1, "item": inner}],
        }
        assert find_event_nodes(doc) == [inner]

    def test_nested_arrays_and_other_types(self):
        a, b = event_node("A", day(1)), event_node("B", day(2))
        doc = [[{"@type": "Organization", "name": "Org"}, a], [[b]]]
        assert find_event_nodes(doc) == [a, b]

    def test_invalid_blocks_are_skipped(self):
        html = jsonld_page("{not json", "", event_node("A", day(1)))
        assert [n["name"] for n in parse_jsonld_events(html)] == ["A"]


class TestEventbrite:
    @pytest.fixture
    def scraper(self, settings):
        scraper = EventbriteScraper(settings)
        scraper.page_delay = 0
        return scraper

    async def test_item_list_page(self, scraper, window):
        item = event_node(
            "NYC Jazz Night",
            f"{day(1)}T20:00:00-05:00",
            url="https://www.eventbrite.com/e/x-tickets-1",
            location={
                "name": "Blue Room",
                "address": {"addressLocality": "East Village", "addressRegion": "NY"},
            },
            offers={"price": "0.00"},
        )
        page = jsonld_page(
            {"@type": "ItemList", "itemListElement": [{"@type": "ListItem", "item": item}]}
        )
        scraper.transport = html_transport({1: page})

        events = await scraper.run(window)

        assert len(events) == 1
        assert events[0].price == "Free"
        assert events[0].location == "Blue Room — East Village"
        assert events[0].platform == "Eventbrite"

    async def test_stops_at_first_empty_page(self, scraper, window):
        requested = []
        pages = {
            1: jsonld_page(event_node("A", day(1))),
            2: jsonld_page(event_node("B", day(2))),
            3: jsonld_page(),
            4: jsonld_page(event_node("D", day(4))),
        }
        def handler(request):
            requested.append(int(request.url.params["page"]))
            return html_response(pages, request)

        scraper.transport = httpx.MockTransport(handler)
        records = await scraper.fetch_records()

        assert [r["name"] for r in records] == ["A", "B"]
        assert max(requested) <= 4
        assert 5 not in requested

    async def test_page_dedup_by_name_and_start(self, scraper):
        node = event_node("A", day(1))
        scraper.transport = html_transport({1: jsonld_page(node, [node, event_node("A", day(2))])})
        records = await scraper.fetch_records()
        assert [(r["name"], r["startDate"]) for r in records] == [("A", day(1)), ("A", day(2))]

    async def test_never_more_than_ten_pages(self, scraper):
        requested = []

        def handler(request):
            page = int(request.url.params["page"])
            requested.append(page)
            return httpx.Response(200, text=jsonld_page(event_node(f"E{page}", day(1))))

        scraper.transport = httpx.MockTransport(handler)
        records = await scraper.fetch_records()
        assert len(records) == 10
        assert sorted(requested) == list(range(1, 11))

    async def test_failed_page_ends_crawl(self, scraper):
        scraper.transport = html_transport({1: jsonld_page(event_node("A", day(1))), 2: 503})
        records = await scraper.fetch_records()
        assert [r["name"] for r in records] == ["A"]

    def test_scraper_relaxes_tls(self):
        assert EventbriteScraper.verify_tls is False
        assert NYCPermittedScraper.verify_tls is True


class TestEventbriteBackfill:
    async def test_listings_unique_windowed_sorted(self, settings, window):
        scraper = EventbriteBackfillScraper(settings)
        scraper.page_delay = 0
        scraper.max_pages = 6
        scraper.transport = html_transport(
            {
                1: jsonld_page(
                    event_node("Late", f"{day(9)}T19:00:00", url="https://e/late"),
                    event_node("Early", f"{day(1)}T19:00:00", url="https://e/early",
                               location={"name": "Hall"}),
                ),
                2: 500,
                3: jsonld_page(
                    event_node("Late again", f"{day(9)}T19:00:00", url="https://e/late"),
                    event_node("Past", f"{day(-3)}T19:00:00", url="https://e/past"),
                    {"@type": "Event", "name": "No url", "startDate": day(2)},
                ),
                6: jsonld_page(
                    event_node("Mid", f"{day(4)}T19:00:00", url="https://e/mid",
                               location={"address": {"addressLocality": "Bushwick"}}),
                ),
            }
        )

        listings = await scraper.listings(window)

        assert [item.title for item in listings] == ["Early", "Mid", "Late"]
        assert listings[0].venue == "Hall"
        assert listings[1].venue == "Bushwick"


class TestMunicipal:
    async def test_permitted_query_and_mapping(self, window):
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            return httpx.Response(
                200,
                json=[
                    {
                        "event_id": "1",
                        "event_name": "Block Party",
                        "event_type": "Street Event",
                        "event_location": "W 4th St",
                        "event_borough": "Manhattan",
                        "start_date_time": f"{day(2)}T13:00:00.000",
                        "street_closure_type": "Full",
                    },
                    {"event_name": "Far", "start_date_time": f"{day(40)}T13:00:00.000"},
                ],
            )

        scraper = NYCPermittedScraper(make_settings(nyc_open_data_app_token="tok"))
        scraper.transport = httpx.MockTransport(handler)

        events = await scraper.run(window)

        assert seen["$order"] == "start_date_time"
        assert seen["$where"].startswith("start_date_time >= '")
        assert 500 <= int(seen["$limit"]) <= 1000
        assert seen["$$app_token"] == "tok"
        assert [e.name for e in events] == ["Block Party"]
        assert events[0].location == "W 4th St — Manhattan"

    async def test_parks_feed(self, settings, window):
        scraper = NYCParksScraper(settings)
        scraper.transport = json_transport(
            {
                "/xml/events_300_rss.json": [
                    {
                        "title": "Yoga in the Park",
                        "startdate": day(3),
                        "starttime": "7:00 am",
                        "location": "Prospect Park",
                        "parkids": "B123",
                        "categories": "Fitness",
                    }
                ]
            }
        )
        events = await scraper.run(window)
        assert [(e.time, e.location) for e in events] == [("7:00 AM", "Prospect Park — Brooklyn")]

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500),
            httpx.Response(200, text="<html>maintenance</html>"),
            httpx.Response(200, json={"error": "unexpected shape"}),
        ],
    )
    async def test_failures_yield_empty(self, settings, window, response):
        scraper = NYCParksScraper(settings)
        scraper.transport = httpx.MockTransport(lambda request: response)
        assert await scraper.run(window) == []

    async def test_network_error_yields_empty(self, settings, window, caplog):
        def handler(request):
            raise httpx.ConnectError("certificate verify failed", request=request)

        scraper = NYCPermittedScraper(settings)
        scraper.transport = httpx.MockTransport(handler)
        with caplog.at_level(logging.WARNING):
            assert await scraper.run(window) == []
        assert "fetch failed" in caplog.text

    async def test_malformed_rows_are_skipped(self, settings, window):
        scraper = NYCParksScraper(settings)
        scraper.transport = json_transport(
            {
                "/xml/events_300_rss.json": [
                    "garbage",
                    {"title": "No date"},
                    {"title": "Ok", "startdate": day(1), "starttime": "6:00 pm"},
                ]
            }
        )
        events = await scraper.run(window)
        assert [e.name for e in events] == ["Ok"]


class TestTicketmaster:
    async def test_missing_key_yields_empty(self, settings, window, caplog):
        scraper = TicketmasterScraper(settings)
        scraper.transport = httpx.MockTransport(lambda request: pytest.fail("no request expected"))
        with caplog.at_level(logging.INFO):
            assert await scraper.run(window) == []
        assert "TICKETMASTER_API_KEY not set" in caplog.text

    async def test_pages_up_to_soft_cap(self, window):
        requests = []

        def handler(request):
            page = int(request.url.params["page"])
            requests.append(request.url.params)
            return httpx.Response(
                200,
                json={
                    "_embedded": {
                        "events": [
                            {
                                "id": f"tm-{page}",
                                "name": f"Show {page}",
                                "dates": {"start": {"dateTime": f"{day(page + 1)}T23:00:00Z"}},
                                "priceRanges": [{"min": 20, "max": 20}],
                            }
                        ]
                    },
                    "page": {"totalPages": 10, "number": page},
                },
            )

        scraper = TicketmasterScraper(make_settings(ticketmaster_api_key="k"))
        scraper.page_delay = 0
        scraper.transport = httpx.MockTransport(handler)

        events = await scraper.run(window)

        assert len(requests) == 3
        assert requests[0]["size"] == "100"
        assert requests[0]["sort"] == "date,asc"
        assert requests[0]["city"] == "New York"
        assert requests[0]["startDateTime"].endswith("Z")
        assert [e.name for e in events] == ["Show 0", "Show 1", "Show 2"]
        assert {e.price for e in events} == {"$20"}

    async def test_stops_at_total_pages(self, window):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(200, json={"_embedded": {"events": []}, "page": {"totalPages": 1}})

        scraper = TicketmasterScraper(make_settings(ticketmaster_api_key="k"))
        scraper.transport = httpx.MockTransport(handler)
        assert await scraper.run(window) == []
        assert len(calls) == 1

    @pytest.mark.parametrize("page_info", [{"totalPages": None}, {}, None, "n/a"])
    async def test_missing_total_pages_keeps_fetched_events(self, window, page_info):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(
                200,
                json={
                    "_embedded": {
                        "events": [
                            {"id": "tm-1", "name": "Late Show",
                             "dates": {"start": {"dateTime": f"{day(2)}T23:00:00Z"}}},
                        ]
                    },
                    "page": page_info,
                },
            )

        scraper = TicketmasterScraper(make_settings(ticketmaster_api_key="k"))
        scraper.transport = httpx.MockTransport(handler)
        events = await scraper.run(window)

        assert [e.name for e in events] == ["Late Show"]
        assert len(calls) == 1

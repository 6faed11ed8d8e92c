"""Offline extractors that summarize stored collections into JSON catalogs.

The catalogs feed the DM assistant's query classifier: which platforms,
category keywords and cuisines actually exist in the data.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)

CATEGORY_PATTERNS: dict[str, list[str]] = {
    "sports": [
        r"soccer", r"football", r"basketball", r"baseball", r"hockey", r"tennis",
        r"running", r"marathon", r"5k", r"10k", r"cycling", r"fitness", r"yoga",
        r"golf", r"boxing", r"wrestling", r"mma", r"skating",
    ],
    "music": [
        r"concert", r"music", r"jazz", r"rock", r"hip.?hop", r"classical",
        r"orchestra", r"dj", r"live music", r"band", r"singer", r"karaoke",
        r"open mic", r"opera", r"symphony", r"choir",
    ],
    "comedy": [r"comedy", r"stand.?up", r"improv"],
    "theater": [
        r"theater", r"theatre", r"play", r"musical", r"broadway", r"drama",
        r"performance",
    ],
    "art": [
        r"art", r"gallery", r"museum", r"exhibition", r"painting", r"sculpture",
        r"photography",
    ],
    "film": [r"film", r"movie", r"screening", r"documentary"],
    "dance": [r"dance", r"ballet", r"contemporary"],
    "food": [
        r"food", r"tasting", r"wine", r"beer", r"cocktail", r"brunch", r"cooking",
        r"culinary", r"chef", r"restaurant",
    ],
    "market": [
        r"market", r"fair", r"festival", r"flea", r"farmers", r"craft", r"vintage",
        r"antique",
    ],
    "education": [
        r"workshop", r"class", r"seminar", r"lecture", r"talk", r"panel",
    ],
    "networking": [r"networking", r"meetup", r"conference", r"summit"],
    "family": [r"kids", r"children", r"family", r"storytime", r"puppet"],
    "outdoor": [
        r"outdoor", r"park", r"garden", r"nature", r"hike", r"walk", r"tour",
        r"boat", r"cruise",
    ],
    "nightlife": [
        r"party", r"club", r"nightlife", r"social", r"mixer", r"singles",
        r"trivia", r"game night", r"bingo",
    ],
    "wellness": [r"wellness", r"meditation", r"mindfulness", r"healing", r"spa"],
    "special": [
        r"parade", r"celebration", r"holiday", r"ceremony", r"opening", r"launch",
        r"premiere", r"gala", r"fundraiser", r"charity",
    ],
}

GROUPED_CATEGORIES: dict[str, list[str]] = {
    "sports": ["soccer", "football", "basketball", "baseball", "hockey", "tennis",
               "running", "marathon", "cycling", "fitness", "yoga", "golf", "boxing",
               "wrestling", "skating", "swimming"],
    "music": ["concert", "music", "jazz", "rock", "hiphop", "classical", "orchestra",
              "dj", "band", "singer", "karaoke", "opera", "symphony", "choir"],
    "comedy": ["comedy", "standup", "improv", "openmic"],
    "theater": ["theater", "theatre", "play", "musical", "broadway", "drama", "performance"],
    "art": ["art", "gallery", "museum", "exhibition", "painting", "sculpture", "photography"],
    "film": ["film", "movie", "screening", "documentary", "cinema"],
    "dance": ["dance", "ballet", "contemporary", "salsa", "swing"],
    "food": ["food", "tasting", "wine", "beer", "cocktail", "brunch", "cooking", "culinary"],
    "market": ["market", "fair", "festival", "flea", "farmers", "craft", "vintage"],
    "education": ["workshop", "class", "seminar", "lecture", "talk", "panel", "conference"],
    "networking": ["networking", "meetup", "social", "mixer", "singles"],
    "family": ["kids", "children", "family", "storytime", "puppet"],
    "outdoor": ["outdoor", "park", "garden", "nature", "hike", "walk", "tour", "boat"],
    "nightlife": ["party", "club", "nightlife", "trivia", "bingo", "gamenight"],
    "wellness": ["wellness", "meditation", "mindfulness", "healing", "spa"],
    "special": ["parade", "celebration", "holiday", "ceremony", "gala", "fundraiser", "charity"],
}

STOP_WORDS = frozenset({
    "the", "and", "for", "with", "from", "this", "that", "are", "was", "were",
    "will", "have", "has", "had", "been", "being", "your", "our", "their",
    "nyc", "new", "york", "city", "event", "events", "check", "source", "details",
    "public", "free", "open", "all", "ages", "welcome", "join", "come",
    "a", "an", "in", "on", "at", "to", "of", "is", "it",
})

MIN_WORD_COUNT = 3
MAX_KEYWORDS = 100

BOROUGH_PATTERNS = {
    "Manhattan": re.compile(r"manhattan|new york, ny", re.IGNORECASE),
    "Brooklyn": re.compile(r"brooklyn", re.IGNORECASE),
    "Queens": re.compile(r"queens", re.IGNORECASE),
    "Bronx": re.compile(r"bronx", re.IGNORECASE),
    "Staten Island": re.compile(r"staten island", re.IGNORECASE),
}

BOROUGH_KEYWORDS = {
    "Manhattan": ["manhattan", "midtown", "downtown", "uptown", "harlem", "soho",
                  "tribeca", "chelsea", "east village", "west village"],
    "Brooklyn": ["brooklyn", "williamsburg", "bushwick", "dumbo", "park slope", "bed-stuy"],
    "Queens": ["queens", "flushing", "astoria", "jackson heights", "long island city"],
    "Bronx": ["bronx", "fordham"],
    "Staten Island": ["staten island"],
}

DEFAULT_RATING_RANGE = {"minRating": 0, "maxRating": 5, "avgRating": 3.5}

_COMPILED = [
    re.compile(pattern, re.IGNORECASE)
    for patterns in CATEGORY_PATTERNS.values()
    for pattern in patterns
]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def match_category_keywords(text: str) -> set[str]:
    """Keyword tokens of every category pattern that occurs in *text*."""
    found = set()
    for pattern in _COMPILED:
        match = pattern.search(text)
        if match:
            token = re.sub(r"[^a-z]", "", match.group(0).lower())
            if token:
                found.add(token)
    return found


def top_keywords(descriptions: list[str]) -> list[str]:
    """Frequent meaningful description words, most common first."""
    counts: Counter[str] = Counter()
    for description in descriptions:
        counts.update(description.lower().split())
    meaningful = [
        (word, count)
        for word, count in counts.most_common()
        if count >= MIN_WORD_COUNT
        and len(word) > 3
        and word not in STOP_WORDS
        and word.isascii()
        and word.isalpha()
    ]
    return [word for word, _ in meaningful[:MAX_KEYWORDS]]


async def extract_categories(collection: Any) -> dict[str, Any]:
    """Build the event category catalog from the published snapshot."""
    names = await collection.distinct("name")
    descriptions = await collection.distinct("description")
    platforms = await collection.distinct("platform")
    locations = await collection.distinct("location")
    log.info(
        "Found %d names, %d descriptions, %d platforms, %d locations",
        len(names), len(descriptions), len(platforms), len(locations),
    )

    text = " ".join(str(value) for value in [*names, *descriptions] if value)
    keywords = match_category_keywords(text)

    all_descriptions: list[str] = []
    cursor = collection.find(
        {"description": {"$exists": True, "$ne": None}},
        {"description": 1, "_id": 0},
    )
    async for doc in cursor:
        if isinstance(doc.get("description"), str):
            all_descriptions.append(doc["description"])
    frequent = top_keywords(all_descriptions)
    keywords.update(frequent)

    return {
        "generatedAt": _now_iso(),
        "totalEvents": await collection.count_documents({}),
        "platforms": sorted(p for p in platforms if p),
        "categories": sorted(keywords),
        "groupedCategories": GROUPED_CATEGORIES,
        "topKeywords": frequent,
    }


def detect_boroughs(addresses: list[str]) -> list[str]:
    found = {
        borough
        for address in addresses
        if address
        for borough, pattern in BOROUGH_PATTERNS.items()
        if pattern.search(address)
    }
    return sorted(found)


async def extract_restaurant_filters(collection: Any) -> dict[str, Any]:
    """Cuisine, borough, price and rating facets of the restaurant collection."""
    cuisines = await collection.distinct("cuisineDescription")
    addresses = await collection.distinct("fullAddress")
    price_levels = await collection.distinct("priceLevel")

    ratings: list[float] = []
    async for doc in collection.find({"rating": {"$ne": None}}, {"rating": 1, "_id": 0}):
        rating = doc.get("rating")
        if isinstance(rating, (int, float)) and not isinstance(rating, bool):
            ratings.append(float(rating))

    rating_range = (
        {
            "minRating": min(ratings),
            "maxRating": max(ratings),
            "avgRating": round(sum(ratings) / len(ratings), 2),
        }
        if ratings
        else dict(DEFAULT_RATING_RANGE)
    )

    return {
        "cuisines": {c: [c.lower()] for c in cuisines if c},
        "boroughs": BOROUGH_KEYWORDS,
        "detectedBoroughs": detect_boroughs([a for a in addresses if isinstance(a, str)]),
        "priceLevels": sorted((p for p in price_levels if p is not None), key=str),
        "ratingRange": rating_range,
        "extractedAt": _now_iso(),
        "totalRestaurants": await collection.count_documents({}),
    }


def write_json(path: Path, payload: Any) -> Path:
    """Write *payload* as pretty JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    log.info("Saved %s", path)
    return path

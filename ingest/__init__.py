"""GoodRec NYC event ingestion: source adapters, normalizer, aggregator."""

__version__ = "0.1.0"

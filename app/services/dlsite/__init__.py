from .client import DLsiteClient
from .listing import ListingScraper, parse_ranking_listing, parse_search_listing

__all__ = ["DLsiteClient", "ListingScraper", "parse_ranking_listing", "parse_search_listing"]

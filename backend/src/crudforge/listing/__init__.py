"""Listing engine - whitelisted filter, sort, search and paginate."""

from crudforge.listing.engine import ListingEngine
from crudforge.listing.params import parse_query_params

__all__ = ["ListingEngine", "parse_query_params"]

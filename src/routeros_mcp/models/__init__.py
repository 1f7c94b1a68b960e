"""Data models for API replies and queries."""

from .reply import Pair, Query, Reply, get_pair_val

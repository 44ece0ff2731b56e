"""Utility modules for the document pipeline."""

from .json_parsing import safe_parse_json
from .parallel import is_rate_limit_error, parallel_map

__all__ = ["is_rate_limit_error", "parallel_map", "safe_parse_json"]

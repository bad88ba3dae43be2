"""
shiptrace extractor module.

Pure extraction strategies and record normalization; nothing here drives the
browser.
"""

from shiptrace.extractor.dom_scripts import DOM_EXTRACT_JS, build_dom_arg
from shiptrace.extractor.json_scan import find_embedded_json, find_json_span
from shiptrace.extractor.normalizer import normalize, normalize_json
from shiptrace.extractor.strategies import (
    StrategyOutcome,
    dom_strategy,
    extract_from_html,
    network_json_strategy,
)

__all__ = [
    "DOM_EXTRACT_JS",
    "build_dom_arg",
    "find_embedded_json",
    "find_json_span",
    "normalize",
    "normalize_json",
    "StrategyOutcome",
    "dom_strategy",
    "extract_from_html",
    "network_json_strategy",
]

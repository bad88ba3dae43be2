"""
In-page scripts for DOM extraction.

Scripts are read-only: they query the rendered document and return plain
data. Row filtering and field mapping happen in Python (strategies.py).
"""

from typing import Any

# Used when only a row selector is given (mmsi/name/lat/lon/status columns)
DEFAULT_ROW_SELECTOR = "table tr"
DEFAULT_FIELD_MAP: dict[str, str] = {
    "mmsi": "td:nth-child(1)",
    "name": "td:nth-child(2)",
    "lat": "td[data-lat]",
    "lon": "td[data-lon]",
    "status": "td.status",
}

# Returns a snapshot {mode, rows}:
#   rows  - explicit selectors: list of {field: text|null}
#   table - generic heuristic: list of cell-text lists, header row included
#   list  - no table: list of <li> texts
#   none  - nothing found
DOM_EXTRACT_JS = """
({ rowSelector, fieldMap }) => {
    const textOf = (el) => {
        if (!el || !el.textContent) return null;
        const value = el.textContent.trim();
        return value.length ? value : null;
    };

    if (rowSelector && fieldMap) {
        const out = [];
        for (const row of Array.from(document.querySelectorAll(rowSelector))) {
            try {
                const obj = {};
                for (const key of Object.keys(fieldMap)) {
                    const sel = fieldMap[key];
                    if (!sel) { obj[key] = null; continue; }
                    const el = row.querySelector(sel);
                    if (el) {
                        obj[key] = textOf(el);
                    } else {
                        const attr = row.getAttribute(`data-${key}`);
                        obj[key] = attr !== null ? attr : null;
                    }
                }
                out.push(obj);
            } catch (e) {
                // malformed row
            }
        }
        return { mode: "rows", rows: out };
    }

    const tableRows = Array.from(document.querySelectorAll("table tr"));
    if (tableRows.length > 1) {
        return {
            mode: "table",
            rows: tableRows.map((tr) => Array.from(tr.querySelectorAll("th, td")).map(textOf)),
        };
    }

    const items = Array.from(document.querySelectorAll("li")).map(textOf).filter((t) => t !== null);
    if (items.length) {
        return { mode: "list", rows: items };
    }
    return { mode: "none", rows: [] };
}
"""


def build_dom_arg(
    row_selector: str | None,
    field_map: dict[str, str] | None,
) -> dict[str, Any]:
    """Build the argument object passed to DOM_EXTRACT_JS.

    When either selector is given the missing half falls back to the default
    vessel table layout; when neither is given the generic heuristic runs.
    """
    if not row_selector and not field_map:
        return {"rowSelector": None, "fieldMap": None}
    return {
        "rowSelector": row_selector or DEFAULT_ROW_SELECTOR,
        "fieldMap": dict(field_map) if field_map else dict(DEFAULT_FIELD_MAP),
    }

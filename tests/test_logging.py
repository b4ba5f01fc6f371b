"""Tests for the JSON log formatter."""

from __future__ import annotations

import json
import logging

from sitemapper.utils.logging import JsonFormatter


def test_json_formatter_includes_extra_fields() -> None:
    record = logging.LogRecord("sitemapper.test", logging.INFO, __file__, 1, "wrote %s", ("a.xml",), None)
    record.event = "sitemap.written"
    record._private = "hidden"

    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "wrote a.xml"
    assert data["event"] == "sitemap.written"
    assert data["level"] == "INFO"
    assert "_private" not in data

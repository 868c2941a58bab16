from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.tools import web_utils

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://www.reuters.com/world/asia", "reuters.com"),
        ("https://supplychaindive.com/news/x", "supplychaindive.com"),
        ("http://news.example.co.uk:8080/a?b=c", "news.example.co.uk"),
        ("not a url", "not a url"),
    ],
)
def test_extract_domain_strips_leading_www(url, expected):
    assert web_utils.extract_domain(url) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-03-12", datetime(2024, 3, 12, tzinfo=timezone.utc)),
        ("2024-03-12T08:30:00.123Z", datetime(2024, 3, 12, 8, 30, 0, 123000, tzinfo=timezone.utc)),
        ("Mar 5, 2024", datetime(2024, 3, 5, tzinfo=timezone.utc)),
        ("Sept. 5, 2024", datetime(2024, 9, 5, tzinfo=timezone.utc)),
        ("12 March 2024", datetime(2024, 3, 12, tzinfo=timezone.utc)),
        ("03/12/2024", datetime(2024, 3, 12, tzinfo=timezone.utc)),
        ("2023", datetime(2023, 1, 1, tzinfo=timezone.utc)),
    ],
)
def test_parse_published_date_formats(value, expected):
    assert web_utils.parse_published_date(value, now=NOW) == expected


def test_parse_published_date_relative_strings():
    assert web_utils.parse_published_date("3 days ago", now=NOW) == datetime(
        2025, 6, 12, 12, 0, tzinfo=timezone.utc
    )
    assert web_utils.parse_published_date("2 hours ago", now=NOW) == datetime(
        2025, 6, 15, 10, 0, tzinfo=timezone.utc
    )


@pytest.mark.parametrize("value", [None, "", "sometime last spring", "Q3"])
def test_parse_published_date_returns_none_for_unparseable(value):
    assert web_utils.parse_published_date(value, now=NOW) is None


def test_extract_date_from_snippet_prefers_formatted_date_and_time_ago():
    snippet = "Posted 12 Mar 2025 - 3 days ago: port congestion worsens in 2024 and 2025"
    assert web_utils.extract_date_from_snippet(snippet, now=NOW) == ("12 Mar 2025", "3 days ago")


def test_extract_date_from_snippet_falls_back_to_recent_year():
    snippet = "Freight rates in 2022 and 2024 compared"
    assert web_utils.extract_date_from_snippet(snippet, now=NOW) == ("2024", "")


def test_extract_date_from_snippet_ignores_old_years():
    snippet = "Supply chain lessons from 2011 and 2015"
    assert web_utils.extract_date_from_snippet(snippet, now=NOW) == ("", "")


def test_years_ago_handles_leap_day():
    leap = datetime(2024, 2, 29, tzinfo=timezone.utc)
    assert web_utils.years_ago(leap, 2) == datetime(2022, 2, 28, tzinfo=timezone.utc)

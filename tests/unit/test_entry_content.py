"""Tests for category normalization, image references and export/import documents."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from learnlog.app.domain.entries.errors import ImportFormatError
from learnlog.app.domain.entries.images import (
    extract_image_urls,
    extract_object_path,
    removed_image_urls,
)
from learnlog.app.domain.entries.models import (
    UNCATEGORIZED,
    Entry,
    EntryDraft,
    normalize_categories,
    range_end,
    range_start,
)
from learnlog.app.domain.entries.transfer import (
    DEFAULT_IMPORT_TITLE,
    build_export_document,
    export_filename,
    parse_import_document,
)

NOW = datetime(2025, 4, 2, 9, 30, tzinfo=timezone.utc)
IMG = "https://cdn.example.com/storage/v1/object/public/learning-logs/owner-1/1_a.png"
IMG_2 = "https://cdn.example.com/storage/v1/object/public/learning-logs/owner-1/2_b.jpg"


def test_normalize_categories_defaults_and_collapses():
    assert normalize_categories(None) == [UNCATEGORIZED]
    assert normalize_categories([]) == [UNCATEGORIZED]
    assert normalize_categories(["", "Math", "Math"]) == [UNCATEGORIZED, "Math"]
    assert normalize_categories(["Math", "   ", None, "Physics"]) == [
        "Math",
        UNCATEGORIZED,
        "Physics",
    ]


def test_entry_draft_normalizes_categories():
    draft = EntryDraft(title="t", categories=("", "SQL", "SQL"))

    assert draft.categories == (UNCATEGORIZED, "SQL")


def test_range_bounds_widen_bare_dates_and_read_naive_as_utc():
    assert range_start(date(2025, 4, 2)) == datetime(2025, 4, 2, tzinfo=timezone.utc)
    assert range_end(date(2025, 4, 2)) == datetime(
        2025, 4, 2, 23, 59, 59, 999999, tzinfo=timezone.utc
    )
    assert range_end(datetime(2025, 4, 2, 9, 30)) == NOW
    assert range_start(NOW) is NOW

def test_extract_image_urls_keeps_http_sources_once_in_order():
    html = (
        f'<p>a</p><img src="{IMG}"><img alt="x" src=\'{IMG_2}\'>'
        f'<img src="{IMG}"><img src="data:image/png;base64,AAA"><img src="/local.png">'
    )

    assert extract_image_urls(html) == [IMG, IMG_2]
    assert extract_image_urls(None) == []


def test_removed_image_urls_diffs_before_and_after():
    before = f'<img src="{IMG}"><img src="{IMG_2}">'
    after = f'<p>kept</p><img src="{IMG_2}">'

    assert removed_image_urls(before, after) == [IMG]
    assert removed_image_urls(after, before) == []


@pytest.mark.parametrize(
    "url, expected",
    [
        (IMG, "owner-1/1_a.png"),
        ("https://cdn.example.com/storage/v1/object/public/other/owner-1/x.png", None),
        ("https://cdn.example.com/storage/v1/object/sign/learning-logs/owner-1/x.png", None),
        ("https://cdn.example.com/storage/v1/object/public/learning-logs/", None),
        (
            "https://cdn.example.com/storage/v1/object/public/learning-logs/owner-1/../x.png",
            None,
        ),
    ],
)
def test_extract_object_path_requires_public_bucket_prefix(url, expected):
    assert extract_object_path(url, "learning-logs") == expected


def test_build_export_document_lists_entries_in_display_order():
    low = Entry.new(title="low", owner_id="o", sort_key=1, created_at=NOW, entry_id="e1")
    high = Entry.new(
        title="high", owner_id="o", sort_key=5, created_at=NOW, entry_id="e2",
        categories=["Math"],
    )

    document = build_export_document([low, high], timestamp=NOW)

    assert document["exported_at"] == NOW.isoformat()
    assert document["count"] == 2
    assert [item["id"] for item in document["items"]] == ["e2", "e1"]
    assert document["items"][0] == {
        "id": "e2",
        "title": "high",
        "body": "",
        "created_at": NOW.isoformat(),
        "categories": ["Math"],
        "sort_key": 5,
    }
    assert export_filename(NOW) == "learning_logs_2025-04-02.json"


def test_parse_import_document_fills_defaults_and_keys_above_existing():
    existing = [Entry.new(title="old", owner_id="o", sort_key=77)]
    payload = {
        "items": [
            {"title": "first", "body": "<p>b</p>", "created_at": "2024-01-01T00:00:00Z"},
            {"date": "2024-02-01T10:00:00", "categories": ["", "SQL"]},
        ]
    }

    drafts = parse_import_document(payload, existing=existing, timestamp=NOW)

    assert [draft.title for draft in drafts] == ["first", DEFAULT_IMPORT_TITLE]
    assert drafts[0].categories == (UNCATEGORIZED,)
    assert drafts[1].categories == (UNCATEGORIZED, "SQL")
    assert drafts[0].created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert drafts[1].created_at == datetime(2024, 2, 1, 10, tzinfo=timezone.utc)
    assert drafts[1].body == ""
    assert drafts[0].sort_key > drafts[1].sort_key > 77


def test_parse_import_document_accepts_bare_list_and_defaults_timestamp():
    drafts = parse_import_document([{"title": "only"}], timestamp=NOW)

    assert len(drafts) == 1
    assert drafts[0].created_at == NOW
    assert drafts[0].sort_key == 1


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "not json",
        {"entries": []},
        {"items": "nope"},
        [{"title": "ok"}, "bad item"],
        [{"title": "bad date", "created_at": "yesterday"}],
    ],
)
def test_parse_import_document_rejects_malformed_documents(payload):
    with pytest.raises(ImportFormatError):
        parse_import_document(payload, timestamp=NOW)

"""Seed script for the learning log entries table.

Creates a handful of sample entries for a demo owner so local UIs and API
calls have data to read. Running it twice does nothing the second time.
"""

from __future__ import annotations

import argparse
from datetime import datetime, timedelta, timezone
from typing import List

from learnlog.app.domain.entries.gateway import EntryQuery, SqlEntryStoreGateway
from learnlog.app.domain.entries.models import EntryDraft

DEFAULT_OWNER = "demo-user"


def build_seed_drafts(timestamp: datetime) -> List[EntryDraft]:
    """Return static seed drafts, newest first."""

    return [
        EntryDraft(
            title="Binary search edge cases",
            body="<p>Use <code>lo &lt; hi</code> and move <code>hi = mid</code>.</p>",
            categories=("Algorithms",),
            created_at=timestamp,
        ),
        EntryDraft(
            title="SQL window functions",
            body="<p><code>ROW_NUMBER() OVER (PARTITION BY ...)</code></p>",
            categories=("Databases", "SQL"),
            created_at=timestamp - timedelta(days=1),
        ),
        EntryDraft(
            title="Untitled thoughts",
            body="<p>No category on purpose.</p>",
            categories=(),
            created_at=timestamp - timedelta(days=2),
        ),
    ]


def seed_entries(owner_id: str = DEFAULT_OWNER) -> int:
    gateway = SqlEntryStoreGateway()
    if gateway.list_entries(owner_id, EntryQuery(limit=1)).total:
        return 0
    # Oldest first so the newest draft ends up with the highest key.
    drafts = list(reversed(build_seed_drafts(datetime.now(timezone.utc))))
    return len(gateway.insert_many(owner_id, drafts))


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--owner", default=DEFAULT_OWNER)
    args = parser.parse_args()
    inserted = seed_entries(args.owner)
    print(f"Seeded {inserted} entries for {args.owner}.")


if __name__ == "__main__":
    main()

"""
Creating tracked records: from a directory search, a known place id, or a CSV import.
"""
from datetime import datetime
from typing import List, Optional

import pandas as pd
from loguru import logger

from hourswatch.errors import RemoteFetchFailed
from hourswatch.matchers.place_matcher import best_place_match
from hourswatch.models import BusinessRecord, RemotePlacePayload, utcnow
from hourswatch.sync.conversion import convert_payload
from hourswatch.sync.sync_engine import RecordStore


def record_from_place(
    place: RemotePlacePayload,
    now: Optional[datetime] = None,
    custom_label: Optional[str] = None,
) -> BusinessRecord:
    """Build a new record from fetched place details. The record starts fresh."""
    now = now or utcnow()
    schedule, contact = convert_payload(place)
    return BusinessRecord(
        name=place.name or "Unknown",
        remote_id=place.place_id,
        custom_label=custom_label,
        address=place.address or "No address",
        latitude=place.latitude,
        longitude=place.longitude,
        phone=contact.phone,
        website=contact.website,
        opening_hours=schedule,
        date_added=now,
        last_updated=now,
        last_checked=now,
    )


async def find_place(client, name: str, address: str = "") -> Optional[RemotePlacePayload]:
    """
    Search the directory for a business and return the best fuzzy match.

    Args:
        client: Directory client exposing `search_places(query)`.
        name (str): Business name.
        address (str): Optional address used both in the query and for scoring.

    Returns:
        Optional[RemotePlacePayload]: Best match, or None.
    """
    query = f"{name} {address}".strip()
    candidates = await client.search_places(query)
    logger.debug(f"Search '{query}' returned {len(candidates)} candidate(s)")
    return best_place_match(name, address, candidates)


async def add_from_search(
    client,
    store: RecordStore,
    name: str,
    address: str = "",
    custom_label: Optional[str] = None,
) -> Optional[BusinessRecord]:
    """Search for a business, and save it as a new record if a match is found."""
    place = await find_place(client, name, address)
    if place is None:
        logger.warning(f"No directory match for '{name}'")
        return None
    record = record_from_place(place, custom_label=custom_label)
    await store.save(record)
    logger.info(f"➕ Added '{record.display_name}' ({record.remote_id})")
    return record


def load_rows_from_csv(file_path: str, nrows: int = None) -> List[dict]:
    """Load import rows (Name, Place ID, Address, Label) from CSV."""
    df = pd.read_csv(file_path, nrows=nrows, dtype=str)
    rows = []
    for _, row in df.iterrows():
        # Helper to safely extract values from pandas Series, converting NaN to None
        def safe_get(col):
            if col not in row.index:
                return None
            val = row[col]
            if pd.isna(val):
                return None
            val = str(val).strip()
            return val or None

        name = safe_get("Name")
        if not name:
            continue
        rows.append({
            "name": name,
            "place_id": safe_get("Place ID"),
            "address": safe_get("Address") or "",
            "label": safe_get("Label"),
        })
    return rows


async def import_from_csv(
    file_path: str,
    client,
    store: RecordStore,
) -> List[BusinessRecord]:
    """
    Create records for every CSV row.

    Rows with a place id are fetched directly; other rows are resolved by search.
    A row whose lookup fails is still saved with whatever place id it had, so a
    row that neither carried nor resolved one will never be synchronized.
    """
    created = []
    for row in load_rows_from_csv(file_path):
        place = None
        try:
            if row["place_id"]:
                place = await client.fetch(row["place_id"])
            else:
                place = await find_place(client, row["name"], row["address"])
        except RemoteFetchFailed as e:
            logger.warning(f"⚠️ Lookup failed for '{row['name']}': {e}")

        if place is not None:
            record = record_from_place(place, custom_label=row["label"])
        else:
            record = BusinessRecord(
                name=row["name"],
                remote_id=row["place_id"],
                custom_label=row["label"],
                address=row["address"],
            )
        await store.save(record)
        created.append(record)

    syncable = sum(1 for r in created if r.is_syncable)
    logger.info(f"Imported {len(created)} businesses ({syncable} syncable) from {file_path}")
    return created

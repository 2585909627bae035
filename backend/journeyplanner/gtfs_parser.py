import logging
import os
from datetime import date
from functools import lru_cache
from typing import Iterable, Optional

import pandas as pd

logger = logging.getLogger("journeyplanner.gtfs")

GTFS_FILES = {
    "stops": "stops.txt",
    "routes": "routes.txt",
    "trips": "trips.txt",
    "stop_times": "stop_times.txt",
    "calendar": "calendar.txt",
    "calendar_dates": "calendar_dates.txt",
}

TABLE_COLUMNS = {
    "stops": ["stop_id", "stop_name", "stop_lat", "stop_lon"],
    "routes": ["route_id", "route_short_name", "route_long_name", "route_color"],
    "trips": ["trip_id", "route_id", "service_id", "direction_id", "trip_headsign"],
    "stop_times": ["trip_id", "stop_id", "stop_sequence", "arrival_time", "departure_time"],
    "calendar": ["service_id", "monday", "tuesday", "wednesday", "thursday", "friday",
                 "saturday", "sunday", "start_date", "end_date"],
    "calendar_dates": ["service_id", "date", "exception_type"],
}

# Columns that identify a row; rows missing any of them are unusable.
ID_COLUMNS = {
    "stops": ["stop_id"],
    "routes": ["route_id"],
    "trips": ["trip_id", "route_id"],
    "stop_times": ["trip_id", "stop_id"],
    "calendar": ["service_id"],
    "calendar_dates": ["service_id"],
}

REQUIRED_TABLES = ("stops", "routes", "trips", "stop_times")


@lru_cache(maxsize=8192)
def parse_gtfs_time(t: Optional[str]) -> Optional[int]:
    """Parse GTFS time like '25:30:00' (or '08:05') to seconds since midnight.

    Hours past 24 are kept, so overnight runs sort after the evening ones.
    Returns None for missing or malformed values.
    """
    if t is None:
        return None
    parts = str(t).strip().split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        h, m = int(parts[0]), int(parts[1])
        s = int(parts[2]) if len(parts) == 3 else 0
    except ValueError:
        return None
    if h < 0 or not 0 <= m < 60 or not 0 <= s < 60:
        return None
    return h * 3600 + m * 60 + s


def format_gtfs_time(seconds: int) -> str:
    """Format seconds since midnight as HH:MM:SS, keeping 24:00:00+ for overnight runs."""
    h, rem = divmod(int(seconds), 3600)
    m, s = divmod(rem, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def format_clock(seconds: int) -> str:
    """Format seconds since midnight to HH:MM on the wall clock (25:10 shows as 01:10)."""
    h, m = divmod((int(seconds) // 60) % 1440, 60)
    return f"{h:02d}:{m:02d}"


def _clean(value):
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def normalize_frame(name: str, df: Optional[pd.DataFrame]) -> pd.DataFrame:
    """Coerce one raw table to the column layout the index expects.

    Missing columns are added empty, rows without ids are dropped, ids become
    strings, and numeric columns are coerced (bad values turn into NaN rather
    than raising).
    """
    columns = TABLE_COLUMNS[name]
    if df is None or df.empty:
        return pd.DataFrame(columns=columns)

    df = df.copy()
    for col in columns:
        if col not in df.columns:
            df[col] = None
    ids = ID_COLUMNS[name]
    before = len(df)
    df = df[columns].dropna(subset=ids).copy()
    for col in ids:
        df[col] = df[col].astype(str).str.strip()
    df = df[(df[ids] != "").all(axis=1)].copy()
    dropped = before - len(df)
    if dropped:
        logger.warning(f"{name}: dropped {dropped} rows without {', '.join(ids)}")

    if name == "stops":
        df["stop_lat"] = pd.to_numeric(df["stop_lat"], errors="coerce")
        df["stop_lon"] = pd.to_numeric(df["stop_lon"], errors="coerce")
    elif name == "stop_times":
        df["stop_sequence"] = pd.to_numeric(df["stop_sequence"], errors="coerce")
    elif name == "trips":
        df["direction_id"] = pd.to_numeric(df["direction_id"], errors="coerce")
        df["service_id"] = df["service_id"].fillna("").astype(str)

    return df.reset_index(drop=True)


def frame_from_records(name: str, records: Iterable) -> pd.DataFrame:
    """Build a normalized table from dicts or pydantic rows."""
    rows = [r.model_dump() if hasattr(r, "model_dump") else dict(r) for r in records]
    if not rows:
        return pd.DataFrame(columns=TABLE_COLUMNS[name])
    return normalize_frame(name, pd.DataFrame(rows))


def frame_records(df: pd.DataFrame) -> list[dict]:
    """Rows of a table as plain dicts with NaN replaced by None."""
    columns = list(df.columns)
    return [
        {col: _clean(value) for col, value in zip(columns, values)}
        for values in df.itertuples(index=False, name=None)
    ]


def load_gtfs_directory(path: str) -> dict[str, pd.DataFrame]:
    """Load GTFS text files from a directory into normalized DataFrames.

    The four core tables must exist; calendar tables are optional.
    """
    data: dict[str, pd.DataFrame] = {}
    for key, fname in GTFS_FILES.items():
        fpath = os.path.join(path, fname)
        if not os.path.exists(fpath):
            if key in REQUIRED_TABLES:
                raise FileNotFoundError(f"GTFS file not found: {fpath}")
            logger.info(f"Optional GTFS file not present: {fname}")
            data[key] = pd.DataFrame(columns=TABLE_COLUMNS[key])
            continue

        # Only load columns that exist in the file
        header = pd.read_csv(fpath, nrows=0, encoding="utf-8-sig").columns
        usecols = [c for c in TABLE_COLUMNS[key] if c in header]
        raw = pd.read_csv(fpath, usecols=usecols, dtype=str, encoding="utf-8-sig",
                          keep_default_na=False, na_values=[""])
        data[key] = normalize_frame(key, raw)
        logger.info(f"Loaded {key}: {len(data[key])} rows")

    return data


def get_active_service_ids(
    calendar: Optional[pd.DataFrame],
    calendar_dates: Optional[pd.DataFrame],
    trips: pd.DataFrame,
    on: date,
) -> set:
    """Get service IDs active on the given date.

    Uses calendar (day-of-week + date range) and calendar_dates (exceptions).
    Falls back to every service_id in trips when there is no calendar data or
    nothing matches, so a stale calendar never hides the whole schedule.
    """
    all_services = set(trips["service_id"].unique()) if not trips.empty else set()
    calendar = calendar if calendar is not None else pd.DataFrame()
    calendar_dates = calendar_dates if calendar_dates is not None else pd.DataFrame()

    if calendar.empty and calendar_dates.empty:
        return all_services

    day_names = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
    today_day = day_names[on.weekday()]
    today_int = int(on.strftime("%Y%m%d"))

    active = set()
    for _, row in calendar.iterrows():
        try:
            start = int(row.get("start_date") or 0)
            end = int(row.get("end_date") or 99999999)
            if start <= today_int <= end and int(row.get(today_day) or 0) == 1:
                active.add(row["service_id"])
        except (ValueError, TypeError):
            continue

    for _, row in calendar_dates.iterrows():
        try:
            if int(row["date"]) != today_int:
                continue
            exc_type = int(row.get("exception_type") or 0)
        except (ValueError, TypeError):
            continue
        if exc_type == 1:
            active.add(row["service_id"])
        elif exc_type == 2:
            active.discard(row["service_id"])

    if not active:
        logger.info(f"No calendar service active on {on.isoformat()}, using all services")
        return all_services

    return active

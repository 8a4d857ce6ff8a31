"""
Cyclistic Trip Normalizer
=========================

Turns the two Divvy trip extracts into one canonical trip table.

The 2019 Q1 extract uses the old column layout (trip_id, start_time,
usertype, ...) while the 2020 Q1 extract already uses the current one
(ride_id, started_at, member_casual, ...). The three functions below run in
this order:
  1. normalize_legacy:  rename old columns, map usertype to member/casual
  2. normalize_current: select and reorder the current columns
  3. merge_and_enrich:  stack both frames, parse timestamps, derive
                         ride length and day of week

Bad values never stop the pipeline: an unknown usertype becomes a missing
rider type and an unparseable timestamp leaves the derived columns empty,
but the row itself is always kept.
"""

import numpy as np
import pandas as pd


# ── Canonical Schema ─────────────────────────────────────────────────────────
CANONICAL_COLUMNS = [
    'ride_id', 'rideable_type', 'started_at', 'ended_at',
    'start_station_name', 'start_station_id',
    'end_station_name', 'end_station_id', 'member_casual',
]
DERIVED_COLUMNS = ['ride_length_secs', 'ride_length', 'day_of_week']
ENRICHED_COLUMNS = CANONICAL_COLUMNS + DERIVED_COLUMNS

# Columns without which a frame cannot be normalized at all.
# Station columns are optional and become empty when absent.
REQUIRED_COLUMNS = ['ride_id', 'started_at', 'ended_at', 'member_casual']

# Old column name → canonical column name
LEGACY_RENAMES = {
    'trip_id': 'ride_id',
    'start_time': 'started_at',
    'end_time': 'ended_at',
    'from_station_id': 'start_station_id',
    'from_station_name': 'start_station_name',
    'to_station_id': 'end_station_id',
    'to_station_name': 'end_station_name',
    'usertype': 'member_casual',
}

# Every legacy usertype outside this table maps to a missing rider type
USERTYPE_TO_RIDER_TYPE = {
    'Subscriber': 'member',
    'Customer': 'casual',
}

RIDER_TYPES = ['member', 'casual']
RIDER_TYPE_DTYPE = pd.CategoricalDtype(RIDER_TYPES)

# The 2019 extract has no vehicle class; every legacy bike was a docked bike
LEGACY_RIDEABLE_TYPE = 'docked_bike'

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


# ══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ══════════════════════════════════════════════════════════════════════════════

def _require_columns(df, columns, source):
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise ValueError(f"{source} trips are missing required columns: {', '.join(missing)}")


def _as_text(series):
    """
    Coerce identifiers to str, leaving missing values missing (not 'nan').

    A numeric id column with gaps is stored as floats; whole-number floats are
    written without the trailing '.0' so 21742443.0 becomes '21742443'.
    """
    present = series.dropna()
    if pd.api.types.is_float_dtype(series) and (present % 1 == 0).all():
        text = series.astype('Int64').astype(str)
    else:
        text = series.astype(str)
    return text.where(series.notna())


def format_hms(seconds):
    """
    Format a duration in seconds as HH:MM:SS.

    Hours are not wrapped at 24 and negative durations keep a leading '-'
    (e.g. -5 → '-00:00:05'). Missing input returns None.
    """
    if pd.isna(seconds):
        return None
    sign = '-' if seconds < 0 else ''
    total = int(round(abs(seconds)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"


def sunday_based_weekday(timestamps):
    """
    Day of week numbered 1..7 with the week starting on Sunday.

    pandas numbers Monday=0 … Sunday=6, so shift by one and wrap:
    Sunday → 1, Monday → 2, …, Saturday → 7. Missing timestamps give <NA>.
    """
    dow = timestamps.dt.dayofweek
    return ((dow + 1) % 7 + 1).astype('Int64')


# ══════════════════════════════════════════════════════════════════════════════
# NORMALIZATION
# ══════════════════════════════════════════════════════════════════════════════

def normalize_legacy(rows):
    """
    Convert 2019-style trips (trip_id, start_time, usertype, ...) to the canonical layout.

    Args:
        rows: DataFrame with the legacy columns (extra columns are dropped)
    Returns:
        pd.DataFrame: One row per input row, columns in CANONICAL_COLUMNS order
    """
    _require_columns(rows, ['trip_id', 'start_time', 'end_time', 'usertype'], 'Legacy')

    df = rows.rename(columns=LEGACY_RENAMES)

    # Subscriber/Customer → member/casual; anything else becomes NaN
    df['member_casual'] = df['member_casual'].map(USERTYPE_TO_RIDER_TYPE).astype(RIDER_TYPE_DTYPE)
    df['rideable_type'] = LEGACY_RIDEABLE_TYPE
    df['ride_id'] = _as_text(df['ride_id'])

    # reindex keeps the canonical order and fills absent station columns with NaN
    return df.reindex(columns=CANONICAL_COLUMNS)


def normalize_current(rows):
    """Select the canonical columns from 2020-style trips. Values are not touched."""
    _require_columns(rows, REQUIRED_COLUMNS, 'Current')
    return rows.reindex(columns=CANONICAL_COLUMNS)


def merge_and_enrich(a, b):
    """
    Stack two canonical frames and derive ride length and day of week.

    All rows of `a` come first, then all rows of `b`, each in their original
    order; the result gets a fresh 0..n-1 index. Nothing is deduplicated.

    Timestamps are parsed with TIMESTAMP_FORMAT. When either timestamp of a
    row fails to parse, ride_length_secs, ride_length and day_of_week are all
    left empty for that row, but the row is kept.

    Negative and zero ride lengths are NOT filtered out. Whether they come
    from data-entry errors or clock skew is unknown, so they are reported
    as-is and left to the analyst.

    Args:
        a: Canonical trips (usually the legacy output)
        b: Canonical trips (usually the current output)
    Returns:
        pd.DataFrame: len(a) + len(b) rows, columns in ENRICHED_COLUMNS order
    """
    df = pd.concat(
        [a.reindex(columns=CANONICAL_COLUMNS), b.reindex(columns=CANONICAL_COLUMNS)],
        ignore_index=True,
    )

    df['ride_id'] = _as_text(df['ride_id'])
    # Closed set: labels other than member/casual become NaN, never a new category
    df['member_casual'] = df['member_casual'].astype(object).astype(RIDER_TYPE_DTYPE)

    # errors='coerce' turns unparseable values into NaT instead of raising
    df['started_at'] = pd.to_datetime(df['started_at'], format=TIMESTAMP_FORMAT, errors='coerce')
    df['ended_at'] = pd.to_datetime(df['ended_at'], format=TIMESTAMP_FORMAT, errors='coerce')
    unparsed = df['started_at'].isna() | df['ended_at'].isna()

    secs = (df['ended_at'] - df['started_at']).dt.total_seconds()
    df['ride_length_secs'] = secs.mask(unparsed, np.nan)
    df['ride_length'] = df['ride_length_secs'].map(format_hms)
    df['day_of_week'] = sunday_based_weekday(df['started_at']).mask(unparsed)

    return df[ENRICHED_COLUMNS]

"""
data_engine.py - Data loading, validation and position relabeling pipeline.

This module provides the foundation for the position analysis:
- Load and validate the processed player table (FBref stats joined with FIFA attributes)
- Relabel minor positions onto the 12-label canonical taxonomy (single lookup table)
- Drop players without a main position and collapse duplicate players
- Type conversion for numeric columns and load-time derivation of missing per-90 metrics

Main entry point: process_all_data(csv_path) - orchestrates all processing steps
"""

import logging
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .constants import (
    CANONICAL_POSITIONS,
    LABEL_MAP_VERSION,
    MAIN_POSITION_COLUMN,
    MAX_LISTED_POSITIONS,
    NUMERIC_COLUMNS,
    PER90_SOURCES,
    PLAYER_COLUMN,
    POSITION_LABEL_MAP,
    POSITIONS_COLUMN,
    REQUIRED_COLUMNS,
)
from .exceptions import SchemaError

logger = logging.getLogger(__name__)


def clean_player_name(name: any) -> str:
    """
    Remove quotes, extra spaces, and handle NaN for deduplication consistency.
    """
    if pd.isna(name):
        return ""
    return str(name).replace('"', '').replace("'", "").strip()


def normalize_position(label: any, label_map: Dict[str, str] = POSITION_LABEL_MAP) -> Optional[str]:
    """Uppercase a raw position tag and fold it onto its canonical label."""
    if pd.isna(label):
        return None
    tag = str(label).strip().upper()
    if not tag:
        return None
    return label_map.get(tag, tag)


def split_positions(pos_string: any, label_map: Dict[str, str] = POSITION_LABEL_MAP) -> List[str]:
    """
    Parse a comma-separated position list, relabeling each tag.

    Order is preserved and duplicates created by relabeling (e.g. "ST,CF")
    are dropped.
    """
    if pd.isna(pos_string):
        return []
    positions = []
    for token in str(pos_string).split(','):
        tag = normalize_position(token, label_map)
        if tag and tag not in positions:
            positions.append(tag)
    return positions


def get_eligible_positions(pos_string: any, main_position: str) -> List[str]:
    """
    Up to three listed positions for a player, main position first.

    The main position is always part of the list, so a prediction that
    matches the main position also matches the list.
    """
    listed = [main_position] if main_position else []
    for tag in split_positions(pos_string):
        if tag not in listed:
            listed.append(tag)
    return listed[:MAX_LISTED_POSITIONS]


# ============================================================================
# DATA LOADING & VALIDATION
# ============================================================================

def load_data(file_path: str) -> pd.DataFrame:
    """
    Load the processed player table.

    Raises:
        FileNotFoundError: If the CSV file does not exist
    """
    try:
        df = pd.read_csv(file_path, low_memory=False)
    except FileNotFoundError:
        raise FileNotFoundError(f"CSV file not found: {file_path}")

    df.columns = [str(col).strip() for col in df.columns]
    return df


def validate_schema(df: pd.DataFrame, required_columns: List[str] = REQUIRED_COLUMNS) -> None:
    """
    Fail fast if the expected column schema is absent.

    Raises:
        SchemaError: listing every missing column
    """
    missing_columns = [col for col in required_columns if col not in df.columns]
    if missing_columns:
        raise SchemaError(
            f"Input table is missing required columns: {missing_columns}",
            missing_columns=missing_columns,
        )


def clean_numeric_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Coerce numeric columns to float.

    Isolated unparseable cells become NaN and are counted in a warning.
    A column with values but none parseable, or any infinite value, is a
    malformed column and aborts the load.

    Raises:
        SchemaError: listing the malformed columns
    """
    df = df.copy()
    malformed = []
    non_finite = []

    for col in NUMERIC_COLUMNS:
        if col not in df.columns:
            continue

        raw = df[col]
        coerced = pd.to_numeric(raw, errors='coerce').astype(float)
        lost = int((raw.notna() & coerced.isna()).sum())

        if raw.notna().any() and coerced.isna().all():
            malformed.append(col)
        elif lost > 0:
            logger.warning(f"{col}: {lost} non-numeric values set to NaN")

        if np.isinf(coerced).any():
            non_finite.append(col)

        df[col] = coerced

    if malformed:
        raise SchemaError(
            f"Numeric columns hold no parseable values: {malformed}",
            missing_columns=malformed,
        )
    if non_finite:
        raise SchemaError(
            f"Numeric columns hold infinite values: {non_finite}",
            missing_columns=non_finite,
        )

    return df


def derive_per90_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Add per-90 columns that are absent from the input (raw count / 90s).

    Columns already present are left untouched; per-90 values are never
    recomputed after load.
    """
    df = df.copy()
    nineties = pd.to_numeric(df['90s'], errors='coerce')

    for per90_col, raw_col in PER90_SOURCES.items():
        if per90_col in df.columns:
            continue
        raw = pd.to_numeric(df[raw_col], errors='coerce')
        df[per90_col] = np.where(nineties > 0, raw / nineties.where(nineties > 0), 0.0)
        logger.info(f"Derived {per90_col} from {raw_col} / 90s")

    return df


# ============================================================================
# POSITION NORMALIZATION
# ============================================================================

def relabel_positions(df: pd.DataFrame, label_map: Dict[str, str] = POSITION_LABEL_MAP) -> pd.DataFrame:
    """
    Apply the label-mapping table to the main position and the listed positions.

    This is the only place relabeling happens; downstream stages consume the
    canonical labels.
    """
    df = df.copy()

    df[MAIN_POSITION_COLUMN] = df[MAIN_POSITION_COLUMN].apply(
        lambda label: normalize_position(label, label_map)
    )
    df[POSITIONS_COLUMN] = df[POSITIONS_COLUMN].apply(
        lambda pos: ', '.join(split_positions(pos, label_map))
    )

    return df


def drop_missing_main_position(df: pd.DataFrame) -> pd.DataFrame:
    """Remove players with no designated main position."""
    mask = df[MAIN_POSITION_COLUMN].notna()
    removed = int((~mask).sum())
    if removed > 0:
        logger.info(f"Dropped {removed} players without a main position")
    return df[mask].copy()


def deduplicate_players(df: pd.DataFrame) -> pd.DataFrame:
    """
    Collapse duplicate players (by name) to their first occurrence.

    Idempotent: applying it to its own output changes nothing.
    """
    names = df[PLAYER_COLUMN].apply(clean_player_name)
    mask = ~names.duplicated(keep='first')
    removed = int((~mask).sum())
    if removed > 0:
        logger.info(f"Collapsed {removed} duplicate player rows")
    result = df[mask].copy()
    result[PLAYER_COLUMN] = names[mask]
    return result


def validate_positions(df: pd.DataFrame) -> None:
    """
    Ensure every main position belongs to the canonical taxonomy.

    Raises:
        SchemaError: if an unknown label survives relabeling
    """
    unknown = sorted(set(df[MAIN_POSITION_COLUMN].dropna()) - set(CANONICAL_POSITIONS))
    if unknown:
        raise SchemaError(
            f"Non-canonical main positions after relabeling (map v{LABEL_MAP_VERSION}): {unknown}"
        )


def get_class_distribution(df: pd.DataFrame) -> pd.Series:
    """Player count per canonical position (zero for absent labels)."""
    return (
        df[MAIN_POSITION_COLUMN]
        .value_counts()
        .reindex(CANONICAL_POSITIONS, fill_value=0)
    )


# ============================================================================
# MAIN ORCHESTRATION
# ============================================================================

def process_all_data(csv_path: str) -> Dict[str, any]:
    """
    Full data processing pipeline: Load → Validate → Clean → Relabel → Deduplicate

    Processing steps:
    1. Load CSV and check the column schema (fatal on failure)
    2. Coerce numeric columns and derive any missing per-90 columns
    3. Relabel positions onto the canonical taxonomy
    4. Drop players without a main position
    5. Collapse duplicate players
    6. Validate that only canonical labels remain

    Args:
        csv_path (str): Path to the processed player CSV

    Returns:
        Dict containing:
        - 'dataframe': Cleaned pandas DataFrame
        - 'class_distribution': Player count per canonical position
        - 'processing_info': Row counts and metadata about processing

    Raises:
        FileNotFoundError: If CSV not found
        SchemaError: If required columns are missing or labels are not canonical
    """
    logger.info("=" * 80)
    logger.info("STARTING DATA PROCESSING PIPELINE")
    logger.info("=" * 80)

    logger.info("[1/6] Loading CSV...")
    df = load_data(csv_path)
    validate_schema(df)
    loaded_rows = len(df)
    logger.info(f"Loaded {loaded_rows} total records")

    logger.info("[2/6] Cleaning numeric columns...")
    df = clean_numeric_columns(df)
    df = derive_per90_columns(df)

    logger.info(f"[3/6] Relabeling positions (label map v{LABEL_MAP_VERSION})...")
    df = relabel_positions(df)

    logger.info("[4/6] Dropping players without a main position...")
    df = drop_missing_main_position(df)
    with_position_rows = len(df)

    logger.info("[5/6] Removing duplicate players...")
    df = deduplicate_players(df)

    logger.info("[6/6] Validating position labels...")
    validate_positions(df)
    df = df.reset_index(drop=True)

    class_distribution = get_class_distribution(df)
    logger.info(f"Final dataset: {len(df)} players across {int((class_distribution > 0).sum())} positions")

    return {
        'dataframe': df,
        'class_distribution': class_distribution,
        'processing_info': {
            'csv_path': csv_path,
            'label_map_version': LABEL_MAP_VERSION,
            'loaded_rows': loaded_rows,
            'rows_with_main_position': with_position_rows,
            'final_rows': len(df),
            'duplicates_removed': with_position_rows - len(df),
        },
    }

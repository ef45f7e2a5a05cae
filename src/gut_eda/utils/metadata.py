# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd

# Local Imports
from gut_eda import constants
from gut_eda.errors import DataUnavailable, SchemaMismatch

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('gut_eda')

# ==================================== FUNCTIONS ===================================== #

def import_metadata_tsv(tsv_path: Union[str, Path]) -> pd.DataFrame:
    """
    Load a sample metadata table and index it by sample id.

    Column names are lower-cased. The sample id column is the first of
    ``constants.SAMPLE_ID_CANDIDATES`` present, otherwise the first column.

    Args:
        tsv_path: Path to a tab (or, for .csv, comma) delimited file.

    Returns:
        Metadata DataFrame indexed by ``sample_id``.

    Raises:
        DataUnavailable: If the file is missing, unreadable or has duplicate
                         sample ids.
    """
    tsv_path = Path(tsv_path)
    if not tsv_path.exists():
        raise DataUnavailable(f"Metadata file not found: {tsv_path}")
    sep = ',' if tsv_path.suffix.lower() == '.csv' else '\t'
    try:
        df = pd.read_csv(tsv_path, sep=sep, dtype=str)
    except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise DataUnavailable(f"Cannot read metadata {tsv_path}: {e}") from e

    df.columns = df.columns.str.strip().str.lower()
    sample_id_col = next(
        (col for col in constants.SAMPLE_ID_CANDIDATES if col in df.columns),
        df.columns[0]
    )
    df[sample_id_col] = df[sample_id_col].astype(str).str.strip()
    if df[sample_id_col].duplicated().any():
        dupes = df.loc[df[sample_id_col].duplicated(), sample_id_col].unique()[:5]
        raise DataUnavailable(f"Duplicate sample ids in {tsv_path}: {list(dupes)}")

    df = df.set_index(sample_id_col)
    df.index.name = constants.SAMPLE_ID_COLUMN
    return df


def validate_columns(
    metadata: pd.DataFrame,
    required: Iterable[str] = constants.REQUIRED_COLUMNS,
    optional: Iterable[str] = constants.OPTIONAL_COLUMNS,
    source: Optional[str] = None
) -> pd.DataFrame:
    """Raise ``SchemaMismatch`` for missing required columns; add missing
    optional columns as empty."""
    missing = [col for col in required if col not in metadata.columns]
    if missing:
        raise SchemaMismatch(missing, source=source)

    metadata = metadata.copy()
    for col in optional:
        if col not in metadata.columns:
            logger.warning(f"Metadata has no '{col}' column; filling with missing values")
            metadata[col] = np.nan
    return metadata


def normalize_age_category(
    values: pd.Series,
    categories: List[str] = constants.AGE_CATEGORIES
) -> pd.Series:
    """Map age category labels case-insensitively onto the ordered categories.
    Unrecognised labels become NaN."""
    lookup = {c.lower(): c for c in categories}
    mapped = values.astype(str).str.strip().str.lower().map(lookup)
    return pd.Series(
        pd.Categorical(mapped, categories=categories, ordered=True),
        index=values.index,
        name=values.name
    )


def filter_samples(
    metadata: pd.DataFrame,
    filters: Optional[Dict[str, Optional[List[str]]]] = None,
    require_age: bool = constants.DEFAULT_REQUIRE_AGE
) -> pd.DataFrame:
    """
    Keep samples passing the study filters.

    Args:
        metadata:    Validated metadata.
        filters:     Column → accepted values (case-insensitive). A ``None``
                     value disables the filter for that column.
        require_age: Drop samples without a numeric age.

    Returns:
        Filtered copy with ``age`` as float and ``age_category`` as an ordered
        categorical.
    """
    filters = constants.DEFAULT_FILTERS if filters is None else filters
    df = metadata.copy()
    n_start = len(df)

    df[constants.AGE_COLUMN] = pd.to_numeric(df[constants.AGE_COLUMN], errors='coerce')
    if require_age:
        df = df[df[constants.AGE_COLUMN].notna()]
        logger.debug(f"Age filter: {n_start} → {len(df)} samples")
    negative = df[constants.AGE_COLUMN] < 0
    if negative.any():
        logger.warning(f"Dropping {int(negative.sum())} sample(s) with negative age")
        df = df[~negative]

    for col, accepted in filters.items():
        if accepted is None:
            continue
        if col not in df.columns:
            raise SchemaMismatch([col])
        if isinstance(accepted, str):
            accepted = [accepted]
        accepted = {str(a).strip().lower() for a in accepted}
        before = len(df)
        df = df[df[col].astype(str).str.strip().str.lower().isin(accepted)]
        logger.debug(f"Filter {col} in {sorted(accepted)}: {before} → {len(df)} samples")

    df = df.copy()
    categories = normalize_age_category(df[constants.AGE_CATEGORY_COLUMN])
    unknown = categories.isna()
    if unknown.any():
        labels = df.loc[unknown, constants.AGE_CATEGORY_COLUMN].astype(str).unique()[:5]
        logger.warning(
            f"Dropping {int(unknown.sum())} sample(s) with unrecognised age category: "
            f"{list(labels)}"
        )
    df[constants.AGE_CATEGORY_COLUMN] = categories
    df = df[~unknown]

    logger.info(f"Sample filtering kept {len(df)} of {n_start} samples")
    return df

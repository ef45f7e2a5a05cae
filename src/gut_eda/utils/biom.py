# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Dict, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import load_table
from biom.exception import BiomException
from biom.table import Table

# Local Imports
from gut_eda import constants
from gut_eda.errors import DataUnavailable
from gut_eda.utils.taxonomy import drop_ancestor_clades

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('gut_eda')

TEXT_SUFFIXES = {'.tsv', '.txt', '.csv', '.tab'}

# ================================ TABLE CONVERSION ================================== #

def table_to_df(table: Union[Dict, Table, pd.DataFrame]) -> pd.DataFrame:
    """Convert various table formats to samples × features DataFrame.

    Handles:
    - Pandas DataFrame (returns unchanged)
    - BIOM Table (transposes to samples × features)
    - Dictionary (converts to DataFrame)

    Raises:
        TypeError: For unsupported input types
    """
    if isinstance(table, pd.DataFrame):  # samples × features
        return table
    if isinstance(table, Table):         # features × samples
        return table.to_dataframe(dense=True).T
    if isinstance(table, dict):          # samples × features
        return pd.DataFrame(table)
    raise TypeError("Input must be BIOM Table, dict, or DataFrame.")


def df_to_biom(table: Union[pd.DataFrame, Table]) -> Table:
    """Convert a features × samples DataFrame to a BIOM Table."""
    if isinstance(table, Table):
        return table
    return Table(
        data=table.values.astype(float),
        observation_ids=table.index.astype(str).tolist(),
        sample_ids=table.columns.astype(str).tolist(),
        type="OTU table"
    )

# ==================================== LOADING ======================================= #

def import_biom(biom_path: Union[str, Path]) -> Table:
    """Load a BIOM table (HDF5 or JSON) from file.

    Raises:
        DataUnavailable: If the file is missing or not a readable BIOM table.
    """
    biom_path = Path(biom_path)
    if not biom_path.exists():
        raise DataUnavailable(f"Abundance table not found: {biom_path}")
    try:
        table = load_table(str(biom_path))
    except (OSError, TypeError, ValueError, KeyError, BiomException) as e:
        raise DataUnavailable(f"Cannot read BIOM table {biom_path}: {e}") from e
    if 0 in table.shape:
        raise DataUnavailable(f"BIOM table {biom_path} holds no data")
    return table


def _locate_header(path: Path, sep: str) -> int:
    """Number of leading comment lines to skip before the header.

    A trailing ``#`` line that contains the delimiter is the header itself
    (``#OTU ID`` in BIOM-derived TSVs); one without it is a comment
    (``#mpa_v30_CHOCOPhlAn_201901`` in MetaPhlAn merged tables).
    """
    comments = []
    with open(path, 'r') as f:
        for line in f:
            if not line.startswith('#'):
                break
            comments.append(line)
    if comments and sep in comments[-1]:
        return len(comments) - 1
    return len(comments)


def import_abundance_tsv(table_path: Union[str, Path]) -> Table:
    """
    Load a features × samples delimited text abundance table.

    The first column holds feature ids (lineage strings or plain names).
    Non-numeric annotation columns (e.g. MetaPhlAn's ``NCBI_tax_id``) are
    dropped, as are clade rows that are ancestors of other rows.

    Args:
        table_path: Path to a .tsv/.txt/.csv file.

    Returns:
        BIOM Table with features as observations.

    Raises:
        DataUnavailable: If the file is missing, unparsable or has no numeric
                         sample columns.
    """
    table_path = Path(table_path)
    if not table_path.exists():
        raise DataUnavailable(f"Abundance table not found: {table_path}")
    sep = ',' if table_path.suffix.lower() == '.csv' else '\t'

    try:
        skip = _locate_header(table_path, sep)
        df = pd.read_csv(table_path, sep=sep, skiprows=skip, index_col=0)
    except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise DataUnavailable(f"Cannot read abundance table {table_path}: {e}") from e

    df.index = df.index.astype(str).str.strip()
    numeric = df.select_dtypes(include='number')
    dropped = [c for c in df.columns if c not in numeric.columns]
    if dropped:
        logger.debug(f"Dropping non-numeric columns from {table_path.name}: {dropped}")
    if numeric.shape[1] == 0:
        raise DataUnavailable(f"No numeric sample columns in {table_path}")
    numeric = numeric.fillna(0.0)

    leaves = drop_ancestor_clades(numeric.index)
    if len(leaves) < len(numeric.index):
        logger.info(
            f"Keeping {len(leaves)} leaf clades of {len(numeric.index)} rows in "
            f"{table_path.name}"
        )
        numeric = numeric.loc[leaves]

    if numeric.index.duplicated().any():
        logger.warning(f"Summing duplicated feature ids in {table_path.name}")
        numeric = numeric.groupby(level=0, sort=False).sum()

    return df_to_biom(numeric)


def import_abundance_table(table_path: Union[str, Path]) -> Table:
    """Dispatch on file suffix: delimited text or BIOM."""
    table_path = Path(table_path)
    if table_path.suffix.lower() in TEXT_SUFFIXES:
        return import_abundance_tsv(table_path)
    return import_biom(table_path)

# ================================ NORMALIZATION ===================================== #

def to_relative_abundance(table: Table) -> Table:
    """Scale each sample to sum to 1; all-zero samples stay all-zero.

    Percent-scaled input (curatedMetagenomicData reports 0-100) is handled by
    the same per-sample division.

    Raises:
        DataUnavailable: If the table holds negative abundances.
    """
    if table.is_empty():
        return table.copy()
    sums = np.asarray(table.sum(axis='sample'), dtype=float)
    if table.matrix_data.min() < 0:
        raise DataUnavailable("Abundance table contains negative values")

    nonzero = sums[sums > 0]
    if nonzero.size and np.median(nonzero) > constants.PERCENT_SCALE_MIN_SUM:
        logger.info("Abundances look percent-scaled; converting to proportions")
    if (sums == 0).any():
        logger.warning(f"{int((sums == 0).sum())} sample(s) have no detected taxa")

    return table.norm(axis='sample', inplace=False)

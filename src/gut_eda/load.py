# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

# Third Party Imports
import pandas as pd
from biom.table import Table

# Local Imports
from gut_eda import constants
from gut_eda.errors import DataUnavailable
from gut_eda.utils.biom import (
    import_abundance_table, table_to_df, to_relative_abundance
)
from gut_eda.utils.metadata import filter_samples, import_metadata_tsv, validate_columns
from gut_eda.utils.taxonomy import Taxonomy, collapse_taxa

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("gut_eda")

# ==================================================================================== #

class Dataset:
    """Filtered, aligned relative-abundance table with its lineage and sample
    metadata.

    Attributes:
        table:    Features × samples BIOM Table of relative abundances.
        taxonomy: Lineage for the table's features.
        metadata: Sample metadata indexed by sample id, in table sample order.
    """

    def __init__(self, table: Table, taxonomy: Taxonomy, metadata: pd.DataFrame):
        self.table = table
        self.taxonomy = taxonomy
        self.metadata = metadata
        self._abundance: Optional[pd.DataFrame] = None

    def __len__(self) -> int:
        return len(self.metadata)

    def __repr__(self) -> str:
        n_features = len(self.table.ids(axis='observation'))
        return f"Dataset(samples={len(self)}, features={n_features})"

    @property
    def sample_ids(self) -> List[str]:
        return list(self.metadata.index)

    @property
    def abundance(self) -> pd.DataFrame:
        """Samples × features dense DataFrame."""
        if self._abundance is None:
            self._abundance = table_to_df(self.table).loc[self.sample_ids]
        return self._abundance

    def agglomerate(self, rank: str) -> pd.DataFrame:
        """Samples × rank-level taxa DataFrame, taxa in name order."""
        collapsed = table_to_df(collapse_taxa(self.table, self.taxonomy, rank))
        collapsed = collapsed.loc[self.sample_ids]
        return collapsed[sorted(collapsed.columns)]


def align_table_and_metadata(
    table: Table,
    metadata: pd.DataFrame
) -> Tuple[Table, pd.DataFrame]:
    """Restrict table and metadata to their shared samples, in metadata order.

    Args:
        table:    BIOM feature table.
        metadata: Sample metadata indexed by sample id.

    Returns:
        Tuple of (filtered BIOM table, filtered metadata DataFrame)
    """
    table_ids = set(table.ids(axis='sample'))
    shared_ids = [sid for sid in metadata.index if sid in table_ids]

    only_meta = len(metadata) - len(shared_ids)
    only_table = len(table_ids) - len(shared_ids)
    if only_meta:
        logger.warning(f"{only_meta} filtered sample(s) have no abundance profile")
    if only_table:
        logger.debug(f"{only_table} abundance profile(s) excluded by metadata filters")

    if not shared_ids:
        return table, metadata.iloc[0:0]

    filtered_table = table.filter(shared_ids, axis='sample', inplace=False)
    filtered_table = filtered_table.sort_order(shared_ids, axis='sample')
    return filtered_table, metadata.loc[shared_ids]


def load_dataset(
    abundance_path: Union[str, Path],
    metadata_path: Union[str, Path],
    taxonomy_path: Optional[Union[str, Path]] = None,
    filters: Optional[Dict[str, Optional[List[str]]]] = None,
    require_age: bool = constants.DEFAULT_REQUIRE_AGE
) -> Dataset:
    """
    Load, validate, filter and align an abundance table with its metadata.

    Filtering happens here, before any metric is computed: samples need a
    numeric age and must match ``filters`` (stool, healthy by default).

    Args:
        abundance_path: BIOM or delimited features × samples table.
        metadata_path:  Delimited sample metadata.
        taxonomy_path:  Optional features × ranks lineage table, for tables
                        whose feature ids are not lineage strings.
        filters:        Column → accepted values; see ``filter_samples``.
        require_age:    Drop samples with missing age.

    Returns:
        Dataset with relative abundances summing to 1 (or 0) per sample.

    Raises:
        DataUnavailable: Unreadable sources, or no samples left after filtering.
        SchemaMismatch:  Required metadata columns are absent.
    """
    if abundance_path is None or metadata_path is None:
        raise DataUnavailable("Both an abundance table and a metadata file are required")

    table = import_abundance_table(abundance_path)
    logger.info(
        f"Loaded abundance table: {len(table.ids(axis='observation'))} features × "
        f"{len(table.ids(axis='sample'))} samples"
    )

    if taxonomy_path is not None:
        taxonomy = Taxonomy.from_tsv(taxonomy_path)
        missing = [fid for fid in table.ids(axis='observation') if fid not in taxonomy]
        if missing:
            logger.warning(f"{len(missing)} feature(s) have no lineage in {taxonomy_path}")
    else:
        taxonomy = Taxonomy.from_biom(table)
    unresolved = taxonomy.unresolved()
    if len(unresolved):
        logger.warning(
            f"{len(unresolved)} feature(s) have no parseable lineage; they count as "
            f"their own species and as '{constants.UNCLASSIFIED}' above it"
        )

    metadata = import_metadata_tsv(metadata_path)
    metadata = validate_columns(metadata, source=str(metadata_path))
    metadata = filter_samples(metadata, filters=filters, require_age=require_age)

    table, metadata = align_table_and_metadata(table, metadata)
    if metadata.empty:
        raise DataUnavailable("No samples left after filtering and alignment")

    table = table.remove_empty(axis='observation', inplace=False)
    table = to_relative_abundance(table)

    dataset = Dataset(table, taxonomy, metadata)
    logger.info(f"Dataset ready: {dataset!r}")
    return dataset

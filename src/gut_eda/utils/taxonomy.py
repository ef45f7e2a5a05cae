# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table

# Local Imports
from gut_eda import constants
from gut_eda.errors import DataUnavailable, SchemaMismatch, UnknownRank

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('gut_eda')

_MISSING_NAMES = {'', 'nan', 'none', 'unknown', 'unclassified', 'unassigned'}

# ==================================== FUNCTIONS ===================================== #

def validate_rank(rank: str) -> str:
    """Return the canonical (lower-case) rank name or raise ``UnknownRank``."""
    if not isinstance(rank, str) or rank.strip().lower() not in constants.RANKS:
        raise UnknownRank(rank, constants.RANKS)
    return rank.strip().lower()


def _split_lineage(lineage: str) -> List[str]:
    if '|' in lineage:
        parts = lineage.split('|')
    elif ';' in lineage:
        parts = lineage.split(';')
    else:
        parts = [lineage]
    return [p.strip() for p in parts]


def parse_lineage(lineage: str) -> Dict[str, str]:
    """
    Parse a lineage string into a rank → name mapping.

    Accepts MetaPhlAn (``k__Bacteria|p__Firmicutes|...``) and QIIME
    (``d__Bacteria; p__Firmicutes; ...``) styles. Parts without a rank prefix
    are assigned positionally from kingdom downwards. A bare name with no
    separator and no prefix cannot be placed and yields an empty mapping.

    Args:
        lineage: Raw lineage string.

    Returns:
        Mapping of rank to taxon name; unnamed ranks are omitted.
    """
    parts = _split_lineage(str(lineage))
    if len(parts) == 1 and not constants.RANK_PREFIX_PATTERN.match(parts[0]):
        return {}

    parsed = {}
    for i, part in enumerate(parts):
        match = constants.RANK_PREFIX_PATTERN.match(part)
        if match:
            rank = constants.RANK_PREFIXES[match.group(1)]
            name = match.group(2).strip()
        else:
            rank = constants.RANKS[i] if i < len(constants.RANKS) else None
            name = part
        if rank not in constants.RANKS or name.lower() in _MISSING_NAMES:
            continue
        parsed[rank] = name
    return parsed


def drop_ancestor_clades(feature_ids: Iterable[str]) -> List[str]:
    """Drop features whose lineage is a strict ancestor of another feature.

    Merged MetaPhlAn profiles list every clade level (``k__X``, ``k__X|p__Y``,
    ...); keeping only the leaves counts each signal once.
    """
    feature_ids = [str(fid) for fid in feature_ids]
    ancestors = set()
    for fid in feature_ids:
        sep = '|' if '|' in fid else (';' if ';' in fid else None)
        if sep is None:
            continue
        parts = [p.strip() for p in fid.split(sep)]
        for k in range(1, len(parts)):
            ancestors.add(tuple(parts[:k]))

    leaves = []
    for fid in feature_ids:
        sep = '|' if '|' in fid else (';' if ';' in fid else None)
        key = tuple(p.strip() for p in fid.split(sep)) if sep else (fid.strip(),)
        if key not in ancestors:
            leaves.append(fid)
    return leaves

# ================================== TAXONOMY CLASS ================================== #

class Taxonomy:
    """
    Handler for per-feature lineage.

    Attributes:
        lineages (pd.DataFrame): Features as index, one column per rank in
            ``constants.RANKS``; missing names are NaN.
    """

    def __init__(self, lineages: pd.DataFrame) -> None:
        self.lineages = lineages.reindex(columns=constants.RANKS)

    def __len__(self) -> int:
        return len(self.lineages)

    def __contains__(self, feature_id) -> bool:
        return feature_id in self.lineages.index

    @classmethod
    def from_feature_ids(cls, feature_ids: Iterable[str]) -> "Taxonomy":
        """Build lineage from feature ids that are themselves lineage strings."""
        feature_ids = [str(fid) for fid in feature_ids]
        records = [parse_lineage(fid) for fid in feature_ids]
        return cls(pd.DataFrame(records, index=pd.Index(feature_ids, name='feature_id')))

    @classmethod
    def from_biom(cls, table: Table) -> "Taxonomy":
        """Build lineage from BIOM observation metadata, falling back to ids."""
        feature_ids = list(table.ids(axis='observation'))
        metadata = table.metadata(axis='observation')
        records = []
        for fid, md in zip(feature_ids, metadata if metadata is not None else [None] * len(feature_ids)):
            taxonomy = (md or {}).get('taxonomy')
            if isinstance(taxonomy, (list, tuple)):
                taxonomy = '; '.join(str(t) for t in taxonomy)
            records.append(parse_lineage(taxonomy) if taxonomy else parse_lineage(fid))
        return cls(pd.DataFrame(records, index=pd.Index(feature_ids, name='feature_id')))

    @classmethod
    def from_tsv(cls, tsv_path: Union[str, Path]) -> "Taxonomy":
        """
        Load lineage from a delimited table keyed by feature id.

        Either one column per rank (``kingdom`` ... ``species``) or a single
        QIIME-style ``taxon``/``taxonomy`` lineage column is accepted.

        Raises:
            DataUnavailable: If the file cannot be read.
            SchemaMismatch:  If neither rank nor lineage columns are present.
        """
        tsv_path = Path(tsv_path)
        sep = ',' if tsv_path.suffix.lower() == '.csv' else '\t'
        try:
            df = pd.read_csv(tsv_path, sep=sep, index_col=0, dtype=str)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise DataUnavailable(f"Cannot read taxonomy table {tsv_path}: {e}") from e
        df.columns = df.columns.str.strip().str.lower()
        df.index = df.index.astype(str)
        df.index.name = 'feature_id'

        rank_cols = [r for r in constants.RANKS if r in df.columns]
        if rank_cols:
            lineages = df[rank_cols].apply(lambda col: col.map(_clean_name))
            return cls(lineages)

        lineage_col = next((c for c in ['taxon', 'taxonomy', 'lineage'] if c in df.columns), None)
        if lineage_col is None:
            raise SchemaMismatch(constants.RANKS, source=str(tsv_path))
        records = [parse_lineage(x) if isinstance(x, str) else {} for x in df[lineage_col]]
        return cls(pd.DataFrame(records, index=df.index))

    def names(self, rank: str, feature_ids: Optional[Iterable[str]] = None) -> pd.Series:
        """
        Feature id → name at ``rank``.

        Features without any lineage (plain names such as ``Prevotella_copri``,
        or ids absent from a lineage table) are their own species; every other
        missing name is ``Unclassified``.
        """
        rank = validate_rank(rank)
        lineages = self.lineages
        if feature_ids is not None:
            lineages = lineages.reindex([str(fid) for fid in feature_ids])
        names = lineages[rank]
        if rank == constants.RANKS[-1]:
            unplaced = lineages.isna().all(axis=1)
            names = names.where(~unplaced, pd.Series(lineages.index, index=lineages.index))
        return names.fillna(constants.UNCLASSIFIED)

    def unresolved(self) -> pd.Index:
        """Features with no name at any rank; they resolve only at species."""
        return self.lineages.index[self.lineages.isna().all(axis=1)]


def _clean_name(value) -> Optional[str]:
    if not isinstance(value, str):
        return np.nan
    match = constants.RANK_PREFIX_PATTERN.match(value.strip())
    name = match.group(2).strip() if match else value.strip()
    return np.nan if name.lower() in _MISSING_NAMES else name

# ================================== AGGLOMERATION =================================== #

def collapse_taxa(table: Table, taxonomy: Taxonomy, rank: str) -> Table:
    """Collapse a BIOM feature table to ``rank`` by summing features that share
    a rank-level name.

    Args:
        table:    Features × samples BIOM Table.
        taxonomy: Lineage for the table's features.
        rank:     Target rank.

    Returns:
        Collapsed BIOM Table; all-zero samples are kept.

    Raises:
        UnknownRank: For an unsupported rank.
    """
    rank = validate_rank(rank)
    id_map = taxonomy.names(rank, table.ids(axis='observation')).to_dict()
    return table.collapse(
        lambda id_, _: id_map.get(id_, constants.UNCLASSIFIED),
        norm=False,
        axis='observation',
        include_collapsed_metadata=False
    )


def agglomerate(
    abundance: Union[pd.DataFrame, pd.Series],
    taxonomy: Optional[Taxonomy],
    rank: str
) -> Union[pd.DataFrame, pd.Series]:
    """Sum abundances up to ``rank``.

    Args:
        abundance: Samples × features DataFrame, or a single sample's Series
                   indexed by feature id.
        taxonomy:  Lineage for the features. When ``None`` the feature ids are
                   parsed as lineage strings.
        rank:      Target rank.

    Returns:
        Same orientation as the input with rank-level names (sorted) in place of
        features.
    """
    rank = validate_rank(rank)
    features = abundance.index if isinstance(abundance, pd.Series) else abundance.columns
    if taxonomy is None:
        taxonomy = Taxonomy.from_feature_ids(features)
    names = taxonomy.names(rank, features).values

    if isinstance(abundance, pd.Series):
        return abundance.groupby(names).sum()
    return abundance.T.groupby(names).sum().T

"""
Per-sample metrics over a relative-abundance table: richness (observed taxa),
the number of top taxa covering a share of the sample, the dominant taxon at a
rank and Shannon diversity.

Metric computation sits behind ``MetricProvider`` so the aggregation code does
not depend on how the numbers are produced; ``AbundanceMetricProvider`` is the
numpy/pandas/scipy implementation used by default.
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
import numbers
from abc import ABC, abstractmethod
from typing import Optional

# Third-Party Imports
import numpy as np
import pandas as pd
from scipy.stats import entropy

# ================================== LOCAL IMPORTS =================================== #

from gut_eda import constants
from gut_eda.errors import InvalidThreshold
from gut_eda.utils.progress import get_progress_bar, task_description
from gut_eda.utils.taxonomy import Taxonomy, agglomerate, validate_rank

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('gut_eda')

# ==================================== FUNCTIONS ===================================== #

def validate_threshold(threshold) -> float:
    """Return ``threshold`` as float or raise ``InvalidThreshold`` unless it lies
    in (0, 1]."""
    if isinstance(threshold, bool) or not isinstance(threshold, numbers.Real):
        raise InvalidThreshold(threshold)
    threshold = float(threshold)
    if not 0.0 < threshold <= 1.0:
        raise InvalidThreshold(threshold)
    return threshold


def _ranked(row: pd.Series) -> pd.Series:
    """Positive entries by descending abundance, ties by ascending name."""
    positive = row[row > 0]
    return (
        positive.sort_index(kind='mergesort')
        .sort_values(ascending=False, kind='mergesort')
    )

# ================================= METRIC PROVIDERS ================================= #

class MetricProvider(ABC):
    """
    Interface for per-sample metric computation.

    Subclasses implement the four per-row operations. ``calculate`` applies
    them to every sample; implementations may override it with a vectorized
    version that returns the same frame.
    """

    @abstractmethod
    def observed_count(self, row: pd.Series) -> int:
        pass

    @abstractmethod
    def coverage_count(
        self,
        row: pd.Series,
        threshold: float = constants.DEFAULT_COVERAGE_THRESHOLD
    ) -> int:
        pass

    @abstractmethod
    def dominant_taxon(
        self,
        row: pd.Series,
        rank: str = constants.DEFAULT_DOMINANT_RANK,
        taxonomy: Optional[Taxonomy] = None
    ) -> Optional[str]:
        pass

    @abstractmethod
    def shannon(self, row: pd.Series) -> float:
        pass

    def calculate(
        self,
        abundance: pd.DataFrame,
        taxonomy: Optional[Taxonomy] = None,
        threshold: float = constants.DEFAULT_COVERAGE_THRESHOLD,
        rank: str = constants.DEFAULT_DOMINANT_RANK
    ) -> pd.DataFrame:
        """
        Compute all metrics for a samples × features table.

        Returns:
            DataFrame indexed like ``abundance`` with columns
            ``constants.METRIC_COLUMNS``.
        """
        records = []
        with get_progress_bar() as progress:
            task = progress.add_task(
                task_description("Calculating sample metrics"), total=len(abundance),
                unit="samples"
            )
            for _, row in abundance.iterrows():
                records.append({
                    'observed_count': self.observed_count(row),
                    'coverage_count': self.coverage_count(row, threshold),
                    'shannon': self.shannon(row),
                    'dominant_taxon': self.dominant_taxon(row, rank, taxonomy),
                })
                progress.update(task, advance=1)
        return pd.DataFrame(records, index=abundance.index, columns=constants.METRIC_COLUMNS)


class AbundanceMetricProvider(MetricProvider):
    """Metrics computed directly from relative abundances."""

    def observed_count(self, row: pd.Series) -> int:
        return int((row > 0).sum())

    def coverage_count(
        self,
        row: pd.Series,
        threshold: float = constants.DEFAULT_COVERAGE_THRESHOLD
    ) -> int:
        threshold = validate_threshold(threshold)
        row = row.astype(float)
        total = row[row > 0].sum()
        if total <= 0:
            return 0
        ranked = _ranked(row)
        if threshold >= 1.0:
            return len(ranked)
        cumulative = ranked.cumsum().values / total
        idx = np.searchsorted(
            cumulative, threshold - constants.ABUNDANCE_TOLERANCE, side='left'
        )
        return int(min(idx + 1, len(ranked)))

    def dominant_taxon(
        self,
        row: pd.Series,
        rank: str = constants.DEFAULT_DOMINANT_RANK,
        taxonomy: Optional[Taxonomy] = None
    ) -> Optional[str]:
        rank = validate_rank(rank)
        collapsed = agglomerate(row.astype(float), taxonomy, rank)
        collapsed = collapsed.drop(constants.UNCLASSIFIED, errors='ignore')
        collapsed = collapsed[collapsed > 0]
        if collapsed.empty:
            return None
        top = collapsed.max()
        return sorted(collapsed.index[collapsed == top])[0]

    def shannon(self, row: pd.Series) -> float:
        values = row.astype(float).values
        values = values[values > 0]
        if values.size == 0:
            return 0.0
        return float(entropy(values))

    def calculate(
        self,
        abundance: pd.DataFrame,
        taxonomy: Optional[Taxonomy] = None,
        threshold: float = constants.DEFAULT_COVERAGE_THRESHOLD,
        rank: str = constants.DEFAULT_DOMINANT_RANK
    ) -> pd.DataFrame:
        threshold = validate_threshold(threshold)
        rank = validate_rank(rank)

        values = abundance.to_numpy(dtype=float, copy=True)
        values[values < 0] = 0.0
        totals = values.sum(axis=1)
        observed = (values > 0).sum(axis=1)

        # Tie order among equal abundances does not change the count
        ordered = -np.sort(-values, axis=1)
        with np.errstate(divide='ignore', invalid='ignore'):
            cumulative = np.cumsum(ordered, axis=1) / totals[:, None]
            shannon = entropy(values, axis=1) if values.shape[1] else np.zeros(len(values))
        if threshold >= 1.0:
            coverage = observed.copy()
        else:
            coverage = (cumulative < threshold - constants.ABUNDANCE_TOLERANCE).sum(axis=1) + 1
            coverage = np.minimum(coverage, observed)
        coverage[totals <= 0] = 0
        shannon = np.where(totals > 0, shannon, 0.0)

        # Features unnamed at this rank are not a taxon and never dominate
        collapsed = agglomerate(abundance, taxonomy, rank).drop(
            columns=constants.UNCLASSIFIED, errors='ignore'
        )
        dominant = pd.Series(None, index=abundance.index, dtype=object)
        detected = collapsed.max(axis=1) > 0 if collapsed.shape[1] else None
        if detected is not None and detected.any():
            # Columns are name-sorted, so idxmax resolves ties lexicographically
            dominant[detected] = collapsed.loc[detected].idxmax(axis=1).astype(object)

        metrics = pd.DataFrame({
            'observed_count': observed.astype(int),
            'coverage_count': coverage.astype(int),
            'shannon': shannon.astype(float),
            'dominant_taxon': dominant.astype(object).values,
        }, index=abundance.index)
        logger.debug(f"Computed metrics for {len(metrics)} samples at rank '{rank}'")
        return metrics[constants.METRIC_COLUMNS]

# ================================ MODULE-LEVEL API ================================== #

DEFAULT_PROVIDER = AbundanceMetricProvider()


def observed_count(row: pd.Series) -> int:
    """Number of taxa with strictly positive abundance."""
    return DEFAULT_PROVIDER.observed_count(row)


def coverage_count(
    row: pd.Series,
    threshold: float = constants.DEFAULT_COVERAGE_THRESHOLD
) -> int:
    """Smallest number of most-abundant taxa whose cumulative share of the sample
    reaches ``threshold``. Ties in abundance are taken in ascending name order.

    Raises:
        InvalidThreshold: ``threshold`` not in (0, 1].
    """
    return DEFAULT_PROVIDER.coverage_count(row, threshold)


def dominant_taxon(
    row: pd.Series,
    rank: str = constants.DEFAULT_DOMINANT_RANK,
    taxonomy: Optional[Taxonomy] = None
) -> Optional[str]:
    """Most abundant taxon after agglomerating ``row`` to ``rank``; ties go to
    the lexicographically smallest name. Abundance without a name at ``rank``
    is not a candidate, so a sample with nothing named there has none.

    Raises:
        UnknownRank: ``rank`` is not a supported rank.
    """
    return DEFAULT_PROVIDER.dominant_taxon(row, rank, taxonomy)


def shannon(row: pd.Series) -> float:
    """Shannon diversity (natural log) of the row's proportions."""
    return DEFAULT_PROVIDER.shannon(row)


def calculate_metrics(
    dataset,
    provider: Optional[MetricProvider] = None,
    threshold: float = constants.DEFAULT_COVERAGE_THRESHOLD,
    rank: str = constants.DEFAULT_DOMINANT_RANK
) -> pd.DataFrame:
    """
    Append per-sample metrics to the dataset's metadata.

    Args:
        dataset:   ``gut_eda.load.Dataset``.
        provider:  Metric implementation; ``AbundanceMetricProvider`` if omitted.
        threshold: Coverage threshold in (0, 1].
        rank:      Rank for the dominant taxon.

    Returns:
        New DataFrame: metadata columns followed by ``constants.METRIC_COLUMNS``.
    """
    threshold = validate_threshold(threshold)
    rank = validate_rank(rank)
    provider = provider or DEFAULT_PROVIDER

    metrics = provider.calculate(dataset.abundance, dataset.taxonomy, threshold, rank)
    samples = dataset.metadata.drop(
        columns=[c for c in constants.METRIC_COLUMNS if c in dataset.metadata.columns]
    ).join(metrics)
    logger.info(
        f"Metrics for {len(samples)} samples: median richness "
        f"{samples['observed_count'].median():g}, median {threshold:.0%} coverage "
        f"{samples['coverage_count'].median():g}"
    )
    return samples

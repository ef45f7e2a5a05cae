# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, NamedTuple, Optional, Tuple

# Third-Party Imports
import numpy as np
import pandas as pd
from scipy.stats import kruskal, mannwhitneyu, spearmanr
from statsmodels.nonparametric.smoothers_lowess import lowess
from statsmodels.stats.multitest import multipletests

# ================================== LOCAL IMPORTS =================================== #

from gut_eda import constants
from gut_eda.errors import SchemaMismatch
from gut_eda.utils.taxonomy import validate_rank

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('gut_eda')

# ================================== RESULT TYPES ==================================== #

@dataclass(frozen=True)
class GroupSummary:
    """Descriptive statistics of the samples sharing one group value."""
    group: Hashable
    count: int
    observed_median: float
    observed_max: int
    coverage_median: float
    coverage_max: int
    dominant_frequency: Dict[str, float] = field(default_factory=dict)


class AgeTrend(NamedTuple):
    """Rank correlation of a metric with age plus its LOWESS curve."""
    metric: str
    rho: float
    p_value: float
    n_samples: int
    curve: pd.DataFrame

# =================================== HELPERS ======================================== #

def _require(samples: pd.DataFrame, columns: List[str]) -> None:
    missing = [c for c in columns if c not in samples.columns]
    if missing:
        raise SchemaMismatch(missing)


def _groups(samples: pd.DataFrame, group_key: str):
    """Non-empty partitions in category (or sorted) order; missing keys dropped."""
    _require(samples, [group_key])
    return samples.groupby(group_key, observed=True, sort=True, dropna=True)

# ================================== AGGREGATION ===================================== #

def dominant_taxon_frequency(
    samples: pd.DataFrame,
    group_key: str = constants.DEFAULT_GROUP_COLUMN
) -> Dict[Tuple[Hashable, str], float]:
    """
    Fraction of each group's samples having each dominant taxon.

    Samples without a dominant taxon (nothing detected) are left out, so the
    frequencies of every group sum to 1.

    Args:
        samples:   Per-sample metrics from ``calculate_metrics``.
        group_key: Categorical column to group by.

    Returns:
        Mapping (group value, taxon) → relative frequency.
    """
    counts = dominant_taxon_counts(samples, group_key)
    frequencies = {}
    for group, row in counts.iterrows():
        total = row.sum()
        if total == 0:
            continue
        for taxon, n in row.items():
            if n > 0:
                frequencies[(group, taxon)] = float(n / total)
    return frequencies


def dominant_taxon_counts(
    samples: pd.DataFrame,
    group_key: str = constants.DEFAULT_GROUP_COLUMN
) -> pd.DataFrame:
    """Groups × dominant taxa sample counts, taxa ordered by overall count then
    name."""
    _require(samples, [group_key, 'dominant_taxon'])
    valid = samples.dropna(subset=[group_key, 'dominant_taxon'])
    if valid.empty:
        return pd.DataFrame()
    counts = (
        valid.groupby([group_key, 'dominant_taxon'], observed=True, sort=True)
        .size()
        .unstack(fill_value=0)
    )
    totals = counts.sum(axis=0)
    order = sorted(counts.columns, key=lambda taxon: (-totals[taxon], taxon))
    counts = counts[order]
    counts.columns.name = 'dominant_taxon'
    return counts


def group_summary(
    samples: pd.DataFrame,
    group_key: str = constants.DEFAULT_GROUP_COLUMN
) -> Dict[Hashable, GroupSummary]:
    """
    Partition samples by ``group_key`` and summarise richness and coverage.

    Groups with no samples are omitted. Medians of even-sized groups are the
    mean of the two middle values.

    Args:
        samples:   Per-sample metrics from ``calculate_metrics``.
        group_key: Categorical column to group by.

    Returns:
        Mapping group value → ``GroupSummary``, in group order.
    """
    _require(samples, ['observed_count', 'coverage_count'])
    frequencies = (
        dominant_taxon_frequency(samples, group_key)
        if 'dominant_taxon' in samples.columns else {}
    )

    summaries = {}
    for group, members in _groups(samples, group_key):
        if len(members) == 0:
            continue
        summaries[group] = GroupSummary(
            group=group,
            count=int(len(members)),
            observed_median=float(members['observed_count'].median()),
            observed_max=int(members['observed_count'].max()),
            coverage_median=float(members['coverage_count'].median()),
            coverage_max=int(members['coverage_count'].max()),
            dominant_frequency={
                taxon: freq for (g, taxon), freq in frequencies.items() if g == group
            },
        )
    logger.debug(f"Summarised {len(summaries)} group(s) of '{group_key}'")
    return summaries


def summary_table(summaries: Dict[Hashable, GroupSummary]) -> pd.DataFrame:
    """Tabulate group summaries, one row per group with its most frequent
    dominant taxon."""
    rows = []
    for group, summary in summaries.items():
        top_taxon, top_freq = None, np.nan
        if summary.dominant_frequency:
            top_taxon, top_freq = min(
                summary.dominant_frequency.items(), key=lambda kv: (-kv[1], kv[0])
            )
        rows.append({
            'group': group,
            'count': summary.count,
            'observed_median': summary.observed_median,
            'observed_max': summary.observed_max,
            'coverage_median': summary.coverage_median,
            'coverage_max': summary.coverage_max,
            'top_dominant_taxon': top_taxon,
            'top_dominant_frequency': top_freq,
        })
    return pd.DataFrame(rows).set_index('group') if rows else pd.DataFrame()

# ================================== COMPOSITION ===================================== #

def sample_composition(
    dataset,
    rank: str = constants.DEFAULT_COMPOSITION_RANK,
    top_n: Optional[int] = constants.DEFAULT_COMPOSITION_TOP_N
) -> pd.DataFrame:
    """
    Samples × taxa relative abundance at ``rank``.

    When ``top_n`` is set, taxa outside the ``top_n`` highest mean abundances
    are summed into ``Other``.
    """
    rank = validate_rank(rank)
    collapsed = dataset.agglomerate(rank)
    if top_n is None or collapsed.shape[1] <= top_n:
        return collapsed

    means = collapsed.mean(axis=0)
    keep = sorted(means.index, key=lambda taxon: (-means[taxon], taxon))[:top_n]
    lumped = collapsed[keep].copy()
    lumped[constants.OTHER] = collapsed.drop(columns=keep).sum(axis=1)
    return lumped


def composition(
    dataset,
    rank: str = constants.DEFAULT_COMPOSITION_RANK,
    group_key: str = constants.DEFAULT_GROUP_COLUMN,
    top_n: Optional[int] = constants.DEFAULT_COMPOSITION_TOP_N
) -> pd.DataFrame:
    """
    Mean relative abundance of each taxon at ``rank`` per group.

    Each row sums to the fraction of the group's samples with any detected
    taxa (1 when none are empty).

    Returns:
        Groups × taxa DataFrame in group order.
    """
    per_sample = sample_composition(dataset, rank, top_n)
    _require(dataset.metadata, [group_key])
    groups = dataset.metadata.loc[per_sample.index, group_key]
    return per_sample.groupby(groups, observed=True, sort=True).mean()

# =================================== STATISTICS ===================================== #

def compare_groups(
    samples: pd.DataFrame,
    metrics: List[str] = constants.DEFAULT_STATS_METRICS,
    group_key: str = constants.DEFAULT_GROUP_COLUMN
) -> pd.DataFrame:
    """
    Non-parametric comparison of each metric across groups.

    Kruskal-Wallis with epsilon-squared effect size for three or more groups,
    Mann-Whitney U with rank-biserial correlation for two. P-values are
    Benjamini-Hochberg adjusted across metrics.

    Returns:
        DataFrame (metric, test, statistic, p_value, p_adj, effect_size, groups).
    """
    _require(samples, list(metrics))
    results = []
    for metric in metrics:
        group_data = [
            members[metric].dropna().values
            for _, members in _groups(samples, group_key)
            if members[metric].notna().any()
        ]
        if len(group_data) < 2:
            logger.warning(f"Insufficient groups for {metric} - skipping")
            continue

        try:
            if len(group_data) == 2:
                u_stat, p_val = mannwhitneyu(*group_data)
                n1, n2 = len(group_data[0]), len(group_data[1])
                test_name, statistic = "Mann-Whitney U", u_stat
                effect_size = 1 - (2 * u_stat) / (n1 * n2)
            else:
                h_stat, p_val = kruskal(*group_data)
                n_total = sum(len(g) for g in group_data)
                test_name, statistic = "Kruskal-Wallis", h_stat
                effect_size = h_stat / ((n_total**2 - 1) / (n_total + 1))
        except ValueError as e:
            # e.g. every value identical
            logger.warning(f"Cannot test {metric} across '{group_key}': {e}")
            continue

        results.append({
            'metric': metric,
            'test': test_name,
            'statistic': float(statistic),
            'p_value': float(p_val),
            'effect_size': float(effect_size),
            'groups': len(group_data),
        })

    columns = ['metric', 'test', 'statistic', 'p_value', 'p_adj', 'effect_size', 'groups']
    if not results:
        return pd.DataFrame(columns=columns)
    results_df = pd.DataFrame(results)
    results_df['p_adj'] = np.nan
    valid = results_df['p_value'].notna()
    if valid.any():
        results_df.loc[valid, 'p_adj'] = multipletests(
            results_df.loc[valid, 'p_value'], method='fdr_bh'
        )[1]
    return results_df[columns]


def age_trend(
    samples: pd.DataFrame,
    metric: str = constants.DEFAULT_TREND_METRIC,
    frac: float = constants.DEFAULT_LOWESS_FRAC
) -> AgeTrend:
    """
    Spearman correlation of ``metric`` with age and a LOWESS smooth of the
    metric over age.

    Returns:
        ``AgeTrend``; with fewer than three samples the correlation is NaN and
        the curve empty.
    """
    _require(samples, [constants.AGE_COLUMN, metric])
    data = samples[[constants.AGE_COLUMN, metric]].dropna().astype(float)
    curve_columns = [constants.AGE_COLUMN, f'{metric}_lowess']
    if len(data) < 3:
        logger.warning(f"Too few samples ({len(data)}) for an age trend of {metric}")
        return AgeTrend(metric, np.nan, np.nan, len(data), pd.DataFrame(columns=curve_columns))

    rho, p_val = spearmanr(data[constants.AGE_COLUMN], data[metric])
    smoothed = lowess(
        endog=data[metric].values,
        exog=data[constants.AGE_COLUMN].values,
        frac=frac,
        return_sorted=True
    )
    curve = pd.DataFrame(smoothed, columns=curve_columns)
    return AgeTrend(metric, float(rho), float(p_val), len(data), curve)

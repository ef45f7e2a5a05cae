#!/usr/bin/env python3
"""
Per-group summaries, composition, group comparisons and age trends.
"""
import numpy as np
import pandas as pd
import pytest

from gut_eda import constants
from gut_eda.aggregate import (
    AgeTrend, GroupSummary, age_trend, compare_groups, composition, dominant_taxon_counts,
    dominant_taxon_frequency, group_summary, sample_composition, summary_table
)
from gut_eda.errors import SchemaMismatch, UnknownRank
from gut_eda.metrics import calculate_metrics


@pytest.fixture
def samples(dataset):
    return calculate_metrics(dataset, threshold=0.9, rank='genus')


def _frame(groups, observed, coverage=None, dominant=None):
    n = len(groups)
    return pd.DataFrame({
        'age_category': pd.Categorical(groups, categories=constants.AGE_CATEGORIES, ordered=True),
        'observed_count': observed,
        'coverage_count': coverage if coverage is not None else observed,
        'dominant_taxon': dominant if dominant is not None else ['X'] * n,
    }, index=[f"s{i}" for i in range(n)])


def test_group_summary_expected_values(samples):
    summaries = group_summary(samples)

    assert list(summaries) == ['Newborn', 'Child', 'Adult', 'Senior']
    adult = summaries['Adult']
    assert isinstance(adult, GroupSummary)
    assert adult.count == 2
    assert adult.observed_median == 3.5
    assert adult.observed_max == 4
    assert adult.coverage_median == 3.0
    assert adult.coverage_max == 3
    assert adult.dominant_frequency == {'Bacteroides': 0.5, 'Faecalibacterium': 0.5}

    senior = summaries['Senior']
    assert senior.count == 2
    assert senior.observed_median == 1.0
    assert senior.observed_max == 2
    assert senior.dominant_frequency == {'Bacteroides': 1.0}


def test_group_summary_omits_empty_groups(samples):
    assert 'Schoolage' not in group_summary(samples)


def test_group_summary_even_median():
    df = _frame(['Adult'] * 4, [10, 20, 30, 40])
    summary = group_summary(df)['Adult']
    assert summary.observed_median == 25.0
    assert summary.observed_max == 40


def test_group_counts_partition_samples(samples):
    summaries = group_summary(samples)
    assert sum(s.count for s in summaries.values()) == len(samples)
    for summary in summaries.values():
        assert summary.observed_max >= summary.observed_median
        assert summary.coverage_max <= summary.observed_max


def test_dominant_frequencies_sum_to_one(samples):
    frequencies = dominant_taxon_frequency(samples)
    totals = {}
    for (group, _), freq in frequencies.items():
        totals[group] = totals.get(group, 0.0) + freq
    for total in totals.values():
        assert total == pytest.approx(1.0)


def test_dominant_taxon_counts_table(samples):
    counts = dominant_taxon_counts(samples)
    assert list(counts.columns) == ['Bacteroides', 'Bifidobacterium', 'Faecalibacterium']
    assert counts.loc['Adult', 'Bacteroides'] == 1
    assert counts.loc['Senior', 'Bacteroides'] == 1
    assert counts.values.sum() == 5  # S9 has no dominant taxon


def test_summary_table(samples):
    table = summary_table(group_summary(samples))
    assert table.index.name == 'group'
    assert list(table.index) == ['Newborn', 'Child', 'Adult', 'Senior']
    assert table.loc['Adult', 'top_dominant_taxon'] == 'Bacteroides'
    assert table.loc['Adult', 'top_dominant_frequency'] == 0.5
    assert table.loc['Newborn', 'top_dominant_taxon'] == 'Bifidobacterium'


def test_group_summary_missing_column(samples):
    with pytest.raises(SchemaMismatch):
        group_summary(samples, group_key='country_of_birth')


def test_group_summary_custom_key(samples):
    summaries = group_summary(samples, group_key='country')
    assert set(summaries) == {'FIN', 'ITA', 'SWE', 'USA'}
    assert summaries['ITA'].count == 2


def test_composition_by_group(dataset):
    comp = composition(dataset, rank='phylum')
    assert list(comp.index) == ['Newborn', 'Child', 'Adult', 'Senior']
    assert comp.loc['Adult', 'Bacteroidetes'] == pytest.approx(0.35)
    assert comp.loc['Adult', 'Firmicutes'] == pytest.approx(0.6)
    assert comp.loc['Adult', 'Proteobacteria'] == pytest.approx(0.05)
    assert comp.loc['Adult'].sum() == pytest.approx(1.0)
    # S9 is empty, so the senior means only add up to one half
    assert comp.loc['Senior'].sum() == pytest.approx(0.5)


def test_sample_composition_lumps_other(dataset):
    comp = sample_composition(dataset, rank='phylum', top_n=2)
    assert list(comp.columns) == ['Firmicutes', 'Bacteroidetes', constants.OTHER]
    assert comp.loc['S3', constants.OTHER] == pytest.approx(1.0)
    np.testing.assert_allclose(comp.drop(index='S9').sum(axis=1), 1.0)


def test_composition_unknown_rank(dataset):
    with pytest.raises(UnknownRank):
        composition(dataset, rank='superkingdom')


def test_compare_groups_kruskal(samples):
    results = compare_groups(samples, ['observed_count', 'shannon'])
    assert list(results.columns) == [
        'metric', 'test', 'statistic', 'p_value', 'p_adj', 'effect_size', 'groups'
    ]
    assert set(results['test']) == {'Kruskal-Wallis'}
    assert (results['groups'] == 4).all()
    assert (results['p_adj'] >= results['p_value'] - 1e-12).all()
    assert results['p_value'].between(0, 1).all()


def test_compare_groups_mann_whitney():
    df = _frame(['Adult'] * 5 + ['Senior'] * 5, [10, 11, 12, 13, 14, 1, 2, 3, 4, 5])
    results = compare_groups(df, ['observed_count'])
    row = results.iloc[0]
    assert row['test'] == 'Mann-Whitney U'
    assert row['groups'] == 2
    assert row['p_value'] < 0.05
    assert abs(row['effect_size']) == pytest.approx(1.0)


def test_compare_groups_single_group():
    df = _frame(['Adult'] * 3, [1, 2, 3])
    results = compare_groups(df, ['observed_count'])
    assert results.empty
    assert 'p_adj' in results.columns


def test_age_trend_monotone():
    ages = np.arange(1, 11, dtype=float)
    df = pd.DataFrame({'age': ages, 'observed_count': ages * 2})
    trend = age_trend(df, 'observed_count', frac=0.8)

    assert isinstance(trend, AgeTrend)
    assert trend.rho == pytest.approx(1.0)
    assert trend.p_value < 0.01
    assert trend.n_samples == 10
    assert list(trend.curve.columns) == ['age', 'observed_count_lowess']
    assert len(trend.curve) == 10
    assert trend.curve['age'].is_monotonic_increasing


def test_age_trend_too_few_samples():
    df = pd.DataFrame({'age': [1.0, 2.0], 'observed_count': [3, 4]})
    trend = age_trend(df)
    assert np.isnan(trend.rho)
    assert trend.n_samples == 2
    assert trend.curve.empty


def test_age_trend_on_dataset(samples):
    trend = age_trend(samples, 'observed_count')
    assert trend.n_samples == len(samples)
    assert -1.0 <= trend.rho <= 1.0

#!/usr/bin/env python3
"""
End-to-end report runs on the synthetic dataset.
"""
import logging

import pandas as pd
import pytest
import yaml
from rich.console import Console

from gut_eda.aggregate import group_summary
from gut_eda.errors import ReportError
from gut_eda.logger import setup_logging
from gut_eda.metrics import calculate_metrics
from gut_eda.report import GutEDAReport, main, print_summary
from gut_eda.utils.progress import UnitCountColumn, get_progress_bar, task_description


@pytest.fixture
def write_config(tmp_path, data_files):
    def _write(**overrides):
        config = {
            'data': {
                'abundance': str(data_files['abundance']),
                'metadata': str(data_files['metadata']),
            },
            'output': {'dir_path': str(tmp_path / 'report'), 'console_summary': False},
        }
        for section, values in overrides.items():
            config.setdefault(section, {}).update(values)
        path = tmp_path / 'config.yaml'
        path.write_text(yaml.safe_dump(config))
        return path
    yield _write
    # Detach file handlers so tmp_path can be removed
    for name in ('gut_eda', 'py.warnings'):
        for handler in logging.getLogger(name).handlers[:]:
            logging.getLogger(name).removeHandler(handler)
            handler.close()
    logging.captureWarnings(False)


def test_report_writes_tables(write_config, tmp_path):
    report = GutEDAReport(write_config())
    results = report.run()

    tables = tmp_path / 'report' / 'tables'
    expected = [
        'sample_metrics.tsv', 'group_summary.tsv', 'dominant_taxon_counts.tsv',
        'phylum_composition_by_group.tsv', 'phylum_composition_by_sample.tsv',
        'group_tests.tsv', 'observed_count_age_trend.tsv',
    ]
    for name in expected:
        assert (tables / name).exists(), name
    assert list((tmp_path / 'report' / 'logs').glob('*.log'))

    summary = pd.read_csv(tables / 'group_summary.tsv', sep='\t', index_col=0)
    assert list(summary.index) == ['Newborn', 'Child', 'Adult', 'Senior']
    assert summary.loc['Adult', 'observed_median'] == 3.5
    assert summary.loc['Senior', 'count'] == 2

    metrics = pd.read_csv(tables / 'sample_metrics.tsv', sep='\t', index_col=0)
    assert list(metrics.index) == ['S1', 'S2', 'S3', 'S4', 'S5', 'S9']
    assert metrics.loc['S2', 'coverage_count'] == 3
    assert results['samples'].loc['S1', 'dominant_taxon'] == 'Bacteroides'


def test_report_optional_steps_disabled(write_config, tmp_path):
    path = write_config(aggregation={
        'composition': {'enabled': False},
        'statistics': {'enabled': False},
        'age_trend': {'enabled': False},
    })
    results = GutEDAReport(path).run()
    assert 'composition' not in results
    assert 'statistics' not in results
    tables = sorted(p.name for p in (tmp_path / 'report' / 'tables').iterdir())
    assert tables == ['dominant_taxon_counts.tsv', 'group_summary.tsv', 'sample_metrics.tsv']


def test_report_metric_settings(write_config):
    path = write_config(metrics={'coverage_threshold': 1.0, 'dominant_rank': 'phylum'})
    samples = GutEDAReport(path).run()['samples']
    assert (samples['coverage_count'] == samples['observed_count']).all()
    assert samples.loc['S2', 'dominant_taxon'] == 'Firmicutes'


def test_report_failure_is_wrapped(write_config, tmp_path):
    path = write_config(data={'abundance': str(tmp_path / 'missing.tsv')})
    with pytest.raises(ReportError):
        GutEDAReport(path).run()


def test_report_invalid_threshold_is_wrapped(write_config):
    path = write_config(metrics={'coverage_threshold': 1.5})
    with pytest.raises(ReportError):
        GutEDAReport(path).run()


def test_main_cli(write_config, tmp_path):
    main(['--config', str(write_config())])
    assert (tmp_path / 'report' / 'tables' / 'group_summary.tsv').exists()


def test_print_summary(dataset):
    console = Console(record=True, width=160)
    summaries = group_summary(calculate_metrics(dataset))
    print_summary(summaries, 'age_category', console=console)
    text = console.export_text()
    assert 'Adult' in text
    assert 'Bacteroides (50%)' in text


def test_setup_logging_levels(tmp_path):
    logger = setup_logging(tmp_path / 'logs', log_filename='run.log', console_level='warning')
    try:
        levels = sorted(h.level for h in logger.handlers)
        assert levels == [logging.DEBUG, logging.WARNING]
        logger.debug("filtered 3 samples")
        for handler in logger.handlers:
            handler.flush()
        assert "filtered 3 samples" in (tmp_path / 'logs' / 'run.log').read_text()
    finally:
        for name in ('gut_eda', 'py.warnings'):
            for handler in logging.getLogger(name).handlers[:]:
                logging.getLogger(name).removeHandler(handler)
                handler.close()
        logging.captureWarnings(False)


def test_setup_logging_rejects_unknown_level(tmp_path):
    with pytest.raises(ValueError):
        setup_logging(tmp_path / 'logs', console_level='chatty')


def test_progress_counts_in_task_units():
    progress = get_progress_bar()
    task = progress.add_task(
        task_description("Calculating sample metrics"), total=5, unit="samples"
    )
    progress.update(task, advance=2)
    assert UnitCountColumn().render(progress.tasks[0]).plain.strip() == "2/5 samples"

    step = task_description("Aggregating", "group_summary")
    assert step.startswith("Aggregating (group_summary)")
    assert len(step) == len(task_description("Aggregating"))

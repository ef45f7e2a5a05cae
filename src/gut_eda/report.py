"""
Age-stratified gut microbiome summary report
----------------------------------------------------------------------------------------
Loads a curated gut metagenome abundance table with its sample metadata, derives
per-sample richness, coverage, diversity and dominant taxa, and writes the
per-age-category summaries as TSV tables.
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import argparse
import traceback
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Third-Party Imports
import pandas as pd
from rich.console import Console
from rich.table import Table as RichTable

# Local Imports
from gut_eda import constants
from gut_eda.aggregate import (
    age_trend, compare_groups, composition, dominant_taxon_counts, group_summary,
    sample_composition, summary_table
)
from gut_eda.config import get_config
from gut_eda.errors import ReportError
from gut_eda.load import load_dataset
from gut_eda.logger import setup_logging
from gut_eda.metrics import calculate_metrics
from gut_eda.utils.dir_utils import SubDirs
from gut_eda.utils.progress import get_progress_bar, task_description

# ========================== INITIALIZATION & CONFIGURATION ========================== #

pd.set_option('display.max_colwidth', None)

# =================================== MAIN WORKFLOW ================================== #

def is_enabled(config: Dict) -> bool:
    return config.get("enabled", False)


class GutEDAReport:
    def __init__(self, config_path: Union[str, Path] = constants.DEFAULT_CONFIG) -> None:
        self.config = get_config(config_path)
        output_config = self.config.get("output", {})
        self.dirs = SubDirs(output_config.get("dir_path", constants.DEFAULT_OUTPUT_DIR))
        self.logger = setup_logging(
            self.dirs.logs, console_level=output_config.get("log_level", "INFO")
        )
        self.results: Dict[str, Any] = {}

    def run(self) -> Dict[str, Any]:
        """Execute the report based on configuration settings."""
        try:
            dataset = self._load()
            samples = self._metrics(dataset)
            self._aggregate(dataset, samples)
            self._write_tables()
            if self.config.get("output", {}).get("console_summary", True):
                print_summary(self.results['group_summary'], self.group_column)
        except Exception as e:
            self.logger.error(f"Report failed: {e}\n"
                              f"Traceback: {traceback.format_exc()}")
            raise ReportError("Report aborted due to errors") from e
        return self.results

    @property
    def group_column(self) -> str:
        return self.config["aggregation"].get("group_column", constants.DEFAULT_GROUP_COLUMN)

    def _load(self):
        data_config = self.config["data"]
        filter_config = self.config["filters"]
        self.logger.info("Loading dataset")
        return load_dataset(
            abundance_path=data_config.get("abundance"),
            metadata_path=data_config.get("metadata"),
            taxonomy_path=data_config.get("taxonomy"),
            filters=filter_config.get("columns"),
            require_age=filter_config.get("require_age", constants.DEFAULT_REQUIRE_AGE),
        )

    def _metrics(self, dataset) -> pd.DataFrame:
        metric_config = self.config["metrics"]
        samples = calculate_metrics(
            dataset,
            threshold=metric_config.get("coverage_threshold", constants.DEFAULT_COVERAGE_THRESHOLD),
            rank=metric_config.get("dominant_rank", constants.DEFAULT_DOMINANT_RANK),
        )
        self.results['samples'] = samples
        return samples

    def _aggregate(self, dataset, samples: pd.DataFrame) -> None:
        agg_config = self.config["aggregation"]
        group_column = self.group_column
        steps = ['summary'] + [
            step for step in ('composition', 'statistics', 'age_trend')
            if is_enabled(agg_config.get(step, {}))
        ]

        with get_progress_bar() as progress:
            task = progress.add_task(
                task_description("Aggregating"), total=len(steps), unit="steps"
            )
            for step in steps:
                progress.update(task, description=task_description("Aggregating", step))
                if step == 'summary':
                    summaries = group_summary(samples, group_column)
                    self.results['group_summary'] = summaries
                    self.results['dominant_counts'] = dominant_taxon_counts(samples, group_column)
                elif step == 'composition':
                    comp_config = agg_config['composition']
                    rank = comp_config.get('rank', constants.DEFAULT_COMPOSITION_RANK)
                    top_n = comp_config.get('top_n', constants.DEFAULT_COMPOSITION_TOP_N)
                    self.results['composition_rank'] = rank
                    self.results['sample_composition'] = sample_composition(dataset, rank, top_n)
                    self.results['composition'] = composition(dataset, rank, group_column, top_n)
                elif step == 'statistics':
                    self.results['statistics'] = compare_groups(
                        samples,
                        agg_config['statistics'].get('metrics', constants.DEFAULT_STATS_METRICS),
                        group_column
                    )
                elif step == 'age_trend':
                    trend_config = agg_config['age_trend']
                    self.results['age_trend'] = age_trend(
                        samples,
                        trend_config.get('metric', constants.DEFAULT_TREND_METRIC),
                        trend_config.get('frac', constants.DEFAULT_LOWESS_FRAC)
                    )
                progress.update(task, advance=1)

    def _write_tables(self) -> None:
        tables_dir = self.dirs.tables
        results = self.results
        outputs = {
            'sample_metrics.tsv': results['samples'],
            'group_summary.tsv': summary_table(results['group_summary']),
            'dominant_taxon_counts.tsv': results['dominant_counts'],
        }
        if 'composition' in results:
            rank = results['composition_rank']
            outputs[f'{rank}_composition_by_group.tsv'] = results['composition']
            outputs[f'{rank}_composition_by_sample.tsv'] = results['sample_composition']
        if 'statistics' in results:
            outputs['group_tests.tsv'] = results['statistics'].set_index('metric')
        if 'age_trend' in results:
            trend = results['age_trend']
            outputs[f'{trend.metric}_age_trend.tsv'] = trend.curve.set_index(constants.AGE_COLUMN)
            self.logger.info(
                f"Spearman {trend.metric} ~ age: rho={trend.rho:.3f}, "
                f"p={trend.p_value:.3g} (n={trend.n_samples})"
            )

        for filename, df in outputs.items():
            path = tables_dir / filename
            df.to_csv(path, sep='\t', index=True)
            self.logger.debug(f"Wrote {path}")
        self.logger.info(f"Wrote {len(outputs)} tables to {tables_dir}")


def print_summary(summaries, group_column: str, console: Optional[Console] = None) -> None:
    """Render the group summary as a console table."""
    console = console or Console()
    table = RichTable(title=f"Richness and coverage by {group_column}")
    for col in ["Group", "N", "Richness (median)", "Richness (max)",
                "Coverage (median)", "Coverage (max)", "Top dominant taxon"]:
        table.add_column(col, justify="left" if col in ("Group", "Top dominant taxon") else "right")

    for _, row in summary_table(summaries).iterrows():
        top = (
            f"{row['top_dominant_taxon']} ({row['top_dominant_frequency']:.0%})"
            if isinstance(row['top_dominant_taxon'], str) else "-"
        )
        table.add_row(
            str(row.name), str(row['count']),
            f"{row['observed_median']:g}", str(row['observed_max']),
            f"{row['coverage_median']:g}", str(row['coverage_max']),
            top
        )
    console.print(table)


def main(argv=None) -> None:
    """Run the entire report."""
    parser = argparse.ArgumentParser(description="Summarise a gut microbiome dataset by age.")
    parser.add_argument(
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG,
        help="Path to the configuration file.",
    )
    args = parser.parse_args(argv)
    report = GutEDAReport(args.config)
    report.run()


if __name__ == "__main__":
    main()

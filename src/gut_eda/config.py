# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import copy
from pathlib import Path
from typing import Dict, Union

# Third-Party Imports
import yaml

# Local Imports
from gut_eda import constants
from gut_eda.errors import ReportError

# ================================= DEFAULT VALUES =================================== #

DEFAULT_SETTINGS: Dict = {
    "data": {
        "abundance": None,
        "metadata": None,
        "taxonomy": None,
    },
    "filters": {
        "require_age": constants.DEFAULT_REQUIRE_AGE,
        "columns": constants.DEFAULT_FILTERS,
    },
    "metrics": {
        "coverage_threshold": constants.DEFAULT_COVERAGE_THRESHOLD,
        "dominant_rank": constants.DEFAULT_DOMINANT_RANK,
    },
    "aggregation": {
        "group_column": constants.DEFAULT_GROUP_COLUMN,
        "composition": {
            "enabled": True,
            "rank": constants.DEFAULT_COMPOSITION_RANK,
            "top_n": constants.DEFAULT_COMPOSITION_TOP_N,
        },
        "statistics": {
            "enabled": True,
            "metrics": constants.DEFAULT_STATS_METRICS,
        },
        "age_trend": {
            "enabled": True,
            "metric": constants.DEFAULT_TREND_METRIC,
            "frac": constants.DEFAULT_LOWESS_FRAC,
        },
    },
    "output": {
        "dir_path": constants.DEFAULT_OUTPUT_DIR,
        "console_summary": True,
        "log_level": "INFO",
    },
}

# ==================================== FUNCTIONS ===================================== #

def resolve_relative_paths(config: Dict, config_dir: Path) -> Dict:
    """Converts any relative paths in the configuration to absolute paths based on
    the directory of the config file."""
    for key, value in config.items():
        if isinstance(value, str):
            if value.startswith("./") or value.startswith("../"):
                config[key] = (config_dir / value).resolve()
        elif isinstance(value, dict):
            config[key] = resolve_relative_paths(value, config_dir)
    return config


def merge_defaults(config: Dict, defaults: Dict = DEFAULT_SETTINGS) -> Dict:
    """Fill keys missing from ``config`` with ``defaults``, recursing into nested
    sections. Values present in ``config`` always win."""
    merged = copy.deepcopy(defaults)
    for key, value in (config or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_defaults(value, merged[key])
        else:
            merged[key] = value
    return merged


def get_config(
    config_path: Union[str, Path] = constants.DEFAULT_CONFIG
) -> Dict:
    config_path = Path(config_path)
    try:
        with open(config_path, "r") as file:
            config = yaml.safe_load(file) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ReportError(f"Cannot read config {config_path}: {e}") from e

    config_dir = config_path.resolve().parent
    config = resolve_relative_paths(config, config_dir)

    return merge_defaults(config)

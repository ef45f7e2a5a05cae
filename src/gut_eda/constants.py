import re
from pathlib import Path

# ==================================================================================== #
# PROGRESS BAR
# ==================================================================================== #
# Per-sample metric loops and report steps; colors are rich/X11 names
PROGRESS_DESCRIPTION_WIDTH: int = 40
PROGRESS_DESCRIPTION_STYLE: str = "white"
PROGRESS_BAR_WIDTH: int = 40
PROGRESS_BAR_STYLE: str = "honeydew2"
PROGRESS_FINISHED_STYLE: str = "dark_cyan"
PROGRESS_COUNT_STYLE: str = "light_sky_blue1"

# ==================================================================================== #
# SETTINGS
# ==================================================================================== #
# Go up two levels
DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "references" / "config.yaml"
DEFAULT_OUTPUT_DIR = "gut_eda_output"

# ==================================================================================== #
# METADATA
# ==================================================================================== #
SAMPLE_ID_CANDIDATES = ['sample_id', '#sampleid', 'sample-id', 'sample_name']
SAMPLE_ID_COLUMN = 'sample_id'

AGE_COLUMN = 'age'
AGE_CATEGORY_COLUMN = 'age_category'
BODY_SITE_COLUMN = 'body_site'
DISEASE_COLUMN = 'disease'

REQUIRED_COLUMNS = [AGE_COLUMN, AGE_CATEGORY_COLUMN, BODY_SITE_COLUMN, DISEASE_COLUMN]
OPTIONAL_COLUMNS = ['country', 'gender', 'subject_id']

# Ordered youngest to oldest
AGE_CATEGORIES = ['Newborn', 'Child', 'Schoolage', 'Adult', 'Senior']

DEFAULT_FILTERS = {
    BODY_SITE_COLUMN: ['stool'],
    DISEASE_COLUMN: ['healthy'],
}
DEFAULT_REQUIRE_AGE = True
DEFAULT_GROUP_COLUMN = AGE_CATEGORY_COLUMN

# ==================================================================================== #
# TAXONOMY
# ==================================================================================== #
RANKS = ['kingdom', 'phylum', 'class', 'order', 'family', 'genus', 'species']

RANK_PREFIXES = {
    'k': 'kingdom',
    'd': 'kingdom',
    'p': 'phylum',
    'c': 'class',
    'o': 'order',
    'f': 'family',
    'g': 'genus',
    's': 'species',
    't': 'strain',
}
RANK_PREFIX_PATTERN = re.compile(r'^([kdpcofgst])__(.*)$')

UNCLASSIFIED = 'Unclassified'
OTHER = 'Other'

# ==================================================================================== #
# METRICS
# ==================================================================================== #
DEFAULT_COVERAGE_THRESHOLD: float = 0.9
DEFAULT_DOMINANT_RANK = 'genus'
DEFAULT_COMPOSITION_RANK = 'phylum'
DEFAULT_COMPOSITION_TOP_N = 8

# Column sums above this are treated as percentages (curatedMetagenomicData style)
PERCENT_SCALE_MIN_SUM: float = 1.5
ABUNDANCE_TOLERANCE: float = 1e-9

METRIC_COLUMNS = ['observed_count', 'coverage_count', 'shannon', 'dominant_taxon']
DEFAULT_STATS_METRICS = ['observed_count', 'coverage_count', 'shannon']
DEFAULT_TREND_METRIC = 'observed_count'
DEFAULT_LOWESS_FRAC: float = 2 / 3

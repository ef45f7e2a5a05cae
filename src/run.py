"""
Gut Microbiome Age Report
----------------------------------------------------------------------------------------
Command-line entry point: summarises richness, coverage, diversity and dominant taxa
of healthy stool metagenomes per age category.
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import sys
from pathlib import Path

# Local Imports
parent_dir = Path(__file__).resolve().parent
sys.path.append(str(parent_dir))

from gut_eda.report import main

# =================================== MAIN WORKFLOW ================================== #

if __name__ == "__main__":
    main()

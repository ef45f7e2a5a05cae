"""
Shared synthetic data: six MetaPhlAn-style species profiles and curatedMetagenomicData
style metadata. Retained after default filtering: S1, S2 (adult), S3 (newborn),
S4 (child), S5 and the empty S9 (senior).
"""
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

VULGATUS = ("k__Bacteria|p__Bacteroidetes|c__Bacteroidia|o__Bacteroidales|"
            "f__Bacteroidaceae|g__Bacteroides|s__Bacteroides_vulgatus")
UNIFORMIS = ("k__Bacteria|p__Bacteroidetes|c__Bacteroidia|o__Bacteroidales|"
             "f__Bacteroidaceae|g__Bacteroides|s__Bacteroides_uniformis")
ROSEBURIA = ("k__Bacteria|p__Firmicutes|c__Clostridia|o__Clostridiales|"
             "f__Lachnospiraceae|g__Roseburia|s__Roseburia_intestinalis")
FAECALI = ("k__Bacteria|p__Firmicutes|c__Clostridia|o__Clostridiales|"
           "f__Ruminococcaceae|g__Faecalibacterium|s__Faecalibacterium_prausnitzii")
BIFIDO = ("k__Bacteria|p__Actinobacteria|c__Actinobacteria|o__Bifidobacteriales|"
          "f__Bifidobacteriaceae|g__Bifidobacterium|s__Bifidobacterium_longum")
ECOLI = ("k__Bacteria|p__Proteobacteria|c__Gammaproteobacteria|o__Enterobacterales|"
         "f__Enterobacteriaceae|g__Escherichia|s__Escherichia_coli")

FEATURES = [VULGATUS, UNIFORMIS, ROSEBURIA, FAECALI, BIFIDO, ECOLI]

PROFILES = {
    'S1': [0.30, 0.30, 0.40, 0.00, 0.00, 0.00],
    'S2': [0.10, 0.00, 0.20, 0.60, 0.00, 0.10],
    'S3': [0.00, 0.00, 0.00, 0.00, 0.70, 0.30],
    'S4': [0.25, 0.25, 0.00, 0.25, 0.25, 0.00],
    'S5': [0.50, 0.00, 0.50, 0.00, 0.00, 0.00],
    'S6': [0.20, 0.20, 0.20, 0.20, 0.10, 0.10],
    'S7': [1.00, 0.00, 0.00, 0.00, 0.00, 0.00],
    'S8': [0.00, 0.00, 1.00, 0.00, 0.00, 0.00],
    'S9': [0.00, 0.00, 0.00, 0.00, 0.00, 0.00],
}

METADATA = pd.DataFrame({
    'sample_id':    ['S1', 'S2', 'S3', 'S4', 'S5', 'S6', 'S7', 'S8', 'S9', 'S10'],
    'subject_id':   ['P1', 'P2', 'P3', 'P4', 'P5', 'P6', 'P7', 'P8', 'P9', 'P1'],
    'age':          [35, 42, 0.1, 4, 70, 30, 50, None, 80, 36],
    'age_category': ['adult', 'adult', 'newborn', 'child', 'senior', 'adult',
                     'adult', 'adult', 'senior', 'adult'],
    'body_site':    ['stool', 'stool', 'stool', 'stool', 'stool', 'stool',
                     'oralcavity', 'stool', 'stool', 'stool'],
    'disease':      ['healthy', 'healthy', 'healthy', 'healthy', 'healthy', 'IBD',
                     'healthy', 'healthy', 'healthy', 'healthy'],
    'country':      ['ITA', 'USA', 'FIN', 'FIN', 'ITA', 'USA', 'USA', 'ITA', 'SWE', 'ITA'],
    'gender':       ['female', 'male', 'male', 'female', 'female', 'male',
                     'male', 'female', 'male', 'female'],
})


@pytest.fixture
def profiles() -> pd.DataFrame:
    """Samples × features relative abundances (fractions)."""
    return pd.DataFrame(PROFILES, index=FEATURES).T


def write_metaphlan_table(path: Path, percent: bool = True) -> Path:
    """Merged MetaPhlAn-like table: comment line, NCBI column, ancestor clades."""
    scale = 100.0 if percent else 1.0
    leaves = pd.DataFrame(PROFILES, index=FEATURES) * scale
    kingdom = leaves.sum(axis=0).to_frame('k__Bacteria').T
    firmicutes = leaves.loc[[ROSEBURIA, FAECALI]].sum(axis=0)
    firmicutes = firmicutes.to_frame('k__Bacteria|p__Firmicutes').T
    table = pd.concat([kingdom, firmicutes, leaves])
    table.insert(0, 'NCBI_tax_id', ['2', '2|1239'] + [f'2|{i}' for i in range(len(leaves))])
    table.index.name = 'clade_name'

    with open(path, 'w') as f:
        f.write('#mpa_v30_CHOCOPhlAn_201901\n')
        table.to_csv(f, sep='\t')
    return path


@pytest.fixture
def data_files(tmp_path):
    abundance = write_metaphlan_table(tmp_path / 'relative_abundance.tsv')
    metadata = tmp_path / 'sample_metadata.tsv'
    METADATA.to_csv(metadata, sep='\t', index=False)
    return {'abundance': abundance, 'metadata': metadata, 'dir': tmp_path}


@pytest.fixture
def dataset(data_files):
    from gut_eda.load import load_dataset
    return load_dataset(data_files['abundance'], data_files['metadata'])


@pytest.fixture
def rng():
    return np.random.default_rng(seed=42)

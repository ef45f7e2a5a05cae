# ===================================== IMPORTS ====================================== #

from typing import Union
from pathlib import Path

import logging

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('gut_eda')

# ==================================== FUNCTIONS ===================================== #

def create_dir(dir_path: Union[str, Path]) -> None:
    dir_path = Path(dir_path)
    if not dir_path.exists():
        dir_path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Directory created: {dir_path}")


class SubDirs:
    def __init__(self, dir_path: Union[str, Path]):
        self.main = Path(dir_path)
        self.logs = self.main / 'logs'
        self.tables = self.main / 'tables'
        self.create_dirs()

    def create_dirs(self):
        for _dir in [self.main, self.logs, self.tables]:
            create_dir(_dir)

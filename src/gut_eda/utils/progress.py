# ===================================== IMPORTS ====================================== #

# Third-Party Imports
from rich.progress import (
    BarColumn, Progress, ProgressColumn, SpinnerColumn, Task, TextColumn,
    TimeElapsedColumn
)
from rich.text import Text

# Local Imports
from gut_eda import constants

# ============================== CUSTOM PROGRESS COLUMNS ============================= #

class UnitCountColumn(ProgressColumn):
    """Renders completed/total with the task's unit, e.g. '412/1200 samples'."""

    def render(self, task: Task) -> Text:
        unit = task.fields.get("unit", "")
        total = "?" if task.total is None else int(task.total)
        return Text(
            f"{int(task.completed)}/{total} {unit}".rstrip().rjust(18),
            style=constants.PROGRESS_COUNT_STYLE,
            justify="right"
        )

# ===================================== FUNCTIONS ==================================== #

def get_progress_bar(transient: bool = True) -> Progress:
    """Progress bar for per-sample metric loops and report steps.

    Tasks are expected to carry a ``unit`` field (``samples``, ``steps``).
    """
    return Progress(
        SpinnerColumn("dots", style=constants.PROGRESS_BAR_STYLE, speed=0.75),
        TextColumn("{task.description}", style=constants.PROGRESS_DESCRIPTION_STYLE),
        UnitCountColumn(),
        BarColumn(
            bar_width=constants.PROGRESS_BAR_WIDTH,
            style="black",
            complete_style=constants.PROGRESS_BAR_STYLE,
            finished_style=constants.PROGRESS_FINISHED_STYLE
        ),
        TimeElapsedColumn(),
        transient=transient,
        expand=False
    )


def task_description(step: str, detail: str = "") -> str:
    """Fixed-width description so successive steps keep the bar aligned."""
    text = f"{step} ({detail})" if detail else step
    return f"{text:<{constants.PROGRESS_DESCRIPTION_WIDTH}}"

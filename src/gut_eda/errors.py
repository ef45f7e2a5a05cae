# ==================================== EXCEPTIONS ==================================== #

class GutEDAError(Exception):
    """Base class for all errors raised by gut_eda."""
    pass


class DataUnavailable(GutEDAError):
    """The abundance or metadata source cannot be read, or nothing survives
    filtering."""
    pass


class SchemaMismatch(GutEDAError):
    """Required metadata columns are absent."""

    def __init__(self, missing, source=None):
        self.missing = list(missing)
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(
            f"Missing required column(s){where}: {', '.join(self.missing)}"
        )


class InvalidThreshold(GutEDAError, ValueError):
    """Coverage threshold outside (0, 1]."""

    def __init__(self, threshold):
        self.threshold = threshold
        super().__init__(
            f"Invalid coverage threshold: {threshold}. Must be in (0, 1]."
        )


class UnknownRank(GutEDAError, ValueError):
    """Taxonomic rank outside the supported vocabulary."""

    def __init__(self, rank, known=None):
        self.rank = rank
        known = f" Expected one of {list(known)}" if known else ""
        super().__init__(f"Invalid taxonomic rank: {rank!r}.{known}")


class ReportError(GutEDAError):
    """Custom exception for report-related errors."""
    pass

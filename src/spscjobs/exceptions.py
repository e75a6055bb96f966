"""Custom exception hierarchy for spscjobs."""


class ScraperError(Exception):
    """Base exception for all spscjobs errors."""


class ConfigurationError(ScraperError):
    """Raised when settings are invalid or missing."""


class NavigationError(ScraperError):
    """Raised when the source website cannot be reached."""


class StructureChangeError(ScraperError):
    """Raised when the notice board no longer matches any known selector."""


class DocumentParseError(ScraperError):
    """Raised when a PDF cannot be turned into usable text."""


class PersistenceError(ScraperError):
    """Raised when a document store operation fails."""


class DocumentNotFoundError(PersistenceError):
    """Raised when updating a document that does not exist."""


class KillSwitchEngaged(ScraperError):
    """Raised when the remote kill switch disables the scraper mid-run."""


class KillSwitchUnavailable(PersistenceError):
    """Raised when the kill switch cannot be read; the run cannot continue safely."""

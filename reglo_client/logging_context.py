"""Company-aware logging context for tracing work across coordinators.

Provides a logger that attaches the active company id to every log
message, so that the output of one tenant's session can be told apart
after a company switch.

Usage:
    from reglo_client.logging_context import get_session_logger, set_company_id

    set_company_id("company-1")
    logger = get_session_logger(__name__)
    logger.info("Loading appointments")  # record.company_id == "company-1"
"""

import logging
from contextvars import ContextVar
from typing import Optional

NO_COMPANY = "NO_COMPANY"

_company_id: ContextVar[str] = ContextVar("company_id", default=NO_COMPANY)


def set_company_id(company_id: Optional[str]) -> None:
    """Set the active company id for the current async context."""
    _company_id.set(company_id or NO_COMPANY)


def get_company_id() -> str:
    """Retrieve the active company id."""
    return _company_id.get()


class CompanyIdFilter(logging.Filter):
    """Injects company_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.company_id = _company_id.get()  # type: ignore[attr-defined]
        return True


def get_session_logger(name: str) -> logging.Logger:
    """Return a logger with the CompanyIdFilter attached.

    The filter adds ``company_id`` to each record so formatters can
    include ``%(company_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, CompanyIdFilter) for f in logger.filters):
        logger.addFilter(CompanyIdFilter())
    return logger

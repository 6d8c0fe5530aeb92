import logging
from typing import Optional

from libris.config import settings
from libris.errors import InvalidRequestError, NotFoundError
from libris.library import Library
from libris.models import Reader, Role

logger = logging.getLogger(__name__)


def ensure_default_librarian(library: Library, email: Optional[str] = None,
                             full_name: Optional[str] = None) -> Reader:
    """Make sure the default librarian account exists. Safe to call on every start-up."""
    email = email or settings.default_librarian_email
    full_name = full_name or settings.default_librarian_name
    try:
        return library.find_reader(email)
    except NotFoundError:
        pass

    try:
        reader = library.register_reader(full_name, email, role=Role.LIBRARIAN)
    except InvalidRequestError:
        # Another process registered it between the lookup and the insert
        return library.find_reader(email)
    logger.info("Default librarian account '%s' created", reader.email)
    return reader

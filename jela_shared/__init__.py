"""
Shared module for the ambient stack used by jela_core.

STRUCTURE:
- jela_shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Capability column names, pagination limits

- jela_shared.infrastructure: Database and request context
  - db.py: Async SQLAlchemy engine/sessions, safe_commit()
  - correlation.py: Request correlation IDs
  - tenancy.py: Current tenant context

- jela_shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging, configuration errors

IMPORT EXAMPLES:
    from jela_shared.config.settings import settings
    from jela_shared.config.logging import get_logger
    from jela_shared.infrastructure.db import get_db, safe_commit
    from jela_shared.infrastructure.tenancy import tenant_scope
    from jela_shared.utils.exceptions import ForbiddenError, ValidationFailedError
"""

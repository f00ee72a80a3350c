"""
Jela core library.

Generic CRUD services over SQLAlchemy with soft delete and tenant isolation
applied to every read, keyed validation shared across a request, pagination
helpers and an SMTP email sender.

Structure:
    jela_core/
    ├── models/      # Declarative base, JelaModel mixin, capabilities
    ├── data/        # Row filter policy, save interceptor, storage provider
    ├── services/    # ValidationSink, CrudService, EmailSender
    ├── helpers/     # PaginatedList, PaginatedViewList
    ├── routers/     # ValidationHost, FastAPI dependencies
    └── main.py      # create_app()
"""

__version__ = "0.3.0"

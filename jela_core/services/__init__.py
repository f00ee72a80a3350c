"""
Services: validation sink, generic CRUD service, email sender.
"""

from jela_core.services.base_service import Action, CrudConfig, CrudService
from jela_core.services.email_sender import EmailSender, parse_address, split_addresses
from jela_core.services.validation import ValidationSink

__all__ = [
    "Action",
    "CrudConfig",
    "CrudService",
    "EmailSender",
    "parse_address",
    "split_addresses",
    "ValidationSink",
]

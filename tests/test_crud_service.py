"""
Tests for CrudService.

Tests verify:
- Create/read/update/delete pipelines against a real (in-memory) database
- Soft delete and tenant isolation through the service
- Validation results recorded in the sink
- Persistence failures are logged, rolled back and reported as False
- Exceptions from mapping, standardize and validate hooks become sink errors
- Sessions without the row filter listeners are rejected
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import inspect as sa_inspect, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker

from jela_core.data import RowFilterPolicy, SqlAlchemyStorage, make_session_factory
from jela_core.services import Action, CrudConfig, CrudService, ValidationSink
from jela_shared.config.constants import ValidationMessages
from jela_shared.infrastructure.tenancy import tenant_scope
from jela_shared.utils.exceptions import ConfigurationError, ForbiddenError

from sample_models import Document, Note, NoteInput, NoteOutput, Tag


def _check_title(note, sink):
    if note.title == "reserved":
        sink.add_error("title", "Title is reserved.")


def _strip_title(note):
    if note.title:
        note.title = note.title.strip()
    return note


NOTE_CONFIG = CrudConfig(
    model=Note,
    entity_name="Note",
    dto_schema=NoteInput,
    standardize=_strip_title,
    validate=_check_title,
)
DOCUMENT_CONFIG = CrudConfig(model=Document)
TAG_CONFIG = CrudConfig(model=Tag)


def make_mock_storage(model=Note):
    """Storage double that records calls instead of touching a database."""
    storage = MagicMock()
    storage.collection.return_value = sa_inspect(model)
    storage.query.side_effect = lambda m: select(m)
    storage.scalars = AsyncMock(return_value=[])
    storage.first = AsyncMock(return_value=None)
    storage.count = AsyncMock(return_value=0)
    storage.merge = AsyncMock()
    storage.remove = AsyncMock()
    storage.commit = AsyncMock(return_value=1)
    storage.rollback = AsyncMock()
    return storage


@pytest.fixture
def notes(storage, sink):
    return CrudService(NOTE_CONFIG, storage, sink)


async def _create_note(service, title="Groceries", body=None) -> int:
    assert await service.create({"title": title, "body": body})
    created = await service.list_all()
    return max(note.id for note in created)


class TestCreate:
    """Tests for CrudService.create."""

    @pytest.mark.asyncio
    async def test_create_persists_entity(self, notes, sink):
        assert await notes.create({"title": "Groceries", "body": "milk"})

        stored = await notes.list_all(projection=NoteOutput)
        assert [(n.title, n.body) for n in stored] == [("Groceries", "milk")]
        assert sink.is_valid

    @pytest.mark.asyncio
    async def test_create_ignores_dto_id(self, notes):
        assert await notes.create({"id": 999, "title": "Groceries"})

        stored = await notes.list_all()
        assert len(stored) == 1
        assert stored[0].id != 999

    @pytest.mark.asyncio
    async def test_create_standardizes_before_save(self, notes):
        assert await notes.create({"title": "  padded  "})

        stored = await notes.list_all()
        assert stored[0].title == "padded"

    @pytest.mark.asyncio
    async def test_missing_required_field(self, notes, sink):
        assert await notes.create({"body": "no title"}) is False

        assert sink.get("title") == [ValidationMessages.REQUIRED]
        assert await notes.count() == 0

    @pytest.mark.asyncio
    async def test_too_long_string(self, notes, sink):
        assert await notes.create({"title": "x" * 51}) is False

        assert sink.get("title") == [
            ValidationMessages.MAX_LENGTH.format(max_length=50)
        ]

    @pytest.mark.asyncio
    async def test_custom_validation_hook(self, notes, sink):
        assert await notes.create({"title": "reserved"}) is False

        assert sink.get("title") == ["Title is reserved."]

    @pytest.mark.asyncio
    async def test_dto_schema_errors_recorded(self, notes, sink):
        assert await notes.create({"title": ["not", "a", "string"]}) is False

        assert "title" in sink

    @pytest.mark.asyncio
    async def test_invalid_entity_never_reaches_storage(self, sink):
        storage = make_mock_storage()
        service = CrudService(NOTE_CONFIG, storage, sink)

        assert await service.create({"body": "no title"}) is False

        storage.add.assert_not_called()
        storage.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_earlier_errors_fail_the_operation(self, notes, sink):
        sink.add_error("", "Something else went wrong.")

        assert await notes.create({"title": "Groceries"}) is False
        assert await notes.count() == 0

    @pytest.mark.asyncio
    async def test_tenant_stamped_on_create(self, storage, sink):
        service = CrudService(DOCUMENT_CONFIG, storage, sink)

        with tenant_scope(4):
            assert await service.create({"name": "contract", "community_id": 99})
            stored = await service.list_all()

        assert stored[0].community_id == 4


class TestRead:
    """Tests for list_all / read / count / page."""

    @pytest.mark.asyncio
    async def test_read_with_pydantic_projection(self, notes):
        note_id = await _create_note(notes, "Groceries", "milk")

        output = await notes.read(note_id, projection=NoteOutput)

        assert isinstance(output, NoteOutput)
        assert output.title == "Groceries"

    @pytest.mark.asyncio
    async def test_read_with_callable_projection(self, notes):
        note_id = await _create_note(notes, "Groceries")

        assert await notes.read(note_id, projection=lambda n: n.title.upper()) == "GROCERIES"

    @pytest.mark.asyncio
    async def test_read_missing_returns_none(self, notes):
        assert await notes.read(12345) is None

    @pytest.mark.asyncio
    async def test_query_extras_applied(self, storage, sink):
        config = CrudConfig(
            model=Note,
            query_extras=lambda stmt: stmt.order_by(Note.title.desc()),
        )
        service = CrudService(config, storage, sink)
        for title in ("b", "c", "a"):
            assert await service.create({"title": title})

        assert [n.title for n in await service.list_all()] == ["c", "b", "a"]

    @pytest.mark.asyncio
    async def test_page(self, notes):
        for i in range(25):
            assert await notes.create({"title": f"note {i}"})

        page = await notes.page(current_page=2, page_size=10, visible_pages=5)

        assert len(page) == 10
        assert page.row_count == 25
        assert page.page_count == 3
        assert page.first_row_on_page == 11
        assert page[0].title == "note 10"

    @pytest.mark.asyncio
    async def test_storage_error_on_read_returns_none(self, sink):
        storage = make_mock_storage()
        storage.first.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        logger = MagicMock()
        service = CrudService(NOTE_CONFIG, storage, sink, logger=logger)

        assert await service.read(1) is None
        logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_storage_error_on_list_returns_empty(self, sink):
        storage = make_mock_storage()
        storage.scalars.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        service = CrudService(NOTE_CONFIG, storage, sink, logger=MagicMock())

        assert await service.list_all() == []


class TestUpdate:
    """Tests for CrudService.update."""

    @pytest.mark.asyncio
    async def test_update_keeps_id_and_unset_fields(self, notes):
        note_id = await _create_note(notes, "Groceries", "milk")

        assert await notes.update({"id": note_id, "title": "Shopping"})

        updated = await notes.read(note_id)
        assert updated.id == note_id
        assert updated.title == "Shopping"
        assert updated.body == "milk"

    @pytest.mark.asyncio
    async def test_update_missing_entity(self, sink):
        storage = make_mock_storage()
        logger = MagicMock()
        service = CrudService(NOTE_CONFIG, storage, sink, logger=logger)

        assert await service.update({"id": 5, "title": "x"}) is False

        storage.merge.assert_not_awaited()
        logger.warning.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_without_id(self, notes):
        assert await notes.update({"title": "x"}) is False

    @pytest.mark.asyncio
    async def test_update_soft_deleted_entity(self, notes):
        note_id = await _create_note(notes)
        assert await notes.delete(note_id)

        assert await notes.update({"id": note_id, "title": "back"}) is False

    @pytest.mark.asyncio
    async def test_update_validation_failure(self, notes, sink):
        note_id = await _create_note(notes, "Groceries")

        assert await notes.update({"id": note_id, "title": "reserved"}) is False

        assert sink.get("title") == ["Title is reserved."]
        assert (await notes.read(note_id)).title == "Groceries"

    @pytest.mark.asyncio
    async def test_update_missing_entity_still_reports_input_errors(self, notes, sink):
        assert await notes.update({"id": 999, "title": "x" * 51}) is False

        assert sink.get("title") == [
            ValidationMessages.MAX_LENGTH.format(max_length=50)
        ]

    @pytest.mark.asyncio
    async def test_update_missing_entity_skips_unset_required_fields(self, notes, sink):
        assert await notes.update({"id": 999, "body": "milk"}) is False

        assert sink.is_valid


class TestDelete:
    """Tests for CrudService.delete."""

    @pytest.mark.asyncio
    async def test_soft_delete_hides_entity(self, notes, db_session):
        note_id = await _create_note(notes)

        assert await notes.delete(note_id)

        assert await notes.read(note_id) is None
        stmt = select(Note).where(Note.id == note_id).execution_options(include_deleted=True)
        stored = await db_session.scalar(stmt)
        assert stored is not None
        assert stored.is_deleted is True

    @pytest.mark.asyncio
    async def test_double_delete(self, notes):
        note_id = await _create_note(notes)

        assert await notes.delete(note_id)
        assert await notes.delete(note_id) is False

    @pytest.mark.asyncio
    async def test_hard_delete_for_plain_type(self, storage, sink, db_session):
        tags = CrudService(TAG_CONFIG, storage, sink)
        assert await tags.create({"label": "old"})
        tag_id = (await tags.list_all())[0].id

        assert await tags.delete(tag_id)

        stmt = select(Tag).execution_options(include_deleted=True)
        assert (await db_session.scalars(stmt)).all() == []


class TestTenantIsolation:
    """Entities of one tenant are invisible to another."""

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_see_or_change(self, storage, sink):
        service = CrudService(DOCUMENT_CONFIG, storage, sink)
        with tenant_scope(1):
            assert await service.create({"name": "contract"})
            document_id = (await service.list_all())[0].id

        with tenant_scope(2):
            assert await service.list_all() == []
            assert await service.read(document_id) is None
            assert await service.count() == 0
            assert await service.update({"id": document_id, "name": "stolen"}) is False
            assert await service.delete(document_id) is False

        with tenant_scope(1):
            document = await service.read(document_id)
            assert document.name == "contract"

    @pytest.mark.asyncio
    async def test_no_tenant_sees_nothing(self, storage, sink):
        service = CrudService(DOCUMENT_CONFIG, storage, sink)
        with tenant_scope(1):
            assert await service.create({"name": "contract"})

        assert await service.list_all() == []


class TestFailures:
    """Persistence failures and framework-level errors."""

    @pytest.mark.asyncio
    async def test_commit_failure_returns_false(self, sink):
        storage = make_mock_storage()
        storage.commit.side_effect = OperationalError("INSERT", {}, Exception("disk full"))
        logger = MagicMock()
        service = CrudService(NOTE_CONFIG, storage, sink, logger=logger)

        assert await service.create({"title": "Groceries"}) is False

        storage.rollback.assert_awaited_once()
        logger.warning.assert_called_once()
        assert logger.warning.call_args.kwargs["entity"] == "Note"

    @pytest.mark.asyncio
    async def test_cancellation_rolls_back_and_propagates(self, sink):
        storage = make_mock_storage()
        storage.commit.side_effect = asyncio.CancelledError()
        service = CrudService(NOTE_CONFIG, storage, sink)

        with pytest.raises(asyncio.CancelledError):
            await service.create({"title": "Groceries"})

        storage.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_permission_denied_propagates(self, sink):
        storage = make_mock_storage()

        def deny_deletes(action):
            if action is Action.DELETE:
                raise ForbiddenError("delete notes")

        config = CrudConfig(model=Note, check_permission=deny_deletes)
        service = CrudService(config, storage, sink)

        with pytest.raises(ForbiddenError):
            await service.delete(1)
        storage.first.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_async_permission_hook(self, sink):
        storage = make_mock_storage()
        seen = []

        async def record(action):
            seen.append(action)

        service = CrudService(CrudConfig(model=Note, check_permission=record), storage, sink)
        await service.list_all()

        assert seen == [Action.LIST]

    @pytest.mark.asyncio
    async def test_unregistered_capabilities_fail_binding(self, engine, sink):
        factory = make_session_factory(engine, RowFilterPolicy())
        logger = MagicMock()

        async with factory() as session:
            service = CrudService(NOTE_CONFIG, SqlAlchemyStorage(session), sink, logger=logger)

            assert service.set_active_collection() is False
            logger.error.assert_called_once()
            assert await service.list_all() == []
            assert await service.create({"title": "Groceries"}) is False

    @pytest.mark.asyncio
    async def test_plain_session_fails_binding(self, engine, sink):
        plain_factory = async_sessionmaker(engine, expire_on_commit=False)
        logger = MagicMock()

        async with plain_factory() as session:
            storage = SqlAlchemyStorage(session)
            with pytest.raises(ConfigurationError):
                storage.collection(Note)

            service = CrudService(NOTE_CONFIG, storage, sink, logger=logger)

            assert service.set_active_collection() is False
            logger.error.assert_called_once()
            assert await service.create({"title": "Groceries"}) is False
            assert (await session.scalars(select(Note))).all() == []


class TestHookFailures:
    """Exceptions raised by configured hooks never leave the service."""

    @pytest.mark.asyncio
    async def test_raising_mapper_on_create(self, sink):
        storage = make_mock_storage()
        logger = MagicMock()
        config = CrudConfig(model=Note, parse_from_dto=lambda dto: Note(title=dto["title"]))
        service = CrudService(config, storage, sink, logger=logger)

        assert await service.create({}) is False

        assert sink.get("") == ["'title'"]
        assert logger.warning.call_args.kwargs["entity"] == "Note"
        storage.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_raising_mapper_on_update(self, sink):
        storage = make_mock_storage()
        config = CrudConfig(model=Note, parse_from_dto=lambda dto: Note(id=dto["id"]))
        service = CrudService(config, storage, sink)

        assert await service.update({"title": "x"}) is False

        assert "" in sink
        storage.first.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mapper_returning_wrong_type(self, sink):
        storage = make_mock_storage()
        service = CrudService(CrudConfig(model=Note, parse_from_dto=dict), storage, sink)

        assert await service.create({"title": "Groceries"}) is False

        assert sink.get("") == ["Mapping returned dict, expected Note"]

    @pytest.mark.asyncio
    async def test_raising_standardize_hook(self, sink):
        storage = make_mock_storage()

        def explode(note):
            raise RuntimeError("standardize failed")

        service = CrudService(CrudConfig(model=Note, standardize=explode), storage, sink)

        assert await service.create({"title": "Groceries"}) is False

        assert sink.get("") == ["standardize failed"]
        storage.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_raising_validate_hook_on_update(self, notes, storage, sink):
        note_id = await _create_note(notes, "Groceries")

        def explode(note, validation):
            raise LookupError("validate failed")

        service = CrudService(CrudConfig(model=Note, validate=explode), storage, sink)

        assert await service.update({"id": note_id, "title": "Shopping"}) is False

        assert sink.get("") == ["validate failed"]
        assert (await notes.read(note_id)).title == "Groceries"


class TestValidationBinding:
    """Tests for bind_validation."""

    @pytest.mark.asyncio
    async def test_errors_go_to_bound_sink(self, storage):
        service = CrudService(NOTE_CONFIG, storage, ValidationSink())
        shared = ValidationSink()

        service.bind_validation(shared)
        await service.create({"title": "reserved"})

        assert service.validation is shared
        assert shared.get("title") == ["Title is reserved."]

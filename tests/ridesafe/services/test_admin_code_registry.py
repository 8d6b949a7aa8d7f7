import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from ridesafe.core import config
from ridesafe.core.errors import CodeAlreadyUsed, ValidationError
from ridesafe.models.admin_code import AdminCode
from ridesafe.services.admin_codes import AdminCodeRegistry

BYPASS_CODES = {'RIDESAFE2024', 'ADMIN123'}


@pytest.fixture
def registry(db):
    return AdminCodeRegistry(db, bypass_codes=BYPASS_CODES)


def _row_count(db) -> int:
    return db.scalar(select(func.count()).select_from(AdminCode))


def test_bypass_code_is_valid_against_empty_registry(db, registry) -> None:
    assert registry.validate('RIDESAFE2024') is True
    assert _row_count(db) == 0


@pytest.mark.parametrize('code', ['', '   ', None])
def test_empty_code_is_invalid(registry, code) -> None:
    assert registry.validate(code) is False


def test_unknown_code_is_invalid(registry) -> None:
    assert registry.validate('NOPE') is False


def test_bypass_codes_come_from_config_by_default(db, monkeypatch) -> None:
    monkeypatch.setattr(config, 'ADMIN_BYPASS_CODES', frozenset())

    assert AdminCodeRegistry(db).validate('RIDESAFE2024') is False


def test_added_code_is_valid_until_consumed(registry) -> None:
    registry.add('SCHOOL-42', 'admin@ridesafe.com')
    assert registry.validate('SCHOOL-42') is True

    assert registry.consume('SCHOOL-42', 'new-admin@example.com') is True

    assert registry.validate('SCHOOL-42') is False
    assert registry.consume('SCHOOL-42', 'someone-else@example.com') is False
    view = next(view for view in registry.list_all() if view.code == 'SCHOOL-42')
    assert view.is_active is False
    assert view.used_by == 'new-admin@example.com'
    assert view.used_at is not None


def test_consuming_bypass_code_writes_nothing(db, registry) -> None:
    assert registry.consume('ADMIN123', 'new-admin@example.com') is True

    assert registry.validate('ADMIN123') is True
    assert _row_count(db) == 0


def test_consume_unknown_code_returns_false(registry) -> None:
    assert registry.consume('NOPE', 'new-admin@example.com') is False


def test_add_rejects_blank_code(registry) -> None:
    with pytest.raises(ValidationError):
        registry.add('  ', 'admin@ridesafe.com')


def test_re_adding_consumed_code_is_conflict(registry) -> None:
    registry.add('SCHOOL-42', 'admin@ridesafe.com')
    assert registry.consume('SCHOOL-42', 'uid-a') is True

    with pytest.raises(CodeAlreadyUsed):
        registry.add('SCHOOL-42', 'admin@ridesafe.com')

    assert registry.validate('SCHOOL-42') is False
    assert registry.consume('SCHOOL-42', 'uid-b') is False
    view = next(view for view in registry.list_all() if view.code == 'SCHOOL-42')
    assert view.used_by == 'uid-a'


def test_re_adding_deactivated_unused_code_reactivates_it(registry) -> None:
    registry.add('SCHOOL-42', 'admin@ridesafe.com')
    registry.deactivate('SCHOOL-42')

    admin_code = registry.add('SCHOOL-42', 'other-admin@ridesafe.com')

    assert admin_code.is_active is True
    assert admin_code.created_by == 'other-admin@ridesafe.com'
    assert registry.validate('SCHOOL-42') is True


@pytest.mark.parametrize('method', ['deactivate', 'delete'])
def test_deactivate_and_delete_keep_the_row(db, registry, method: str) -> None:
    registry.add('SCHOOL-42', 'admin@ridesafe.com')

    assert getattr(registry, method)('SCHOOL-42') is True

    assert registry.validate('SCHOOL-42') is False
    assert _row_count(db) == 1


def test_deactivate_unknown_code_returns_false(registry) -> None:
    assert registry.deactivate('NOPE') is False


def test_list_all_falls_back_to_bypass_codes_when_empty(registry) -> None:
    views = registry.list_all()

    assert [view.code for view in views] == ['ADMIN123', 'RIDESAFE2024']
    assert all(view.is_active and view.is_bypass for view in views)


def test_list_all_reports_registry_rows_once_populated(registry) -> None:
    registry.add('SCHOOL-42', 'admin@ridesafe.com')

    views = registry.list_all()

    assert [view.code for view in views] == ['SCHOOL-42']
    assert views[0].created_by == 'admin@ridesafe.com'
    assert views[0].is_bypass is False


def test_initialize_defaults_seeds_empty_registry_once(db, registry) -> None:
    assert registry.initialize_defaults() == 2
    assert registry.initialize_defaults() == 0
    assert _row_count(db) == 2


def test_initialize_defaults_skips_populated_registry(db, registry) -> None:
    registry.add('SCHOOL-42', 'admin@ridesafe.com')

    assert registry.initialize_defaults() == 0
    assert _row_count(db) == 1


def test_validate_answers_false_when_lookup_fails(db, registry, monkeypatch) -> None:
    def failing_get(*args, **kwargs):
        raise OperationalError('SELECT', {}, Exception('database is locked'))

    monkeypatch.setattr(db, 'get', failing_get)

    assert registry.validate('SCHOOL-42') is False
    assert registry.validate('RIDESAFE2024') is True

"""Unit tests for move statement rendering."""

import pytest

from rowmover.exceptions import MissingSpecError
from rowmover.registry import ArchiveTarget
from rowmover.statements import StatementBuilder

USERS_SINGLE_SQL = (
    'WITH moved AS (DELETE FROM "app"."users" WHERE "id" = $1 RETURNING *) '
    'INSERT INTO "archive"."users" '
    '("id", "email", "fullName", "createdAt", "updatedAt", "deletedAt", "deletedBy") '
    'SELECT "id", "email", "fullName", "createdAt", "updatedAt", now(), $2::text FROM moved'
)


@pytest.fixture
def builder() -> StatementBuilder:
    return StatementBuilder()


def test_single_statement_for_users(builder: StatementBuilder) -> None:
    """Single-row move is one DELETE ... RETURNING feeding an INSERT ... SELECT."""
    statement = builder.single(ArchiveTarget.USERS)

    assert statement.sql == USERS_SINGLE_SQL
    assert statement.id_count == 1
    assert statement.binds_audit is True
    assert statement.parameter_count == 2


def test_bulk_statement_numbers_ids_then_audit(builder: StatementBuilder) -> None:
    statement = builder.bulk(ArchiveTarget.USERS, 3)

    assert 'WHERE "id" IN ($1, $2, $3) RETURNING *' in statement.sql
    assert statement.sql.endswith("now(), $4::text FROM moved")
    assert statement.parameter_count == 4


def test_statement_without_audit_slot(builder: StatementBuilder) -> None:
    statement = builder.bulk(ArchiveTarget.API_TOKENS, 2)

    assert statement.binds_audit is False
    assert "::text" not in statement.sql
    assert statement.sql == (
        'WITH moved AS (DELETE FROM "app"."api_tokens" WHERE "id" IN ($1, $2) RETURNING *) '
        'INSERT INTO "archive"."api_tokens" '
        '("id", "user_id", "token_hash", "expires_at", "archived_at") '
        'SELECT "id", "user_id", "token_hash", "expires_at", now() FROM moved'
    )


def test_bind_orders_ids_then_audit(builder: StatementBuilder) -> None:
    statement = builder.bulk(ArchiveTarget.USERS, 3)
    assert statement.bind([30, 10, 20], "svc-cron") == (30, 10, 20, "svc-cron")


def test_bind_keeps_null_audit(builder: StatementBuilder) -> None:
    """A missing audit value is bound as NULL, never dropped."""
    assert builder.single(ArchiveTarget.USERS).bind([42]) == (42, None)


def test_bind_ignores_audit_without_slot(builder: StatementBuilder) -> None:
    statement = builder.single(ArchiveTarget.API_TOKENS)
    assert statement.bind([7], "svc-cron") == (7,)


def test_bind_rejects_wrong_id_count(builder: StatementBuilder) -> None:
    statement = builder.bulk(ArchiveTarget.USERS, 2)
    with pytest.raises(ValueError, match="expects 2 id"):
        statement.bind([1, 2, 3], "svc-cron")


def test_audit_value_is_never_interpolated(builder: StatementBuilder) -> None:
    """Audit values travel as parameters only."""
    hostile = "x'); DROP TABLE app.users; --"
    statement = builder.single(ArchiveTarget.USERS)

    assert hostile not in statement.sql
    assert statement.bind([1], hostile)[-1] == hostile


def test_bulk_rejects_empty_chunk(builder: StatementBuilder) -> None:
    with pytest.raises(ValueError, match="at least one id"):
        builder.bulk(ArchiveTarget.USERS, 0)


def test_statements_are_cached(builder: StatementBuilder) -> None:
    assert builder.bulk(ArchiveTarget.USERS, 5) is builder.bulk(ArchiveTarget.USERS, 5)
    assert builder.single(ArchiveTarget.USERS) is not builder.bulk(ArchiveTarget.USERS, 1)


def test_builder_requires_registry_member(builder: StatementBuilder) -> None:
    with pytest.raises(MissingSpecError):
        builder.single(None)  # type: ignore[arg-type]
    with pytest.raises(MissingSpecError):
        builder.bulk("users", 2)  # type: ignore[arg-type]


def test_preflight_renders_every_target(builder: StatementBuilder) -> None:
    statements = builder.preflight()
    assert [s.target for s in statements] == list(ArchiveTarget)
    assert all(s.sql.startswith("WITH moved AS (DELETE FROM") for s in statements)

from types import SimpleNamespace

from sqlalchemy.exc import IntegrityError, OperationalError

from services.rest_service import ConstraintBuilder
from utils.errors import (
    ConstraintViolation,
    FluentRestError,
    MissingParameter,
    ResourceNotFound,
    UnmappedDatabaseError,
    VerbNotSupported,
    map_database_error,
)


class FakeDriverError(Exception):
    pass


def integrity_error(message, **attrs):
    orig = FakeDriverError(message)
    for key, value in attrs.items():
        setattr(orig, key, value)
    return IntegrityError("INSERT INTO accounts ...", {}, orig)


EMAIL = {
    "accounts_email_key": SimpleNamespace(error="Email already taken.", status_code=409),
}


def test_error_bodies_carry_message_and_status():
    assert ResourceNotFound("gone").to_response() == {"message": "gone", "status_code": 404}
    assert VerbNotSupported("delete").status_code == 405
    assert "DELETE" in VerbNotSupported("delete").message
    assert MissingParameter("account_id").status_code == 400
    assert FluentRestError("teapot", 418).status_code == 418


def test_quoted_constraint_name_in_message():
    err = integrity_error('duplicate key value violates unique constraint "accounts_email_key"')
    mapped = map_database_error(err, EMAIL)
    assert isinstance(mapped, ConstraintViolation)
    assert mapped.constraint == "accounts_email_key"
    assert mapped.message == "Email already taken."
    assert mapped.status_code == 409
    assert mapped.nested_error is err


def test_structured_constraint_name_wins_over_message():
    err = integrity_error('violates "something_else"', constraint_name="accounts_email_key")
    assert isinstance(map_database_error(err, EMAIL), ConstraintViolation)


def test_diag_constraint_name():
    err = integrity_error("duplicate key", diag=SimpleNamespace(constraint_name="accounts_email_key"))
    assert isinstance(map_database_error(err, EMAIL), ConstraintViolation)


def test_sqlite_column_reference():
    constraints = {"accounts.email": SimpleNamespace(error="Email already taken.", status_code=409)}
    err = integrity_error("UNIQUE constraint failed: accounts.email")
    mapped = map_database_error(err, constraints)
    assert isinstance(mapped, ConstraintViolation)
    assert mapped.constraint == "accounts.email"


def test_caller_chosen_status_code():
    builder = ConstraintBuilder("accounts_email_key", entity=None)
    builder.throws_error("Nope.", status_code=422)
    err = integrity_error('unique constraint "accounts_email_key"')
    mapped = map_database_error(err, {"accounts_email_key": builder})
    assert mapped.status_code == 422
    assert mapped.to_response() == {"message": "Nope.", "status_code": 422}


def test_unregistered_constraint_is_unmapped():
    err = integrity_error('unique constraint "other_key"')
    mapped = map_database_error(err, EMAIL)
    assert isinstance(mapped, UnmappedDatabaseError)
    assert mapped.status_code == 500
    assert "other_key" in mapped.message


def test_non_integrity_database_error_is_unmapped():
    err = OperationalError("SELECT 1", {}, FakeDriverError("no such table: widgets"))
    mapped = map_database_error(err, EMAIL)
    assert isinstance(mapped, UnmappedDatabaseError)
    assert mapped.message == "no such table: widgets"


def test_none_and_known_errors_pass_through():
    assert map_database_error(None, EMAIL) is None
    known = ResourceNotFound("gone")
    assert map_database_error(known, EMAIL) is known

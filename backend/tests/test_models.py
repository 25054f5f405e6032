import pytest
from sqlalchemy.dialects import mysql, sqlite
from sqlalchemy.schema import CreateTable

from tirecode.models import TireCode, TireSize


def _column_ddl(model, column, dialect):
    ddl = str(CreateTable(model.__table__).compile(dialect=dialect))
    return next(line for line in ddl.splitlines() if line.strip().startswith(column))


@pytest.mark.parametrize(
    "model, column", [(TireCode, "code_public"), (TireSize, "size_normalized")]
)
def test_lookup_columns_compare_case_sensitively_on_mysql(model, column):
    assert "COLLATE utf8mb4_bin" in _column_ddl(model, column, mysql.dialect())
    assert "COLLATE" not in _column_ddl(model, column, sqlite.dialect())

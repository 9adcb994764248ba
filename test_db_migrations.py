from sqlalchemy import inspect, text

from db_migrations import add_missing_column, check_and_update_database
from models import db, Log


def test_up_to_date_schema_needs_no_changes(app):
    assert check_and_update_database(app) is True
    assert Log.query.filter_by(action="MIGRATION_ADD_COLUMNS").count() == 0


def test_missing_column_is_added_once(app):
    with db.engine.begin() as connection:
        connection.execute(text("CREATE TABLE legacy_course (id INTEGER PRIMARY KEY)"))

    added = add_missing_column(db.engine, inspect(db.engine), 'legacy_course', 'academic_year', "VARCHAR(20)")
    added_again = add_missing_column(db.engine, inspect(db.engine), 'legacy_course', 'academic_year', "VARCHAR(20)")

    assert added is True
    assert added_again is False
    assert 'academic_year' in [c['name'] for c in inspect(db.engine).get_columns('legacy_course')]


def test_missing_table_is_skipped(app):
    assert add_missing_column(db.engine, inspect(db.engine), 'no_such_table', 'x', "INTEGER") is False

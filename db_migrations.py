import logging
import traceback
from sqlalchemy import inspect, text

# Columns that older databases may lack: (table, column, DDL type and default)
ADDED_COLUMNS = [
    ('course', 'academic_year', "VARCHAR(20)"),
    ('course', 'status', "VARCHAR(20) DEFAULT 'FUTURE' NOT NULL"),
    ('course', 'target_percentage', "NUMERIC(5,2) DEFAULT 60.0 NOT NULL"),
    ('course', 'level1_threshold', "NUMERIC(5,2) DEFAULT 60.0 NOT NULL"),
    ('course', 'level2_threshold', "NUMERIC(5,2) DEFAULT 70.0 NOT NULL"),
    ('course', 'level3_threshold', "NUMERIC(5,2) DEFAULT 80.0 NOT NULL"),
    ('question_co_mapping', 'is_active', "BOOLEAN DEFAULT 1 NOT NULL"),
    ('co_attainment', 'semester', "VARCHAR(20)"),
]


def add_missing_column(engine, inspector, table_name, column_name, column_ddl):
    """Add a column to an existing table if it is missing. Returns True when the column was added."""
    if table_name not in inspector.get_table_names():
        logging.warning(f"{table_name} table not found. It will be created when the app runs.")
        return False

    columns = [c['name'] for c in inspector.get_columns(table_name)]
    if column_name in columns:
        logging.info(f"{column_name} column already exists in {table_name} table")
        return False

    logging.info(f"Adding {column_name} column to {table_name} table")
    with engine.begin() as connection:
        connection.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_ddl}"))
    logging.info(f"Successfully added {column_name} column to {table_name} table")
    return True


def check_and_update_database(app):
    """
    Check and update the database schema if necessary.
    This function runs at app startup to handle migrations for new columns.
    """
    logging.info("Checking database schema for required columns...")

    try:
        with app.app_context():
            from models import db, Log
            engine = db.engine
            inspector = inspect(engine)

            added = []
            for table_name, column_name, column_ddl in ADDED_COLUMNS:
                if add_missing_column(engine, inspector, table_name, column_name, column_ddl):
                    added.append(f"{table_name}.{column_name}")

            if added:
                # Log the migration
                try:
                    db.session.add(Log(action="MIGRATION_ADD_COLUMNS", description=f"Added columns: {', '.join(added)}"))
                    db.session.commit()
                except Exception as log_e:
                    db.session.rollback()
                    logging.warning(f"Could not log migration: {log_e}")

        return True

    except Exception as e:
        logging.error(f"Error checking or updating database schema: {str(e)}\n{traceback.format_exc()}")
        return False

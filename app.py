import os
import logging
import argparse
from flask import Flask, jsonify
from flask_migrate import Migrate

from config import Config
# Import db from models
from models import db
from exceptions import AttainmentError
# Import database migration function
from db_migrations import check_and_update_database

migrate = Migrate()


# Configure logging level from environment variable
def configure_logging(log_level_name='WARNING', log_file='app.log'):
    """Configure logging based on environment settings"""
    log_level = os.environ.get('LOG_LEVEL', log_level_name).upper()

    # Map string levels to logging constants
    level_mapping = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }

    actual_level = level_mapping.get(log_level, logging.WARNING)

    # Setup logging
    logging.basicConfig(
        filename=log_file,
        level=actual_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    return actual_level


def create_app(test_config=None):
    app = Flask(__name__)

    # Configuration
    app.config.from_object(Config)
    if test_config is not None:
        if isinstance(test_config, dict):
            app.config.update(test_config)
        else:
            app.config.from_object(test_config)

    # Ensure the instance folder exists for the default SQLite database
    base_dir = os.path.abspath(os.path.dirname(__file__))
    os.makedirs(os.path.join(base_dir, 'instance'), exist_ok=True)

    # Configure logging
    log_level = configure_logging(app.config['LOG_LEVEL'], app.config['LOG_FILE'])

    # Log the current configuration
    if log_level <= logging.INFO:
        logging.info(f"Application started with log level: {logging.getLevelName(log_level)}")

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)

    # Register blueprints
    from routes.calculation_routes import calculation_bp
    from routes.course_routes import course_bp
    from routes.outcome_routes import outcome_bp
    from routes.api_routes import api_bp

    app.register_blueprint(calculation_bp)
    app.register_blueprint(course_bp)
    app.register_blueprint(outcome_bp)
    app.register_blueprint(api_bp)

    @app.errorhandler(AttainmentError)
    def handle_attainment_error(error):
        db.session.rollback()
        logging.warning(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    # Create tables if they don't exist
    with app.app_context():
        db.create_all()
        # Run database migrations to update schema for existing installations
        check_and_update_database(app)

    return app


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='OBE attainment portal')
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=5000)
    parser.add_argument('--debug', action='store_true')
    args = parser.parse_args()

    app = create_app()
    app.run(host=args.host, port=args.port, debug=args.debug)

import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev_key_for_local_use')

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL',
        f'sqlite:///{os.path.join(BASE_DIR, "instance", "obe_portal.db")}'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'WARNING').upper()
    LOG_FILE = os.environ.get('LOG_FILE', 'app.log')

    # NBA program outcome bands
    PO_LEVEL1_THRESHOLD = 60.0
    PO_LEVEL2_THRESHOLD = 65.0
    PO_LEVEL3_THRESHOLD = 80.0
    NBA_COMPLIANCE_THRESHOLD = 60.0

    # Course statuses used for PO rollup when the caller does not filter
    PO_DEFAULT_COURSE_STATUSES = ('COMPLETED',)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    LOG_LEVEL = 'ERROR'

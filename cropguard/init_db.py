# =============================================================================
# CropGuard API
# init_db.py - Database Initialization Script
#
# Creates the scan record tables and checks that the disease table loads.
# Usage: python -m cropguard.init_db [--reset]
# =============================================================================

import sys

from cropguard.app import create_app
from cropguard.extensions import db


def init_database(config_name=None, app=None):
    """
    Create all tables.

    Args:
        config_name: Configuration environment, defaults to FLASK_ENV
        app: Existing application to use instead of creating one

    Returns:
        Flask: The application used
    """
    app = app or create_app(config_name)

    with app.app_context():
        db.create_all()
        print("✓ Database tables created successfully")

        store = app.config['DISEASE_STORE']
        print(f"✓ Disease reference table loaded ({len(store)} profiles)")

    return app


def reset_database(config_name=None, app=None, confirm=True):
    """
    Drop all tables and recreate them.

    WARNING: This will delete all scan records!
    """
    app = app or create_app(config_name)

    with app.app_context():
        if confirm:
            answer = input("⚠️  This will DELETE ALL DATA. Type 'yes' to confirm: ")
            if answer.lower() != 'yes':
                print("Operation cancelled")
                return app

        db.drop_all()
        print("✓ All tables dropped")

    return init_database(app=app)


if __name__ == '__main__':
    if len(sys.argv) > 1 and sys.argv[1] == '--reset':
        reset_database()
    else:
        init_database()

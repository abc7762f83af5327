"""
Local test server using SQLite (no MySQL needed).
Usage: python run_local.py
"""
import os

import django

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'wifipay.settings')
os.environ['DEBUG'] = 'True'
# Must be set BEFORE django.setup() so settings pick SQLite
os.environ['DB_ENGINE'] = 'sqlite'
os.environ.setdefault(
    'DB_NAME', os.path.join(os.path.dirname(os.path.abspath(__file__)), 'local_db.sqlite3')
)
# No router is reachable from a dev machine
os.environ.setdefault('MIKROTIK_MOCK_MODE', 'True')

django.setup()

from django.core.management import call_command

if __name__ == '__main__':
    # Run migrations first
    print("🔄 Running migrations...")
    call_command('migrate', verbosity=1)
    print("✅ Database ready!")
    print("")

    # Start server
    call_command('runserver', '0.0.0.0:8000')

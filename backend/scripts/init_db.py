"""CLI script to create the database tables and optionally a demo user.
Usage: python scripts/init_db.py [--demo] [--username NAME] [--password PW]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `study_tracker` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from study_tracker.config import settings
from study_tracker.database import engine, create_db_and_tables
from study_tracker import services, repositories
from study_tracker.errors import ConflictError


def main(demo: bool = False, username: str = 'demo', password: str = 'demo1234'):
    """Create all tables, then seed a demo user when `demo` is set.

    Seeding is refused outside the `dev` environment. Results are
    printed to stdout for a quick CLI feedback loop.
    """
    create_db_and_tables()
    print(f'Tables ready at {settings.DATABASE_URL}')
    if not demo:
        return
    if settings.ENV != 'dev':
        print('Refusing to seed a demo user outside ENV=dev')
        return
    with Session(engine) as session:
        if repositories.UserRepository(session).get_by_username(username):
            print(f'Demo user {username} already exists')
            return
        try:
            services.AuthService(session).register(username, f'{username}@example.com', password)
        except ConflictError as e:
            print(f'Could not seed demo user: {e.message}')
            return
        print(f'Seeded demo user: {username} / {password}')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--demo', action='store_true', help='Also create a demo user')
    parser.add_argument('--username', default='demo', help='Demo username')
    parser.add_argument('--password', default='demo1234', help='Demo password')
    args = parser.parse_args()
    main(demo=args.demo, username=args.username, password=args.password)

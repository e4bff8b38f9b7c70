"""
Database initialization, migration, and seeding utilities.
"""
import sys
import argparse

from shared.models.entities import Base
import features.ai_lessons.models.database  # noqa: F401  (registers lesson tables on Base)
from database import get_db_manager
from features.ai_lessons.services.adjustment_queue import AdjustmentQueueManager
from features.ai_lessons.services.seed_data import seed_lesson_defaults
from shared.services.llm_config_service import LLMConfigService


def migrate():
    """Create all database tables."""
    print("Creating database tables...")
    db_manager = get_db_manager()

    try:
        Base.metadata.create_all(bind=db_manager.engine)
        print("✓ Tables created")
    except Exception as e:
        print(f"Error during migration: {e}")
        raise


def seed_defaults():
    """Seed default assessment types, material constraints and LLM config."""
    print("Seeding defaults...")
    db_manager = get_db_manager()

    with db_manager.session_scope() as db:
        counts = seed_lesson_defaults(db)
        counts["llm_config"] = LLMConfigService(db).seed_defaults()

    for table, added in counts.items():
        print(f"✓ {table}: {added} added")


def cleanup_adjustments(days_old: int):
    """Delete processed adjustments older than `days_old` days."""
    db_manager = get_db_manager()

    db = db_manager.get_session()
    try:
        deleted = AdjustmentQueueManager(db).cleanup_old_processed_adjustments(days_old)
        print(f"✓ Deleted {deleted} processed adjustments older than {days_old} days")
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Database management CLI")
    parser.add_argument("--migrate", action="store_true", help="Create database tables")
    parser.add_argument("--seed-defaults", action="store_true",
                        help="Seed assessment types, material constraints and LLM config")
    parser.add_argument("--cleanup-adjustments", type=int, metavar="DAYS",
                        help="Delete processed adjustments older than DAYS days")

    args = parser.parse_args()

    if args.migrate:
        migrate()
    elif args.seed_defaults:
        seed_defaults()
    elif args.cleanup_adjustments is not None:
        cleanup_adjustments(args.cleanup_adjustments)
    else:
        print("Usage:")
        print("  python db.py --migrate                    # Create tables")
        print("  python db.py --seed-defaults              # Load default assessment types, constraints, LLM config")
        print("  python db.py --cleanup-adjustments DAYS   # Remove old processed adjustments")
        sys.exit(1)

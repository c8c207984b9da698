"""Reset database (development only)."""

from stashbattle.config import get_settings
from stashbattle.db.migrate import migrate


def reset() -> None:
    """Delete and recreate the database.

    Only cached scene listings and the battle session live here, so this
    never touches ratings stored on the Stash server.
    """
    settings = get_settings()
    db_path = settings.db_path

    if db_path.exists():
        db_path.unlink()
        print(f"✓ Deleted {db_path}")

    for suffix in (".db-wal", ".db-shm"):
        sidecar = db_path.with_suffix(suffix)
        if sidecar.exists():
            sidecar.unlink()

    migrate()
    print("✓ Database reset complete")


if __name__ == "__main__":
    reset()

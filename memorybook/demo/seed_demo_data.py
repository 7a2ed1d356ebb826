# memorybook/demo/seed_demo_data.py

from memorybook.storage.repository import SQLiteStore, initialize_schema

DEMO_USER = "demo-user"

DEMO_MEMORIES = [
    {"note": "First steps across the living room", "taken_at": "2026-09-03T09:15:00Z"},
    {"note": "Splashing in the paddling pool", "image_path": "photos/pool.jpg",
     "taken_at": "2026-09-12T15:40:00Z"},
    {"note": "Said 'dog' for the first time"},
]


def seed_demo_data(db_path: str = "memorybook.db") -> str:
    """Create a demo child with memories; returns a bearer token for the demo user."""
    initialize_schema(db_path)
    store = SQLiteStore(db_path)

    child = store.create_child(DEMO_USER, "Mia Rose")
    for memory in DEMO_MEMORIES:
        store.add_memory(child.id, **memory)

    return store.issue_token(DEMO_USER)


if __name__ == "__main__":
    print("Demo data inserted, token:", seed_demo_data())

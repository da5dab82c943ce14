"""
Seed the local caches with demo schedules, job cards and earnings.

Usage:
    python -m fieldsync seed-demo
    python -m fieldsync.scripts.seed_demo

Lets the offline screens be exercised without a server. Seeding twice is
harmless: schedules and job cards upsert by key, earnings are replaced.
"""
import logging

from fieldsync.store.pending import PendingMutationStore

logger = logging.getLogger(__name__)

DEMO_SCHEDULES = [
    {
        "id": 1,
        "date": "2024-01-15",
        "job_title": "Residential Renovation",
        "location": "123 Main St, Springfield",
        "start_time": "08:00",
        "end_time": "16:00",
        "status": "scheduled",
        "crew_size": 4,
        "equipment": ["Excavator", "Concrete mixer"],
    },
    {
        "id": 2,
        "date": "2024-01-16",
        "job_title": "Commercial Building - Floor 3",
        "location": "456 Business Ave, Downtown",
        "start_time": "07:00",
        "end_time": "15:00",
        "status": "scheduled",
        "crew_size": 6,
        "equipment": ["Scaffolding", "Power tools"],
    },
    {
        "id": 3,
        "date": "2024-01-17",
        "job_title": "Landscape Installation",
        "location": "789 Park Rd, Suburbs",
        "start_time": "08:30",
        "end_time": "17:00",
        "status": "scheduled",
        "crew_size": 3,
        "equipment": ["Bobcat", "Hand tools"],
    },
]

DEMO_JOB_CARDS = [
    {
        "job_number": "JOB-2024-001",
        "client": "ABC Construction Co.",
        "title": "Foundation Repair",
        "status": "active",
        "priority": "high",
        "progress": 65,
        "tasks": [
            {"id": 1, "name": "Site assessment", "completed": True},
            {"id": 2, "name": "Material delivery", "completed": True},
            {"id": 3, "name": "Foundation excavation", "completed": False},
            {"id": 4, "name": "Concrete pouring", "completed": False},
        ],
        "notes": "Weather dependent - check forecast",
    },
    {
        "job_number": "JOB-2024-002",
        "client": "XYZ Properties Ltd.",
        "title": "Roof Replacement",
        "status": "active",
        "priority": "medium",
        "progress": 30,
        "tasks": [
            {"id": 1, "name": "Remove old roofing", "completed": True},
            {"id": 2, "name": "Inspect structure", "completed": False},
        ],
        "notes": "Client wants premium shingles",
    },
]

DEMO_EARNINGS = [
    {"amount": 1850.0, "period": "2024-01", "description": "January to date"},
    {"amount": 7420.5, "period": "2023-12", "description": "December"},
    {"amount": 6980.0, "period": "2023-11", "description": "November"},
]


def seed_demo_data(store: PendingMutationStore) -> None:
    store.cache_schedules(DEMO_SCHEDULES)
    store.cache_job_cards(DEMO_JOB_CARDS)
    store.cache_earnings(DEMO_EARNINGS)
    logger.info(
        "Seeded %d schedules, %d job cards, %d earnings",
        len(DEMO_SCHEDULES),
        len(DEMO_JOB_CARDS),
        len(DEMO_EARNINGS),
    )


if __name__ == "__main__":
    from fieldsync.db.engine import get_engine

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    seed_demo_data(PendingMutationStore(get_engine()))

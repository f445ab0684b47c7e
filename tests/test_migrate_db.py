import json

from gigflow.db import dispose_engine
from gigflow.services.application_repository import ApplicationRepository
from scripts.migrate_db import migrate


def test_migrate_creates_tables_and_seeds_jobs(tmp_path):
    database_url = f"sqlite:///{tmp_path / 'migrated.db'}"
    seed = tmp_path / "jobs.json"
    seed.write_text(json.dumps([
        {"id": "J1", "employer_id": "E1", "title": "Harvest help", "hourly_rate": "90.00"},
        {"id": "J2", "employer_id": "E2", "title": "Closed", "is_active": False},
    ]))

    tables = migrate(database_url, seed)

    assert tables == [
        "application_status_changes",
        "applications",
        "jobs",
        "reconsidered_jobs",
    ]
    repository = ApplicationRepository(database_url)
    try:
        assert [job.id for job in repository.list_active_jobs()] == ["J1"]
        assert repository.get_job("J2").title == "Closed"
    finally:
        dispose_engine(database_url)

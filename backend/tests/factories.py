"""Row builders shared by the test modules."""
from datetime import datetime

from app.models.db_models import ClientDB


JOURNEY_START = datetime(2024, 3, 1, 9, 0, 0)


def make_client(db, name="Acme Recruiting", journey_started_at=None) -> ClientDB:
    client = ClientDB(name=name, journey_started_at=journey_started_at)
    db.add(client)
    db.flush()
    return client

from sqlalchemy import text
from sqlalchemy.pool import QueuePool

from flowbot.database import create_pooled_engine


def test_pool_settings_are_applied(db_url):
    engine = create_pooled_engine(db_url, pool_size=3, max_overflow=0, pool_timeout=1.5)

    assert isinstance(engine.pool, QueuePool)
    assert engine.pool.size() == 3
    assert engine.pool.timeout() == 1.5

    with engine.connect() as connection:
        assert connection.execute(text("SELECT 1")).scalar() == 1
    engine.dispose()

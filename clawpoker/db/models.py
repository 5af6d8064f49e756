"""Archive schema and initialization."""
from clawpoker.db.connection import db
from clawpoker.utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA = """
-- Completed hands, one row each
CREATE TABLE IF NOT EXISTS hand_history (
    hand_id VARCHAR(64) PRIMARY KEY,
    table_id VARCHAR(64) NOT NULL,
    hand_number INTEGER NOT NULL,
    dealer_seat INTEGER NOT NULL,
    pot_total INTEGER NOT NULL,
    community_cards JSONB NOT NULL,
    players JSONB NOT NULL,   -- seat, agent, hole cards, starting stack, total bet
    side_pots JSONB NOT NULL,
    winners JSONB NOT NULL,
    started_at TIMESTAMPTZ NOT NULL,
    completed_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_hand_history_table ON hand_history(table_id, hand_number DESC);

-- Flat action log per hand
CREATE TABLE IF NOT EXISTS hand_actions (
    hand_id VARCHAR(64) NOT NULL REFERENCES hand_history(hand_id) ON DELETE CASCADE,
    seq INTEGER NOT NULL,
    agent_id VARCHAR(64) NOT NULL,
    action VARCHAR(16) NOT NULL,
    amount INTEGER,
    street VARCHAR(16) NOT NULL,
    reason VARCHAR(16) NOT NULL,
    acted_at TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (hand_id, seq)
);
"""

# Migrations for existing databases
MIGRATIONS = [
    # Migration 1: index actions by agent for per-agent audit queries
    """
    CREATE INDEX IF NOT EXISTS idx_hand_actions_agent ON hand_actions(agent_id);
    """,
]


async def init_db() -> None:
    """Initialize database schema and run migrations."""
    logger.info("Initializing database schema...")
    await db.execute(SCHEMA)
    
    logger.info("Running migrations...")
    for i, migration in enumerate(MIGRATIONS, 1):
        try:
            await db.execute(migration)
            logger.info(f"Migration {i} completed")
        except Exception as e:
            logger.warning(f"Migration {i} skipped or failed: {e}")
    
    logger.info("Database schema initialized")

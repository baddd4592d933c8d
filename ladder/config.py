import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Ladder configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///ladder.db')

    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'

    # Rating settings
    STARTING_RATING = 1000
    GLOBAL_K_FACTOR = 32           # Global scope ignores the room K-factor
    DEFAULT_ROOM_K_FACTOR = 32
    OFFICE_LOSS_DAMPENING = 0.8    # Office rooms: losses hurt less

    # "independent" or "lockstep" (local delta follows the global one when ranked)
    LOCAL_RATING_POLICY = os.getenv('LOCAL_RATING_POLICY', 'independent').lower()

    # Store batching settings
    BATCH_LIMIT = int(os.getenv('BATCH_LIMIT', 400))
    STORE_MAX_BATCH_OPERATIONS = 500
    GET_ALL_CHUNK_SIZE = 100

    # Standings settings
    RATING_VISIBILITY_THRESHOLD = int(os.getenv('RATING_VISIBILITY_THRESHOLD', 5))
    FORM_WINDOW = 5

    # Legacy "dd.mm.yyyy hh.mm.ss" timestamps are local time; empty means system local
    LEGACY_TIMEZONE = os.getenv('LEGACY_TIMEZONE', '')

    # Comma-separated sports to recalculate; empty means discover from the store
    SPORTS = os.getenv('SPORTS', '')

    @classmethod
    def get_sports(cls):
        """Get list of configured sports for recalculation"""
        return [sport.strip() for sport in cls.SPORTS.split(',') if sport.strip()]

    @classmethod
    def get_async_database_url(cls):
        """Get the database URL with an async driver"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return database_url

    @classmethod
    def validate(cls):
        """Validate that configuration values are consistent"""
        if cls.BATCH_LIMIT <= 0:
            raise ValueError("BATCH_LIMIT must be positive")
        if cls.BATCH_LIMIT >= cls.STORE_MAX_BATCH_OPERATIONS:
            raise ValueError(
                f"BATCH_LIMIT ({cls.BATCH_LIMIT}) must be below the store cap "
                f"({cls.STORE_MAX_BATCH_OPERATIONS})"
            )
        if cls.LOCAL_RATING_POLICY not in ('independent', 'lockstep'):
            raise ValueError("LOCAL_RATING_POLICY must be 'independent' or 'lockstep'")
        if cls.RATING_VISIBILITY_THRESHOLD < 0:
            raise ValueError("RATING_VISIBILITY_THRESHOLD cannot be negative")

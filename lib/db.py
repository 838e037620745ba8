"""
Database module - PostgreSQL connection pooling
"""
import json
from contextlib import asynccontextmanager

import asyncpg

from lib.settings import Settings


async def _init_connection(conn):
    """Decode json/jsonb columns to Python objects"""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog"
        )


class Database:
    """Database connection pool manager"""

    def __init__(self, settings: Settings):
        self.dsn = str(settings.database_url)
        self.pool = None

    async def connect(self):
        """Create connection pool"""
        self.pool = await asyncpg.create_pool(
            self.dsn,
            min_size=5,
            max_size=20,
            command_timeout=60,
            init=_init_connection
        )

    async def disconnect(self):
        """Close connection pool"""
        if self.pool:
            await self.pool.close()

    @asynccontextmanager
    async def acquire(self):
        """Acquire connection from pool inside a transaction"""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    @asynccontextmanager
    async def read(self):
        """Acquire connection for reads (short timeout, no transaction)"""
        async with self.pool.acquire(timeout=5.0) as conn:
            yield conn

    async def health_check(self) -> bool:
        """Test database connectivity"""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                return result == 1
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError):
            return False

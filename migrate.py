#!/usr/bin/env python3
"""
Database migration runner for Referkit
Applies any new *.sql files not recorded in schema_migrations table
"""
import asyncio
import hashlib
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import asyncpg

from lib.logging import get_logger, setup_logging
from lib.settings import Settings, get_settings

logger = get_logger("migrate")

EXPECTED_TABLES = {
    'schema_migrations', 'organizations', 'org_members', 'campaigns',
    'participants', 'referral_links', 'events', 'conversions',
    'rewards', 'fraud_signals'
}


def migration_version(filename: str) -> Optional[int]:
    """001_referral_core.sql -> 1; None for files that do not follow the pattern"""
    try:
        return int(filename.split('_')[0])
    except (ValueError, IndexError):
        return None


class MigrationRunner:
    def __init__(self, settings: Settings, migrations_dir: Path = Path('sql/migrations')):
        self.settings = settings
        self.migrations_dir = migrations_dir
        self.conn = None

    async def connect(self):
        self.conn = await asyncpg.connect(str(self.settings.database_url))

    async def disconnect(self):
        if self.conn:
            await self.conn.close()

    async def ensure_migrations_table(self):
        await self.conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                checksum TEXT NOT NULL,
                applied_at TIMESTAMPTZ DEFAULT NOW(),
                execution_time_ms INTEGER
            )
        """)

    async def get_applied_migrations(self) -> Dict[int, str]:
        rows = await self.conn.fetch("""
            SELECT version, checksum
            FROM schema_migrations
            ORDER BY version
        """)
        return {row['version']: row['checksum'] for row in rows}

    def get_migration_files(self) -> List[Tuple[int, Path, str]]:
        """All migration files sorted by version, with content checksums"""
        migrations = []

        for file in self.migrations_dir.glob('*.sql'):
            version = migration_version(file.name)
            if version is None:
                logger.warning(f"Skipping invalid migration filename: {file.name}")
                continue

            checksum = hashlib.sha256(file.read_bytes()).hexdigest()
            migrations.append((version, file, checksum))

        return sorted(migrations, key=lambda x: x[0])

    async def apply_migration(self, version: int, file: Path, checksum: str):
        name = file.stem
        start_time = asyncio.get_running_loop().time()
        logger.info(f"Applying {name}...")

        sql = file.read_text(encoding='utf-8')

        async with self.conn.transaction():
            await self.conn.execute(sql)

            execution_time_ms = int((asyncio.get_running_loop().time() - start_time) * 1000)
            await self.conn.execute("""
                INSERT INTO schema_migrations (version, name, checksum, execution_time_ms)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (version)
                DO UPDATE SET
                    checksum = $3,
                    applied_at = NOW(),
                    execution_time_ms = $4
            """, version, name, checksum, execution_time_ms)

        logger.info(f"{name} applied in {execution_time_ms}ms")

    async def run(self, force: bool = False):
        """Run all pending migrations"""
        try:
            await self.connect()
            await self.ensure_migrations_table()

            applied = await self.get_applied_migrations()
            migrations = self.get_migration_files()

            if not migrations:
                logger.info("No migration files found")
                return

            skipped = 0
            applied_count = 0

            for version, file, checksum in migrations:
                if version not in applied:
                    await self.apply_migration(version, file, checksum)
                    applied_count += 1
                elif applied[version] == checksum:
                    skipped += 1
                elif force:
                    logger.warning(f"Re-applying {file.stem} (checksum changed)")
                    await self.apply_migration(version, file, checksum)
                    applied_count += 1
                else:
                    logger.warning(f"{file.stem} has changed but not re-applying (use --force)")
                    skipped += 1

            logger.info(
                f"Migrations: total={len(migrations)} applied={applied_count} "
                f"skipped={skipped} host={self.settings.database_url.hosts()[0]['host']}"
            )

            await self.verify_schema()
        finally:
            await self.disconnect()

    async def verify_schema(self):
        tables = await self.conn.fetch("""
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'public'
            AND table_type = 'BASE TABLE'
        """)

        missing_tables = EXPECTED_TABLES - {t['table_name'] for t in tables}
        if missing_tables:
            logger.warning(f"Missing expected tables: {', '.join(sorted(missing_tables))}")
        else:
            logger.info(f"All {len(EXPECTED_TABLES)} expected tables present")


async def main():
    setup_logging()
    runner = MigrationRunner(get_settings())
    await runner.run(force='--force' in sys.argv)


if __name__ == "__main__":
    asyncio.run(main())

"""
Shared utilities for CLI scripts.

Provides common patterns for:
- Database session management
- CLI argument parsing
- Output formatting
"""

import argparse
import asyncio
import io
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

# Handle Windows UTF-8 output
if sys.platform == 'win32':
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.database import async_session_maker
from app.models import Company


# =============================================================================
# DATABASE UTILITIES
# =============================================================================

@asynccontextmanager
async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Get an async database session with proper cleanup."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def find_company(session: AsyncSession, company: str) -> Optional[Company]:
    """Find a company by id, or by exact name if the argument is not a UUID."""
    try:
        return await session.get(Company, UUID(company))
    except ValueError:
        result = await session.execute(select(Company).where(Company.name == company))
        return result.scalars().first()


# =============================================================================
# CLI UTILITIES
# =============================================================================

def create_base_parser(description: str) -> argparse.ArgumentParser:
    """Create a base argument parser with common options."""
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        '--company',
        type=str,
        help='Company id or exact name'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Show detailed output'
    )
    return parser


# =============================================================================
# OUTPUT FORMATTING
# =============================================================================

def print_header(title: str, width: int = 70) -> None:
    """Print a formatted header."""
    print('=' * width)
    print(title)
    print('=' * width)


def print_summary(stats: dict, width: int = 70) -> None:
    """Print a summary of statistics."""
    print()
    print('=' * width)
    print('SUMMARY')
    print('=' * width)
    for key, value in stats.items():
        print(f"  {key}: {value}")


# =============================================================================
# COMMON PATTERNS
# =============================================================================

def run_async(coro):
    """Run async function with proper event loop handling."""
    if sys.platform == 'win32':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    return asyncio.run(coro)

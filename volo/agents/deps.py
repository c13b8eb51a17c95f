from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

import httpx

from ..browser import BrowserSessionManager
from ..contracts import Platform, WorkflowType
from ..ledger import Ledger
from ..persistence import VoloRepository
from .router import DomainThrottle
from .search import SearchClient


@dataclass
class AgentDeps:
    """Everything a tool needs while one agent run is executing."""

    run_id: str
    workflow_type: WorkflowType
    ledger: Ledger
    repository: VoloRepository
    search: Optional[SearchClient] = None
    browser: Optional[BrowserSessionManager] = None
    http_client: Optional[httpx.AsyncClient] = None
    throttle: DomainThrottle = field(default_factory=DomainThrottle)
    # Session pages scraped so far in this run, per platform.
    pages_scraped: dict[Platform, int] = field(default_factory=dict)
    # Shared across runs so concurrent dedup checks cannot interleave.
    contact_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

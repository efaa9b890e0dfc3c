"""
Per-call caller identity and invocation context.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .constants import DEFAULT_MAX_EXECUTION_SECONDS
from .tools import ToolBinding


def _claim_values(claims: Dict[str, Any], names: Iterable[str], split: bool) -> List[str]:
    values: List[str] = []
    for name in names:
        claim = claims.get(name)
        if claim is None:
            continue
        items = claim if isinstance(claim, (list, tuple)) else [claim]
        for item in items:
            values.extend(str(item).split() if split else [str(item)])
    return list(dict.fromkeys(v for v in values if v))


@dataclass(frozen=True)
class CallerIdentity:
    user_id: Optional[str] = None
    scopes: frozenset = frozenset()
    roles: frozenset = frozenset()

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "CallerIdentity":
        """Build an identity from token claims ('scope'/'scp' are space separated)."""
        return cls(
            user_id=claims.get("sub") or claims.get("oid") or claims.get("name"),
            scopes=frozenset(_claim_values(claims, ("scope", "scp"), split=True)),
            roles=frozenset(_claim_values(claims, ("roles", "role"), split=False)),
        )

    @classmethod
    def anonymous(cls) -> "CallerIdentity":
        return cls()


@dataclass
class ToolInvocationContext:
    caller: CallerIdentity = field(default_factory=CallerIdentity.anonymous)
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    binding: Optional[ToolBinding] = None
    service_base_url: str = ""
    auth_token: Optional[str] = None
    max_execution_time: float = DEFAULT_MAX_EXECUTION_SECONDS
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: float = field(default_factory=time.monotonic)
    cancellation: asyncio.Event = field(default_factory=asyncio.Event)

    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started_at

    def remaining_seconds(self) -> float:
        return max(0.0, self.max_execution_time - self.elapsed_seconds())

    def is_deadline_exceeded(self) -> bool:
        return self.elapsed_seconds() >= self.max_execution_time

    def is_cancelled(self) -> bool:
        return self.cancellation.is_set()

"""
Election and Vote Data Models
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class ElectionType(str, Enum):
    PRESIDENTIAL = "PRESIDENTIAL"
    PARLIAMENTARY = "PARLIAMENTARY"
    LOCAL = "LOCAL"


@dataclass(frozen=True)
class VoteOption:
    id: str
    label: str
    short_label: Optional[str] = None


@dataclass(frozen=True)
class Election:
    id: str
    type: ElectionType
    name: str
    starts_at: datetime
    ends_at: datetime
    options: List[VoteOption] = field(default_factory=list)
    name_ro: Optional[str] = None
    is_active: bool = True

    def is_open(self, now: datetime) -> bool:
        return self.is_active and self.starts_at <= now <= self.ends_at

    def find_option(self, option_id: str) -> Optional[VoteOption]:
        for option in self.options:
            if option.id == option_id:
                return option
        return None


@dataclass(frozen=True)
class Vote:
    """A cast ballot as stored locally."""
    id: str
    election_id: str
    election_name: str
    option_id: str
    option_label: str
    encrypted_payload: str
    quantum_key_id: str
    receipt_token: str
    created_at: datetime
    is_real_qkd: bool
    eve_detected: bool = False
    qber: Optional[float] = None


@dataclass(frozen=True)
class VoteReceipt:
    vote_id: str
    election_id: str
    election_name: str
    receipt_token: str
    created_at: datetime
    quantum_secured: bool

"""Clipboard history item model"""

import hashlib
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any


class ContentType(str, Enum):
    """Semantic classification of captured clipboard text"""
    TEXT = "text"
    CODE = "code"
    JSON = "json"
    URL = "url"
    EMAIL = "email"
    MARKDOWN = "markdown"
    HTML = "html"


@dataclass
class ClipboardItem:
    """Single captured clipboard snapshot"""
    id: str
    content: str
    content_type: ContentType
    timestamp: datetime
    size: int
    preview: str
    code_language: Optional[str] = None
    source_app: str = "unknown"
    is_favorite: bool = False
    tags: List[str] = field(default_factory=list)

    @staticmethod
    def calculate_hash(content: str) -> str:
        """Calculate SHA-256 fingerprint of content"""
        return hashlib.sha256(content.encode('utf-8')).hexdigest()

    @property
    def content_hash(self) -> str:
        return self.calculate_hash(self.content)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        data = asdict(self)
        data['content_type'] = self.content_type.value
        data['timestamp'] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClipboardItem':
        """Create from dictionary"""
        data = dict(data)
        data['content_type'] = ContentType(data['content_type'])
        data['timestamp'] = datetime.fromisoformat(data['timestamp'])
        data['tags'] = list(data.get('tags') or [])
        return cls(**data)

    def __eq__(self, other):
        if not isinstance(other, ClipboardItem):
            return False
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)

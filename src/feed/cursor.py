"""
Opaque page cursor.

The feed is rebuilt from page 0 on every request, so the cursor only has
to carry the page number. It is base64 JSON to keep it opaque to hosts.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.errors import InvalidInput


@dataclass(frozen=True)
class FeedCursor:
    page: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"page": self.page}

    def encode(self) -> str:
        """Encode cursor as opaque base64 string for API response."""
        json_str = json.dumps(self.to_dict(), separators=(",", ":"))
        return base64.urlsafe_b64encode(json_str.encode("utf-8")).decode("utf-8")

    def next(self) -> "FeedCursor":
        return FeedCursor(page=self.page + 1)

    @classmethod
    def decode(cls, encoded: Optional[str]) -> "FeedCursor":
        """
        Decode a cursor string; None or "" means the first page.

        Raises:
            InvalidInput: the string is not a cursor this engine issued.
        """
        if not encoded:
            return cls()
        try:
            json_str = base64.urlsafe_b64decode(encoded.encode("utf-8")).decode("utf-8")
            data = json.loads(json_str)
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            raise InvalidInput("malformed cursor", field="cursor") from e

        page = data.get("page") if isinstance(data, dict) else None
        if not isinstance(page, int) or isinstance(page, bool) or page < 0:
            raise InvalidInput("malformed cursor", field="cursor")
        return cls(page=page)

from __future__ import annotations

import re

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_identifier(name: str, *, qualified: bool = False) -> bool:
    """Plain SQL identifier check; ``qualified`` allows ``schema.table``."""
    parts = name.split(".") if qualified else [name]
    return all(IDENTIFIER_PATTERN.match(part) for part in parts)

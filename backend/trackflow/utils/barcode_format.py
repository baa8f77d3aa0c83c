"""Barcode token format helpers shared by the server and the mobile client.

Format:  {PREFIX}-{base36 millisecond timestamp}-{hex random}, uppercased.

    ASM-LX2K9QZ1-9F3A1C0B      assembly
    BATCH-LX2K9R0A-0D14E2F7    logistics batch

Lookups never depend on these patterns; they only let clients guess what
was scanned before asking the server.
"""

import enum
import re
import secrets
import time

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

ASSEMBLY_PATTERN = re.compile(r"^ASM-[A-Z0-9]+-[A-Z0-9]+$")
BATCH_PATTERN = re.compile(r"^BATCH-[A-Z0-9]+-[A-Z0-9]+$")
UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


class CodeType(str, enum.Enum):
    ASSEMBLY = "assembly"
    BATCH = "batch"
    UUID = "uuid"
    UNKNOWN = "unknown"


def to_base36(number: int) -> str:
    if number < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def build_token(prefix: str, timestamp_ms: int | None = None, random_bytes: int = 4) -> str:
    """Return a fresh `PREFIX-<time>-<random>` token."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{prefix}-{to_base36(timestamp_ms)}-{secrets.token_hex(random_bytes)}".upper()


def identify_code_type(code: str | None) -> CodeType:
    code = (code or "").strip()
    if ASSEMBLY_PATTERN.match(code):
        return CodeType.ASSEMBLY
    if BATCH_PATTERN.match(code):
        return CodeType.BATCH
    if UUID_PATTERN.match(code):
        return CodeType.UUID
    return CodeType.UNKNOWN


def is_assembly_barcode(code: str | None) -> bool:
    return identify_code_type(code) == CodeType.ASSEMBLY


def is_batch_barcode(code: str | None) -> bool:
    return identify_code_type(code) == CodeType.BATCH

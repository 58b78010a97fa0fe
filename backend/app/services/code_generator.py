# code generator: 5-digit invitation codes with a bounded collision check
# uniqueness is checked, not enforced: two concurrent creators can still race

import logging
import re
import secrets

from app.errors import ResourceExhausted

logger = logging.getLogger(__name__)

CODE_MIN = 10000
CODE_MAX = 99999
CODE_PATTERN = re.compile(r"[0-9]{5}")


def generate_code() -> str:
    """uniform draw from [10000, 99999]"""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def is_valid_code(code: str) -> bool:
    return bool(CODE_PATTERN.fullmatch(code))


async def ensure_unique_code(store, max_attempts: int) -> str:
    """generate codes until one is not carried by a used or still-pending record"""
    for attempt in range(1, max_attempts + 1):
        code = generate_code()
        if not await store.code_in_use(code):
            if attempt > 1:
                logger.info(f"Invitation code found after {attempt} attempts")
            return code

    logger.error(f"No free invitation code after {max_attempts} attempts")
    raise ResourceExhausted(
        "Failed to generate a unique invitation code. Please try again.",
        {"attempts": max_attempts},
    )

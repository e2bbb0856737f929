"""Rate limiting configuration using slowapi.

Submissions are limited per employee (``settings.SUBMIT_RATE_LIMIT``) so
that several employees behind one gateway address do not share a budget.
Callers without an identity header fall back to their client address.
"""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address


def employee_or_address(request: Request) -> str:
    employee_id = request.headers.get("x-employee-id")
    if employee_id:
        return f"employee:{employee_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=employee_or_address)

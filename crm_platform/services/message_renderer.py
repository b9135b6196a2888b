"""
Per-customer message personalization.
"""
import re

from crm_platform.models.customers import Customer

FIRST_NAME_PLACEHOLDER = re.compile(r"\{\{\s*firstName\s*\}\}")


def render_message(template: str, customer: Customer) -> str:
    """
    Substitute every {{firstName}} placeholder with the customer's first name.

    Whitespace inside the braces is tolerated; other placeholders are left as-is.
    """
    first_name = customer.first_name
    return FIRST_NAME_PLACEHOLDER.sub(lambda _: first_name, template)
